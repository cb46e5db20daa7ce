"""Demo OAuth 2.0 authorization server (authorization code + PKCE)."""
