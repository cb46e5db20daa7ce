# Tests for environment-sourced settings.
# Created: 2026-02-21

import pytest
from pydantic import ValidationError

from pocketmcp.config import (
    AuthServerSettings,
    Settings,
    get_auth_server_settings,
    get_settings,
    reset_settings,
)


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.port == 3000
        assert settings.disable_auth is False
        assert settings.auth_token_mode == "introspection"
        assert settings.oauth_introspect_url == "http://localhost:3001/introspect"
        assert settings.jwt_jwks_url is None
        assert settings.scopes == ["mcp:tools", "openid", "profile", "email"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("DISABLE_AUTH", "true")
        monkeypatch.setenv("OAUTH_SERVER_URL", "https://auth.example/")
        settings = Settings(_env_file=None)
        assert settings.port == 8080
        assert settings.disable_auth is True
        assert settings.oauth_server_url == "https://auth.example"
        assert settings.oauth_introspect_url == "https://auth.example/introspect"

    def test_explicit_introspect_url_wins(self):
        settings = Settings(_env_file=None, oauth_introspect_url="http://other/introspect")
        assert settings.oauth_introspect_url == "http://other/introspect"

    def test_mode_is_case_insensitive(self):
        assert Settings(_env_file=None, auth_token_mode="JWT").auth_token_mode == "jwt"

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, auth_token_mode="saml")

    def test_jwks_url_derived_from_issuer(self):
        settings = Settings(_env_file=None, jwt_issuer="https://issuer.example/")
        assert settings.jwt_jwks_url == "https://issuer.example/.well-known/jwks.json"

    def test_explicit_jwks_url_wins(self):
        settings = Settings(
            _env_file=None, jwt_issuer="https://issuer.example", jwt_jwks_url="https://keys/jwks"
        )
        assert settings.jwt_jwks_url == "https://keys/jwks"

    def test_algorithms_list(self):
        settings = Settings(_env_file=None, jwt_algorithms="RS256, ES256")
        assert settings.algorithms == ["RS256", "ES256"]

    @pytest.mark.parametrize("value", ["HS256", "RS256,HS512", "none", ""])
    def test_symmetric_or_empty_algorithms_rejected(self, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, jwt_algorithms=value)

    def test_cors_origins(self):
        settings = Settings(_env_file=None, cors_allowed_origins="http://a.test,http://b.test")
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_unknown_tool_pack_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, tool_pack="react")


class TestAuthServerSettings:
    def test_issuer_defaults_to_port(self):
        settings = AuthServerSettings(_env_file=None, auth_port=4000)
        assert settings.issuer == "http://localhost:4000"

    def test_issuer_trailing_slash_stripped(self):
        settings = AuthServerSettings(_env_file=None, issuer_url="https://auth.example/")
        assert settings.issuer == "https://auth.example"

    def test_token_format(self, monkeypatch):
        monkeypatch.setenv("TOKEN_FORMAT", "JWT")
        assert AuthServerSettings(_env_file=None).token_format == "jwt"


class TestSingletons:
    def test_cached_until_reset(self, monkeypatch):
        monkeypatch.setenv("PORT", "3100")
        first = get_settings()
        assert first is get_settings()
        assert first.port == 3100

        monkeypatch.setenv("PORT", "3200")
        reset_settings()
        assert get_settings().port == 3200

    def test_auth_server_singleton(self):
        assert get_auth_server_settings() is get_auth_server_settings()
