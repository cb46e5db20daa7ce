# Tests for the OAuth2/PKCE authorization server.
# Created: 2026-02-20

import time
from urllib.parse import parse_qs, urlsplit

import jwt
import pytest
from fastapi.testclient import TestClient

from pocketmcp.api.serve import create_auth_app
from pocketmcp.config import AuthServerSettings
from pocketmcp.oauth2.pkce import generate_code_verifier, s256_challenge
from pocketmcp.oauth2.server import AuthorizationServer, build_redirect
from pocketmcp.oauth2.signing import TokenSigner
from pocketmcp.oauth2.storage import InMemoryOAuthStorage

REDIRECT = "https://app.example/cb"


@pytest.fixture
def settings():
    return AuthServerSettings(_env_file=None, issuer_url="http://auth.test", token_format="opaque")


@pytest.fixture
def server(settings):
    return AuthorizationServer(InMemoryOAuthStorage(), settings)


@pytest.fixture
def registered(server):
    result, error = server.register({"redirect_uris": [REDIRECT], "client_name": "Test"})
    assert error is None
    return result


@pytest.fixture
def client(settings, server):
    return TestClient(create_auth_app(settings, server))


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


def _authorize(server, client_id, verifier, **overrides):
    params = dict(
        client_id=client_id,
        redirect_uri=REDIRECT,
        response_type="code",
        code_challenge=s256_challenge(verifier),
        code_challenge_method="S256",
        scope="mcp:tools",
        state="xyz",
    )
    params.update(overrides)
    return server.authorize(**params)


def _code_for(server, client_id, verifier, **overrides):
    url, error = _authorize(server, client_id, verifier, **overrides)
    assert error is None
    return _query(url)["code"]


# ===================== AuthorizationServer unit tests =====================


class TestRegistration:
    def test_register_public_client(self, server):
        result, error = server.register({"redirect_uris": [REDIRECT]})
        assert error is None
        assert result["token_endpoint_auth_method"] == "none"
        assert "client_secret" not in result
        assert result["scope"] == "mcp:tools openid profile email"

    def test_register_confidential_client(self, server):
        result, error = server.register(
            {"redirect_uris": [REDIRECT], "token_endpoint_auth_method": "client_secret_post"}
        )
        assert error is None
        assert len(result["client_secret"]) == 64

    def test_identical_metadata_yields_new_id(self, server):
        first, _ = server.register({"redirect_uris": [REDIRECT]})
        second, _ = server.register({"redirect_uris": [REDIRECT]})
        assert first["client_id"] != second["client_id"]

    @pytest.mark.parametrize(
        "metadata",
        [
            {},
            {"redirect_uris": []},
            {"redirect_uris": "https://a/cb"},
            {"redirect_uris": [REDIRECT], "token_endpoint_auth_method": "private_key_jwt"},
            {"redirect_uris": [REDIRECT], "scope": ["mcp:tools"]},
        ],
    )
    def test_invalid_metadata(self, server, metadata):
        result, error = server.register(metadata)
        assert result is None
        assert error.error == "invalid_client_metadata"


class TestAuthorize:
    def test_success_redirects_with_code_and_state(self, server, registered):
        url, error = _authorize(server, registered["client_id"], generate_code_verifier())
        assert error is None
        assert url.startswith(REDIRECT + "?")
        query = _query(url)
        assert query["code"]
        assert query["state"] == "xyz"

    def test_unknown_client_is_direct_error(self, server):
        url, error = _authorize(server, "nope", generate_code_verifier())
        assert url is None
        assert error.error == "invalid_client"

    def test_redirect_mismatch_never_redirects(self, server):
        result, _ = server.register({"redirect_uris": ["https://a/cb"]})
        url, error = _authorize(
            server, result["client_id"], generate_code_verifier(), redirect_uri="https://b/cb"
        )
        assert url is None
        assert error.status_code == 400
        assert error.error == "invalid_request"

    def test_unsupported_response_type_redirects_error(self, server, registered):
        url, error = _authorize(
            server, registered["client_id"], generate_code_verifier(), response_type="token"
        )
        assert error is None
        query = _query(url)
        assert query["error"] == "unsupported_response_type"
        assert query["state"] == "xyz"

    def test_plain_pkce_rejected(self, server, registered):
        url, _ = _authorize(
            server, registered["client_id"], generate_code_verifier(), code_challenge_method="plain"
        )
        assert _query(url)["error"] == "invalid_request"

    def test_scope_outside_registration_rejected(self, server, registered):
        url, _ = _authorize(server, registered["client_id"], generate_code_verifier(), scope="admin")
        assert _query(url)["error"] == "invalid_scope"


class TestExchange:
    def test_valid_exchange(self, server, registered):
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier)
        result, error = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
            redirect_uri=REDIRECT,
        )
        assert error is None
        assert result["token_type"] == "Bearer"
        assert result["expires_in"] == 3600
        assert result["scope"] == "mcp:tools"

    def test_wrong_verifier_fails(self, server, registered):
        code = _code_for(server, registered["client_id"], generate_code_verifier())
        result, error = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=generate_code_verifier(),
        )
        assert result is None
        assert error.error == "invalid_grant"

    def test_code_is_consumed_even_when_exchange_fails(self, server, registered):
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier)

        _, first = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier="wrong-verifier-value",
        )
        _, second = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
        )
        assert first.error == "invalid_grant"
        assert second.error == "invalid_grant"

    def test_double_redemption_fails(self, server, registered):
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier)
        kwargs = dict(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
        )
        assert server.exchange(**kwargs)[1] is None
        assert server.exchange(**kwargs)[1].error == "invalid_grant"

    def test_expired_code(self, server, registered):
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier)
        server.storage._codes[code].expires_at = time.time() - 1
        _, error = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
        )
        assert error.error == "invalid_grant"

    def test_code_bound_to_client(self, server, registered):
        other, _ = server.register({"redirect_uris": [REDIRECT]})
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier)
        _, error = server.exchange(
            grant_type="authorization_code",
            client_id=other["client_id"],
            code=code,
            code_verifier=verifier,
        )
        assert error.error == "invalid_grant"

    def test_redirect_uri_must_match(self, server, registered):
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier)
        _, error = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
            redirect_uri="https://other.example/cb",
        )
        assert error.error == "invalid_grant"

    def test_resource_mismatch(self, server, registered):
        verifier = generate_code_verifier()
        code = _code_for(
            server, registered["client_id"], verifier, resource="http://rs.test/mcp"
        )
        _, error = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
            resource="http://elsewhere.test/mcp",
        )
        assert error.error == "invalid_target"

    def test_unsupported_grant_type(self, server, registered):
        _, error = server.exchange(
            grant_type="refresh_token",
            client_id=registered["client_id"],
            code="x",
            code_verifier="y",
        )
        assert error.error == "unsupported_grant_type"

    def test_confidential_client_needs_secret(self, server):
        reg, _ = server.register(
            {"redirect_uris": [REDIRECT], "token_endpoint_auth_method": "client_secret_post"}
        )
        verifier = generate_code_verifier()
        code = _code_for(server, reg["client_id"], verifier)
        _, error = server.exchange(
            grant_type="authorization_code",
            client_id=reg["client_id"],
            code=code,
            code_verifier=verifier,
            client_secret="wrong",
        )
        assert error.error == "invalid_client"
        assert error.status_code == 401

        # A failed client authentication does not burn the code.
        result, error = server.exchange(
            grant_type="authorization_code",
            client_id=reg["client_id"],
            code=code,
            code_verifier=verifier,
            client_secret=reg["client_secret"],
        )
        assert error is None
        assert result["access_token"]


class TestIntrospection:
    def _token(self, server, registered, **overrides):
        verifier = generate_code_verifier()
        code = _code_for(server, registered["client_id"], verifier, **overrides)
        result, _ = server.exchange(
            grant_type="authorization_code",
            client_id=registered["client_id"],
            code=code,
            code_verifier=verifier,
        )
        return result["access_token"]

    def test_active_token(self, server, registered):
        data = server.introspect(self._token(server, registered))
        assert data["active"] is True
        assert data["client_id"] == registered["client_id"]
        assert data["scope"] == "mcp:tools"
        assert data["token_type"] == "Bearer"
        assert "aud" not in data

    def test_audience_from_resource(self, server, registered):
        token = self._token(server, registered, resource="http://rs.test/mcp")
        assert server.introspect(token)["aud"] == "http://rs.test/mcp"

    def test_unknown_token_inactive(self, server):
        assert server.introspect("nope") == {"active": False}

    def test_expired_token_inactive(self, server, registered):
        token = self._token(server, registered)
        server.storage._tokens[token].exp = int(time.time()) - 1
        assert server.introspect(token) == {"active": False}


class TestJWTTokens:
    @pytest.fixture
    def jwt_server(self):
        settings = AuthServerSettings(_env_file=None, issuer_url="http://auth.test", token_format="jwt")
        return AuthorizationServer(InMemoryOAuthStorage(), settings, TokenSigner.generate())

    def test_issued_token_is_signed_jwt(self, jwt_server):
        reg, _ = jwt_server.register({"redirect_uris": [REDIRECT]})
        verifier = generate_code_verifier()
        code = _code_for(jwt_server, reg["client_id"], verifier, resource="http://rs.test/mcp")
        result, _ = jwt_server.exchange(
            grant_type="authorization_code",
            client_id=reg["client_id"],
            code=code,
            code_verifier=verifier,
        )
        token = result["access_token"]

        header = jwt.get_unverified_header(token)
        assert header["kid"] == jwt_server.signer.kid
        key = jwt.PyJWKSet.from_dict(jwt_server.jwks()).keys[0]
        claims = jwt.decode(
            token, key.key, algorithms=["RS256"], audience="http://rs.test/mcp", issuer="http://auth.test"
        )
        assert claims["client_id"] == reg["client_id"]
        assert claims["scope"] == "mcp:tools"
        assert jwt_server.introspect(token)["active"] is True

    def test_metadata_advertises_jwks(self, jwt_server, server):
        assert jwt_server.metadata()["jwks_uri"] == "http://auth.test/.well-known/jwks.json"
        assert "jwks_uri" not in server.metadata()
        assert server.jwks() == {"keys": []}


class TestBuildRedirect:
    def test_preserves_existing_query(self):
        url = build_redirect("https://a/cb?x=1", {"code": "abc"})
        assert _query(url) == {"x": "1", "code": "abc"}


# ===================== Endpoint tests =====================


class TestEndpoints:
    def test_metadata(self, client):
        resp = client.get("/.well-known/oauth-authorization-server")
        assert resp.status_code == 200
        data = resp.json()
        assert data["issuer"] == "http://auth.test"
        assert data["token_endpoint"] == "http://auth.test/token"
        assert data["code_challenge_methods_supported"] == ["S256"]

    def test_register_endpoint(self, client):
        resp = client.post("/register", json={"redirect_uris": [REDIRECT]})
        assert resp.status_code == 201
        assert resp.json()["client_id"]

    def test_register_rejects_non_object(self, client):
        resp = client.post("/register", json=["nope"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_client_metadata"

    def test_authorize_redirect_mismatch_is_400(self, client):
        reg = client.post("/register", json={"redirect_uris": ["https://a/cb"]}).json()
        resp = client.get(
            "/authorize",
            params={
                "client_id": reg["client_id"],
                "redirect_uri": "https://b/cb",
                "response_type": "code",
                "code_challenge": s256_challenge(generate_code_verifier()),
                "code_challenge_method": "S256",
            },
            follow_redirects=False,
        )
        assert resp.status_code == 400
        assert "location" not in resp.headers
        assert resp.json()["error"] == "invalid_request"

    def test_full_code_flow(self, client):
        reg = client.post("/register", json={"redirect_uris": [REDIRECT]}).json()
        verifier = generate_code_verifier()
        resp = client.get(
            "/authorize",
            params={
                "client_id": reg["client_id"],
                "redirect_uri": REDIRECT,
                "response_type": "code",
                "code_challenge": s256_challenge(verifier),
                "code_challenge_method": "S256",
                "scope": "mcp:tools",
                "state": "s1",
            },
            follow_redirects=False,
        )
        assert resp.status_code == 302
        query = _query(resp.headers["location"])
        assert query["state"] == "s1"

        token_form = {
            "grant_type": "authorization_code",
            "client_id": reg["client_id"],
            "code": query["code"],
            "code_verifier": verifier,
            "redirect_uri": REDIRECT,
        }
        resp = client.post("/token", data=token_form)
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        token = resp.json()["access_token"]

        again = client.post("/token", data=token_form)
        assert again.status_code == 400
        assert again.json()["error"] == "invalid_grant"

        resp = client.post("/introspect", data={"token": token})
        assert resp.status_code == 200
        assert resp.json()["active"] is True

    def test_introspect_unknown_token(self, client):
        resp = client.post("/introspect", data={"token": "nope"})
        assert resp.status_code == 200
        assert resp.json() == {"active": False}
