import time
from types import SimpleNamespace

import jwt
import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa

from stytch_relay import auth as auth_module
from stytch_relay.auth import AuthError, StytchAuth

from conftest import TEST_PROJECT_ID, USER_ID, FakeSession, make_response


class StaticJWKSClient:
    """Hands out one public key for every token, like a single-key JWKS."""

    def __init__(self, public_key):
        self.public_key = public_key

    def get_signing_key_from_jwt(self, token):
        return SimpleNamespace(key=self.public_key)


class BrokenSession(FakeSession):
    def request(self, method, url, **kwargs):
        raise requests.ConnectionError("connection refused")


@pytest.fixture(scope="module")
def signing_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def stytch(session, signing_key, monkeypatch):
    client = StytchAuth(TEST_PROJECT_ID, "secret-test-aaaa", session=session, timeout=5)
    monkeypatch.setattr(client, "_get_jwks_client", lambda: StaticJWKSClient(signing_key.public_key()))
    return client


def make_token(key, **overrides):
    now = int(time.time())
    claims = {
        "sub": USER_ID,
        "aud": TEST_PROJECT_ID,
        "iat": now,
        "exp": now + 300,
        "scope": "openid email",
    }
    claims.update(overrides)
    claims = {k: v for k, v in claims.items() if v is not None}
    return jwt.encode(claims, key, algorithm="RS256", headers={"kid": "relay-test"})


# ==================== Hosts ====================

def test_test_projects_use_test_host(stytch):
    assert stytch.api_base == "https://test.stytch.com"
    assert stytch.jwks_url == f"https://test.stytch.com/v1/sessions/jwks/{TEST_PROJECT_ID}"


def test_live_projects_use_api_host():
    live = StytchAuth("project-live-22222222", "secret-live", session=FakeSession())
    assert live.api_base == "https://api.stytch.com"
    assert live.oauth_endpoint_url("oauth2/token") == (
        "https://api.stytch.com/v1/public/project-live-22222222/oauth2/token"
    )


def test_jwks_client_points_at_project_keys():
    client = StytchAuth(TEST_PROJECT_ID, "secret-test-aaaa", session=FakeSession())
    jwks = client._get_jwks_client()
    assert jwks.uri == client.jwks_url
    assert client._get_jwks_client() is jwks


def test_get_auth_is_memoized(monkeypatch):
    monkeypatch.setattr(auth_module, "_auth", None)
    first = auth_module.get_auth()
    assert auth_module.get_auth() is first
    assert first.project_id == TEST_PROJECT_ID


# ==================== Sessions ====================

def test_session_is_checked_with_project_basic_auth(stytch, session):
    session.queue(make_response(200, {"session": {"user_id": USER_ID}}))

    assert stytch.authenticate_session("session-jwt") == USER_ID

    request = session.calls[0]
    assert request["method"] == "POST"
    assert request["url"] == "https://test.stytch.com/v1/sessions/authenticate"
    assert request["auth"] == (TEST_PROJECT_ID, "secret-test-aaaa")
    assert request["json"] == {"session_jwt": "session-jwt"}


def test_rejected_session(stytch, session):
    session.queue(make_response(401, {"error_type": "session_not_found"}))
    with pytest.raises(AuthError, match="HTTP 401"):
        stytch.authenticate_session("session-jwt")


def test_session_without_user_id(stytch, session):
    session.queue(make_response(200, {"session": {}}))
    with pytest.raises(AuthError, match="user id"):
        stytch.authenticate_session("session-jwt")


def test_missing_session_makes_no_request(stytch, session):
    with pytest.raises(AuthError):
        stytch.authenticate_session(None)
    assert session.calls == []


def test_unreachable_session_api():
    client = StytchAuth(TEST_PROJECT_ID, "secret-test-aaaa", session=BrokenSession())
    with pytest.raises(AuthError, match="Session check failed"):
        client.authenticate_session("session-jwt")


# ==================== Access Tokens ====================

def test_valid_access_token(stytch, signing_key):
    token = make_token(signing_key)

    info = stytch.introspect_token(token)

    assert info.subject == USER_ID
    assert info.access_token == token
    assert info.scope == "openid email"


def test_token_for_another_project_is_rejected(stytch, signing_key):
    with pytest.raises(AuthError, match="Invalid access token"):
        stytch.introspect_token(make_token(signing_key, aud="project-test-99999999"))


def test_expired_token_is_rejected(stytch, signing_key):
    past = int(time.time()) - 3600
    with pytest.raises(AuthError, match="Invalid access token"):
        stytch.introspect_token(make_token(signing_key, iat=past - 300, exp=past))


def test_token_signed_by_another_key_is_rejected(stytch):
    other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    with pytest.raises(AuthError, match="Invalid access token"):
        stytch.introspect_token(make_token(other_key))


def test_token_without_subject_is_rejected(stytch, signing_key):
    with pytest.raises(AuthError, match="no subject"):
        stytch.introspect_token(make_token(signing_key, sub=None))


def test_missing_token(stytch):
    with pytest.raises(AuthError, match="Missing or invalid access token"):
        stytch.introspect_token("")


def test_userinfo_sends_bearer_token(stytch, session):
    session.queue(make_response(200, {"sub": USER_ID}))
    response = stytch.userinfo("access-token")
    assert response.json() == {"sub": USER_ID}
    assert session.calls[0]["url"] == f"https://test.stytch.com/v1/public/{TEST_PROJECT_ID}/oauth2/userinfo"
    assert session.calls[0]["headers"] == {"Authorization": "Bearer access-token"}
