"""Shared fixtures: isolated config, fake upstream HTTP and fake Stytch auth."""

import base64
import json
import time
from http import HTTPStatus

import pytest
import requests

from stytch_relay import auth as auth_module
from stytch_relay import config, crypto, tools
from stytch_relay.auth import AuthError, StytchAuth, TokenInfo

TEST_PROJECT_ID = "project-test-11111111"
TEST_KEY = base64.b64encode(bytes(range(32))).decode()

GOOD_SESSION = "session-jwt-good"
GOOD_TOKEN = "access-token-good"
USER_ID = "user-test-0001"


def make_response(status=200, json_body=None, text=None, reason=None):
    """Build a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status
    response.reason = reason if reason is not None else HTTPStatus(status).phrase
    response.url = "https://upstream.test/"
    response.encoding = "utf-8"
    if json_body is not None:
        response._content = json.dumps(json_body).encode()
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode()
    return response


class FakeSession:
    """Records every request and replays queued responses (default: 200 {}).

    Set ``delay`` to make each request take that many seconds.
    """

    def __init__(self):
        self.calls = []
        self.responses = []
        self.verify = True
        self.delay = 0

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.delay:
            time.sleep(self.delay)
        if self.responses:
            return self.responses.pop(0)
        return make_response(200, {})

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url, **kwargs):
        return self.request("PUT", url, **kwargs)

    def delete(self, url, **kwargs):
        return self.request("DELETE", url, **kwargs)


class FakeAuth(StytchAuth):
    """StytchAuth with canned session/token checks; userinfo goes to the fake session."""

    def authenticate_session(self, session_jwt):
        if session_jwt != GOOD_SESSION:
            raise AuthError("Session rejected: HTTP 401")
        return USER_ID

    def introspect_token(self, access_token):
        if access_token != GOOD_TOKEN:
            raise AuthError("Invalid access token")
        return TokenInfo(subject=USER_ID, access_token=access_token)


@pytest.fixture(autouse=True)
def relay_env(monkeypatch, tmp_path):
    monkeypatch.setattr(config, "ENCRYPTION_KEY", TEST_KEY)
    monkeypatch.setattr(config, "RELAY_KEY_STORE_PATH", str(tmp_path / "store" / "credentials.json"))
    monkeypatch.setattr(config, "STYTCH_PROJECT_ID", TEST_PROJECT_ID)
    monkeypatch.setattr(config, "STYTCH_PROJECT_SECRET", "secret-test-aaaa")
    monkeypatch.setattr(config, "STYTCH_MANAGEMENT_URL", "https://management.stytch.test")
    monkeypatch.setattr(config, "WEATHER_API_URL", "https://weather.test/data/2.5/weather")
    monkeypatch.setattr(config, "RELAY_STATIC_DIR", str(tmp_path / "no-ui"))
    crypto.reset_key()
    yield
    crypto.reset_key()


@pytest.fixture
def upstream(monkeypatch):
    """Fake session used for every upstream call."""
    session = FakeSession()
    monkeypatch.setattr(tools.state, "session", session)
    return session


@pytest.fixture
def fake_auth(monkeypatch, upstream):
    fake = FakeAuth(TEST_PROJECT_ID, "secret-test-aaaa", session=upstream)
    monkeypatch.setattr(auth_module, "_auth", fake)
    return fake


@pytest.fixture
def as_user(fake_auth):
    """Run tool calls as USER_ID with GOOD_TOKEN."""
    token = tools.current_auth.set(tools.AuthContext(subject=USER_ID, access_token=GOOD_TOKEN))
    yield tools.current_auth.get()
    tools.current_auth.reset(token)
