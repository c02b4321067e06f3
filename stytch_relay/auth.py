#!/usr/bin/env python3
"""Stytch MCP Relay - Identity platform authentication.

Two kinds of caller reach the relay:
1. The browser UI, carrying the stytch_session_jwt cookie set by the
   Stytch frontend SDK (credential API routes)
2. MCP clients, carrying a Stytch-issued OAuth access token obtained at the
   end of the authorization flow (tool routes)

Sessions are checked against the Stytch sessions API; access tokens are
validated locally against the project's JWKS.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
import requests

from stytch_relay import config

logger = config.get_logger("stytch-relay-auth")

SESSION_COOKIE = "stytch_session_jwt"


class AuthError(Exception):
    """Caller could not be authenticated."""


@dataclass
class TokenInfo:
    """Result of a successful access token introspection."""
    subject: str
    access_token: str
    scope: str = ""


class StytchAuth:
    """Session and access-token validation for one Stytch project."""

    def __init__(
        self,
        project_id: str,
        project_secret: str,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
    ):
        self.project_id = project_id
        self.project_secret = project_secret
        self.session = session or requests.Session()
        self.timeout = timeout
        self._jwks_client: Optional[jwt.PyJWKClient] = None

    @property
    def api_base(self) -> str:
        """Test projects live on test.stytch.com, live projects on api.stytch.com."""
        if "test" in self.project_id:
            return "https://test.stytch.com"
        return "https://api.stytch.com"

    @property
    def jwks_url(self) -> str:
        return f"{self.api_base}/v1/sessions/jwks/{self.project_id}"

    def oauth_endpoint_url(self, endpoint: str) -> str:
        """URL of a public OAuth endpoint (token, register, userinfo...) for the project."""
        return f"{self.api_base}/v1/public/{self.project_id}/{endpoint}"

    # ==================== Browser Sessions ====================

    def authenticate_session(self, session_jwt: Optional[str]) -> str:
        """Validate a session JWT and return the user id it belongs to."""
        if not session_jwt:
            raise AuthError("Missing session")

        try:
            response = self.session.post(
                f"{self.api_base}/v1/sessions/authenticate",
                json={"session_jwt": session_jwt},
                auth=(self.project_id, self.project_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthError(f"Session check failed: {e}") from e

        if response.status_code != 200:
            raise AuthError(f"Session rejected: HTTP {response.status_code}")

        user_id = (response.json().get("session") or {}).get("user_id")
        if not user_id:
            raise AuthError("Session response did not include a user id")
        return user_id

    # ==================== OAuth Access Tokens ====================

    def _get_jwks_client(self) -> jwt.PyJWKClient:
        if self._jwks_client is None:
            self._jwks_client = jwt.PyJWKClient(self.jwks_url)
        return self._jwks_client

    def introspect_token(self, access_token: Optional[str]) -> TokenInfo:
        """Validate an access token locally and return its subject."""
        if not access_token:
            raise AuthError("Missing or invalid access token")

        try:
            signing_key = self._get_jwks_client().get_signing_key_from_jwt(access_token)
            claims = jwt.decode(
                access_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self.project_id,
            )
        except jwt.PyJWTError as e:
            raise AuthError(f"Invalid access token: {e}") from e

        subject = claims.get("sub")
        if not subject:
            raise AuthError("Access token has no subject")
        return TokenInfo(subject=subject, access_token=access_token, scope=claims.get("scope", ""))

    def userinfo(self, access_token: str) -> requests.Response:
        """Fetch the OIDC userinfo document for an access token."""
        return self.session.get(
            self.oauth_endpoint_url("oauth2/userinfo"),
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self.timeout,
        )


# ==================== Memoized Client ====================

_auth: Optional[StytchAuth] = None
_auth_lock = threading.Lock()


def get_auth() -> StytchAuth:
    """Get or create the process-wide StytchAuth."""
    global _auth
    if _auth is None:
        with _auth_lock:
            if _auth is None:
                session = requests.Session()
                session.verify = config.RELAY_VERIFY_SSL
                _auth = StytchAuth(
                    project_id=config.STYTCH_PROJECT_ID,
                    project_secret=config.STYTCH_PROJECT_SECRET,
                    session=session,
                    timeout=config.RELAY_REQUEST_TIMEOUT,
                )
    return _auth


def oauth_metadata() -> Dict[str, Any]:
    """OAuth Authorization Server metadata for Dynamic Client Registration."""
    auth = get_auth()
    return {
        "issuer": auth.project_id,
        # The authorization screen is rendered by the web UI via Stytch
        "authorization_endpoint": "https://stytch.com/oauth/authorize",
        "token_endpoint": auth.oauth_endpoint_url("oauth2/token"),
        "registration_endpoint": auth.oauth_endpoint_url("oauth2/register"),
        "scopes_supported": ["openid", "profile", "email", "offline_access"],
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": ["authorization_code", "refresh_token"],
        "token_endpoint_auth_methods_supported": ["none"],
        "code_challenge_methods_supported": ["S256"],
    }
