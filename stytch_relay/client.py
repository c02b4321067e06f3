#!/usr/bin/env python3
"""Stytch MCP Relay - HTTP client for upstream REST APIs.

Provides HTTP methods (GET, POST, PUT, DELETE) with credential injection.
Credentials are fixed per client: a bearer token (OAuth access token for
the management API) or a basic-auth pair (project id/secret for the
consumer API).
"""

from typing import Any, Dict, Optional, Tuple

import requests


class UpstreamError(Exception):
    """Upstream answered with a non-2xx status."""

    def __init__(self, status_code: int, reason: str, text: str):
        self.status_code = status_code
        self.reason = reason
        self.text = text
        super().__init__(f"Error: {reason} - {text}")


class RelayClient:
    """
    Upstream API client - HTTP only.

    One instance per call; the requests.Session is shared for pooling.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session,
        bearer_token: Optional[str] = None,
        basic_auth: Optional[Tuple[str, str]] = None,
        timeout: int = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session
        self.bearer_token = bearer_token
        self.basic_auth = basic_auth
        self.timeout = timeout

    def _get_auth_headers(self) -> Dict[str, str]:
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        if self.bearer_token:
            headers['Authorization'] = f'Bearer {self.bearer_token}'
        return headers

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        return f"{self.base_url}{endpoint}"

    # ==================== HTTP Methods ====================

    def get(self, endpoint: str, params: Optional[Dict] = None) -> requests.Response:
        """HTTP GET request."""
        return self.session.get(
            self._url(endpoint),
            params=params,
            headers=self._get_auth_headers(),
            auth=self.basic_auth,
            timeout=self.timeout
        )

    def post(self, endpoint: str, data: Optional[Dict] = None, params: Optional[Dict] = None) -> requests.Response:
        """HTTP POST request."""
        return self.session.post(
            self._url(endpoint),
            params=params,
            json=data,
            headers=self._get_auth_headers(),
            auth=self.basic_auth,
            timeout=self.timeout
        )

    def put(self, endpoint: str, data: Optional[Dict] = None, params: Optional[Dict] = None) -> requests.Response:
        """HTTP PUT request."""
        return self.session.put(
            self._url(endpoint),
            params=params,
            json=data,
            headers=self._get_auth_headers(),
            auth=self.basic_auth,
            timeout=self.timeout
        )

    def delete(self, endpoint: str, params: Optional[Dict] = None) -> requests.Response:
        """HTTP DELETE request."""
        return self.session.delete(
            self._url(endpoint),
            params=params,
            headers=self._get_auth_headers(),
            auth=self.basic_auth,
            timeout=self.timeout
        )

    # ==================== JSON-or-raise ====================

    def request_json(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict] = None,
        body: Optional[Dict] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises UpstreamError for any non-2xx response. An empty body
        (typical for DELETE) decodes to None.
        """
        method = method.upper()
        if method == "GET":
            response = self.get(endpoint, params=params)
        elif method == "POST":
            response = self.post(endpoint, data=body, params=params)
        elif method == "PUT":
            response = self.put(endpoint, data=body, params=params)
        elif method == "DELETE":
            response = self.delete(endpoint, params=params)
        else:
            raise ValueError(f"Unsupported method: {method}")

        if not 200 <= response.status_code < 300:
            raise UpstreamError(response.status_code, response.reason or "", response.text or "")

        if not response.content:
            return None
        return response.json()
