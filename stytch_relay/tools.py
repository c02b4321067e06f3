#!/usr/bin/env python3
"""Stytch MCP Relay - MCP tool, prompt and resource handlers.

Every tool comes from the endpoint table in discovery.py. A call is
validated against the tool's parameter model, sent upstream with the
caller's credential, and returned as a single text block.
"""

import asyncio
import json
import threading
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests
from mcp.types import (
    Tool, TextContent, Prompt, PromptMessage, PromptArgument,
    Resource, GetPromptResult,
)
from pydantic import ValidationError

from stytch_relay import config
from stytch_relay import keystore
from stytch_relay.auth import get_auth
from stytch_relay.client import RelayClient, UpstreamError
from stytch_relay.crypto import CredentialDecryptError
from stytch_relay.discovery import (
    CONSUMER, ENDPOINTS, LOCAL, MANAGEMENT, WEATHER,
    Endpoint, get_catalog, get_endpoint, get_tool_names,
)

logger = config.get_logger("stytch-relay-tools")

SERVER_NAME = "stytch-mcp-relay"
SERVER_VERSION = "1.0.0"
LAZY_PROJECT_NAME = "MCP Relay Project"


# ==================== Errors ====================

class ToolError(Exception):
    """A tool call failed before or instead of reaching upstream."""


class UnknownToolError(ToolError):
    pass


class InvalidArgumentsError(ToolError):
    pass


class MissingCredentialsError(ToolError):
    pass


# ==================== Caller Context ====================

@dataclass
class AuthContext:
    """Identity of the MCP client making the call."""
    subject: str
    access_token: str


# Set by the transport (SSE connection, REST request) before tools run
current_auth: ContextVar[Optional[AuthContext]] = ContextVar("current_auth", default=None)


def _require_auth() -> AuthContext:
    auth = current_auth.get()
    if auth is None:
        raise MissingCredentialsError("Not authenticated: no access token for this connection")
    return auth


# ==================== Server State ====================

class ServerState:
    """Holds the pooled HTTP session shared by all tool calls."""

    def __init__(self):
        self.session: Optional[requests.Session] = None

    def get_session(self) -> requests.Session:
        """Get or create the shared requests session."""
        if self.session is None:
            self.session = requests.Session()
            self.session.verify = config.RELAY_VERIFY_SSL
        return self.session


state = ServerState()


def _consumer_base_url(project_id: str) -> str:
    if "test" in project_id:
        return "https://test.stytch.com"
    return "https://api.stytch.com"


def _management_client(auth: AuthContext) -> RelayClient:
    return RelayClient(
        config.STYTCH_MANAGEMENT_URL,
        state.get_session(),
        bearer_token=auth.access_token,
        timeout=config.RELAY_REQUEST_TIMEOUT,
    )


def _build_client(endpoint: Endpoint, auth: AuthContext) -> Tuple[RelayClient, Dict[str, Any]]:
    """Pick the upstream and credential for an endpoint.

    Returns the client plus any query parameters the credential adds.
    """
    if endpoint.target == MANAGEMENT:
        return _management_client(auth), {}

    try:
        if endpoint.target == CONSUMER:
            creds = keystore.get_project_credentials(auth.subject)
            if not creds["projectID"]:
                raise MissingCredentialsError(
                    "No project credentials stored. Save them in the web UI "
                    "or call getProjectCredentials first."
                )
            client = RelayClient(
                _consumer_base_url(creds["projectID"]),
                state.get_session(),
                basic_auth=(creds["projectID"], creds["secret"]),
                timeout=config.RELAY_REQUEST_TIMEOUT,
            )
            return client, {}

        if endpoint.target == WEATHER:
            api_key = keystore.get_api_key(auth.subject)
            if not api_key:
                raise MissingCredentialsError("No weather API key stored. Save one in the web UI first.")
            client = RelayClient(
                config.WEATHER_API_URL,
                state.get_session(),
                timeout=config.RELAY_REQUEST_TIMEOUT,
            )
            return client, {"appid": api_key}
    except CredentialDecryptError as e:
        raise MissingCredentialsError(
            f"Stored credentials could not be decrypted ({e}). Save them again in the web UI."
        ) from e

    raise ToolError(f"Tool {endpoint.name} has no upstream target")


def _compact(data: Any) -> str:
    return json.dumps(data, separators=(",", ":"), default=str)


def _render_path(endpoint: Endpoint, values: Dict[str, Any]) -> str:
    path_values = {k: quote(str(v), safe="") for k, v in values.items() if isinstance(v, (str, int, float))}
    return endpoint.path.format(**path_values)


# ==================== Tool Definitions ====================

async def list_tools() -> List[Tool]:
    """List every tool in the catalog with its JSON input schema."""
    return [
        Tool(
            name=endpoint.name,
            description=endpoint.description,
            inputSchema=endpoint.params.model_json_schema(),
        )
        for endpoint in ENDPOINTS
    ]


# ==================== Tool Router ====================

async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
    """Route a tool call. Errors propagate so the MCP layer flags isError."""
    try:
        text = await dispatch_tool(name, arguments or {})
    except (ToolError, UpstreamError) as e:
        logger.warning(f"Tool {name} rejected: {e}")
        raise
    except Exception:
        logger.exception(f"Error in {name}")
        raise
    return [TextContent(type="text", text=text)]


async def dispatch_tool(name: str, arguments: Dict[str, Any]) -> str:
    """Validate, authenticate and run one tool; returns the result text."""
    endpoint = get_endpoint(name)
    if endpoint is None:
        raise UnknownToolError(f"Unknown tool: {name}")

    try:
        params = endpoint.params.model_validate(arguments)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or '(root)'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidArgumentsError(f"Invalid arguments for {name}: {problems}") from e

    auth = _require_auth()

    if name == "whoami":
        return await _run_blocking(name, _whoami, auth)
    if name == "getProjectCredentials":
        # Create project, then create secret: two upstream requests
        return await _run_blocking(name, _ensure_project_credentials, auth, requests_made=2)
    if endpoint.target == LOCAL:
        raise ToolError(f"Tool {name} has no handler")

    return await _run_blocking(name, _relay, endpoint, params, auth)


async def _run_blocking(name: str, func, *args, requests_made: int = 1) -> str:
    """Run a blocking call in a worker thread.

    The wait is bounded by one request timeout per upstream request the
    call makes, so it never gives up before the underlying requests do.
    """
    budget = config.RELAY_REQUEST_TIMEOUT * requests_made
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=budget)
    except asyncio.TimeoutError as e:
        raise ToolError(f"{name}: request timed out after {budget}s") from e
    except requests.RequestException as e:
        raise ToolError(f"{name}: upstream request failed: {e}") from e


# ==================== Tool Handlers ====================

def _relay(endpoint: Endpoint, params, auth: AuthContext) -> str:
    """Send the endpoint's request and format the result."""
    client, extra_query = _build_client(endpoint, auth)
    values = params.model_dump()

    query = endpoint.query(params) if endpoint.query else {}
    query.update(extra_query)
    body = endpoint.body(params) if endpoint.body else None

    result = client.request_json(
        endpoint.method,
        _render_path(endpoint, values),
        params=query or None,
        body=body,
    )

    if endpoint.done:
        return endpoint.done.format(**values)
    return f"{endpoint.label}: {_compact(result)}"


def _whoami(auth: AuthContext) -> str:
    response = get_auth().userinfo(auth.access_token)
    if not response.ok:
        raise ToolError(f"Error fetching user information: {response.reason}")
    return f"Logged-in user details:\n{json.dumps(response.json(), indent=2)}"


def _mask(secret: str) -> str:
    return "*" * 8 + secret[-4:]


# One lock per subject so concurrent or retried calls never create two projects
_creation_locks: Dict[str, threading.Lock] = {}
_creation_locks_guard = threading.Lock()


def _creation_lock(subject: str) -> threading.Lock:
    with _creation_locks_guard:
        return _creation_locks.setdefault(subject, threading.Lock())


def _ensure_project_credentials(auth: AuthContext) -> str:
    """Return stored project credentials, creating a project and secret on first use."""
    with _creation_lock(auth.subject):
        creds, status = _load_or_create_project_credentials(auth)

    return f"Project credentials {status}: " + _compact({
        "projectID": creds["projectID"],
        "secret": _mask(creds["secret"]),
    })


def _load_or_create_project_credentials(auth: AuthContext) -> Tuple[Dict[str, str], str]:
    try:
        creds = keystore.get_project_credentials(auth.subject)
    except CredentialDecryptError as e:
        raise MissingCredentialsError(
            f"Stored credentials could not be decrypted ({e}). Save them again in the web UI."
        ) from e

    status = "stored"
    if not creds["projectID"]:
        client = _management_client(auth)

        created = client.request_json(
            "POST", "/v1/projects",
            body={"project_name": LAZY_PROJECT_NAME, "vertical": "CONSUMER"},
        ) or {}
        project = created.get("project", created)
        project_id = project.get("test_project_id") or project.get("project_id")
        if not project_id:
            raise ToolError(f"Unexpected createProject response: {_compact(created)}")

        secret_response = client.request_json("POST", f"/v1/projects/{quote(project_id, safe='')}/secrets") or {}
        secret_info = secret_response.get("created_secret") or secret_response.get("secret") or {}
        secret = secret_info.get("secret") if isinstance(secret_info, dict) else None
        if not secret:
            raise ToolError("Unexpected createSecret response: no secret value returned")

        keystore.set_project_credentials(auth.subject, project_id, secret)
        logger.info(f"Created project {project_id} for user '{auth.subject}'")
        creds = {"projectID": project_id, "secret": secret}
        status = "created"

    return creds, status


# ==================== MCP Prompts ====================

async def list_prompts() -> List[Prompt]:
    """Pre-defined prompt templates for common project chores."""
    return [
        Prompt(
            name="setup-redirect-urls",
            description="Register a redirect URL for login and signup on a project",
            arguments=[
                PromptArgument(name="project_id", description="Project to configure", required=True),
                PromptArgument(name="url", description="Redirect URL to register", required=True),
            ]
        ),
        Prompt(
            name="audit-project",
            description="Review a project's secrets, public tokens, redirect URLs and password policy",
            arguments=[
                PromptArgument(name="project_id", description="Project to audit", required=True),
            ]
        ),
    ]


async def get_prompt(name: str, arguments: Optional[Dict[str, str]] = None) -> GetPromptResult:
    """Return prompt messages for a given prompt template."""
    args = arguments or {}
    if name == "setup-redirect-urls":
        project_id = args.get("project_id", "<project_id>")
        url = args.get("url", "<url>")
        return GetPromptResult(
            description="Redirect URL setup",
            messages=[
                PromptMessage(
                    role="user",
                    content=TextContent(
                        type="text",
                        text=f"""Set up {url} as a redirect URL for project {project_id}.

Please:
1. Call getAllRedirectURLs to see what is already registered
2. If the URL exists, call updateRedirectURL so it is the default for LOGIN and SIGNUP
3. Otherwise call createRedirectURL with valid_types LOGIN and SIGNUP (both default)
4. Confirm the final state with getRedirectURL"""
                    )
                )
            ]
        )
    elif name == "audit-project":
        project_id = args.get("project_id", "<project_id>")
        return GetPromptResult(
            description="Project configuration audit",
            messages=[
                PromptMessage(
                    role="user",
                    content=TextContent(
                        type="text",
                        text=f"""Audit the configuration of project {project_id}.

Please:
1. List all secrets and flag any that look unused
2. List all public tokens
3. List all redirect URLs and flag non-HTTPS entries
4. Read the password strength configuration
5. Summarize findings with recommendations"""
                    )
                )
            ]
        )
    raise ValueError(f"Unknown prompt: {name}")


# ==================== MCP Resources ====================

async def list_resources() -> List[Resource]:
    """Expose the tool catalog and server configuration as MCP resources."""
    return [
        Resource(
            uri="stytch://catalog",
            name="Tool Catalog",
            description="Every tool with its upstream method, path and parameters",
            mimeType="application/json"
        ),
        Resource(
            uri="stytch://config",
            name="Relay Configuration",
            description="Current relay configuration (non-sensitive)",
            mimeType="application/json"
        ),
    ]


async def read_resource(uri: str) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)
    if uri_str == "stytch://catalog":
        return json.dumps(get_catalog(), indent=2)
    elif uri_str == "stytch://config":
        server_config = {
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "project_id": config.STYTCH_PROJECT_ID,
            "management_url": config.STYTCH_MANAGEMENT_URL,
            "weather_api_url": config.WEATHER_API_URL,
            "verify_ssl": str(config.RELAY_VERIFY_SSL).lower(),
            "tools": get_tool_names(),
        }
        return json.dumps(server_config, indent=2)
    raise ValueError(f"Unknown resource: {uri_str}")
