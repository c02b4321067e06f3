#!/usr/bin/env python3
"""Stytch MCP Relay - Relay entrypoint (wiring only).

Registers tools, prompts, and resources from the tools module and routes
HTTP traffic:
    /api/*                                   credential API (session cookie)
    /.well-known/oauth-authorization-server  OAuth discovery document
    /sse, /messages/                         MCP SSE transport (bearer token)
    /health                                  status, no auth
    /                                        web UI static assets
Supports stdio and SSE transports.
"""

import argparse
import asyncio
import json
import os

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.server.sse import SseServerTransport
from starlette.applications import Starlette
from starlette.routing import Route, Mount
from starlette.responses import JSONResponse, Response
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.staticfiles import StaticFiles

from stytch_relay import config
from stytch_relay import keystore
from stytch_relay.auth import SESSION_COOKIE, AuthError, get_auth, oauth_metadata
from stytch_relay.crypto import CredentialDecryptError
from stytch_relay.discovery import get_tool_names
from stytch_relay.tools import (
    SERVER_NAME, SERVER_VERSION,
    AuthContext, current_auth,
    list_tools, call_tool,
    list_prompts, get_prompt,
    list_resources, read_resource,
)

logger = config.get_logger("stytch-relay")

# ==================== MCP Server ====================

app = Server(SERVER_NAME)

# Register handlers from tools module
app.list_tools()(list_tools)
app.call_tool()(call_tool)
app.list_prompts()(list_prompts)
app.get_prompt()(get_prompt)
app.list_resources()(list_resources)
app.read_resource()(read_resource)


# ==================== Transport ====================

async def _async_main_stdio():
    """Run the MCP server over stdio."""
    logger.info("Starting Stytch MCP Relay (stdio mode)")
    if config.RELAY_ACCESS_TOKEN:
        current_auth.set(AuthContext(subject=config.RELAY_SUBJECT, access_token=config.RELAY_ACCESS_TOKEN))
    else:
        logger.warning("RELAY_ACCESS_TOKEN is not set; every tool call will be rejected")

    async with stdio_server() as (read_stream, write_stream):
        await app.run(
            read_stream,
            write_stream,
            app.create_initialization_options()
        )


# ==================== Auth Middleware ====================

def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse({"error": "Unauthorized", "message": message}, status_code=401)


def _is_mcp_path(path: str) -> bool:
    return path == "/sse" or path.startswith("/messages")


class RelayAuthMiddleware(BaseHTTPMiddleware):
    """Authenticates the two protected route families.

    /api/*: stytch_session_jwt cookie set by the web UI -> request.state.user_id
    /sse, /messages/: "Authorization: Bearer <access token>" -> request.state.auth
    Everything else (health, discovery, static assets) is public.
    """

    async def dispatch(self, request, call_next):
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        if path.startswith("/api/"):
            session_jwt = request.cookies.get(SESSION_COOKIE)
            try:
                request.state.user_id = await asyncio.to_thread(get_auth().authenticate_session, session_jwt)
            except AuthError as e:
                logger.warning(f"Unauthenticated request from {client_host} to {path}: {e}")
                return _unauthorized("Unauthenticated")

        elif _is_mcp_path(path):
            auth_header = request.headers.get("Authorization", "")
            if not auth_header.startswith("Bearer "):
                logger.warning(f"Missing access token from {client_host} to {path}")
                return _unauthorized("Missing or invalid access token")

            access_token = auth_header.removeprefix("Bearer ").strip()
            try:
                token_info = await asyncio.to_thread(get_auth().introspect_token, access_token)
            except AuthError as e:
                logger.warning(f"Rejected access token from {client_host} to {path}: {e}")
                return _unauthorized("Unauthenticated")
            request.state.auth = AuthContext(subject=token_info.subject, access_token=access_token)

        return await call_next(request)


# ==================== Credential API ====================

async def _read_json_object(request):
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return None
    return body if isinstance(body, dict) else None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": "Bad Request", "message": message}, status_code=400)


def _undecryptable() -> JSONResponse:
    return JSONResponse(
        {"error": "Internal Server Error", "message": "Stored credentials could not be decrypted"},
        status_code=500,
    )


def _optional_str(body: dict, field: str):
    value = body.get(field)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{field}' must be a string or null")
    return value


async def get_project_credentials(request):
    try:
        creds = await asyncio.to_thread(keystore.get_project_credentials, request.state.user_id)
    except CredentialDecryptError:
        logger.exception(f"Could not decrypt credentials for user '{request.state.user_id}'")
        return _undecryptable()
    return JSONResponse(creds)


async def set_project_credentials(request):
    body = await _read_json_object(request)
    if body is None:
        return _bad_request("Body must be a JSON object")
    try:
        project_id = _optional_str(body, "projectID")
        secret = _optional_str(body, "secret")
    except ValueError as e:
        return _bad_request(str(e))

    await asyncio.to_thread(keystore.set_project_credentials, request.state.user_id, project_id, secret)
    return JSONResponse({"success": True})


async def get_weather_key(request):
    try:
        api_key = await asyncio.to_thread(keystore.get_api_key, request.state.user_id)
    except CredentialDecryptError:
        logger.exception(f"Could not decrypt API key for user '{request.state.user_id}'")
        return _undecryptable()
    return JSONResponse({"apiKey": api_key})


async def set_weather_key(request):
    body = await _read_json_object(request)
    if body is None:
        return _bad_request("Body must be a JSON object")
    try:
        api_key = _optional_str(body, "apiKey")
    except ValueError as e:
        return _bad_request(str(e))

    await asyncio.to_thread(keystore.set_api_key, request.state.user_id, api_key)
    return JSONResponse({"success": True})


# ==================== App Factory ====================

def create_app() -> Starlette:
    """Create the Starlette relay app with SSE transport for the MCP server."""
    sse = SseServerTransport("/messages/")

    async def handle_sse(request):
        # Tool handlers run inside this connection's tasks and inherit the caller
        token = current_auth.set(request.state.auth)
        try:
            async with sse.connect_sse(
                request.scope, request.receive, request._send
            ) as (read_stream, write_stream):
                await app.run(
                    read_stream,
                    write_stream,
                    app.create_initialization_options()
                )
        finally:
            current_auth.reset(token)
        return Response()

    async def health(request):
        try:
            stored_values = keystore.count_entries()
            status = "ok"
        except keystore.KeystoreError as e:
            logger.error(f"Health check: {e}")
            stored_values = None
            status = "degraded"
        return JSONResponse({
            "status": status,
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "transport": "sse",
            "project_id": config.STYTCH_PROJECT_ID,
            "stored_values": stored_values,
            "tools": get_tool_names(),
        })

    async def oauth_authorization_server(request):
        return JSONResponse(oauth_metadata())

    routes = [
        Route("/health", health),
        Route("/.well-known/oauth-authorization-server", oauth_authorization_server),
        Route("/api/apikey", get_project_credentials, methods=["GET"]),
        Route("/api/apikey", set_project_credentials, methods=["POST"]),
        Route("/api/weatherkey", get_weather_key, methods=["GET"]),
        Route("/api/weatherkey", set_weather_key, methods=["POST"]),
        Route("/sse", endpoint=handle_sse),
        Mount("/messages/", app=sse.handle_post_message),
    ]

    # Finally - the web UI, when it has been built
    if os.path.isdir(config.RELAY_STATIC_DIR):
        routes.append(Mount("/", app=StaticFiles(directory=config.RELAY_STATIC_DIR, html=True), name="ui"))
        logger.info(f"Serving web UI from {config.RELAY_STATIC_DIR}")
    else:
        logger.info(f"No web UI at {config.RELAY_STATIC_DIR}; serving API only")

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            # Credential routes authenticate by cookie; never expose them cross-origin
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        ),
        Middleware(RelayAuthMiddleware),
    ]

    return Starlette(debug=False, routes=routes, middleware=middleware)


# ==================== Main ====================

def main():
    """Entry point for the relay. Supports stdio and SSE transports."""
    # Fail fast if required env vars are missing
    config.validate_required_config()

    parser = argparse.ArgumentParser(description="Stytch MCP Relay")
    parser.add_argument(
        "--transport", choices=["stdio", "sse"], default="sse",
        help="Transport mode: sse (default) or stdio"
    )
    parser.add_argument(
        "--host", default="0.0.0.0",
        help="Host to bind SSE server (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", type=int, default=8787,
        help="Port for SSE server (default: 8787)"
    )
    args = parser.parse_args()

    if args.transport == "sse":
        import uvicorn
        logger.info(f"Starting Stytch MCP Relay (SSE mode) on {args.host}:{args.port}")
        logger.info(f"Connect via: http://{args.host}:{args.port}/sse")
        logger.info(f"Tools: {len(get_tool_names())}")
        uvicorn.run(create_app(), host=args.host, port=args.port)
    else:
        asyncio.run(_async_main_stdio())


if __name__ == "__main__":
    main()
