#!/usr/bin/env python3
"""
Stytch MCP Relay - REST API

HTTP wrapper around the MCP tools, exposing the same functionality
via REST endpoints. This allows testing and integration without
requiring an MCP-aware client.

Usage:
    python -m stytch_relay.api                      # Start on port 8000
    RELAY_API_PORT_HTTP=9000 python -m stytch_relay.api  # Custom port

Endpoints:
    POST /tools/{tool_name}  - Call any tool (arguments as the JSON body)
    GET  /tools              - List available tools
    GET  /health             - Health check
    GET  /docs               - Swagger UI (auto-generated)

Every /tools request needs "Authorization: Bearer <Stytch access token>".

Examples:
    # Who am I
    curl -X POST http://localhost:8000/tools/whoami \
         -H "Authorization: Bearer $TOKEN" -d '{}'

    # List redirect URLs
    curl -X POST http://localhost:8000/tools/getAllRedirectURLs \
         -H "Authorization: Bearer $TOKEN" \
         -H "Content-Type: application/json" \
         -d '{"project_id": "project-test-..."}'
"""

import asyncio
import os
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uvicorn

from stytch_relay import config
from stytch_relay.auth import AuthError, get_auth
from stytch_relay.client import UpstreamError
from stytch_relay.tools import (
    SERVER_VERSION,
    AuthContext, ToolError, UnknownToolError,
    current_auth, dispatch_tool, list_tools,
)

# ==================== Configuration ====================

logger = config.get_logger("stytch-relay-api")

HTTP_PORT = int(os.environ.get("RELAY_API_PORT_HTTP", 8000))
HTTP_HOST = os.environ.get("RELAY_API_HOST_HTTP", "0.0.0.0")

# ==================== FastAPI App ====================

app = FastAPI(
    title="Stytch MCP Relay API",
    description=(
        "REST API for the Stytch management API relay.\n\n"
        "This is an HTTP wrapper around the MCP server tools. "
        "The same tools available to AI assistants via MCP protocol "
        "are exposed here as REST endpoints."
    ),
    version=SERVER_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS - allow all origins for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== Auth Dependency ====================

async def require_access_token(request: Request) -> AuthContext:
    """Validate the Stytch access token in the Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid access token")

    access_token = auth_header.removeprefix("Bearer ").strip()
    try:
        token_info = await asyncio.to_thread(get_auth().introspect_token, access_token)
    except AuthError as e:
        logger.warning(f"Rejected access token: {e}")
        raise HTTPException(status_code=401, detail="Unauthenticated")

    return AuthContext(subject=token_info.subject, access_token=access_token)


# ==================== Response Models ====================


class ToolResponse(BaseModel):
    """Response from a tool call."""
    tool: str
    success: bool
    text: str
    timestamp: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    server: str
    project_id: str
    management_url: str
    timestamp: str


# ==================== Endpoints ====================


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Check server health."""
    return HealthResponse(
        status="ok",
        server="Stytch MCP Relay API",
        project_id=config.STYTCH_PROJECT_ID,
        management_url=config.STYTCH_MANAGEMENT_URL,
        timestamp=datetime.now().isoformat(),
    )


@app.get("/tools", tags=["Tools"])
async def get_tools():
    """List all available MCP tools with their schemas."""
    tools = await list_tools()
    return {
        "tools": [
            {
                "name": t.name,
                "description": t.description,
                "parameters": t.inputSchema,
            }
            for t in tools
        ],
        "count": len(tools),
    }


@app.post("/tools/{tool_name}", response_model=ToolResponse, tags=["Tools"])
async def execute_tool(
    tool_name: str,
    arguments: Optional[Dict[str, Any]] = Body(None),
    auth: AuthContext = Depends(require_access_token),
):
    """
    Execute a tool by name. The JSON body is the tool's argument object.

    **Example:**

    ```json
    POST /tools/getAllSecrets
    {"project_id": "project-test-..."}
    ```
    """
    token = current_auth.set(auth)
    try:
        text = await dispatch_tool(tool_name, arguments or {})
    except UnknownToolError as e:
        raise HTTPException(status_code=404, detail={"error": str(e), "tool": tool_name})
    except UpstreamError as e:
        logger.warning(f"Upstream error in {tool_name}: {e}")
        raise HTTPException(
            status_code=502,
            detail={"error": str(e), "tool": tool_name, "upstream_status": e.status_code},
        )
    except ToolError as e:
        raise HTTPException(status_code=400, detail={"error": str(e), "tool": tool_name})
    finally:
        current_auth.reset(token)

    return ToolResponse(
        tool=tool_name,
        success=True,
        text=text,
        timestamp=datetime.now().isoformat(),
    )


# ==================== Main ====================


def main():
    """Start the HTTP API server."""
    config.validate_required_config()

    logger.info(f"Stytch MCP Relay REST API on http://{HTTP_HOST}:{HTTP_PORT}")
    logger.info(f"Swagger UI: http://localhost:{HTTP_PORT}/docs")

    uvicorn.run(
        "stytch_relay.api:app",
        host=HTTP_HOST,
        port=HTTP_PORT,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
