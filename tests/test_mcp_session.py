"""Tool calls through a connected MCP client session (in-memory transport)."""

import asyncio

from mcp.shared.memory import create_connected_server_and_client_session

from stytch_relay import server, tools

from conftest import USER_ID, make_response

SESSION_TOKEN = "access-token-for-this-connection"


def run_connected(work, auth=None):
    """Open a client session against the relay's MCP server and run ``work(session)``.

    ``auth`` is bound to the connection the same way the SSE handler binds
    the caller before the server starts.
    """
    async def main():
        token = tools.current_auth.set(auth)
        try:
            async with create_connected_server_and_client_session(server.app) as session:
                return await work(session)
        finally:
            tools.current_auth.reset(token)

    return asyncio.run(main())


def connection_auth():
    return tools.AuthContext(subject=USER_ID, access_token=SESSION_TOKEN)


def test_tools_are_listed_over_mcp(upstream):
    async def work(session):
        return await session.list_tools()

    listed = run_connected(work, connection_auth())
    names = {tool.name for tool in listed.tools}
    assert {"whoami", "getAllProjects", "getProjectCredentials", "getWeather"} <= names


def test_call_uses_the_connection_token(upstream):
    upstream.queue(make_response(200, {"projects": []}))

    async def work(session):
        return await session.call_tool("getAllProjects", {})

    result = run_connected(work, connection_auth())

    assert result.isError is False
    assert result.content[0].text == 'All Projects: {"projects":[]}'
    assert upstream.calls[0]["headers"]["Authorization"] == f"Bearer {SESSION_TOKEN}"


def test_upstream_failure_is_an_error_result(upstream):
    upstream.queue(make_response(403, text="forbidden project"))

    async def work(session):
        return await session.call_tool("getAllSecrets", {"project_id": "project-test-1"})

    result = run_connected(work, connection_auth())

    assert result.isError is True
    assert "Error: Forbidden - forbidden project" in result.content[0].text


def test_connection_without_caller_is_rejected(upstream):
    async def work(session):
        return await session.call_tool("getAllProjects", {})

    result = run_connected(work, None)

    assert result.isError is True
    assert "Not authenticated" in result.content[0].text
    assert upstream.calls == []


def test_resources_are_readable_over_mcp(upstream):
    async def work(session):
        return await session.read_resource("stytch://catalog")

    result = run_connected(work, connection_auth())
    assert '"secrets"' in result.contents[0].text
