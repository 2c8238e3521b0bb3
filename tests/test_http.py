"""
Tests for the streamable-http surface: bearer auth and health endpoints.

AuthMiddleware reads the Authorization header through get_http_request().
These tests run the server through the in-memory Client and patch that
lookup to return a request carrying the header under test, so tools/list
and tools/call pass through the same middleware chain as over HTTP:

    AuthMiddleware -> InventoryMiddleware -> tool

The /health and /ready routes are plain Starlette endpoints and are called
on the ASGI app directly.
"""

from types import SimpleNamespace

import httpx
import pytest
from fastmcp import Client
from mcp.shared.exceptions import MCPError

import github_mcp.server
from github_mcp.server import create_server
from tests.fakes import FakeGitHubClient


@pytest.fixture
def http_server(make_settings):
    """Factory for a server configured for the streamable-http transport."""

    def _http_server(**overrides):
        github = FakeGitHubClient(
            {
                ("GET", "/user"): {"login": "octocat", "id": 1},
                ("GET", "/notifications"): [],
            }
        )
        return create_server(make_settings(transport="streamable-http", **overrides), client=github)

    return _http_server


@pytest.fixture
def bearer(monkeypatch):
    """Set the Authorization header seen by AuthMiddleware (None for no header)."""

    def _bearer(header: str | None) -> None:
        headers = {"authorization": header} if header is not None else {}
        monkeypatch.setattr(github_mcp.server, "get_http_request", lambda: SimpleNamespace(headers=headers))

    return _bearer


# ---------------------------------------------------------------------------
# Tool list filtering by scope
# ---------------------------------------------------------------------------


class TestToolListFiltering:
    """Tests for scope-based tool list filtering (on_list_tools middleware)."""

    async def test_no_scopes_sees_only_scope_free_tools(self, http_server, bearer, make_auth_header):
        """
        A token without scopes is authenticated but only sees tools that need
        no GitHub scope.
        """
        bearer(make_auth_header(sub="dave", scopes=[]))

        async with Client(http_server().mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == {"get_me", "search_repositories", "search_users"}

    async def test_repo_scope_sees_repository_tools(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(sub="alice", scopes=["repo"]))

        async with Client(http_server().mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert {"get_issue", "create_issue", "list_commits", "get_me"} <= names
        assert "list_notifications" not in names

    async def test_scope_filter_combines_with_inventory(self, http_server, bearer, make_auth_header):
        """Scopes never add tools the inventory does not offer."""
        bearer(make_auth_header(scopes=["repo", "notifications", "workflow"]))

        async with Client(http_server(toolsets=["notifications"]).mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == {"list_notifications", "dismiss_notification"}

    async def test_parent_scope_grants_child_scope_tools(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(scopes=["repo", "workflow"]))

        async with Client(http_server(toolsets=["actions"]).mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == {"list_workflow_runs", "rerun_workflow_run"}

    async def test_missing_token_is_rejected(self, http_server, bearer):
        bearer(None)

        async with Client(http_server().mcp) as client:
            with pytest.raises(MCPError):
                await client.list_tools()

    async def test_expired_token_is_rejected(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(scopes=["repo"], exp_hours=-1))

        async with Client(http_server().mcp) as client:
            with pytest.raises(MCPError):
                await client.list_tools()


# ---------------------------------------------------------------------------
# Tool call authorization
# ---------------------------------------------------------------------------


class TestToolCallAuthorization:
    """Tests for scope-based tool call authorization (on_call_tool middleware)."""

    async def test_missing_scope_is_denied(self, http_server, bearer, make_auth_header):
        """
        Calling a tool without its scope returns an error result naming the
        missing scope, even when the client guesses the tool name.
        """
        bearer(make_auth_header(sub="alice", scopes=["repo"]))

        async with Client(http_server(toolsets=["notifications"]).mcp) as client:
            result = await client.call_tool_mcp("list_notifications", {})

        assert result.is_error
        assert "requires scopes notifications" in result.content[0].text

    async def test_authorized_call_succeeds(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(sub="bob", scopes=["notifications"]))

        async with Client(http_server(toolsets=["notifications"]).mcp) as client:
            result = await client.call_tool_mcp("list_notifications", {})

        assert not result.is_error
        assert result.content[0].text == "[]"

    async def test_scope_free_tool_needs_only_a_valid_token(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(scopes=[]))

        async with Client(http_server().mcp) as client:
            result = await client.call_tool_mcp("get_me", {})

        assert not result.is_error

    async def test_invalid_token_is_denied(self, http_server, bearer):
        bearer("Bearer not-a-jwt")

        async with Client(http_server().mcp) as client:
            result = await client.call_tool_mcp("get_me", {})

        assert result.is_error
        assert result.content[0].text.startswith("Access denied:")

    async def test_unknown_tool_has_no_scope_mapping(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(scopes=["repo"]))

        async with Client(http_server().mcp) as client:
            result = await client.call_tool_mcp("delete_everything", {})

        assert result.is_error
        assert "has no scope mapping" in result.content[0].text

    async def test_alias_uses_target_scopes(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(scopes=[]))

        async with Client(http_server().mcp) as client:
            result = await client.call_tool_mcp("list_repository_commits", {"owner": "octocat", "repo": "x"})

        assert result.is_error
        assert "requires scopes repo" in result.content[0].text

    async def test_meta_tools_need_no_scopes(self, http_server, bearer, make_auth_header):
        bearer(make_auth_header(scopes=[]))

        async with Client(http_server(dynamic_toolsets=True).mcp) as client:
            names = {tool.name for tool in await client.list_tools()}
            result = await client.call_tool_mcp("enable_toolset", {"toolset": "users"})

        assert "enable_toolset" in names
        assert not result.is_error


# ---------------------------------------------------------------------------
# Health and readiness endpoints
# ---------------------------------------------------------------------------


async def get(server, path: str) -> httpx.Response:
    app = server.mcp.http_app(transport="streamable-http")
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://localhost") as client:
        return await client.get(path)


class TestHealthEndpoints:
    """Tests for /health and /ready."""

    async def test_health(self, http_server):
        response = await get(http_server(), "/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    async def test_ready_reports_inventory(self, http_server):
        response = await get(http_server(toolsets=["notifications"]), "/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ready", "tools": 2, "enabled_toolsets": ["notifications"]}

    async def test_not_ready_without_tools(self, http_server):
        response = await get(http_server(toolsets=[]), "/ready")

        assert response.status_code == 503
        assert response.json() == {"status": "not_ready", "reason": "no tools enabled"}

    async def test_dynamic_server_is_ready_before_any_toolset(self, http_server):
        response = await get(http_server(dynamic_toolsets=True), "/ready")

        assert response.status_code == 200
        assert response.json()["tools"] == 0

    async def test_health_endpoints_need_no_token(self, http_server, bearer):
        bearer(None)

        response = await get(http_server(), "/health")

        assert response.status_code == 200
