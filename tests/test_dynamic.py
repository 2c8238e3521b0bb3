"""
Tests for dynamic toolsets (github_mcp/dynamic.py).

ToolsetController is tested against a real startup builder; the meta tools
are exercised end to end through the in-memory Client, checking that the
live tool list follows enable/disable.
"""

import pytest
from fastmcp import Client

from github_mcp.dynamic import ToolsetController, UnknownToolsetError
from github_mcp.inventory import InventoryHolder
from github_mcp.server import create_server, inventory_builder
from tests.fakes import FakeGitHubClient

META_TOOLS = {"list_available_toolsets", "get_toolset_tools", "enable_toolset", "disable_toolset"}


@pytest.fixture
def controller(make_settings) -> ToolsetController:
    builder = inventory_builder(make_settings(dynamic_toolsets=True, exclude_tools=["create_issue"]))
    return ToolsetController(builder, InventoryHolder(builder.build()))


class TestToolsetController:
    """Tests for enable/disable on the controller."""

    def test_starts_with_nothing_enabled(self, controller):
        assert len(controller.holder.current) == 0
        assert all(not toolset["currently_enabled"] for toolset in controller.list_toolsets())

    def test_enable_publishes_a_new_snapshot(self, controller):
        before = controller.holder.current

        assert controller.enable("issues") is True

        after = controller.holder.current
        assert after is not before
        assert "get_issue" in after
        assert len(before) == 0

    def test_enable_is_idempotent(self, controller):
        controller.enable("issues")
        snapshot = controller.holder.current

        assert controller.enable("issues") is False
        assert controller.holder.current is snapshot

    def test_disable(self, controller):
        controller.enable("issues")
        controller.enable("repos")

        assert controller.disable("issues") is True
        assert controller.disable("issues") is False
        assert controller.holder.current.enabled_toolsets == {"repos"}
        assert "get_issue" not in controller.holder.current

    def test_exclusions_survive_rebuilds(self, controller):
        controller.enable("issues")

        assert "create_issue" not in controller.holder.current
        assert "list_issues" in controller.holder.current

    def test_unknown_toolset(self, controller):
        with pytest.raises(UnknownToolsetError) as exc_info:
            controller.enable("nope")

        assert "unknown toolset 'nope'" in str(exc_info.value)
        assert "issues" in str(exc_info.value)

    def test_list_toolsets_reports_state(self, controller):
        controller.enable("actions")

        toolsets = {t["id"]: t for t in controller.list_toolsets()}

        assert toolsets["actions"]["currently_enabled"] is True
        assert toolsets["repos"]["currently_enabled"] is False
        assert toolsets["actions"]["can_enable"] is True
        assert toolsets["actions"]["description"]

    def test_toolset_tools(self, controller):
        tools = {t["name"]: t for t in controller.toolset_tools("issues")}

        assert tools["get_issue"] == {
            "name": "get_issue",
            "description": "Get details of a specific issue in a GitHub repository.",
            "read_only": True,
            "enabled": False,
        }
        assert tools["create_issue"]["read_only"] is False

        with pytest.raises(UnknownToolsetError):
            controller.toolset_tools("nope")


class TestMetaTools:
    """The meta tools through the MCP protocol."""

    async def test_only_meta_tools_at_startup(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True), client=github)

        async with Client(server.mcp) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == META_TOOLS

    async def test_enable_then_disable_changes_tool_list(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True), client=github)

        async with Client(server.mcp) as client:
            enabled = await client.call_tool("enable_toolset", {"toolset": "issues"})
            again = await client.call_tool("enable_toolset", {"toolset": "issues"})
            after_enable = {tool.name for tool in await client.list_tools()}

            disabled = await client.call_tool("disable_toolset", {"toolset": "issues"})
            after_disable = {tool.name for tool in await client.list_tools()}

        assert enabled.data == "Toolset issues enabled"
        assert again.data == "Toolset issues is already enabled"
        assert {"list_issues", "get_issue"} <= after_enable
        assert META_TOOLS <= after_enable
        assert disabled.data == "Toolset issues disabled"
        assert after_disable == META_TOOLS

    async def test_enabled_tools_can_be_called(self, make_settings):
        github = FakeGitHubClient({("GET", "/search/users"): {"total_count": 1, "items": [{"login": "octocat"}]}})
        server = create_server(make_settings(dynamic_toolsets=True), client=github)

        async with Client(server.mcp) as client:
            before = await client.call_tool_mcp("search_users", {"query": "octo"})
            await client.call_tool("enable_toolset", {"toolset": "users"})
            after = await client.call_tool_mcp("search_users", {"query": "octo"})

        assert before.is_error
        assert not after.is_error

    async def test_unknown_toolset_is_an_error_result(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True), client=github)

        async with Client(server.mcp) as client:
            result = await client.call_tool_mcp("enable_toolset", {"toolset": "nope"})

        assert result.is_error
        assert "unknown toolset 'nope'" in result.content[0].text

    async def test_list_available_toolsets(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True, toolsets=["repos"]), client=github)

        async with Client(server.mcp) as client:
            result = await client.call_tool("list_available_toolsets", {})

        toolsets = {t["id"]: t["currently_enabled"] for t in result.data}
        assert toolsets["repos"] is True
        assert toolsets["issues"] is False

    async def test_get_toolset_tools(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True), client=github)

        async with Client(server.mcp) as client:
            result = await client.call_tool("get_toolset_tools", {"toolset": "actions"})

        assert {t["name"] for t in result.data} == {"list_workflow_runs", "rerun_workflow_run"}

    async def test_read_only_applies_to_enabled_toolsets(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True, read_only=True), client=github)

        async with Client(server.mcp) as client:
            await client.call_tool("enable_toolset", {"toolset": "issues"})
            names = {tool.name for tool in await client.list_tools()}

        assert "get_issue" in names
        assert "create_issue" not in names

    def test_controller_is_exposed(self, make_settings, github):
        server = create_server(make_settings(dynamic_toolsets=True), client=github)

        assert server.toolsets is not None
        assert len(server.inventory.current) == 0
