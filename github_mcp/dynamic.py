"""
Dynamic toolsets: let the model enable toolsets on demand.

With dynamic toolsets on, the server starts with few or no toolsets enabled
and registers four meta tools that are always available:

- list_available_toolsets: every toolset and whether it is enabled
- get_toolset_tools: the tools a toolset would add
- enable_toolset / disable_toolset: change the live inventory

A change never edits the live Inventory. The controller rebuilds a snapshot
from the startup builder with a new toolset selection, so exclusions,
read-only mode, feature flags and token scopes still apply, and publishes it
through InventoryHolder.update.
"""

import logging
from typing import Any

import anyio
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_context
from fastmcp.tools.base import Tool
from mcp.shared.exceptions import MCPError
from mcp.types import ToolAnnotations

from github_mcp.inventory import Inventory, InventoryBuilder, InventoryHolder

logger = logging.getLogger(__name__)


class UnknownToolsetError(KeyError):
    """Raised for a toolset id the server does not know."""

    def __init__(self, toolset_id: str, known: list[str]):
        self.toolset_id = toolset_id
        self.known = known
        super().__init__(toolset_id)

    def __str__(self) -> str:
        return f"unknown toolset {self.toolset_id!r} (known toolsets: {', '.join(self.known)})"


class ToolsetController:
    """Enable and disable toolsets of a running server."""

    def __init__(self, builder: InventoryBuilder, holder: InventoryHolder):
        self.builder = builder
        self.holder = holder

    def _check_known(self, toolset_id: str) -> None:
        known = self.builder.known_toolset_ids()
        if toolset_id not in known:
            raise UnknownToolsetError(toolset_id, known)

    def list_toolsets(self) -> list[dict[str, Any]]:
        inventory = self.holder.current
        return [
            {
                "id": metadata.id,
                "description": metadata.description,
                "can_enable": True,
                "currently_enabled": inventory.is_toolset_enabled(metadata.id),
            }
            for metadata in self.builder.toolsets
        ]

    def toolset_tools(self, toolset_id: str) -> list[dict[str, Any]]:
        """
        Describe the tools of a toolset.

        Raises:
            UnknownToolsetError: if the toolset does not exist
        """
        self._check_known(toolset_id)
        inventory = self.holder.current
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "read_only": tool.read_only,
                "enabled": tool.name in inventory.tools,
            }
            for tool in self.builder.toolset_members(toolset_id)
        ]

    def _set_enabled(self, toolset_id: str, enabled: bool) -> bool:
        self._check_known(toolset_id)

        def change(current: Inventory) -> Inventory:
            if current.is_toolset_enabled(toolset_id) == enabled:
                return current
            selection = set(current.enabled_toolsets)
            if enabled:
                selection.add(toolset_id)
            else:
                selection.discard(toolset_id)
            return self.builder.with_toolsets(sorted(selection)).build()

        previous, current = self.holder.update(change)
        changed = previous is not current
        if changed:
            logger.info(
                "Toolset %s",
                "enabled" if enabled else "disabled",
                extra={
                    "log_data": {
                        "toolset": toolset_id,
                        "enabled_toolsets": sorted(current.enabled_toolsets),
                        "tool_count": len(current),
                    }
                },
            )
        return changed

    def enable(self, toolset_id: str) -> bool:
        """
        Enable a toolset. Returns False when it was already enabled.

        Raises:
            UnknownToolsetError: if the toolset does not exist
        """
        return self._set_enabled(toolset_id, True)

    def disable(self, toolset_id: str) -> bool:
        """
        Disable a toolset. Returns False when it was already disabled.

        Raises:
            UnknownToolsetError: if the toolset does not exist
        """
        return self._set_enabled(toolset_id, False)


async def notify_tools_changed() -> None:
    """Tell the calling client that the tool list changed, if one is listening."""
    try:
        session = get_context().session
    except RuntimeError:
        return
    try:
        await session.send_tool_list_changed()
    except (MCPError, anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
        logger.debug("Could not send tools/list_changed: %s", e)


def dynamic_tools(controller: ToolsetController) -> list[Tool]:
    """The meta tools operating on ``controller``."""

    async def list_available_toolsets() -> list[dict[str, Any]]:
        return controller.list_toolsets()

    async def get_toolset_tools(toolset: str) -> list[dict[str, Any]]:
        try:
            return controller.toolset_tools(toolset)
        except UnknownToolsetError as e:
            raise ToolError(str(e))

    async def enable_toolset(toolset: str) -> str:
        try:
            changed = controller.enable(toolset)
        except UnknownToolsetError as e:
            raise ToolError(str(e))
        if not changed:
            return f"Toolset {toolset} is already enabled"
        await notify_tools_changed()
        return f"Toolset {toolset} enabled"

    async def disable_toolset(toolset: str) -> str:
        try:
            changed = controller.disable(toolset)
        except UnknownToolsetError as e:
            raise ToolError(str(e))
        if not changed:
            return f"Toolset {toolset} is already disabled"
        await notify_tools_changed()
        return f"Toolset {toolset} disabled"

    read_only = ToolAnnotations(read_only_hint=True)
    return [
        Tool.from_function(
            list_available_toolsets,
            description=(
                "List the toolsets this server offers, with whether each is currently enabled. "
                "Call this first when a task needs tools you do not have."
            ),
            annotations=read_only,
        ),
        Tool.from_function(
            get_toolset_tools,
            description="List the tools a toolset provides, so you can decide whether to enable it.",
            annotations=read_only,
        ),
        Tool.from_function(
            enable_toolset,
            description="Enable a toolset so its tools become available.",
        ),
        Tool.from_function(
            disable_toolset,
            description="Disable a toolset and remove its tools from the tool list.",
        ),
    ]
