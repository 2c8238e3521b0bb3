"""
Tool inventory: which tools, resources and prompts a server instance offers.

The inventory is built once at startup from several independent
configuration axes and is immutable afterwards:

- toolset selection: None (use the default toolsets), [] (none), or an
  explicit list; the keywords "all" and "default" expand
- explicitly named tools, added on top of the toolsets
- excluded tools, removed no matter how they were selected
- read-only mode, keeping only tools annotated as read-only
- feature flags and insiders mode, gating experimental tools
- extra filters, such as the token scope filter
- deprecated aliases, old names routed to their replacement
- the roots transform, making owner/repo optional in input schemas

Build order matters and is fixed in InventoryBuilder.build(). Changing the
live inventory means building a new one and swapping it in through
InventoryHolder; an Inventory is never edited in place, so a request that
holds a reference always sees one consistent snapshot.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping

from github_mcp.roots import make_owner_repo_optional

logger = logging.getLogger(__name__)

TOOLSET_ALL = "all"
TOOLSET_DEFAULT = "default"

ToolHandler = Callable[..., Awaitable[Any]]
ToolFilter = Callable[["ToolDescriptor"], bool]
FeatureChecker = Callable[[str], bool]


class InventoryError(ValueError):
    """Raised when the configured tools violate an inventory invariant."""


@dataclass(frozen=True)
class ToolsetMetadata:
    """A named group of tools that can be enabled as a unit."""

    id: str
    description: str
    default: bool = False
    instructions: str = ""


@dataclass(frozen=True)
class ToolDescriptor:
    """
    Static description of one tool.

    Attributes:
        name: Unique tool name exposed to clients.
        description: Text shown to the model.
        toolset: Id of the toolset the tool belongs to.
        input_schema: JSON Schema object for the arguments.
        handler: Coroutine function ``handler(deps, arguments)``.
        required_scopes: OAuth scopes the token must all have.
        read_only: The tool does not modify anything on GitHub.
        feature_flag: Flag that must be enabled for the tool to exist.
        insiders_only: Only offered in insiders mode.
        title: Human-friendly title for tool annotations.
    """

    name: str
    description: str
    toolset: str
    input_schema: Mapping[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: ToolHandler | None = None
    required_scopes: frozenset[str] = frozenset()
    read_only: bool = False
    feature_flag: str | None = None
    insiders_only: bool = False
    title: str = ""

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(self.input_schema.get("required") or ())


@dataclass(frozen=True)
class ResourceDescriptor:
    name: str
    description: str
    toolset: str
    uri_template: str
    handler: ToolHandler | None = None
    mime_type: str = "text/plain"
    feature_flag: str | None = None


@dataclass(frozen=True)
class PromptDescriptor:
    name: str
    description: str
    toolset: str
    handler: ToolHandler | None = None
    feature_flag: str | None = None


@dataclass(frozen=True)
class Inventory:
    """
    Immutable snapshot of the offered tools, resources and prompts.

    ``tools`` maps canonical names to descriptors; ``aliases`` maps deprecated
    names to canonical ones. Build warnings (unknown toolsets or tool names)
    are kept for inspection after startup.
    """

    tools: Mapping[str, ToolDescriptor]
    aliases: Mapping[str, str]
    resources: Mapping[str, ResourceDescriptor]
    prompts: Mapping[str, PromptDescriptor]
    toolsets: tuple[ToolsetMetadata, ...]
    enabled_toolsets: frozenset[str]
    unrecognized_toolsets: tuple[str, ...] = ()
    unrecognized_tools: tuple[str, ...] = ()
    server_instructions: str = ""

    def __contains__(self, name: object) -> bool:
        return name in self.tools or name in self.aliases

    def __len__(self) -> int:
        return len(self.tools)

    def resolve_name(self, name: str) -> str | None:
        """Canonical name for a tool or deprecated alias, None if not offered."""
        if name in self.tools:
            return name
        return self.aliases.get(name)

    def lookup(self, name: str) -> ToolDescriptor | None:
        canonical = self.resolve_name(name)
        return self.tools[canonical] if canonical is not None else None

    def tool_names(self) -> list[str]:
        return list(self.tools)

    def toolset(self, toolset_id: str) -> ToolsetMetadata | None:
        for metadata in self.toolsets:
            if metadata.id == toolset_id:
                return metadata
        return None

    def is_toolset_enabled(self, toolset_id: str) -> bool:
        return toolset_id in self.enabled_toolsets

    def instructions(self) -> str:
        return self.server_instructions


@dataclass(frozen=True)
class InventoryBuilder:
    """
    Immutable builder for Inventory snapshots.

    Every ``set_*``/``with_*`` method returns a new builder, so a configured
    builder can be kept around and rebuilt with a different toolset selection
    (this is how dynamic toolsets produce new snapshots).
    """

    catalog: tuple[ToolDescriptor, ...] = ()
    resource_catalog: tuple[ResourceDescriptor, ...] = ()
    prompt_catalog: tuple[PromptDescriptor, ...] = ()
    toolsets: tuple[ToolsetMetadata, ...] = ()
    selected_toolsets: tuple[str, ...] | None = None
    explicit_tools: tuple[str, ...] = ()
    excluded_tools: frozenset[str] = frozenset()
    read_only: bool = False
    insiders_mode: bool = False
    feature_enabled: FeatureChecker | None = None
    filters: tuple[ToolFilter, ...] = ()
    deprecated_aliases: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    owner_repo_optional: bool = False
    instructions_preamble: str | None = None

    def set_tools(self, tools: Iterable[ToolDescriptor]) -> "InventoryBuilder":
        return replace(self, catalog=tuple(tools))

    def set_resources(self, resources: Iterable[ResourceDescriptor]) -> "InventoryBuilder":
        return replace(self, resource_catalog=tuple(resources))

    def set_prompts(self, prompts: Iterable[PromptDescriptor]) -> "InventoryBuilder":
        return replace(self, prompt_catalog=tuple(prompts))

    def set_toolsets(self, toolsets: Iterable[ToolsetMetadata]) -> "InventoryBuilder":
        return replace(self, toolsets=tuple(toolsets))

    def with_toolsets(self, toolsets: Iterable[str] | None) -> "InventoryBuilder":
        """None uses the default toolsets; an empty list selects none."""
        selected = None if toolsets is None else tuple(toolsets)
        return replace(self, selected_toolsets=selected)

    def with_tools(self, tools: Iterable[str]) -> "InventoryBuilder":
        return replace(self, explicit_tools=tuple(tools))

    def with_excluded_tools(self, tools: Iterable[str]) -> "InventoryBuilder":
        return replace(self, excluded_tools=frozenset(tools))

    def with_read_only(self, read_only: bool) -> "InventoryBuilder":
        return replace(self, read_only=read_only)

    def with_insiders_mode(self, enabled: bool) -> "InventoryBuilder":
        return replace(self, insiders_mode=enabled)

    def with_feature_checker(self, checker: FeatureChecker | None) -> "InventoryBuilder":
        return replace(self, feature_enabled=checker)

    def with_filter(self, tool_filter: ToolFilter) -> "InventoryBuilder":
        return replace(self, filters=self.filters + (tool_filter,))

    def with_deprecated_aliases(self, aliases: Mapping[str, str]) -> "InventoryBuilder":
        return replace(self, deprecated_aliases=MappingProxyType(dict(aliases)))

    def with_owner_repo_optional(self, enabled: bool) -> "InventoryBuilder":
        return replace(self, owner_repo_optional=enabled)

    def with_instructions(self, preamble: str | None) -> "InventoryBuilder":
        return replace(self, instructions_preamble=preamble)

    # --- Resolution ---

    def known_toolset_ids(self) -> list[str]:
        return [metadata.id for metadata in self.toolsets]

    def toolset_members(self, toolset_id: str) -> list[ToolDescriptor]:
        """Catalog tools tagged with a toolset, before any filtering."""
        return [tool for tool in self.catalog if tool.toolset == toolset_id]

    def resolve_toolsets(self) -> tuple[frozenset[str], tuple[str, ...]]:
        """Return (enabled toolset ids, unrecognized names) for the selection."""
        known = self.known_toolset_ids()
        defaults = [metadata.id for metadata in self.toolsets if metadata.default]

        if self.selected_toolsets is None:
            return frozenset(defaults), ()

        enabled: set[str] = set()
        unrecognized: list[str] = []
        for raw_name in self.selected_toolsets:
            name = raw_name.strip()
            if not name:
                continue
            if name == TOOLSET_ALL:
                enabled.update(known)
            elif name == TOOLSET_DEFAULT:
                enabled.update(defaults)
            elif name in known:
                enabled.add(name)
            elif name not in unrecognized:
                unrecognized.append(name)
        return frozenset(enabled), tuple(unrecognized)

    def transformed_catalog(self) -> list[ToolDescriptor]:
        """Every catalog tool with the schema transform applied, unfiltered."""
        if not self.owner_repo_optional:
            return list(self.catalog)
        return [_with_optional_owner_repo(tool) for tool in self.catalog]

    def build(self) -> Inventory:
        """
        Resolve the configuration into an Inventory.

        Raises:
            InventoryError: on duplicate tool, resource or prompt names, or a
                            deprecated alias shadowing a real tool
        """
        by_name = _index_unique(self.catalog, "tool")
        enabled_toolsets, unrecognized_toolsets = self.resolve_toolsets()

        explicit: set[str] = set()
        unrecognized_tools: list[str] = []
        for raw_name in self.explicit_tools:
            name = raw_name.strip()
            if not name:
                continue
            canonical = name if name in by_name else self.deprecated_aliases.get(name)
            if canonical in by_name:
                explicit.add(canonical)
            elif name not in unrecognized_tools:
                unrecognized_tools.append(name)

        # 1. toolset members plus explicitly named tools
        selected = [
            tool for tool in self.catalog if tool.toolset in enabled_toolsets or tool.name in explicit
        ]

        # 2. exclusion is unconditional
        selected = [tool for tool in selected if tool.name not in self.excluded_tools]

        # 3. read-only mode
        if self.read_only:
            selected = [tool for tool in selected if tool.read_only]

        # 4. feature flags and insiders-only tools
        selected = [tool for tool in selected if self._gates_allow(tool)]

        # 5. token scopes and other filters
        for tool_filter in self.filters:
            selected = [tool for tool in selected if tool_filter(tool)]

        tools = {tool.name: tool for tool in selected}

        # 6. deprecated aliases route to surviving tools
        aliases: dict[str, str] = {}
        for alias, target in self.deprecated_aliases.items():
            if alias in by_name:
                raise InventoryError(f"deprecated alias {alias!r} shadows an existing tool")
            if alias in self.excluded_tools:
                continue
            if target in tools:
                aliases[alias] = target

        # 7. owner/repo become optional when roots can supply them
        if self.owner_repo_optional:
            tools = {name: _with_optional_owner_repo(tool) for name, tool in tools.items()}

        resources = _index_unique(
            [r for r in self.resource_catalog if r.toolset in enabled_toolsets and self._flag_on(r.feature_flag)],
            "resource",
        )
        prompts = _index_unique(
            [p for p in self.prompt_catalog if p.toolset in enabled_toolsets and self._flag_on(p.feature_flag)],
            "prompt",
        )

        return Inventory(
            tools=MappingProxyType(tools),
            aliases=MappingProxyType(aliases),
            resources=MappingProxyType(resources),
            prompts=MappingProxyType(prompts),
            toolsets=self.toolsets,
            enabled_toolsets=enabled_toolsets,
            unrecognized_toolsets=unrecognized_toolsets,
            unrecognized_tools=tuple(unrecognized_tools),
            server_instructions=self._instructions(enabled_toolsets),
        )

    def _flag_on(self, flag: str | None) -> bool:
        if flag is None:
            return True
        return self.feature_enabled is not None and bool(self.feature_enabled(flag))

    def _gates_allow(self, tool: ToolDescriptor) -> bool:
        if tool.insiders_only and not self.insiders_mode:
            return False
        return self._flag_on(tool.feature_flag)

    def _instructions(self, enabled_toolsets: frozenset[str]) -> str:
        if self.instructions_preamble is None:
            return ""
        parts = [self.instructions_preamble] if self.instructions_preamble else []
        parts.extend(
            metadata.instructions
            for metadata in self.toolsets
            if metadata.id in enabled_toolsets and metadata.instructions
        )
        return "\n\n".join(parts)


def _index_unique(items: Iterable[Any], kind: str) -> dict[str, Any]:
    index: dict[str, Any] = {}
    for item in items:
        if item.name in index:
            raise InventoryError(f"duplicate {kind} name {item.name!r}")
        index[item.name] = item
    return index


def _with_optional_owner_repo(tool: ToolDescriptor) -> ToolDescriptor:
    schema = make_owner_repo_optional(tool.input_schema)
    if schema is tool.input_schema:
        return tool
    return replace(tool, input_schema=schema)


def resolved_enabled_toolsets(
    dynamic_toolsets: bool,
    enabled_toolsets: list[str] | None,
    enabled_tools: list[str] | None,
) -> list[str] | None:
    """
    Toolset selection to start the server with.

    Returns None for "use defaults", [] for "none", or the explicit list. In
    dynamic mode the "all"/"default" keywords are dropped and the server starts
    empty so toolsets are enabled on demand. Naming individual tools without
    any toolsets also starts from none, so only those tools are offered.
    """
    if dynamic_toolsets and enabled_toolsets is not None:
        enabled_toolsets = [t for t in enabled_toolsets if t not in (TOOLSET_ALL, TOOLSET_DEFAULT)]

    if enabled_toolsets is not None:
        return enabled_toolsets
    if dynamic_toolsets:
        return []
    if enabled_tools:
        return []
    return None


class InventoryHolder:
    """
    The live inventory of a server instance.

    Readers take ``current`` and keep using that snapshot for the rest of the
    request. Writers go through ``update``, which serializes them and swaps
    the reference in one assignment.
    """

    def __init__(self, initial: Inventory):
        self._current = initial
        self._write_lock = threading.Lock()

    @property
    def current(self) -> Inventory:
        return self._current

    def update(self, change: Callable[[Inventory], Inventory]) -> tuple[Inventory, Inventory]:
        """
        Apply ``change`` to the current snapshot and publish the result.

        Returns (previous, current). When ``change`` returns the snapshot it
        was given, nothing is published.
        """
        with self._write_lock:
            previous = self._current
            updated = change(previous)
            if updated is not previous:
                self._current = updated
            return previous, self._current
