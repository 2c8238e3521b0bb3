"""
GitHub MCP server built on FastMCP.

create_server() wires the pieces together:

- every catalog tool is registered with FastMCP once, as an InventoryTool
- InventoryMiddleware gates tools/list, tools/call, resource templates and
  prompts against the live Inventory snapshot, and routes deprecated tool
  names to their replacement
- with the streamable-http transport, AuthMiddleware authenticates each MCP
  request with a JWT and checks the tool's GitHub scopes against the token
- with roots mode on, RootInjectionMiddleware and RootEnforcementMiddleware
  scope owner/repo arguments to the client's roots
- with dynamic toolsets on, the toolset meta tools are registered
- /health and /ready HTTP endpoints

Middleware runs in list order, outermost first:

    AuthMiddleware -> InventoryMiddleware -> RootInjection -> RootEnforcement -> tool

Running the server:
    python -m github_mcp.server

    GITHUB_PERSONAL_ACCESS_TOKEN=ghp_... selects the GitHub credentials,
    GITHUB_MCP_TRANSPORT=streamable-http serves MCP at http://0.0.0.0:8082/mcp
"""

import asyncio
import json
import logging
import sys
import uuid
from dataclasses import dataclass, replace
from typing import Annotated, Any, Awaitable, Callable, Iterable, Mapping, Sequence

import httpx
from fastmcp import FastMCP
from fastmcp.exceptions import PromptError, ResourceError, ToolError
from fastmcp.prompts.base import Prompt
from fastmcp.resources.template import ResourceTemplate
from fastmcp.server.dependencies import get_http_request
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.base import Tool, ToolResult
from mcp.types import CallToolRequestParams, ListToolsRequest, TextContent, ToolAnnotations
from pydantic import Field
from pydantic.json_schema import SkipJsonSchema
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from github_mcp.auth import AuthError, TokenInfo, validate_token
from github_mcp.config import Settings, settings
from github_mcp.dynamic import ToolsetController, dynamic_tools
from github_mcp.github_client import GitHubAPIError, GitHubClient, RepoAccessChecker, ToolDependencies
from github_mcp.inventory import (
    Inventory,
    InventoryBuilder,
    InventoryHolder,
    PromptDescriptor,
    ResourceDescriptor,
    ToolDescriptor,
    resolved_enabled_toolsets,
)
from github_mcp.log import configure_logging
from github_mcp.roots_middleware import RootEnforcementMiddleware, RootInjectionMiddleware
from github_mcp.scopes import (
    feature_checker,
    fetch_token_scopes,
    missing_scopes,
    scopes_satisfied,
    supports_scope_discovery,
    tool_scope_filter,
)
from github_mcp.tools import (
    ALL_TOOLSETS,
    DEPRECATED_TOOL_ALIASES,
    SERVER_INSTRUCTIONS,
    all_prompts,
    all_resources,
    all_tools,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "github-mcp-server"


# ---------------------------------------------------------------------------
# Catalog tools as FastMCP tools
# ---------------------------------------------------------------------------


class InventoryTool(Tool):
    """
    A catalog tool registered with FastMCP.

    ``parameters`` is the schema shown to clients (owner/repo may be optional
    there in roots mode); ``required_arguments`` are the fields the handler
    actually needs, checked after root injection has run.
    """

    handler: Annotated[SkipJsonSchema[Callable[..., Awaitable[Any]]], Field(exclude=True)]
    deps: Annotated[SkipJsonSchema[Any], Field(exclude=True)] = None
    required_arguments: Annotated[SkipJsonSchema[tuple[str, ...]], Field(exclude=True)] = ()

    @classmethod
    def from_descriptor(
        cls,
        descriptor: ToolDescriptor,
        deps: ToolDependencies,
        required_arguments: Iterable[str] | None = None,
    ) -> "InventoryTool":
        return cls(
            name=descriptor.name,
            title=descriptor.title or None,
            description=descriptor.description,
            parameters=dict(descriptor.input_schema),
            annotations=ToolAnnotations(title=descriptor.title or None, read_only_hint=descriptor.read_only),
            handler=descriptor.handler,
            deps=deps,
            required_arguments=tuple(
                descriptor.required_fields if required_arguments is None else required_arguments
            ),
        )

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        missing = [name for name in self.required_arguments if arguments.get(name) is None]
        if missing:
            raise ToolError(f"missing required parameter: {', '.join(missing)}")

        try:
            result = await self.handler(self.deps, arguments)
        except GitHubAPIError as e:
            raise ToolError(str(e)) from e
        except httpx.HTTPError as e:
            raise ToolError(f"GitHub request failed: {e}") from e

        text = result if isinstance(result, str) else json.dumps(result, default=str)
        return ToolResult(content=[TextContent(type="text", text=text)])


def _resource_reader(
    descriptor: ResourceDescriptor, deps: ToolDependencies, holder: InventoryHolder
) -> Callable[..., Awaitable[str]]:
    async def read(owner: str, repo: str) -> str:
        if descriptor.name not in holder.current.resources:
            raise ResourceError(f"resource {descriptor.name!r} is not enabled")
        try:
            return await descriptor.handler(deps, owner, repo)
        except (GitHubAPIError, ToolError) as e:
            raise ResourceError(str(e)) from e

    return read


def _prompt_renderer(
    descriptor: PromptDescriptor, deps: ToolDependencies, holder: InventoryHolder
) -> Callable[..., Awaitable[str]]:
    async def render(owner: str, repo: str) -> str:
        if descriptor.name not in holder.current.prompts:
            raise PromptError(f"prompt {descriptor.name!r} is not enabled")
        return await descriptor.handler(deps, owner, repo)

    return render


# ---------------------------------------------------------------------------
# Inventory gating middleware
# ---------------------------------------------------------------------------


class InventoryMiddleware(Middleware):
    """
    Expose exactly what the live Inventory offers.

    FastMCP knows every catalog tool; this middleware hides the ones the
    current snapshot does not include and refuses to call them. Names it does
    not manage (the dynamic toolset meta tools) pass through untouched.
    """

    def __init__(
        self,
        holder: InventoryHolder,
        managed_tools: Iterable[str],
        managed_resources: Iterable[str] = (),
        managed_prompts: Iterable[str] = (),
    ):
        self.holder = holder
        self.managed_tools = frozenset(managed_tools)
        self.managed_resources = frozenset(managed_resources)
        self.managed_prompts = frozenset(managed_prompts)

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        tools = await call_next(context)
        inventory = self.holder.current
        return [tool for tool in tools if tool.name in inventory.tools or tool.name not in self.managed_tools]

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        name = context.message.name
        if name not in self.managed_tools:
            return await call_next(context)

        inventory = self.holder.current
        canonical = inventory.resolve_name(name)
        if canonical is None:
            logger.info(
                "Tool call denied: tool not enabled",
                extra={"log_data": {"tool": name, "decision": "denied", "reason": "not_enabled"}},
            )
            raise ToolError(f"tool {name!r} is not enabled on this server")

        if canonical != name:
            logger.info(
                "Deprecated tool alias used",
                extra={"log_data": {"alias": name, "tool": canonical}},
            )
            context = replace(context, message=context.message.model_copy(update={"name": canonical}))
        return await call_next(context)

    async def on_list_resource_templates(self, context: MiddlewareContext, call_next: CallNext) -> Sequence[ResourceTemplate]:
        templates = await call_next(context)
        enabled = self.holder.current.resources
        return [t for t in templates if t.name in enabled or t.name not in self.managed_resources]

    async def on_list_prompts(self, context: MiddlewareContext, call_next: CallNext) -> Sequence[Prompt]:
        prompts = await call_next(context)
        enabled = self.holder.current.prompts
        return [p for p in prompts if p.name in enabled or p.name not in self.managed_prompts]


# ---------------------------------------------------------------------------
# Authentication & authorization middleware (streamable-http)
# ---------------------------------------------------------------------------


class AuthMiddleware(Middleware):
    """
    JWT authentication and GitHub scope authorization.

    - tools/list responses only include tools whose required scopes the
      token satisfies
    - tools/call is rejected when the token lacks a required scope, or when
      the tool has no entry in the scope map (fail closed)
    """

    def __init__(self, tool_scopes: Mapping[str, frozenset[str]], secret_key: str | None = None, algorithm: str | None = None):
        self.tool_scopes = tool_scopes
        self.secret_key = secret_key
        self.algorithm = algorithm

    def _get_auth_header(self) -> str | None:
        """Authorization header of the current HTTP request, None outside HTTP."""
        try:
            request = get_http_request()
            return request.headers.get("authorization")
        except RuntimeError:
            return None

    def _authenticate(self, request_id: str) -> TokenInfo:
        """
        Validate the bearer token of the current request.

        Raises:
            AuthError: If authentication fails for any reason
        """
        auth_header = self._get_auth_header()
        try:
            token_info = validate_token(auth_header, self.secret_key, self.algorithm)
        except AuthError as e:
            logger.warning(
                "Authentication failed",
                extra={
                    "log_data": {
                        "request_id": request_id,
                        "decision": "rejected",
                        "reason": "authentication_failed",
                        "detail": e.message,
                    }
                },
            )
            raise
        logger.info(
            "Authentication successful",
            extra={
                "log_data": {
                    "request_id": request_id,
                    "subject": token_info.subject,
                    "scopes": token_info.scopes,
                    "decision": "authenticated",
                }
            },
        )
        return token_info

    async def on_list_tools(
        self,
        context: MiddlewareContext[ListToolsRequest],
        call_next: CallNext[ListToolsRequest, Sequence[Tool]],
    ) -> Sequence[Tool]:
        request_id = str(uuid.uuid4())[:8]
        token_info = self._authenticate(request_id)

        all_tools = await call_next(context)

        authorized_tools = []
        for tool in all_tools:
            required = self.tool_scopes.get(tool.name)
            if required is not None and scopes_satisfied(required, token_info.scopes):
                authorized_tools.append(tool)

        logger.info(
            "Tool list filtered by scope",
            extra={
                "log_data": {
                    "request_id": request_id,
                    "subject": token_info.subject,
                    "scopes": token_info.scopes,
                    "total_tools": len(all_tools),
                    "authorized_tools": [t.name for t in authorized_tools],
                    "decision": "filtered",
                }
            },
        )
        return authorized_tools

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        request_id = str(uuid.uuid4())[:8]
        tool_name = context.message.name

        try:
            token_info = self._authenticate(request_id)
        except AuthError as e:
            raise ToolError(f"Access denied: {e.message}")

        required = self.tool_scopes.get(tool_name)
        if required is None:
            logger.warning(
                "Tool call denied: no scope mapping found",
                extra={
                    "log_data": {
                        "request_id": request_id,
                        "subject": token_info.subject,
                        "tool": tool_name,
                        "decision": "denied",
                        "reason": "no_scope_mapping",
                    }
                },
            )
            raise ToolError(f"Access denied: tool '{tool_name}' has no scope mapping")

        missing = missing_scopes(required, token_info.scopes)
        if missing:
            logger.warning(
                "Tool call denied: insufficient scope",
                extra={
                    "log_data": {
                        "request_id": request_id,
                        "subject": token_info.subject,
                        "tool": tool_name,
                        "required_scopes": sorted(required),
                        "token_scopes": token_info.scopes,
                        "decision": "denied",
                        "reason": "insufficient_scope",
                    }
                },
            )
            raise ToolError(f"Access denied: tool '{tool_name}' requires scopes {', '.join(missing)}")

        logger.info(
            "Tool call authorized",
            extra={
                "log_data": {
                    "request_id": request_id,
                    "subject": token_info.subject,
                    "tool": tool_name,
                    "required_scopes": sorted(required),
                    "decision": "allowed",
                }
            },
        )
        return await call_next(context)


# ---------------------------------------------------------------------------
# Server assembly
# ---------------------------------------------------------------------------


@dataclass
class MCPServer:
    """A configured server: the FastMCP app and its live inventory."""

    mcp: FastMCP
    inventory: InventoryHolder
    toolsets: ToolsetController | None = None


def inventory_builder(config: Settings, token_scopes: Iterable[str] | None = None) -> InventoryBuilder:
    """The startup InventoryBuilder for a configuration."""
    builder = (
        InventoryBuilder()
        .set_tools(all_tools())
        .set_resources(all_resources())
        .set_prompts(all_prompts())
        .set_toolsets(ALL_TOOLSETS)
        .with_toolsets(resolved_enabled_toolsets(config.dynamic_toolsets, config.toolsets, config.tools))
        .with_tools(config.tools)
        .with_excluded_tools(config.exclude_tools)
        .with_read_only(config.read_only)
        .with_insiders_mode(config.insiders_mode)
        .with_feature_checker(feature_checker(config.features))
        .with_deprecated_aliases(DEPRECATED_TOOL_ALIASES)
        .with_owner_repo_optional(config.roots_mode)
        .with_instructions(SERVER_INSTRUCTIONS)
    )
    if token_scopes is not None:
        builder = builder.with_filter(tool_scope_filter(token_scopes))
    return builder


def _log_build_warnings(inventory: Inventory) -> None:
    if inventory.unrecognized_toolsets:
        logger.warning(
            "Unrecognized toolsets ignored",
            extra={"log_data": {"toolsets": list(inventory.unrecognized_toolsets)}},
        )
    if inventory.unrecognized_tools:
        logger.warning(
            "Unrecognized tools ignored",
            extra={"log_data": {"tools": list(inventory.unrecognized_tools)}},
        )


def create_server(
    config: Settings | None = None,
    *,
    client: Any = None,
    token_scopes: Iterable[str] | None = None,
    repo_access: RepoAccessChecker | None = None,
) -> MCPServer:
    """
    Build a server for a configuration.

    Args:
        config: Settings to use; defaults to the environment settings
        client: GitHub client for tool handlers; defaults to a GitHubClient
                for the configured host and token
        token_scopes: OAuth scopes of the GitHub token, when known; tools
                      needing other scopes are left out
        repo_access: Lockdown capability consulted when lockdown mode is on

    Raises:
        InventoryError: if the catalog violates an inventory invariant
    """
    config = config or settings
    if client is None:
        client = GitHubClient(config.github_token, config.github_host, timeout=config.request_timeout)

    deps = ToolDependencies(
        client=client,
        host=config.github_host,
        lockdown_mode=config.lockdown_mode,
        repo_access=repo_access,
        roots_timeout=config.roots_timeout,
    )

    builder = inventory_builder(config, token_scopes)
    inventory = builder.build()
    _log_build_warnings(inventory)
    holder = InventoryHolder(inventory)
    controller = ToolsetController(builder, holder) if config.dynamic_toolsets else None
    meta_tools = dynamic_tools(controller) if controller is not None else []

    tool_scopes: dict[str, frozenset[str]] = {tool.name: tool.required_scopes for tool in builder.catalog}
    for alias, target in DEPRECATED_TOOL_ALIASES.items():
        if target in tool_scopes:
            tool_scopes[alias] = tool_scopes[target]
    meta_names = {meta_tool.name for meta_tool in meta_tools}
    for name in meta_names:
        tool_scopes[name] = frozenset()

    middleware: list[Middleware] = []
    if config.transport == "streamable-http":
        middleware.append(AuthMiddleware(tool_scopes, config.jwt_secret_key, config.jwt_algorithm))
    middleware.append(
        InventoryMiddleware(
            holder,
            managed_tools=[name for name in tool_scopes if name not in meta_names],
            managed_resources=[r.name for r in builder.resource_catalog],
            managed_prompts=[p.name for p in builder.prompt_catalog],
        )
    )
    if config.roots_mode:
        middleware.append(RootInjectionMiddleware(config.github_host, config.roots_timeout))
        middleware.append(RootEnforcementMiddleware(config.github_host, config.roots_timeout))

    mcp = FastMCP(
        name=SERVER_NAME,
        instructions=inventory.instructions() or None,
        middleware=middleware,
    )

    for original, shown in zip(builder.catalog, builder.transformed_catalog()):
        mcp.add_tool(InventoryTool.from_descriptor(shown, deps, original.required_fields))
    for meta_tool in meta_tools:
        mcp.add_tool(meta_tool)
    for resource in builder.resource_catalog:
        mcp.add_template(
            ResourceTemplate.from_function(
                _resource_reader(resource, deps, holder),
                uri_template=resource.uri_template,
                name=resource.name,
                description=resource.description,
                mime_type=resource.mime_type,
            )
        )
    for prompt in builder.prompt_catalog:
        mcp.add_prompt(
            Prompt.from_function(
                _prompt_renderer(prompt, deps, holder),
                name=prompt.name,
                description=prompt.description,
            )
        )

    # Plain HTTP health endpoints for orchestrators, no authentication.

    @mcp.custom_route("/health", methods=["GET"])
    async def health_check(request: Request) -> Response:
        """Liveness check: is the server process alive and responsive?"""
        return JSONResponse({"status": "healthy"})

    @mcp.custom_route("/ready", methods=["GET"])
    async def readiness_check(request: Request) -> Response:
        """Readiness check: does the server offer anything to call?"""
        current = holder.current
        if len(current) == 0 and controller is None:
            return JSONResponse({"status": "not_ready", "reason": "no tools enabled"}, status_code=503)
        return JSONResponse(
            {
                "status": "ready",
                "tools": len(current),
                "enabled_toolsets": sorted(current.enabled_toolsets),
            }
        )

    logger.info(
        "Inventory built",
        extra={
            "log_data": {
                "tools": len(inventory),
                "enabled_toolsets": sorted(inventory.enabled_toolsets),
                "read_only": config.read_only,
                "dynamic_toolsets": config.dynamic_toolsets,
                "roots_mode": config.roots_mode,
            }
        },
    )
    return MCPServer(mcp=mcp, inventory=holder, toolsets=controller)


def discover_token_scopes(config: Settings) -> list[str] | None:
    """
    Scopes of the configured GitHub token, or None when they are unknown.

    Only classic PATs report scopes; a failed lookup disables scope
    filtering rather than stopping the server.
    """
    if not config.github_token or not supports_scope_discovery(config.github_token):
        return None
    try:
        return asyncio.run(
            fetch_token_scopes(config.github_token, config.github_host, timeout=config.request_timeout)
        )
    except httpx.HTTPError as e:
        logger.warning("Could not fetch token scopes, scope filtering disabled: %s", e)
        return None


def main() -> None:
    configure_logging(settings.log_level, sys.stderr if settings.transport == "stdio" else sys.stdout)
    server = create_server(settings, token_scopes=discover_token_scopes(settings))

    if settings.transport == "stdio":
        logger.info("Starting MCP server (transport=stdio)")
        server.mcp.run(transport="stdio", show_banner=False)
        return

    logger.info(
        "Starting MCP server on %s:%d (transport=streamable-http, auth=enabled)",
        settings.host,
        settings.port,
    )
    server.mcp.run(
        transport="streamable-http",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
