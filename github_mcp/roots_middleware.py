"""
Root-scoped tool calls: fill in owner/repo from roots, then enforce them.

When the client declares GitHub roots, two middlewares run on every
tools/call, in this order:

1. RootInjectionMiddleware fills missing "owner"/"repo" arguments when the
   roots make the target unambiguous. A value the caller supplied is never
   replaced.
2. RootEnforcementMiddleware rejects calls whose owner/repo fall outside the
   roots. Injected values are checked like any other.

No roots (or a client that cannot list them) means no injection and no
enforcement: scoping is opt-in by the client.

Rejections are raised as ToolError, which reaches the model as a tool result
with isError set, so it can retry with a permitted owner/repo.
"""

import logging
from dataclasses import replace
from typing import Any, Mapping, Sequence

from fastmcp.exceptions import ToolError
from fastmcp.server.middleware import CallNext, Middleware, MiddlewareContext
from fastmcp.tools.base import ToolResult
from mcp.types import CallToolRequestParams

from github_mcp.roots import DEFAULT_HOST, Root, list_session_roots, resolve_roots, unique_owners

logger = logging.getLogger(__name__)


def _present(arguments: Mapping[str, Any], field: str) -> bool:
    return arguments.get(field) is not None


def inject_root_arguments(
    arguments: Mapping[str, Any], roots: Sequence[Root]
) -> tuple[dict[str, Any], dict[str, str]]:
    """
    Fill absent owner/repo arguments from roots.

    Returns (new arguments, injected fields). ``arguments`` is not modified.
    Nothing is injected when the roots span several owners. The repo is only
    injected when exactly one distinct repository root exists.
    """
    updated = dict(arguments)
    injected: dict[str, str] = {}

    if not roots or len(unique_owners(roots)) != 1:
        return updated, injected

    first = roots[0]
    if not _present(arguments, "owner"):
        injected["owner"] = first.owner_as_written or first.owner

    repo_roots: dict[str, Root] = {}
    for root in roots:
        if not root.is_org_level:
            repo_roots.setdefault(root.repo, root)

    if len(repo_roots) == 1 and not _present(arguments, "repo"):
        (root,) = repo_roots.values()
        injected["repo"] = root.repo_as_written or root.repo

    updated.update(injected)
    return updated, injected


def check_root_scope(arguments: Mapping[str, Any], roots: Sequence[Root]) -> str | None:
    """
    Check owner/repo arguments against roots.

    Returns None when the call is allowed, otherwise a message for the
    caller naming what is allowed. Calls without an owner argument, and any
    call when there are no roots, are allowed.
    """
    if not roots or not _present(arguments, "owner"):
        return None

    owner = str(arguments["owner"])
    owner_lower = owner.lower()
    owner_roots = [root for root in roots if root.owner == owner_lower]

    if not owner_roots:
        allowed = ", ".join(f'"{o}"' for o in sorted(unique_owners(roots)))
        return f'root enforcement: owner "{owner}" is not within configured roots (allowed owners: {allowed})'

    if not _present(arguments, "repo"):
        return None
    if any(root.is_org_level for root in owner_roots):
        return None

    repo = str(arguments["repo"])
    if any(root.repo == repo.lower() for root in owner_roots):
        return None

    allowed_repos = ", ".join(f'"{r}"' for r in sorted({root.repo for root in owner_roots}))
    return (
        f'root enforcement: repository "{owner}"/"{repo}" is not within configured roots '
        f'(allowed repos for "{owner}": {allowed_repos})'
    )


class _RootsMiddleware(Middleware):
    """Shared roots lookup for the injection and enforcement middlewares."""

    def __init__(self, host: str = DEFAULT_HOST, timeout: float = 5.0):
        self.host = host or DEFAULT_HOST
        self.timeout = timeout

    async def _resolve_roots(self, context: MiddlewareContext) -> list[Root]:
        # A client that declares roots but cannot be asked for them runs unscoped.
        declared = await list_session_roots(context.fastmcp_context, self.timeout, failure_level=logging.WARNING)
        if not declared:
            return []
        return resolve_roots(declared, self.host)


class RootInjectionMiddleware(_RootsMiddleware):
    """
    Fill missing owner/repo arguments from the client's roots.

    Every injection is logged so a write never lands on a repository without
    a trace of where the target came from.
    """

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        arguments = context.message.arguments
        if arguments is not None and not isinstance(arguments, Mapping):
            return await call_next(context)

        roots = await self._resolve_roots(context)
        if not roots:
            return await call_next(context)

        updated, injected = inject_root_arguments(arguments or {}, roots)
        if not injected:
            if len(unique_owners(roots)) > 1:
                logger.debug("Roots span several owners, skipping owner/repo injection")
            return await call_next(context)

        tool_name = context.message.name
        logger.info(
            "Root arguments injected",
            extra={
                "log_data": {
                    "tool": tool_name,
                    "owner": updated.get("owner"),
                    "repo": injected.get("repo"),
                    "injected_fields": sorted(injected),
                    "decision": "injected",
                }
            },
        )

        message = context.message.model_copy(update={"arguments": updated})
        return await call_next(replace(context, message=message))


class RootEnforcementMiddleware(_RootsMiddleware):
    """Reject tool calls whose owner/repo arguments fall outside the roots."""

    async def on_call_tool(
        self,
        context: MiddlewareContext[CallToolRequestParams],
        call_next: CallNext[CallToolRequestParams, ToolResult],
    ) -> ToolResult:
        arguments = context.message.arguments
        if not isinstance(arguments, Mapping) or "owner" not in arguments:
            return await call_next(context)

        roots = await self._resolve_roots(context)
        denial = check_root_scope(arguments, roots)
        if denial is None:
            return await call_next(context)

        logger.info(
            "Tool call denied: outside configured roots",
            extra={
                "log_data": {
                    "tool": context.message.name,
                    "owner": arguments.get("owner"),
                    "repo": arguments.get("repo"),
                    "decision": "denied",
                    "reason": "outside_roots",
                }
            },
        )
        raise ToolError(denial)
