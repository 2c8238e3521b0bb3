"""
Token scope and feature-flag gating for tools.

Tools declare the OAuth scopes they need (e.g. list_notifications needs
"notifications"). When the scopes of the caller's token are known, a tool is
visible only if the token satisfies *every* required scope (all-required,
not any-of).

GitHub scopes are hierarchical: a token with "repo" can do everything
"public_repo" allows, "admin:org" includes "write:org" and "read:org", and so
on. Token scopes are expanded through that hierarchy before comparison.

Where token scopes come from:
- stdio transport: classic personal access tokens (ghp_ prefix) report their
  scopes in the X-OAuth-Scopes response header of any API call. Other token
  kinds (fine-grained PATs, app tokens) do not, and scope filtering is off.
- streamable-http transport: the "scope" claim of the caller's bearer token.
"""

import logging
from typing import Callable, Iterable

import httpx

logger = logging.getLogger(__name__)

# Parent scope -> scopes it implies.
SCOPE_HIERARCHY: dict[str, frozenset[str]] = {
    "repo": frozenset({"public_repo", "repo:status", "repo_deployment", "repo:invite", "security_events"}),
    "admin:org": frozenset({"write:org", "read:org"}),
    "write:org": frozenset({"read:org"}),
    "admin:repo_hook": frozenset({"write:repo_hook", "read:repo_hook"}),
    "write:repo_hook": frozenset({"read:repo_hook"}),
    "admin:public_key": frozenset({"write:public_key", "read:public_key"}),
    "write:public_key": frozenset({"read:public_key"}),
    "user": frozenset({"read:user", "user:email", "user:follow"}),
    "project": frozenset({"read:project"}),
    "write:packages": frozenset({"read:packages"}),
    "write:discussion": frozenset({"read:discussion"}),
}

CLASSIC_PAT_PREFIX = "ghp_"


def expand_scopes(scopes: Iterable[str]) -> frozenset[str]:
    """Return the scopes plus everything they imply."""
    expanded: set[str] = set()
    pending = [scope.strip() for scope in scopes if scope and scope.strip()]
    while pending:
        scope = pending.pop()
        if scope in expanded:
            continue
        expanded.add(scope)
        pending.extend(SCOPE_HIERARCHY.get(scope, ()))
    return frozenset(expanded)


def scopes_satisfied(required: Iterable[str], granted: Iterable[str]) -> bool:
    """True when every required scope is granted (directly or via a parent)."""
    available = expand_scopes(granted)
    return all(scope in available for scope in required)


def missing_scopes(required: Iterable[str], granted: Iterable[str]) -> list[str]:
    available = expand_scopes(granted)
    return sorted(scope for scope in required if scope not in available)


def tool_scope_filter(token_scopes: Iterable[str]) -> Callable[[object], bool]:
    """
    Build an inventory filter keeping tools the token can use.

    The returned predicate takes a ToolDescriptor and checks its
    required_scopes against the (expanded) token scopes.
    """
    available = expand_scopes(token_scopes)

    def _filter(tool: object) -> bool:
        required = getattr(tool, "required_scopes", frozenset())
        return all(scope in available for scope in required)

    return _filter


def feature_checker(enabled_features: Iterable[str]) -> Callable[[str], bool]:
    """Feature predicate: a flag is on when it was listed in the configuration."""
    enabled = frozenset(feature.strip() for feature in enabled_features if feature.strip())

    def _check(flag: str) -> bool:
        return flag in enabled

    return _check


def parse_scope_header(value: str | None) -> list[str]:
    """Parse an X-OAuth-Scopes header ("repo, read:org") into a list."""
    if not value:
        return []
    return [scope.strip() for scope in value.split(",") if scope.strip()]


def api_base_url(host: str) -> str:
    """REST API root for github.com or a GitHub Enterprise Server host."""
    if not host or host.lower() in ("github.com", "www.github.com"):
        return "https://api.github.com"
    if host.startswith(("http://", "https://")):
        return f"{host.rstrip('/')}/api/v3"
    return f"https://{host}/api/v3"


def supports_scope_discovery(token: str) -> bool:
    """Only classic PATs report their scopes."""
    return token.startswith(CLASSIC_PAT_PREFIX)


async def fetch_token_scopes(
    token: str,
    host: str = "github.com",
    *,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = 10.0,
) -> list[str]:
    """
    Fetch the OAuth scopes granted to a token.

    Sends an authenticated HEAD request to the API root and reads the
    X-OAuth-Scopes header.

    Raises:
        httpx.HTTPError: on transport failures or a non-2xx response
    """
    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=timeout)
    try:
        response = await client.head(
            api_base_url(host) + "/",
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
            },
        )
        response.raise_for_status()
    finally:
        if owns_client:
            await client.aclose()

    scopes = parse_scope_header(response.headers.get("x-oauth-scopes"))
    logger.debug("Fetched token scopes", extra={"log_data": {"scopes": scopes}})
    return scopes
