"""
MCP roots pointing at GitHub owners and repositories.

A client may declare "roots": locations the session is meant to work on. This
server understands roots that point at GitHub, for example:

    https://github.com/octocat/Hello-World        repository root
    https://github.com/octocat/Hello-World.git    same, .git is stripped
    git://github.com/octocat/Hello-World          same
    https://github.com/octocat/Hello-World/tree/main   extra segments ignored
    https://github.com/myorg                      organization-level root

Owners and repositories are case-insensitive on GitHub, so parsed values are
lowercased; everything that compares against a Root relies on that.

Roots that do not point at the configured GitHub host (file:// workspaces,
other forges) are skipped rather than treated as errors.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import urlsplit

import anyio
from mcp.shared.exceptions import MCPError, NoBackChannelError
from mcp.types import ClientCapabilities, ListRootsRequest, RootsCapability
from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_HOST = "github.com"
SUPPORTED_SCHEMES = ("https", "http", "git")

OPTIONAL_WITH_ROOTS_NOTE = " (optional when roots are configured)"


class RootParseError(ValueError):
    """Raised when a root URI does not name a GitHub owner or repository."""


@dataclass(frozen=True)
class Root:
    """
    A declared root resolved to a GitHub owner and, optionally, a repository.

    Attributes:
        owner: Lowercased owner (user or organization) login.
        repo: Lowercased repository name, or "" for an organization-level
              root that covers every repository of the owner.
        uri: The URI exactly as the client declared it.
        name: Display name the client gave the root, if any.
        owner_as_written: Owner spelling from the URI, used when the value
              is injected into call arguments.
        repo_as_written: Repository spelling from the URI ("" when org-level).
    """

    owner: str
    repo: str = ""
    uri: str = ""
    name: str = ""
    owner_as_written: str = ""
    repo_as_written: str = ""

    @property
    def is_org_level(self) -> bool:
        return self.repo == ""


class DeclaredRoot(BaseModel):
    """A root entry as sent by the client in a roots/list result."""

    model_config = ConfigDict(extra="allow")

    uri: str
    name: str | None = None


class DeclaredRootList(BaseModel):
    """
    Lenient roots/list result.

    The SDK's own result type only admits file:// URIs, which would reject
    every GitHub root, so the session request is decoded with this model.
    """

    model_config = ConfigDict(extra="allow")

    roots: list[DeclaredRoot | None] = []


def split_root_uri(uri: str, host: str = "") -> tuple[str, str]:
    """
    Validate a root URI and return (owner, repo) as spelled in the URI.

    repo is "" for an organization-level root.

    Raises:
        RootParseError: unsupported scheme, host mismatch, or no owner in the path
    """
    if not host:
        host = DEFAULT_HOST

    if not uri:
        raise RootParseError("empty root URI")

    try:
        parsed = urlsplit(uri)
    except ValueError as e:
        raise RootParseError(f"invalid URI {uri!r}: {e}") from e

    if parsed.scheme not in SUPPORTED_SCHEMES:
        raise RootParseError(
            f"unsupported URI scheme {parsed.scheme!r} in {uri!r} (expected https, http, or git)"
        )

    if parsed.netloc.lower() != host.lower():
        raise RootParseError(f"URI host {parsed.netloc!r} does not match expected host {host!r}")

    path = parsed.path.strip("/")
    if not path:
        raise RootParseError(f"URI {uri!r} has no path (expected /owner or /owner/repo)")

    segments = path.split("/")
    owner = segments[0]
    if not owner:
        raise RootParseError(f"URI {uri!r} has an empty owner segment")

    if len(segments) == 1:
        return owner, ""

    repo = segments[1].removesuffix(".git")
    if not repo:
        raise RootParseError(f"URI {uri!r} has an empty repository name")

    return owner, repo


def parse_root_uri(uri: str, host: str = "") -> tuple[str, str]:
    """
    Parse a root URI into a normalized (owner, repo) pair.

    Both values are lowercased; repo is "" for an organization-level root.

    Raises:
        RootParseError: if the URI is not a GitHub owner/repository URI for host
    """
    owner, repo = split_root_uri(uri, host)
    return owner.lower(), repo.lower()


def resolve_roots(declared: Iterable[Any], host: str = "") -> list[Root]:
    """
    Turn declared roots into GitHub Roots, keeping input order.

    Entries may be DeclaredRoot models, SDK Root models, or anything with
    ``uri`` and ``name`` attributes. None entries and URIs that do not parse
    are skipped.
    """
    result: list[Root] = []
    for entry in declared:
        if entry is None:
            continue
        uri = str(getattr(entry, "uri", "") or "")
        try:
            owner, repo = split_root_uri(uri, host)
        except RootParseError as e:
            logger.debug("Skipping non-GitHub root: %s", e)
            continue
        result.append(
            Root(
                owner=owner.lower(),
                repo=repo.lower(),
                uri=uri,
                name=getattr(entry, "name", None) or "",
                owner_as_written=owner,
                repo_as_written=repo,
            )
        )
    return result


async def list_session_roots(
    fastmcp_context: Any, timeout: float, *, failure_level: int = logging.DEBUG
) -> list[DeclaredRoot]:
    """
    Ask the calling client for its declared roots.

    Returns an empty list when there is no session, when the client did not
    advertise the roots capability, or when the round trip fails or takes
    longer than ``timeout`` seconds. Root listing is advisory: a client that
    cannot answer is treated as having no roots.

    A client that advertises roots but cannot be asked for them is logged at
    ``failure_level``. Connections on the 2026-07-28 protocol have no channel
    for server-initiated requests, so roots/list always fails there.
    """
    if fastmcp_context is None:
        return []

    try:
        session = fastmcp_context.session
    except (RuntimeError, ValueError):
        return []
    if session is None:
        return []

    if not session.check_client_capability(ClientCapabilities(roots=RootsCapability())):
        return []

    request = ListRootsRequest()
    try:
        with anyio.fail_after(timeout):
            result = await session.send_request(request, DeclaredRootList)
    except TimeoutError:
        logger.log(
            failure_level,
            "roots/list timed out, continuing without roots",
            extra={"log_data": {"timeout": timeout, "decision": "no_roots"}},
        )
        return []
    except NoBackChannelError as e:
        logger.log(
            failure_level,
            "roots/list unavailable on this connection, continuing without roots",
            extra={"log_data": {"detail": e.message, "decision": "no_roots"}},
        )
        return []
    except (MCPError, ValidationError, anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
        logger.log(
            failure_level,
            "roots/list failed, continuing without roots",
            extra={"log_data": {"detail": str(e), "decision": "no_roots"}},
        )
        return []

    return [root for root in result.roots if root is not None]


def make_owner_repo_optional(schema: Mapping[str, Any]) -> Mapping[str, Any]:
    """
    Return a copy of a tool input schema where owner and repo are optional.

    "owner" and "repo" are removed from ``required`` and their descriptions
    gain a note that roots can supply them. Schemas that require neither are
    returned unchanged (the same object). The input schema is never mutated.
    """
    required = list(schema.get("required") or [])
    if "owner" not in required and "repo" not in required:
        return schema

    updated = dict(schema)
    updated["required"] = [field for field in required if field not in ("owner", "repo")]

    properties = schema.get("properties")
    if properties:
        new_properties = dict(properties)
        for field in ("owner", "repo"):
            prop = new_properties.get(field)
            if prop is not None:
                new_properties[field] = {
                    **prop,
                    "description": prop.get("description", "") + OPTIONAL_WITH_ROOTS_NOTE,
                }
        updated["properties"] = new_properties

    return updated


def unique_owners(roots: Sequence[Root]) -> list[str]:
    """Distinct owners in first-seen order."""
    return list(dict.fromkeys(root.owner for root in roots))
