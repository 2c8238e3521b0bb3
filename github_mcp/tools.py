"""
Tool catalog: toolsets, tools, resources and prompts offered by the server.

Each tool is a ToolDescriptor carrying everything the inventory needs to
decide whether it is offered: its toolset, the OAuth scopes it needs, whether
it only reads, and any feature flag. Handlers are coroutine functions
``handler(deps, arguments)`` returning JSON-serializable data; they talk to
GitHub through ``deps.client``.

Scope naming follows GitHub's classic OAuth scopes. A tool listing several
scopes needs all of them:

    list_issues          {"repo"}
    list_notifications   {"notifications"}
    rerun_workflow_run   {"repo", "workflow"}
    get_me               {}  (any token)
"""

import base64
from typing import Any, Iterable
from urllib.parse import quote

from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_context

from github_mcp.github_client import ToolDependencies
from github_mcp.inventory import PromptDescriptor, ResourceDescriptor, ToolDescriptor, ToolsetMetadata
from github_mcp.roots import RootParseError, list_session_roots, parse_root_uri

# ---------------------------------------------------------------------------
# Toolsets
# ---------------------------------------------------------------------------

TOOLSET_CONTEXT = ToolsetMetadata(
    id="context",
    description="Tools that provide context about the current user and the repositories in scope",
    default=True,
    instructions="Call get_me first to learn which account you are acting as.",
)
TOOLSET_REPOS = ToolsetMetadata(
    id="repos",
    description="GitHub repository related tools",
    default=True,
)
TOOLSET_ISSUES = ToolsetMetadata(
    id="issues",
    description="GitHub issue related tools",
    default=True,
    instructions="Check list_issues for an existing issue before creating a new one.",
)
TOOLSET_PULL_REQUESTS = ToolsetMetadata(
    id="pull_requests",
    description="GitHub pull request related tools",
    default=True,
)
TOOLSET_USERS = ToolsetMetadata(
    id="users",
    description="GitHub user related tools",
    default=True,
)
TOOLSET_NOTIFICATIONS = ToolsetMetadata(
    id="notifications",
    description="GitHub notification related tools",
)
TOOLSET_ACTIONS = ToolsetMetadata(
    id="actions",
    description="GitHub Actions workflows and CI/CD operations",
)

ALL_TOOLSETS: tuple[ToolsetMetadata, ...] = (
    TOOLSET_CONTEXT,
    TOOLSET_REPOS,
    TOOLSET_ISSUES,
    TOOLSET_PULL_REQUESTS,
    TOOLSET_USERS,
    TOOLSET_NOTIFICATIONS,
    TOOLSET_ACTIONS,
)

SERVER_INSTRUCTIONS = (
    "This server gives access to GitHub. Tools that take owner and repo act on that "
    "repository; when the client declares repository roots they may be filled in for you."
)

# Old tool names kept working for existing prompts and configurations.
DEPRECATED_TOOL_ALIASES: dict[str, str] = {
    "search_repos": "search_repositories",
    "get_pull_request_details": "get_pull_request",
    "list_repository_commits": "list_commits",
}

# ---------------------------------------------------------------------------
# Schema helpers
# ---------------------------------------------------------------------------

OWNER = {"type": "string", "description": "Repository owner (user or organization login)"}
REPO = {"type": "string", "description": "Repository name"}
PAGE = {"type": "number", "minimum": 1, "description": "Page number for pagination (min 1)"}
PER_PAGE = {"type": "number", "minimum": 1, "maximum": 100, "description": "Results per page (1-100)"}


def _string(description: str, **extra: Any) -> dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def _number(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


def _object(properties: dict[str, Any], required: Iterable[str] = ()) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": list(required)}


def _repo_object(properties: dict[str, Any] | None = None, required: Iterable[str] = ()) -> dict[str, Any]:
    return _object({"owner": OWNER, "repo": REPO, **(properties or {})}, ["owner", "repo", *required])


def _page_args(arguments: dict[str, Any]) -> dict[str, Any]:
    return {"page": arguments.get("page"), "per_page": arguments.get("perPage")}


def _segment(value: Any) -> str:
    """Quote a value as exactly one URL path segment."""
    text = str(value)
    if text in ("", ".", ".."):
        raise ToolError(f"invalid path segment: {text!r}")
    return quote(text, safe="")


def _multi_segment(value: Any, name: str) -> str:
    """Quote a slash-separated value (file path, branch name); dot segments are rejected."""
    text = str(value).lstrip("/")
    if any(part in (".", "..") for part in text.split("/")):
        raise ToolError(f"{name} must not contain '.' or '..' segments")
    return quote(text, safe="/")


def _repo_path(owner: Any, repo: Any) -> str:
    return f"/repos/{_segment(owner)}/{_segment(repo)}"


def _int_arg(arguments: dict[str, Any], name: str) -> int:
    value = arguments[name]
    if isinstance(value, bool):
        raise ToolError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise ToolError(f"{name} must be an integer")



async def _ensure_safe_content(deps: ToolDependencies, owner: str, repo: str) -> None:
    if deps.lockdown_mode and deps.repo_access is not None:
        if not await deps.repo_access.is_safe_content(owner, repo):
            raise ToolError(f"lockdown mode: content from {owner}/{repo} cannot be shown to this caller")


# ---------------------------------------------------------------------------
# context
# ---------------------------------------------------------------------------


async def get_me(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    user = await deps.client.get("/user")
    return {key: user.get(key) for key in ("login", "id", "name", "email", "html_url", "type", "company")}


async def list_roots(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    try:
        context = get_context()
    except RuntimeError:
        raise ToolError("no session available")

    declared = await list_session_roots(context, deps.roots_timeout)
    if not declared:
        return "No roots configured"

    infos = []
    for root in declared:
        info: dict[str, Any] = {"uri": root.uri}
        if root.name:
            info["name"] = root.name
        try:
            owner, repo = parse_root_uri(root.uri, deps.host)
        except RootParseError:
            pass
        else:
            info["owner"] = owner
            if repo:
                info["repo"] = repo
        infos.append(info)
    return infos


# ---------------------------------------------------------------------------
# repos
# ---------------------------------------------------------------------------


async def get_file_contents(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    path = _multi_segment(arguments.get("path") or "", "path")
    return await deps.client.get(f"{_repo_path(owner, repo)}/contents/{path}", ref=arguments.get("ref"))


async def list_commits(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    commits = await deps.client.get(
        f"{_repo_path(owner, repo)}/commits",
        sha=arguments.get("sha"),
        author=arguments.get("author"),
        **_page_args(arguments),
    )
    return [
        {
            "sha": commit.get("sha"),
            "message": (commit.get("commit") or {}).get("message"),
            "author": ((commit.get("commit") or {}).get("author") or {}).get("name"),
            "html_url": commit.get("html_url"),
        }
        for commit in commits or []
    ]


async def list_branches(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    branches = await deps.client.get(f"{_repo_path(owner, repo)}/branches", **_page_args(arguments))
    return [{"name": b.get("name"), "protected": b.get("protected")} for b in branches or []]


async def search_repositories(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    result = await deps.client.get("/search/repositories", q=arguments["query"], **_page_args(arguments))
    return {
        "total_count": result.get("total_count"),
        "items": [
            {
                "full_name": item.get("full_name"),
                "description": item.get("description"),
                "html_url": item.get("html_url"),
                "stargazers_count": item.get("stargazers_count"),
            }
            for item in result.get("items", [])
        ],
    }


async def create_branch(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    from_branch = arguments.get("from_branch")
    if not from_branch:
        repository = await deps.client.get(_repo_path(owner, repo))
        from_branch = repository["default_branch"]
    head = _multi_segment(from_branch, "from_branch")
    ref = await deps.client.get(f"{_repo_path(owner, repo)}/git/ref/heads/{head}")
    return await deps.client.post(
        f"{_repo_path(owner, repo)}/git/refs",
        {"ref": f"refs/heads/{arguments['branch']}", "sha": ref["object"]["sha"]},
    )


async def create_or_update_file(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    path = _multi_segment(arguments["path"], "path")
    body = {
        "message": arguments["message"],
        "content": base64.b64encode(arguments["content"].encode("utf-8")).decode("ascii"),
        "branch": arguments["branch"],
    }
    if arguments.get("sha"):
        body["sha"] = arguments["sha"]
    return await deps.client.put(f"{_repo_path(owner, repo)}/contents/{path}", body)


# ---------------------------------------------------------------------------
# issues
# ---------------------------------------------------------------------------


def _slim_issue(issue: dict[str, Any]) -> dict[str, Any]:
    return {
        "number": issue.get("number"),
        "title": issue.get("title"),
        "state": issue.get("state"),
        "user": (issue.get("user") or {}).get("login"),
        "labels": [label.get("name") for label in issue.get("labels", []) if isinstance(label, dict)],
        "html_url": issue.get("html_url"),
    }


async def list_issues(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    await _ensure_safe_content(deps, owner, repo)
    labels = arguments.get("labels")
    issues = await deps.client.get(
        f"{_repo_path(owner, repo)}/issues",
        state=arguments.get("state", "open"),
        labels=",".join(labels) if labels else None,
        **_page_args(arguments),
    )
    return [_slim_issue(issue) for issue in issues or []]


async def get_issue(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    await _ensure_safe_content(deps, owner, repo)
    number = _int_arg(arguments, "issue_number")
    issue = await deps.client.get(f"{_repo_path(owner, repo)}/issues/{number}")
    return {**_slim_issue(issue), "body": issue.get("body")}


async def get_issue_timeline(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    await _ensure_safe_content(deps, owner, repo)
    number = _int_arg(arguments, "issue_number")
    events = await deps.client.get(f"{_repo_path(owner, repo)}/issues/{number}/timeline", **_page_args(arguments))
    return [
        {"event": event.get("event"), "actor": (event.get("actor") or {}).get("login"), "created_at": event.get("created_at")}
        for event in events or []
    ]


async def create_issue(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    body = {key: arguments[key] for key in ("title", "body", "labels", "assignees") if key in arguments}
    issue = await deps.client.post(f"{_repo_path(owner, repo)}/issues", body)
    return _slim_issue(issue)


async def add_issue_comment(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    number = _int_arg(arguments, "issue_number")
    comment = await deps.client.post(f"{_repo_path(owner, repo)}/issues/{number}/comments", {"body": arguments["body"]})
    return {"id": comment.get("id"), "html_url": comment.get("html_url")}


# ---------------------------------------------------------------------------
# pull_requests
# ---------------------------------------------------------------------------


def _slim_pull(pull: dict[str, Any]) -> dict[str, Any]:
    return {
        "number": pull.get("number"),
        "title": pull.get("title"),
        "state": pull.get("state"),
        "draft": pull.get("draft"),
        "head": (pull.get("head") or {}).get("ref"),
        "base": (pull.get("base") or {}).get("ref"),
        "html_url": pull.get("html_url"),
    }


async def list_pull_requests(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    pulls = await deps.client.get(
        f"{_repo_path(owner, repo)}/pulls", state=arguments.get("state", "open"), **_page_args(arguments)
    )
    return [_slim_pull(pull) for pull in pulls or []]


async def get_pull_request(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    number = _int_arg(arguments, "pullNumber")
    pull = await deps.client.get(f"{_repo_path(owner, repo)}/pulls/{number}")
    return {**_slim_pull(pull), "body": pull.get("body"), "mergeable": pull.get("mergeable")}


async def create_pull_request(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    body = {key: arguments[key] for key in ("title", "head", "base", "body", "draft") if key in arguments}
    pull = await deps.client.post(f"{_repo_path(owner, repo)}/pulls", body)
    return _slim_pull(pull)


async def merge_pull_request(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    body = {key: arguments[key] for key in ("commit_title", "commit_message", "merge_method") if key in arguments}
    number = _int_arg(arguments, "pullNumber")
    return await deps.client.put(f"{_repo_path(owner, repo)}/pulls/{number}/merge", body)


# ---------------------------------------------------------------------------
# users, notifications, actions
# ---------------------------------------------------------------------------


async def search_users(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    result = await deps.client.get("/search/users", q=arguments["query"], **_page_args(arguments))
    return {
        "total_count": result.get("total_count"),
        "items": [{"login": u.get("login"), "html_url": u.get("html_url")} for u in result.get("items", [])],
    }


async def list_notifications(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments.get("owner"), arguments.get("repo")
    path = f"{_repo_path(owner, repo)}/notifications" if owner and repo else "/notifications"
    notifications = await deps.client.get(path, all=arguments.get("all"), **_page_args(arguments))
    return [
        {
            "id": n.get("id"),
            "reason": n.get("reason"),
            "title": (n.get("subject") or {}).get("title"),
            "repository": (n.get("repository") or {}).get("full_name"),
            "unread": n.get("unread"),
        }
        for n in notifications or []
    ]


async def dismiss_notification(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    thread_id = arguments["threadID"]
    await deps.client.patch(f"/notifications/threads/{_segment(thread_id)}")
    return f"Notification {thread_id} marked as read"


async def list_workflow_runs(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    result = await deps.client.get(
        f"{_repo_path(owner, repo)}/actions/runs",
        branch=arguments.get("branch"),
        status=arguments.get("status"),
        **_page_args(arguments),
    )
    return [
        {
            "id": run.get("id"),
            "name": run.get("name"),
            "status": run.get("status"),
            "conclusion": run.get("conclusion"),
            "head_branch": run.get("head_branch"),
        }
        for run in (result or {}).get("workflow_runs", [])
    ]


async def rerun_workflow_run(deps: ToolDependencies, arguments: dict[str, Any]) -> Any:
    owner, repo = arguments["owner"], arguments["repo"]
    run_id = _int_arg(arguments, "run_id")
    await deps.client.post(f"{_repo_path(owner, repo)}/actions/runs/{run_id}/rerun")
    return f"Workflow run {run_id} re-run requested"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

REPO_SCOPE = frozenset({"repo"})


def all_tools() -> list[ToolDescriptor]:
    """Every tool the server knows about, in listing order."""
    return [
        # context
        ToolDescriptor(
            name="get_me",
            title="Get my user profile",
            description="Get details of the authenticated GitHub user.",
            toolset=TOOLSET_CONTEXT.id,
            input_schema=_object({}),
            handler=get_me,
            read_only=True,
        ),
        ToolDescriptor(
            name="list_roots",
            title="List configured roots",
            description=(
                "List the MCP roots configured by the client, with the GitHub owner/repo parsed "
                "from each. Use this to understand which repositories are in scope."
            ),
            toolset=TOOLSET_CONTEXT.id,
            input_schema=_object({}),
            handler=list_roots,
            read_only=True,
            insiders_only=True,
        ),
        # repos
        ToolDescriptor(
            name="get_file_contents",
            title="Get file or directory contents",
            description="Get the contents of a file or directory from a GitHub repository.",
            toolset=TOOLSET_REPOS.id,
            input_schema=_repo_object(
                {
                    "path": _string("Path to file or directory", default="/"),
                    "ref": _string("Git ref (branch, tag or commit SHA)"),
                }
            ),
            handler=get_file_contents,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="list_commits",
            title="List commits",
            description="Get the list of commits of a branch in a GitHub repository.",
            toolset=TOOLSET_REPOS.id,
            input_schema=_repo_object(
                {
                    "sha": _string("Commit SHA, branch or tag name to list commits of"),
                    "author": _string("Author username or email address"),
                    "page": PAGE,
                    "perPage": PER_PAGE,
                }
            ),
            handler=list_commits,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="list_branches",
            title="List branches",
            description="List branches in a GitHub repository.",
            toolset=TOOLSET_REPOS.id,
            input_schema=_repo_object({"page": PAGE, "perPage": PER_PAGE}),
            handler=list_branches,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="search_repositories",
            title="Search repositories",
            description="Search for GitHub repositories.",
            toolset=TOOLSET_REPOS.id,
            input_schema=_object(
                {"query": _string("Search query"), "page": PAGE, "perPage": PER_PAGE}, ["query"]
            ),
            handler=search_repositories,
            read_only=True,
        ),
        ToolDescriptor(
            name="create_branch",
            title="Create branch",
            description="Create a new branch in a GitHub repository.",
            toolset=TOOLSET_REPOS.id,
            input_schema=_repo_object(
                {
                    "branch": _string("Name for new branch"),
                    "from_branch": _string("Source branch (defaults to the repository default branch)"),
                },
                ["branch"],
            ),
            handler=create_branch,
            required_scopes=REPO_SCOPE,
        ),
        ToolDescriptor(
            name="create_or_update_file",
            title="Create or update file",
            description="Create or update a single file in a GitHub repository.",
            toolset=TOOLSET_REPOS.id,
            input_schema=_repo_object(
                {
                    "path": _string("Path where to create/update the file"),
                    "content": _string("Content of the file"),
                    "message": _string("Commit message"),
                    "branch": _string("Branch to create/update the file in"),
                    "sha": _string("Blob SHA of the file being replaced (required for updates)"),
                },
                ["path", "content", "message", "branch"],
            ),
            handler=create_or_update_file,
            required_scopes=REPO_SCOPE,
        ),
        # issues
        ToolDescriptor(
            name="list_issues",
            title="List issues",
            description="List issues in a GitHub repository.",
            toolset=TOOLSET_ISSUES.id,
            input_schema=_repo_object(
                {
                    "state": _string("Filter by state", enum=["open", "closed", "all"]),
                    "labels": {"type": "array", "items": {"type": "string"}, "description": "Filter by labels"},
                    "page": PAGE,
                    "perPage": PER_PAGE,
                }
            ),
            handler=list_issues,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="get_issue",
            title="Get issue details",
            description="Get details of a specific issue in a GitHub repository.",
            toolset=TOOLSET_ISSUES.id,
            input_schema=_repo_object({"issue_number": _number("The number of the issue")}, ["issue_number"]),
            handler=get_issue,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="get_issue_timeline",
            title="Get issue timeline",
            description="Get the timeline events of an issue (labels, references, state changes).",
            toolset=TOOLSET_ISSUES.id,
            input_schema=_repo_object(
                {"issue_number": _number("The number of the issue"), "page": PAGE, "perPage": PER_PAGE},
                ["issue_number"],
            ),
            handler=get_issue_timeline,
            required_scopes=REPO_SCOPE,
            read_only=True,
            feature_flag="issue_timeline",
        ),
        ToolDescriptor(
            name="create_issue",
            title="Open new issue",
            description="Create a new issue in a GitHub repository.",
            toolset=TOOLSET_ISSUES.id,
            input_schema=_repo_object(
                {
                    "title": _string("Issue title"),
                    "body": _string("Issue body content"),
                    "labels": {"type": "array", "items": {"type": "string"}, "description": "Labels to apply"},
                    "assignees": {"type": "array", "items": {"type": "string"}, "description": "Usernames to assign"},
                },
                ["title"],
            ),
            handler=create_issue,
            required_scopes=REPO_SCOPE,
        ),
        ToolDescriptor(
            name="add_issue_comment",
            title="Add comment to issue",
            description="Add a comment to a specific issue in a GitHub repository.",
            toolset=TOOLSET_ISSUES.id,
            input_schema=_repo_object(
                {"issue_number": _number("Issue number to comment on"), "body": _string("Comment content")},
                ["issue_number", "body"],
            ),
            handler=add_issue_comment,
            required_scopes=REPO_SCOPE,
        ),
        # pull_requests
        ToolDescriptor(
            name="list_pull_requests",
            title="List pull requests",
            description="List pull requests in a GitHub repository.",
            toolset=TOOLSET_PULL_REQUESTS.id,
            input_schema=_repo_object(
                {
                    "state": _string("Filter by state", enum=["open", "closed", "all"]),
                    "page": PAGE,
                    "perPage": PER_PAGE,
                }
            ),
            handler=list_pull_requests,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="get_pull_request",
            title="Get pull request details",
            description="Get details of a specific pull request in a GitHub repository.",
            toolset=TOOLSET_PULL_REQUESTS.id,
            input_schema=_repo_object({"pullNumber": _number("Pull request number")}, ["pullNumber"]),
            handler=get_pull_request,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="create_pull_request",
            title="Open new pull request",
            description="Create a new pull request in a GitHub repository.",
            toolset=TOOLSET_PULL_REQUESTS.id,
            input_schema=_repo_object(
                {
                    "title": _string("PR title"),
                    "head": _string("Branch containing changes"),
                    "base": _string("Branch to merge into"),
                    "body": _string("PR description"),
                    "draft": {"type": "boolean", "description": "Create as draft PR"},
                },
                ["title", "head", "base"],
            ),
            handler=create_pull_request,
            required_scopes=REPO_SCOPE,
        ),
        ToolDescriptor(
            name="merge_pull_request",
            title="Merge pull request",
            description="Merge a pull request in a GitHub repository.",
            toolset=TOOLSET_PULL_REQUESTS.id,
            input_schema=_repo_object(
                {
                    "pullNumber": _number("Pull request number"),
                    "commit_title": _string("Title for merge commit"),
                    "commit_message": _string("Extra detail for merge commit"),
                    "merge_method": _string("Merge method", enum=["merge", "squash", "rebase"]),
                },
                ["pullNumber"],
            ),
            handler=merge_pull_request,
            required_scopes=REPO_SCOPE,
        ),
        # users
        ToolDescriptor(
            name="search_users",
            title="Search users",
            description="Find GitHub users by username, real name, or other profile information.",
            toolset=TOOLSET_USERS.id,
            input_schema=_object({"query": _string("User search query"), "page": PAGE, "perPage": PER_PAGE}, ["query"]),
            handler=search_users,
            read_only=True,
        ),
        # notifications
        ToolDescriptor(
            name="list_notifications",
            title="List notifications",
            description="List notifications for the authenticated user, optionally for one repository.",
            toolset=TOOLSET_NOTIFICATIONS.id,
            input_schema=_object(
                {
                    "owner": OWNER,
                    "repo": REPO,
                    "all": {"type": "boolean", "description": "Include notifications already marked as read"},
                    "page": PAGE,
                    "perPage": PER_PAGE,
                }
            ),
            handler=list_notifications,
            required_scopes=frozenset({"notifications"}),
            read_only=True,
        ),
        ToolDescriptor(
            name="dismiss_notification",
            title="Dismiss notification",
            description="Mark a notification thread as read.",
            toolset=TOOLSET_NOTIFICATIONS.id,
            input_schema=_object({"threadID": _string("The ID of the notification thread")}, ["threadID"]),
            handler=dismiss_notification,
            required_scopes=frozenset({"notifications"}),
        ),
        # actions
        ToolDescriptor(
            name="list_workflow_runs",
            title="List workflow runs",
            description="List GitHub Actions workflow runs of a repository.",
            toolset=TOOLSET_ACTIONS.id,
            input_schema=_repo_object(
                {
                    "branch": _string("Only runs for this branch"),
                    "status": _string("Only runs with this status"),
                    "page": PAGE,
                    "perPage": PER_PAGE,
                }
            ),
            handler=list_workflow_runs,
            required_scopes=REPO_SCOPE,
            read_only=True,
        ),
        ToolDescriptor(
            name="rerun_workflow_run",
            title="Re-run workflow run",
            description="Re-run an entire GitHub Actions workflow run.",
            toolset=TOOLSET_ACTIONS.id,
            input_schema=_repo_object({"run_id": _number("The unique identifier of the workflow run")}, ["run_id"]),
            handler=rerun_workflow_run,
            required_scopes=frozenset({"repo", "workflow"}),
        ),
    ]


# ---------------------------------------------------------------------------
# Resources and prompts
# ---------------------------------------------------------------------------


async def repository_readme(deps: ToolDependencies, owner: str, repo: str) -> str:
    readme = await deps.client.get(f"{_repo_path(owner, repo)}/readme")
    if readme.get("encoding") == "base64":
        return base64.b64decode(readme.get("content", "")).decode("utf-8", errors="replace")
    return readme.get("content", "")


async def issue_triage(deps: ToolDependencies, owner: str, repo: str) -> str:
    return (
        f"You are triaging open issues in {owner}/{repo}. Use list_issues to find issues without "
        "labels, read each one with get_issue, and propose labels and a priority for each. Do not "
        "change anything until the user confirms."
    )


def all_resources() -> list[ResourceDescriptor]:
    return [
        ResourceDescriptor(
            name="repository_readme",
            description="README of a repository, decoded as text",
            toolset=TOOLSET_REPOS.id,
            uri_template="repo://{owner}/{repo}/readme",
            handler=repository_readme,
            mime_type="text/markdown",
        ),
    ]


def all_prompts() -> list[PromptDescriptor]:
    return [
        PromptDescriptor(
            name="issue_triage",
            description="Walk through the open issues of a repository and propose labels",
            toolset=TOOLSET_ISSUES.id,
            handler=issue_triage,
        ),
    ]
