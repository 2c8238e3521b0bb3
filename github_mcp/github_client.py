"""
Thin GitHub REST client used by tool handlers.

Tool handlers only need "send this request, give me the JSON"; everything
else (pagination helpers, GraphQL, retries) is out of scope here. Failures
become GitHubAPIError, which the tool wrapper turns into a tool error the
model can read.
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from github_mcp.scopes import api_base_url

logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """
    Raised when the GitHub API answers with an error status.

    Attributes:
        message: Error text from the response body (or the status phrase)
        status_code: HTTP status code of the response
    """

    def __init__(self, message: str, status_code: int):
        self.message = message
        self.status_code = status_code
        super().__init__(f"GitHub API error {status_code}: {message}")


class RepoAccessChecker(Protocol):
    """Lockdown capability: may content from owner/repo be shown to the caller?"""

    async def is_safe_content(self, owner: str, repo: str) -> bool: ...


class GitHubClient:
    """Async REST client bound to one host and token."""

    def __init__(
        self,
        token: str,
        host: str = "github.com",
        *,
        timeout: float = 30.0,
        user_agent: str = "github-mcp-server",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.host = host
        self._http = httpx.AsyncClient(
            base_url=api_base_url(host),
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": user_agent,
                **({"Authorization": f"Bearer {token}"} if token else {}),
            },
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body (None for 204).

        Raises:
            GitHubAPIError: for 4xx/5xx responses
            httpx.HTTPError: for transport failures
        """
        if params:
            params = {key: value for key, value in params.items() if value is not None}
        response = await self._http.request(method, path, params=params or None, json=json)

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = (body.get("message") if isinstance(body, dict) else None) or response.reason_phrase
            logger.debug(
                "GitHub API request failed",
                extra={"log_data": {"method": method, "path": path, "status": response.status_code}},
            )
            raise GitHubAPIError(message, response.status_code)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get(self, path: str, **params: Any) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, body: Any = None) -> Any:
        return await self.request("POST", path, json=body)

    async def put(self, path: str, body: Any = None) -> Any:
        return await self.request("PUT", path, json=body)

    async def patch(self, path: str, body: Any = None) -> Any:
        return await self.request("PATCH", path, json=body)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)

    async def aclose(self) -> None:
        await self._http.aclose()


@dataclass
class ToolDependencies:
    """What tool handlers receive besides their arguments."""

    client: Any
    host: str = "github.com"
    lockdown_mode: bool = False
    repo_access: RepoAccessChecker | None = None
    roots_timeout: float = 5.0
