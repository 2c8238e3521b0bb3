"""
Shared test fixtures for the GitHub MCP server test suite.

Key fixtures:
- make_token / make_auth_header: JWT factories for the HTTP auth layer
- fake_session: a stand-in for the MCP ServerSession that answers roots/list
- call_context: builds the MiddlewareContext of a tools/call request
- github: a FakeGitHubClient recording requests and returning canned JSON
- make_settings: Settings isolated from the process environment

Testing approach:
- test_roots.py, test_scopes.py, test_inventory.py: pure functions and the
  inventory builder, no MCP session involved
- test_roots_middleware.py: the injection and enforcement middlewares driven
  directly with a fake session and a recording call_next
- test_server.py, test_dynamic.py: the assembled server through fastmcp's
  in-memory Client
- test_http.py: bearer auth and health endpoints over the HTTP app
"""

import datetime
from typing import Any

import jwt
import pytest
from fastmcp.server.middleware import MiddlewareContext
from mcp.types import CallToolRequestParams

from github_mcp.config import Settings, settings
from tests.fakes import FakeContext, FakeGitHubClient, FakeSession, RecordingCallNext

TEST_SECRET = settings.jwt_secret_key
TEST_ALGORITHM = settings.jwt_algorithm


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
@pytest.fixture
def make_token():
    """
    Factory fixture to generate JWT tokens for testing.

    Usage in tests:
        def test_something(make_token):
            token = make_token(sub="alice", scopes=["repo"])
    """

    def _make_token(
        sub: str = "test-user",
        scopes: list[str] | None = None,
        secret: str = TEST_SECRET,
        algorithm: str = TEST_ALGORITHM,
        exp_hours: float = 1.0,
        extra_claims: dict | None = None,
        include_exp: bool = True,
        include_sub: bool = True,
    ) -> str:
        """
        Generate a signed JWT token with the given claims.

        Args:
            sub: Subject claim
            scopes: List of scopes (None means omit the claim entirely)
            secret: Signing key
            algorithm: JWT algorithm
            exp_hours: Hours until expiration (negative = already expired)
            extra_claims: Additional claims to include in the payload
            include_exp: Whether to include the exp claim
            include_sub: Whether to include the sub claim
        """
        now = datetime.datetime.now(datetime.timezone.utc)
        payload: dict = {}

        if include_sub:
            payload["sub"] = sub

        if scopes is not None:
            payload["scope"] = scopes

        if include_exp:
            payload["exp"] = now + datetime.timedelta(hours=exp_hours)

        payload["iat"] = now

        if extra_claims:
            payload.update(extra_claims)

        return jwt.encode(payload, secret, algorithm=algorithm)

    return _make_token


@pytest.fixture
def make_auth_header(make_token):
    """Convenience fixture that returns a full "Bearer <token>" string."""

    def _make_auth_header(**kwargs) -> str:
        return f"Bearer {make_token(**kwargs)}"

    return _make_auth_header


# ---------------------------------------------------------------------------
# MCP session fakes
# ---------------------------------------------------------------------------
@pytest.fixture
def fake_session():
    """Factory for FakeSession objects."""

    def _fake_session(roots: list[Any] | None = None, **kwargs) -> FakeSession:
        return FakeSession(roots, **kwargs)

    return _fake_session


@pytest.fixture
def call_context():
    """
    Factory building the MiddlewareContext of a tools/call request.

    Usage:
        context = call_context("list_issues", {"state": "open"}, session)
    """

    def _call_context(
        name: str,
        arguments: dict[str, Any] | None,
        session: FakeSession | None = None,
    ) -> MiddlewareContext:
        return MiddlewareContext(
            message=CallToolRequestParams(name=name, arguments=arguments),
            fastmcp_context=FakeContext(session),
            method="tools/call",
        )

    return _call_context


@pytest.fixture
def call_next():
    return RecordingCallNext()


# ---------------------------------------------------------------------------
# GitHub client fake
# ---------------------------------------------------------------------------
@pytest.fixture
def github():
    return FakeGitHubClient()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
@pytest.fixture
def make_settings(monkeypatch):
    """
    Factory for Settings that ignore the developer's environment and .env.

    Usage:
        config = make_settings(toolsets=["repos"], read_only=True)
    """
    for name in ("GITHUB_PERSONAL_ACCESS_TOKEN", "GITHUB_MCP_GITHUB_TOKEN", "GITHUB_MCP_TOOLSETS"):
        monkeypatch.delenv(name, raising=False)

    def _make_settings(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make_settings
