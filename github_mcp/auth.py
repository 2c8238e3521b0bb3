"""
Bearer token validation for the streamable-http transport.

Over stdio the server acts with the GitHub token it was started with. Over
HTTP every MCP request must also carry a JWT naming the caller and the GitHub
OAuth scopes they may exercise through this server:

    {
        "sub": "ci-agent-prod",
        "scope": ["repo", "read:org"],
        "exp": 1738800000
    }

The scopes are compared with each tool's required scopes by AuthMiddleware,
using the same hierarchy rules as token scope discovery (github_mcp.scopes).
"""

from dataclasses import dataclass

import jwt

from github_mcp.config import settings


class AuthError(Exception):
    """
    Raised when token validation fails for any reason.

    One exception type covers every failure (missing header, bad signature,
    expired, malformed claims); the detailed reason is logged server-side.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code for the failure (401)
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass(frozen=True)
class TokenInfo:
    """
    Validated claims of a bearer token.

    Attributes:
        subject: The "sub" claim, who is calling (e.g. "alice@company.com")
        scopes: GitHub OAuth scopes granted to the caller (e.g. ["repo"])
    """

    subject: str
    scopes: list[str]


def validate_token(
    authorization_header: str | None,
    secret_key: str | None = None,
    algorithm: str | None = None,
) -> TokenInfo:
    """
    Validate a Bearer token from the Authorization header.

    Args:
        authorization_header: Raw header value, "Bearer <jwt>"
        secret_key: Signing key; defaults to the configured key
        algorithm: Signing algorithm; defaults to the configured one

    Returns:
        TokenInfo with the validated subject and scopes

    Raises:
        AuthError: If any validation step fails
    """
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    token = parts[1].strip()

    try:
        payload = jwt.decode(
            token,
            secret_key if secret_key is not None else settings.jwt_secret_key,
            algorithms=[algorithm or settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    subject = payload.get("sub", "")

    # "scope" may also be the OAuth space-separated string form
    scopes_claim = payload.get("scope", [])
    if isinstance(scopes_claim, str):
        scopes_claim = scopes_claim.split()

    if not isinstance(scopes_claim, list):
        raise AuthError("Invalid scope claim: must be a list")

    if not all(isinstance(s, str) for s in scopes_claim):
        raise AuthError("Invalid scope claim: all entries must be strings")

    return TokenInfo(subject=subject, scopes=scopes_claim)
