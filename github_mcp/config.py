"""
Server configuration loaded from environment variables.

Uses pydantic-settings so every knob is typed and read from the environment
(or a local .env file). Variables carry the GITHUB_MCP_ prefix, e.g.
GITHUB_MCP_TOOLSETS=repos,issues or GITHUB_MCP_READ_ONLY=true.

The toolset selection keeps three distinct states, which matter to the
inventory builder:

    GITHUB_MCP_TOOLSETS unset      -> None, use the default toolsets
    GITHUB_MCP_TOOLSETS=""         -> [], no toolset-derived tools
    GITHUB_MCP_TOOLSETS=repos,all  -> exactly these (keywords expand)
"""

from typing import Annotated, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


def _split_csv(value: object) -> object:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class Settings(BaseSettings):
    """
    GitHub MCP server settings with environment variable bindings.

    Each field maps to an environment variable with the GITHUB_MCP_ prefix,
    except the GitHub token which is also accepted under the conventional
    GITHUB_PERSONAL_ACCESS_TOKEN name.
    """

    # --- Transport ---

    # "stdio" for local clients, "streamable-http" for the hosted server.
    transport: Literal["stdio", "streamable-http"] = "stdio"

    host: str = "0.0.0.0"
    port: int = 8082
    log_level: str = "info"

    # --- HTTP bearer tokens (streamable-http transport only) ---

    jwt_secret_key: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"

    # --- GitHub ---

    # Public host or a GitHub Enterprise Server hostname. Roots are only
    # accepted when their URI points at this host.
    github_host: str = "github.com"

    github_token: str = Field(
        default="",
        validation_alias=AliasChoices("GITHUB_PERSONAL_ACCESS_TOKEN", "GITHUB_MCP_GITHUB_TOKEN"),
    )

    # Seconds before a GitHub API request is abandoned.
    request_timeout: float = 30.0

    # --- Inventory ---

    toolsets: Annotated[list[str] | None, NoDecode] = None
    tools: Annotated[list[str], NoDecode] = []
    exclude_tools: Annotated[list[str], NoDecode] = []
    features: Annotated[list[str], NoDecode] = []

    read_only: bool = False
    dynamic_toolsets: bool = False
    insiders_mode: bool = False
    lockdown_mode: bool = False

    # --- Roots ---

    # Infer and enforce owner/repo from the roots the client declares.
    roots_mode: bool = False

    # Upper bound for the roots/list round trip to the client.
    roots_timeout: float = 5.0

    model_config = {
        "env_prefix": "GITHUB_MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
        "extra": "ignore",
    }

    @field_validator("toolsets", "tools", "exclude_tools", "features", mode="before")
    @classmethod
    def _parse_lists(cls, value: object) -> object:
        return _split_csv(value)


settings = Settings()
