"""Configuration for the Vikunja MCP server.

``ServerConfig`` is populated from a TOML file and command-line arguments;
see ``vikunja_mcp.main`` for the precedence rules.
"""

from importlib.metadata import PackageNotFoundError, version
from typing import Any, Literal

from pydantic import BaseModel, Field, HttpUrl, field_validator

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "[::1]"})


def _default_user_agent() -> str:
    try:
        return f"vikunja-mcp/{version('vikunja-mcp')}"
    except PackageNotFoundError:
        return "vikunja-mcp"


class ServerConfig(BaseModel):
    """Validated server configuration."""

    vikunja_api_token: str = Field(
        ...,
        description="Vikunja API token used as bearer credential",
    )

    vikunja_base_url: HttpUrl = Field(
        ...,
        description="Vikunja API base URL, e.g. https://vikunja.example.com/api/v1",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level for the application",
    )

    config_file: str | None = Field(
        default=None,
        description="Path to configuration file",
    )

    test_connectivity_on_startup: bool = Field(
        default=False,
        description="Check Vikunja API connectivity during server startup",
    )

    rate_limit_rpm: int = Field(
        default=300,
        ge=1,
        le=10000,
        description="Rate limit: requests per minute",
    )

    rate_limit_burst: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Rate limit: burst capacity",
    )

    http_retries: int = Field(
        default=2,
        ge=0,
        le=5,
        description="Retry count for transient HTTP failures",
    )

    http_backoff_start_seconds: float = Field(
        default=0.25,
        ge=0.1,
        le=10.0,
        description="Initial backoff before the first retry, doubled per attempt",
    )

    http_user_agent: str = Field(
        default_factory=_default_user_agent,
        description="HTTP client User-Agent header",
    )

    timeout_connect: float = Field(
        default=5.0,
        ge=1.0,
        le=30.0,
        description="HTTP connection timeout in seconds",
    )

    timeout_read: float = Field(
        default=30.0,
        ge=5.0,
        le=120.0,
        description="HTTP read timeout in seconds",
    )

    fallback_page_size: int = Field(
        default=50,
        ge=1,
        le=50,
        description="Page size used when fetching tasks for client-side filtering",
    )

    fallback_max_pages: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Maximum pages fetched for client-side filtering",
    )

    saved_filters_path: str | None = Field(
        default=None,
        description="JSON file for saved filters; in-memory storage when unset",
    )

    @field_validator("vikunja_base_url")
    @classmethod
    def validate_https_url(cls, v: HttpUrl) -> HttpUrl:
        """Require HTTPS, except for a Vikunja instance on localhost.

        Raises:
            ValueError: If a remote URL does not use HTTPS
        """
        if v.scheme != "https" and v.host not in _LOCAL_HOSTS:
            msg = "URL must use HTTPS (plain HTTP is only allowed for localhost)"
            raise ValueError(msg)
        return v

    def to_redacted_dict(self) -> dict[str, Any]:
        """Return the configuration with the API token redacted, for logging."""
        config_dict = self.model_dump()
        config_dict["vikunja_api_token"] = "***redacted***"  # noqa: S105 - redaction placeholder
        config_dict["vikunja_base_url"] = str(config_dict["vikunja_base_url"])
        return config_dict
