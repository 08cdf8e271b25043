"""Runtime settings for dslkit.

Values resolve in this order:
1. Explicit constructor / ``from_env`` overrides
2. ``DSL_*`` environment variables
3. Defaults below
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "DSL_"

AmbiguityPolicy = Literal["error", "first"]


class DslSettings(BaseSettings):
    """Settings shared by the registry, dispatcher, clients and CLI."""

    model_config = SettingsConfigDict(env_prefix=ENV_PREFIX, extra="ignore")

    database_url: str = Field(default="sqlite:///./dslkit.db", description="Store URL")
    echo: bool = Field(default=False, description="Echo SQL statements")
    api_url: str = Field(default="http://localhost:8000", description="Base URL of the API")
    api_endpoint: str = Field(default="dsl", description="Path of the operation endpoint")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    ambiguity_policy: AmbiguityPolicy = Field(
        default="error", description="What a bare name matching several modules resolves to"
    )
    default_page_limit: int = Field(default=20, gt=0)
    max_page_limit: int = Field(default=100, gt=0)
    enforce_access: bool = Field(default=True, description="Apply declared access rules")
    trust_caller_headers: bool = Field(
        default=False, description="Take the HTTP caller from X-User-Id and X-User-Roles"
    )
    anonymous_payload_limit: int = Field(default=50_000, description="Bytes, anonymous writes")
    anonymous_string_limit: int = Field(default=5_000, description="Chars per string value")
    log_level: str = Field(default="WARNING")

    @classmethod
    def from_env(cls, **overrides: Any) -> DslSettings:
        """Build settings from ``DSL_*`` environment variables.

        Args:
            **overrides: Values that win over the environment; None is ignored

        Returns:
            Populated settings
        """
        return cls(**{k: v for k, v in overrides.items() if v is not None})
