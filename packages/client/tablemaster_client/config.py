"""
Client settings.

Values come from the environment (optionally preloaded from a .env file)
and are validated into a ``ClientSettings`` model.
"""

from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import environ  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_API_URL = "http://localhost:4000"
DEFAULT_AUTH_PREFIXES = ("/api/auth/",)
REFRESH_ENDPOINT = "/api/auth/refresh"
HEALTH_ENDPOINT = "/health"

# Seven days, matching the dashboard middleware cookie
COOKIE_MAX_AGE = 60 * 60 * 24 * 7

env = environ.Env(
    TABLEMASTER_API_URL=(str, DEFAULT_API_URL),
    TABLEMASTER_REQUEST_TIMEOUT=(float, 60.0),
    TABLEMASTER_MAX_RETRIES=(int, 2),
    TABLEMASTER_RETRY_BACKOFF=(float, 0.5),
    TABLEMASTER_TOKEN_FILE=(str, ""),
    TABLEMASTER_COOKIE_MAX_AGE=(int, COOKIE_MAX_AGE),
    TABLEMASTER_EXPIRY_WARNING_SECONDS=(int, 300),
    TABLEMASTER_AUTH_PREFIXES=(list, list(DEFAULT_AUTH_PREFIXES)),
)


class ClientSettings(BaseModel):
    """Settings for the dashboard API client."""

    model_config = ConfigDict(frozen=True)

    api_url: str = DEFAULT_API_URL
    request_timeout: float = Field(60.0, gt=0)
    max_retries: int = Field(2, ge=0)
    retry_backoff: float = Field(0.5, gt=0)
    token_file: Path | None = None
    cookie_max_age: int = Field(COOKIE_MAX_AGE, gt=0)
    expiry_warning_seconds: int = Field(300, ge=0)
    auth_prefixes: tuple[str, ...] = DEFAULT_AUTH_PREFIXES
    refresh_endpoint: str = REFRESH_ENDPOINT

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"API URL must be an absolute http(s) URL: {v!r}")
        return v.rstrip("/")

    @field_validator("auth_prefixes", mode="before")
    @classmethod
    def parse_prefixes(cls, v: Any) -> tuple[str, ...]:
        if isinstance(v, str):
            v = v.split(",")
        return tuple(item.strip() for item in v if item and item.strip())

    @property
    def is_secure(self) -> bool:
        """Whether the API origin is served over HTTPS."""
        return urlsplit(self.api_url).scheme == "https"


def load_settings(env_file: str | Path | None = None, **overrides: Any) -> ClientSettings:
    """
    Build settings from the environment.

    Args:
        env_file: Optional .env file read into the environment first.
            Variables already set in the environment take precedence.
        **overrides: Explicit values that win over the environment.

    Returns:
        Validated client settings.
    """
    if env_file is not None:
        environ.Env.read_env(str(env_file))

    token_file = env("TABLEMASTER_TOKEN_FILE")
    values: dict[str, Any] = {
        "api_url": env("TABLEMASTER_API_URL"),
        "request_timeout": env("TABLEMASTER_REQUEST_TIMEOUT"),
        "max_retries": env("TABLEMASTER_MAX_RETRIES"),
        "retry_backoff": env("TABLEMASTER_RETRY_BACKOFF"),
        "token_file": Path(token_file).expanduser() if token_file else None,
        "cookie_max_age": env("TABLEMASTER_COOKIE_MAX_AGE"),
        "expiry_warning_seconds": env("TABLEMASTER_EXPIRY_WARNING_SECONDS"),
        "auth_prefixes": env("TABLEMASTER_AUTH_PREFIXES"),
    }
    values.update(overrides)
    return ClientSettings(**values)
