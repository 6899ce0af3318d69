"""Redis settings for the job id claims of the ``rabbitmq`` backend.

Supports both URL-based configuration and individual component fields.
If REDIS_URL is provided, it's parsed to populate the component fields.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote, unquote, urlparse

from pydantic import Field, SecretStr, computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """Redis connection and job claim settings.

    Environment variables use REDIS_ prefix.
    Example: REDIS_URL="redis://localhost:6379/0"

    Only used when APP_QUEUE_BACKEND=rabbitmq: job ids are claimed in Redis
    before a message is sent, so a job id reaches the broker once.
    """

    # ──────────────────────────────────────────────────────────────
    # Connection configuration
    # ──────────────────────────────────────────────────────────────

    redis_url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection URL; overrides the component fields.",
    )
    host: str = Field(default="localhost", description="Redis server hostname or IP address")
    port: int = Field(default=6379, ge=1, le=65535, description="Redis server port")
    db: int = Field(default=0, ge=0, le=15, description="Redis database number (0-15)")
    username: str | None = Field(default=None, description="Redis username (Redis 6+ ACL)")
    password: SecretStr | None = Field(default=None, description="Redis password")
    ssl_enabled: bool = Field(
        default=False,
        description="Enable SSL/TLS for the Redis connection (rediss:// scheme)",
    )

    # ──────────────────────────────────────────────────────────────
    # Connection pool settings
    # ──────────────────────────────────────────────────────────────

    max_connections: int = Field(default=20, ge=1, le=1000)
    socket_timeout: float = Field(default=5.0, ge=0.1, le=30.0)
    socket_connect_timeout: float = Field(default=5.0, ge=0.1, le=30.0)

    # ──────────────────────────────────────────────────────────────
    # Job claims
    # ──────────────────────────────────────────────────────────────

    job_claims_enabled: bool = Field(
        default=True,
        description="Claim job ids in Redis before sending; disable to send every enqueue.",
    )
    job_claim_ttl_seconds: int = Field(
        default=86_400,
        ge=1,
        description="How long a claimed job id blocks re-sends (seconds).",
    )
    key_prefix: str = Field(
        default="event-service:",
        min_length=1,
        max_length=100,
        pattern=r"^[a-zA-Z0-9_-]+:?$",
        description="Prefix for every key written by the service",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )

    @model_validator(mode="after")
    def _apply_url(self) -> RedisSettings:
        """Populate connection components from REDIS_URL if provided.

        Uses object.__setattr__ because the model is frozen.
        """
        if not self.redis_url:
            return self

        parsed = urlparse(self.redis_url)

        if parsed.hostname:
            object.__setattr__(self, "host", parsed.hostname)
        if parsed.port:
            object.__setattr__(self, "port", parsed.port)
        if parsed.path and len(parsed.path) > 1 and parsed.path.lstrip("/").isdigit():
            object.__setattr__(self, "db", int(parsed.path.lstrip("/")))
        if parsed.username:
            object.__setattr__(self, "username", unquote(parsed.username))
        if parsed.password:
            object.__setattr__(self, "password", SecretStr(unquote(parsed.password)))
        if parsed.scheme == "rediss":
            object.__setattr__(self, "ssl_enabled", True)

        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def url(self) -> str:
        """Redis URL built from the component fields."""
        scheme = "rediss" if self.ssl_enabled else "redis"

        auth = ""
        password = self.password.get_secret_value() if self.password else ""
        if self.username and password:
            auth = f"{quote(self.username, safe='')}:{quote(password, safe='')}@"
        elif password:
            auth = f":{quote(password, safe='')}@"

        return f"{scheme}://{auth}{self.host}:{self.port}/{self.db}"

    def connection_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``redis.asyncio.Redis.from_url``."""
        return {
            "max_connections": self.max_connections,
            "socket_timeout": self.socket_timeout,
            "socket_connect_timeout": self.socket_connect_timeout,
            "decode_responses": True,
        }


__all__ = ["RedisSettings"]
