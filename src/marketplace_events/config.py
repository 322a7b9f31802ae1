"""
Event bus configuration.

Settings are read once at service start-up from keyword arguments, the
environment (``EVENT_BUS_*``, with the conventional ``SERVICE_NAME`` and
``REDIS_URL`` accepted as fallbacks) and an optional ``.env`` file.
"""

from __future__ import annotations

from urllib.parse import quote

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EventBusSettings(BaseSettings):
    """Configuration for one service's connection to the event bus."""

    model_config = SettingsConfigDict(
        env_prefix="EVENT_BUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Service identity
    service_name: str = Field(
        default="unknown-service",
        validation_alias=AliasChoices("EVENT_BUS_SERVICE_NAME", "SERVICE_NAME", "service_name"),
        description="Stable name stamped as the source of every envelope",
    )

    # Broker endpoint
    redis_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("EVENT_BUS_REDIS_URL", "REDIS_URL", "redis_url"),
        description="Full broker URL; overrides the host/port parts when set",
    )
    redis_host: str = Field(default="localhost", description="Broker host")
    redis_port: int = Field(default=6379, ge=1, le=65535, description="Broker port")
    redis_db: int = Field(default=0, ge=0, description="Redis database index")
    redis_username: str | None = Field(default=None, description="Broker username")
    redis_password: SecretStr | None = Field(default=None, description="Broker password")
    redis_tls: bool = Field(default=False, description="Use rediss:// when composing the URL")

    # Connection lifecycle
    retry_attempts: int = Field(default=5, ge=0, description="Reconnect attempts after a connection loss")
    retry_delay: float = Field(default=3.0, ge=0, description="Fixed delay between reconnect attempts (s)")
    connect_timeout: float = Field(default=5.0, gt=0, description="Socket connect timeout (s)")
    socket_timeout: float = Field(default=5.0, gt=0, description="Socket I/O timeout (s)")
    health_check_interval: float = Field(
        default=30.0, ge=0, description="Seconds between broker pings while connected; 0 disables"
    )

    # Request/response
    request_timeout: float = Field(default=5.0, gt=0, description="Default send() timeout (s)")

    # Contracts
    validate_payloads: bool = Field(
        default=False, description="Validate payloads against the registered model before emitting"
    )

    # Pending event buffer
    outbox_max_size: int = Field(
        default=0, ge=0, description="Events kept while disconnected and replayed on reconnect; 0 disables"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Library log level or OFF")
    json_logs: bool = Field(default=True, description="Emit JSON log lines")

    @field_validator("service_name")
    @classmethod
    def _service_name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("service_name must not be empty")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    def broker_url(self) -> str:
        """Resolve the broker URL from ``redis_url`` or the individual parts."""
        if self.redis_url:
            return self.redis_url

        scheme = "rediss" if self.redis_tls else "redis"
        credentials = ""
        password = self.redis_password.get_secret_value() if self.redis_password else None
        if self.redis_username or password:
            credentials = quote(self.redis_username or "", safe="")
            if password:
                credentials += ":" + quote(password, safe="")
            credentials += "@"
        return f"{scheme}://{credentials}{self.redis_host}:{self.redis_port}/{self.redis_db}"
