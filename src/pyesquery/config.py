"""Connection and scan settings."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from pyesquery._constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_BATCH_SIZE_THRESHOLD_FACTOR,
    DEFAULT_HOST,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PORT,
    DEFAULT_RETRY_BACKOFF_FACTOR,
    DEFAULT_RETRY_INTERVAL_MS,
    DEFAULT_SAMPLE_SCROLL_TIME,
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_SCROLL_TIME,
    DEFAULT_TIMEOUT_MS,
)
from pyesquery._errors import ERR_MSG_MISSING_HOST, ConfigurationError


class ConnectionConfig(BaseModel):
    """How to reach an Elasticsearch cluster and how hard to retry."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default=DEFAULT_HOST, description="Elasticsearch host name")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Elasticsearch port")
    username: str | None = Field(default=None, description="Basic auth user")
    password: str | None = Field(default=None, description="Basic auth password")
    use_ssl: bool = Field(default=False, description="Use https")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")
    timeout: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0, description="Per-request timeout in ms")
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0, description="Retries for transient errors")
    retry_interval: int = Field(
        default=DEFAULT_RETRY_INTERVAL_MS, ge=0, description="Initial backoff in ms"
    )
    retry_backoff_factor: float = Field(
        default=DEFAULT_RETRY_BACKOFF_FACTOR, ge=1.0, description="Backoff multiplier"
    )
    http_logging: bool = Field(default=False, description="Trace every HTTP request")

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.host}:{self.port}"

    def validate_config(self) -> None:
        """Raise ConfigurationError when a required parameter is missing."""
        if not self.host or not self.host.strip():
            raise ConfigurationError(ERR_MSG_MISSING_HOST, "host is empty")
        if (self.username is None) != (self.password is None):
            raise ConfigurationError(
                "username and password must be given together",
                f"username set: {self.username is not None}, "
                f"password set: {self.password is not None}",
            )


class ScanSettings(BaseModel):
    """Tunables for schema sampling and scroll paging."""

    model_config = ConfigDict(frozen=True)

    sample_size: int = Field(
        default=DEFAULT_SAMPLE_SIZE, ge=0, description="Documents sampled for array detection"
    )
    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, gt=0, description="Scroll page size")
    batch_size_threshold_factor: int = Field(
        default=DEFAULT_BATCH_SIZE_THRESHOLD_FACTOR,
        ge=1,
        description="Small limits up to batch_size times this are fetched in one page",
    )
    scroll_time: str = Field(default=DEFAULT_SCROLL_TIME, min_length=1, description="Scan scroll TTL")
    sample_scroll_time: str = Field(
        default=DEFAULT_SAMPLE_SCROLL_TIME, min_length=1, description="Sampling scroll TTL"
    )
