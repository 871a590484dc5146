import functools
import getpass
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "http://localhost:3000"

# Used when nothing else yields an action identifier
FALLBACK_ACTION = "demo_action"


def _default_requester_id() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "unknown"


class HttpTimeouts(BaseModel):
    """Timeout configuration for unary calls to the approval service."""

    request: float = 30.0
    stream_connect: float = 10.0

    @field_validator("request", "stream_connect")
    @classmethod
    def validate_positive_float(cls, v: float, info) -> float:
        """Ensure timeout values are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got {v}")
        return v


class PollingConfig(BaseModel):
    """Configuration for the blocking wait on a request."""

    interval_ms: int = 1200
    wait_timeout_ms: int = 30000

    @field_validator("interval_ms", "wait_timeout_ms")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Ensure durations are positive integers."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer, got {v}")
        return v


class StreamConfig(BaseModel):
    """Reconnect backoff for the live status stream."""

    initial_backoff_ms: int = 1000
    max_backoff_ms: int = 15000

    @field_validator("initial_backoff_ms", "max_backoff_ms")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Ensure backoff values are positive integers."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer, got {v}")
        return v


class TimeoutConfig(BaseModel):
    """Centralized timeout configuration."""

    http: HttpTimeouts = Field(default_factory=HttpTimeouts)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)


class Config(BaseSettings):
    """
    Application configuration loaded from multiple sources.

    Priority (highest to lowest):
    1. Explicit keyword arguments
    2. Environment variables
    3. .env file
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Approval service
    APPROVAL_GUARD_BASE_URL: str = DEFAULT_BASE_URL

    # Action identifiers
    DEFAULT_ACTION: Optional[str] = None
    DISABLE_AUTO_ACTION: bool = False

    # Logging
    DEBUG_LOGGING: bool = False

    # Requester metadata sent with every request
    REQUESTER_ID: str = Field(default_factory=_default_requester_id)
    REQUESTER_SOURCE: str = "approval-guard-cli"
    REQUESTER_DISPLAY: Optional[str] = None

    # Timeout overrides from environment
    REQUEST_TIMEOUT: float = 30.0
    STREAM_CONNECT_TIMEOUT: float = 10.0
    POLL_INTERVAL_MS: int = 1200
    WAIT_TIMEOUT_MS: int = 30000
    STREAM_INITIAL_BACKOFF_MS: int = 1000
    STREAM_MAX_BACKOFF_MS: int = 15000

    @property
    def base_url(self) -> str:
        """Base URL without trailing slash, falling back to the local default."""
        url = (self.APPROVAL_GUARD_BASE_URL or "").strip()
        return url.rstrip("/") if url else DEFAULT_BASE_URL

    @property
    def requester(self) -> dict[str, str]:
        """Requester block for the request metadata."""
        return {
            "id": self.REQUESTER_ID,
            "source": self.REQUESTER_SOURCE,
            "display": self.REQUESTER_DISPLAY or self.REQUESTER_ID,
        }

    @functools.cached_property
    def timeouts(self) -> TimeoutConfig:
        """Build TimeoutConfig from environment variables."""
        return TimeoutConfig(
            http=HttpTimeouts(
                request=self.REQUEST_TIMEOUT,
                stream_connect=self.STREAM_CONNECT_TIMEOUT,
            ),
            polling=PollingConfig(
                interval_ms=self.POLL_INTERVAL_MS,
                wait_timeout_ms=self.WAIT_TIMEOUT_MS,
            ),
            stream=StreamConfig(
                initial_backoff_ms=self.STREAM_INITIAL_BACKOFF_MS,
                max_backoff_ms=self.STREAM_MAX_BACKOFF_MS,
            ),
        )

    def validate_required(self) -> list[str]:
        """Validate required configuration."""
        errors = []
        if not self.base_url.startswith(("http://", "https://")):
            errors.append(
                f"APPROVAL_GUARD_BASE_URL must be an http(s) URL, got {self.APPROVAL_GUARD_BASE_URL!r}"
            )
        if self.timeouts.stream.max_backoff_ms < self.timeouts.stream.initial_backoff_ms:
            errors.append("STREAM_MAX_BACKOFF_MS must be >= STREAM_INITIAL_BACKOFF_MS")
        return errors


config = Config()
