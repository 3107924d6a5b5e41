import os
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PaginationConfig(BaseModel):
    """
    Policy constants for loop detection and retries.

    The defaults bound worst-case pagination to a small number of near-empty
    round-trips against a backend that may echo stale cursors.
    Shared read-only between controllers, hence frozen.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Loop detection
    max_repeat: int = Field(default=2, ge=1)
    high_duplicate_ratio: float = Field(default=0.9, ge=0.0, le=1.0)
    stall_duplicate_ratio: float = Field(default=0.8, ge=0.0, le=1.0)
    stall_max_accepted: int = Field(default=2, ge=0)
    min_sample_size: int = Field(default=5, ge=1)

    # Retries
    base_backoff_ms: int = Field(default=1000, ge=0)
    max_backoff_ms: int = Field(default=30000, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    auto_retry: bool = True

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "PaginationConfig":
        if self.max_backoff_ms < self.base_backoff_ms:
            raise ValueError(
                f"max_backoff_ms ({self.max_backoff_ms}) must be >= "
                f"base_backoff_ms ({self.base_backoff_ms})"
            )
        return self

    @classmethod
    def from_env(
        cls, prefix: str = "CURSORFEED_", environ: dict[str, str] | None = None, **overrides: Any
    ) -> "PaginationConfig":
        """
        Build a config from environment variables.

        Every field can be set as ``<PREFIX><FIELD NAME IN UPPER CASE>``,
        e.g. ``CURSORFEED_MAX_ATTEMPTS=5``. Explicit keyword overrides win.
        Values are validated (and coerced) by pydantic.

        Args:
            prefix: Environment variable prefix
            environ: Mapping to read from (defaults to os.environ)
            **overrides: Field values that take precedence over the environment
        """
        source = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = source.get(f"{prefix}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)


DEFAULT_CONFIG = PaginationConfig()
