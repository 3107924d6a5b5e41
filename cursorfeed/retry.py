from dataclasses import dataclass

from .config import PaginationConfig


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff: base, 2*base, 4*base, ... capped at ``cap_ms``.

    Attributes:
        base_ms: Delay before the first retry
        cap_ms: Upper bound of any delay
        max_attempts: Number of consecutive failures after which the source gives up
    """

    base_ms: int = 1000
    cap_ms: int = 30000
    max_attempts: int = 3

    @classmethod
    def from_config(cls, config: PaginationConfig) -> "RetryPolicy":
        return cls(
            base_ms=config.base_backoff_ms,
            cap_ms=config.max_backoff_ms,
            max_attempts=config.max_attempts,
        )

    def backoff_for(self, attempt: int) -> int:
        """Delay in milliseconds before retrying after failure number ``attempt`` (1-based)."""
        if attempt <= 1:
            return min(self.base_ms, self.cap_ms)
        exponent = min(attempt - 1, 32)
        return min(self.base_ms * (2**exponent), self.cap_ms)

    def new_state(self) -> "RetryState":
        return RetryState(attempt=0, backoff_ms=self.base_ms, max_attempts=self.max_attempts)


@dataclass
class RetryState:
    """Consecutive-failure counters of a single controller."""

    attempt: int
    backoff_ms: int
    max_attempts: int

    def record_failure(self, policy: RetryPolicy) -> int | None:
        """
        Counts a transient failure.

        Returns:
            The delay (ms) to wait before retrying, or None when the
            attempts are used up. The stored backoff is doubled (up to the
            cap) for the failure after this one.
        """
        self.attempt += 1
        if self.attempt >= self.max_attempts:
            return None
        delay = self.backoff_ms
        self.backoff_ms = policy.backoff_for(self.attempt + 1)
        return delay

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts

    def reset(self, policy: RetryPolicy) -> None:
        self.attempt = 0
        self.backoff_ms = policy.base_ms
        self.max_attempts = policy.max_attempts
