"""Retry policy for transient failures, kept as plain data."""

from __future__ import annotations

from dataclasses import dataclass

from fontpress.config import DOWNLOAD_RETRIES, RETRY_BACKOFF


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and how long to wait between them.

    ``multiplier`` of 1.0 gives a fixed backoff; anything larger grows the
    delay exponentially. ``retry_on`` lists the exception types worth
    another attempt.
    """

    max_attempts: int = DOWNLOAD_RETRIES + 1
    backoff: float = RETRY_BACKOFF
    multiplier: float = 1.0
    max_backoff: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self):
        if self.max_attempts < 1:
            msg = f"max_attempts must be >= 1, got {self.max_attempts}"
            raise ValueError(msg)
        if self.backoff < 0 or self.multiplier < 1:
            msg = "backoff must be >= 0 and multiplier >= 1"
            raise ValueError(msg)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return min(self.backoff * self.multiplier ** (attempt - 1), self.max_backoff)

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retry_on)

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and self.is_retryable(exc)

    @classmethod
    def fixed(cls, retries: int, backoff: float = RETRY_BACKOFF, **kwargs) -> RetryPolicy:
        return cls(max_attempts=retries + 1, backoff=backoff, **kwargs)
