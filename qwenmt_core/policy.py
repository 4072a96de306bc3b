"""Retry policy for upstream jobs: which failures retry and how long to wait."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import UpstreamTransientError

__all__ = ["RetryPolicy", "is_retryable", "SESSION_NOT_FOUND_MARKERS"]

# Lowercased message fragments that signal an unknown or expired upstream session.
SESSION_NOT_FOUND_MARKERS: tuple[str, ...] = ("session not found",)


def is_retryable(exc: BaseException) -> bool:
    """
    Decide whether a failed attempt may be retried.

    Only an upstream ``unexpected_error`` event, or any error whose message
    says the upstream no longer knows the session, qualifies.
    """
    if isinstance(exc, UpstreamTransientError):
        return True
    text = str(exc).lower()
    return any(marker in text for marker in SESSION_NOT_FOUND_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded attempts with linear backoff: ``attempt_index * backoff_step`` seconds."""

    max_attempts: int = 3
    backoff_step: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_step < 0:
            raise ValueError("backoff_step must be >= 0")

    def delay_before(self, attempt_index: int) -> float:
        """Seconds to wait before the zero-based ``attempt_index``; 0 for the first."""
        return max(0, attempt_index) * self.backoff_step
