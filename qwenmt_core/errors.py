"""
Error types used across the qwenmt_core package.

Per-attempt failures derive from UpstreamError; the outcome of a whole job
(all attempts) is reported as TranslationFailedError.
"""

from __future__ import annotations


class TranslationError(Exception):
    """Base class for every failure raised by the translation core."""


class UpstreamError(TranslationError):
    """
    A single upstream attempt failed.

    Attributes:
        reason: Human-readable reason without the class prefix.
        status_code: HTTP status reported by the upstream, when one was received.
    """

    def __init__(self, reason: str, *, status_code: int | None = None) -> None:
        super().__init__(reason)
        self.reason: str = reason
        self.status_code: int | None = status_code


class UpstreamJoinError(UpstreamError):
    """The upstream rejected the job submission (bad status, body or no event_id)."""


class UpstreamStreamError(UpstreamError):
    """The result stream could not be opened or broke off at the transport level."""


class UpstreamTransientError(UpstreamError):
    """The upstream reported an internal hiccup (unexpected_error event)."""


class UpstreamProcessError(UpstreamError):
    """The upstream explicitly reported a processing failure for this text."""


class NoResultError(UpstreamError):
    """The stream ended without a completion or error event."""

    def __init__(self, reason: str = "no translation result found in the event stream") -> None:
        super().__init__(reason)


class UpstreamTimeoutError(UpstreamError):
    """A single attempt exceeded its deadline."""


class TranslationFailedError(TranslationError):
    """
    A job ended without a translation.

    Attributes:
        last_error: The failure of the final attempt.
        attempts: Number of attempts that were made.
    """

    def __init__(self, last_error: Exception, attempts: int) -> None:
        noun = "attempt" if attempts == 1 else "attempts"
        super().__init__(f"translation failed after {attempts} {noun}: {last_error}")
        self.last_error: Exception = last_error
        self.attempts: int = attempts


class ExhaustedRetriesError(TranslationFailedError):
    """Every permitted attempt failed with a retryable error."""
