"""
Translation core for the Qwen-MT queue adapter.

Language normalization, admission control, push-event decoding and the
upstream queue client. No HTTP server concerns live here.
"""

from __future__ import annotations

from .config import DEFAULT_BASE_URL, UpstreamConfig
from .errors import (
    ExhaustedRetriesError,
    NoResultError,
    TranslationError,
    TranslationFailedError,
    UpstreamError,
    UpstreamJoinError,
    UpstreamProcessError,
    UpstreamStreamError,
    UpstreamTimeoutError,
    UpstreamTransientError,
)
from .languages import normalize, to_generic, to_upstream
from .limiter import AdmissionLimiter
from .policy import RetryPolicy, is_retryable
from .sse import EventStreamDecoder, StreamEvent, iter_events
from .upstream import QueueClient, TranslationJob, new_session_hash

__all__ = [
    "__version__",
    # config
    "DEFAULT_BASE_URL",
    "UpstreamConfig",
    # errors
    "TranslationError",
    "UpstreamError",
    "UpstreamJoinError",
    "UpstreamStreamError",
    "UpstreamTransientError",
    "UpstreamProcessError",
    "UpstreamTimeoutError",
    "NoResultError",
    "TranslationFailedError",
    "ExhaustedRetriesError",
    # languages
    "normalize",
    "to_generic",
    "to_upstream",
    # limiter / policy
    "AdmissionLimiter",
    "RetryPolicy",
    "is_retryable",
    # stream decoding
    "EventStreamDecoder",
    "StreamEvent",
    "iter_events",
    # upstream client
    "QueueClient",
    "TranslationJob",
    "new_session_hash",
]

__version__: str = "0.1.0"
