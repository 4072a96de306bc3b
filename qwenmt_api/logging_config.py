from __future__ import annotations

import contextlib
import logging
import os
import sys
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any, TypeVar, cast

from pythonjsonlogger.json import JsonFormatter
from starlette.types import Message, Receive, Scope, Send

from .errors import record_status

if TYPE_CHECKING:
    from .settings import Settings

# Local alias to avoid linter/editor false positives on starlette.types.ASGIApp
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

T = TypeVar("T")
JSONLike = str | dict[Any, Any] | list[Any] | tuple[Any, ...]


@dataclass(frozen=True)
class RedactionConfig:
    """Configuration constants for redaction operations."""

    redacted_placeholder: str = "***"
    # Lowercase header names whose values are credentials
    secret_headers: tuple[str, ...] = ("authorization", "x-api-key")
    sensitive_field_names: frozenset[str] = field(
        default_factory=lambda: frozenset(["headers", "extra", "data"])
    )
    structured_log_fields: tuple[str, ...] = field(
        default_factory=lambda: (
            "status",
            "route",
            "path",
            "method",
            "trace_id",
            "duration_ms",
            "attempt",
            "attempts",
            "delay_s",
            "session_hash",
            "error_type",
        )
    )


class RedactionService:
    """Service responsible for redacting sensitive information from log data."""

    def __init__(self, secrets: Iterable[str], config: RedactionConfig) -> None:
        """Initialize the redaction service.

        Args:
            secrets: Literal values (API keys) to scrub wherever they appear
            config: Configuration for redaction behavior
        """
        self.config = config
        # Longest first so a key that contains another is scrubbed whole
        self.secrets = sorted((s for s in secrets if s), key=len, reverse=True)

    def redact_text(self, text: str) -> str:
        """Redact sensitive information from text strings.

        Args:
            text: The text to redact

        Returns:
            Text with sensitive information redacted
        """
        redacted = text
        for secret in self.secrets:
            if secret in redacted:
                redacted = redacted.replace(secret, self.config.redacted_placeholder)

        for header in self.config.secret_headers:
            redacted = self._redact_header_value(redacted, header)
        return redacted

    def redact_value(self, value: T) -> T:
        """Recursively redact values in various data structures."""
        if isinstance(value, str):
            return cast("T", self.redact_text(value))

        if isinstance(value, dict):
            return cast("T", self._redact_dict(cast("dict[Any, Any]", value)))

        if isinstance(value, list):
            return cast("T", [self.redact_value(v) for v in cast("list[Any]", value)])

        if isinstance(value, tuple):
            return cast("T", tuple(self.redact_value(v) for v in cast("tuple[Any, ...]", value)))

        return value

    def redact_structure(self, obj: JSONLike) -> JSONLike:
        """Redact structured data (dict, list, tuple, or string)."""
        with contextlib.suppress(Exception):
            if isinstance(obj, dict | list | tuple):
                return self.redact_value(obj)
            return self.redact_text(str(obj))
        return obj

    def _redact_dict(self, obj: dict[Any, Any]) -> dict[Any, Any]:
        """Redact dictionary values, blanking credential headers entirely."""
        return {
            k: (
                self.config.redacted_placeholder
                if isinstance(k, str) and k.lower() in self.config.secret_headers
                else self.redact_value(v)
            )
            for k, v in obj.items()
        }

    def _redact_header_value(self, text: str, header: str) -> str:
        """Redact ``Header: value`` and ``"header": "value"`` forms (case-insensitive)."""
        lowered = text.lower()
        start_search = 0
        while (key_idx := lowered.find(header, start_search)) != -1:
            sep_idx = text.find(":", key_idx + len(header))
            if sep_idx == -1 or sep_idx - (key_idx + len(header)) > 1:
                start_search = key_idx + len(header)
                continue

            start = sep_idx + 1
            while start < len(text) and text[start] in ' "':
                start += 1
            end = self._find_value_end(text, start)
            text = text[:start] + self.config.redacted_placeholder + text[end:]
            lowered = text.lower()
            start_search = start + len(self.config.redacted_placeholder)
        return text

    @staticmethod
    def _find_value_end(text: str, start: int) -> int:
        """Header values end at a quote, comma or end of line."""
        ends = [i for i in (text.find(c, start) for c in '",\n') if i != -1]
        return min(ends) if ends else len(text)


class RedactionFilter(logging.Filter):
    """Logging filter that redacts sensitive values from log records."""

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self.config = RedactionConfig()
        self.redaction_service = RedactionService(secrets, self.config)

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact in place; never drops a record."""
        self._redact_message(record)
        self._redact_args(record)
        self._redact_extra_fields(record)
        return True

    def _redact_message(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(Exception):
            if isinstance(record.msg, str):
                record.msg = self.redaction_service.redact_text(record.msg)

    def _redact_args(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(Exception):
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {
                        k: self.redaction_service.redact_value(v) for k, v in record.args.items()
                    }
                elif isinstance(record.args, tuple):
                    record.args = tuple(
                        self.redaction_service.redact_value(a) for a in record.args
                    )

    def _redact_extra_fields(self, record: logging.LogRecord) -> None:
        with contextlib.suppress(Exception):
            for key in record.__dict__:
                value = record.__dict__[key]
                if key in self.config.sensitive_field_names:
                    record.__dict__[key] = self.redaction_service.redact_structure(value)
                elif isinstance(value, str):
                    record.__dict__[key] = self.redaction_service.redact_text(value)


class ISOFormatter(JsonFormatter):
    """JSON formatter that outputs ISO8601 timestamp and selected fields."""

    def __init__(self, config: RedactionConfig) -> None:
        super().__init__(fmt="%(message)s")  # type: ignore[call-arg]
        self.config = config

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if "ts" not in log_record:
            log_record["ts"] = time.strftime("%Y-%m-%dT%H:%M:%S%z")
        log_record["level"] = str(record.levelname or "INFO").lower()
        log_record["logger"] = record.name

        with contextlib.suppress(Exception):
            for field_name in self.config.structured_log_fields:
                value = (
                    message_dict.get(field_name)
                    or log_record.get(field_name)
                    or getattr(record, field_name, None)
                )
                if value is not None:
                    log_record[field_name] = value
            # Mirror path to route for stability
            if "route" not in log_record and "path" in log_record:
                log_record["route"] = log_record.get("path")


def ensure_log_dir(path: str) -> None:
    with contextlib.suppress(Exception):
        os.makedirs(path, exist_ok=True)


@dataclass(frozen=True)
class HandlerConfig:
    """Configuration for logging handlers."""

    level: int
    formatter: logging.Formatter
    redactor: logging.Filter


class LoggingFactory:
    """Factory for creating logging components."""

    @staticmethod
    def create_redaction_filter(settings: Settings) -> RedactionFilter:
        return RedactionFilter(settings.api_keys)

    @staticmethod
    def create_formatter() -> ISOFormatter:
        return ISOFormatter(RedactionConfig())

    @staticmethod
    def create_stream_handler(config: HandlerConfig) -> logging.StreamHandler[Any]:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setLevel(config.level)
        handler.setFormatter(config.formatter)
        handler.addFilter(config.redactor)
        return handler

    @staticmethod
    def create_file_handler(logfile: str, config: HandlerConfig) -> RotatingFileHandler:
        handler = RotatingFileHandler(
            logfile,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        handler.setLevel(config.level)
        handler.setFormatter(config.formatter)
        handler.addFilter(config.redactor)
        return handler


def setup_logging(settings: Settings) -> None:
    """Configure structured JSON logging with redaction.

    Sets up:
    - StreamHandler (stderr)
    - RotatingFileHandler (<log_dir>/api.log), skipped if the directory is unusable
    - Redaction of configured API keys and credential headers

    Args:
        settings: Application settings
    """
    ensure_log_dir(settings.log_dir)
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _clear_existing_handlers(root_logger)

    factory = LoggingFactory()
    config = HandlerConfig(
        level=level,
        formatter=factory.create_formatter(),
        redactor=factory.create_redaction_filter(settings),
    )
    root_logger.addHandler(factory.create_stream_handler(config))
    try:
        logfile = os.path.join(settings.log_dir, "api.log")
        root_logger.addHandler(factory.create_file_handler(logfile, config))
    except OSError:
        root_logger.warning("File logging disabled", extra={"path": settings.log_dir})


def _clear_existing_handlers(logger: logging.Logger) -> None:
    for handler in logger.handlers[:]:  # Create a copy to avoid modification during iteration
        logger.removeHandler(handler)
        with contextlib.suppress(Exception):
            handler.close()


class RequestResponseLoggerMiddleware:
    """ASGI middleware that logs one ``request`` record per HTTP request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self.log = logging.getLogger("qwenmt_api.requests")

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        start_ns = time.perf_counter_ns()
        status_holder: dict[str, int | None] = {"status": None}

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                status_holder["status"] = int(message.get("status", 0))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            # No response start means an exception is on its way to the 500 handler
            final_status = status_holder["status"] or 500
            self._log_request_info(scope, start_ns, final_status)
            record_status(final_status)

    def _log_request_info(self, scope: Scope, start_ns: int, status: int | None) -> None:
        duration_ms = (time.perf_counter_ns() - start_ns) / 1_000_000.0

        trace_obj = scope.get("trace_id", "")
        trace_id: str = trace_obj if isinstance(trace_obj, str) else ""

        self.log.info(
            "request",
            extra={
                "trace_id": trace_id,
                "path": scope.get("path", ""),
                "method": scope.get("method", ""),
                "status": status or 0,
                "duration_ms": round(duration_ms, 3),
            },
        )
