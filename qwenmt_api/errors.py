"""
Application-wide exception handlers and HTTP status accounting.

Requests that fail outside a translation family (unknown route, wrong
method, crash) get the canonical ``ErrorResponse`` envelope. Family
endpoints build their own envelopes in ``routes/envelopes.py``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, cast

from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

from qwenmt_core.metrics import inc_counter

from .responses import error_response

if TYPE_CHECKING:
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse


log = logging.getLogger("qwenmt_api.errors")

_HTTP_ERROR_NAMES: dict[int, tuple[str, str]] = {
    status.HTTP_404_NOT_FOUND: ("Not Found", "ERR_NOT_FOUND"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("Method Not Allowed", "ERR_METHOD_NOT_ALLOWED"),
    status.HTTP_413_CONTENT_TOO_LARGE: ("Payload Too Large", "ERR_PAYLOAD_TOO_LARGE"),
}


def trace_id_from_scope(scope: Mapping[str, Any]) -> str:
    trace_id = scope.get("trace_id")
    return trace_id if isinstance(trace_id, str) else ""


def _trace_id_from_request(request: Request) -> str:
    # Prefer the middleware-assigned trace_id in scope
    if trace_id := trace_id_from_scope(request.scope):
        return trace_id
    header_rid = request.headers.get("X-Request-ID") or request.headers.get("X-Trace-Id")
    return header_rid if isinstance(header_rid, str) else ""


def record_status(status_code: int) -> None:
    """Count one finished request in the process-local metrics registry."""
    try:
        inc_counter("requests_total")
        if 400 <= status_code < 500:
            inc_counter("status_4xx")
        if 500 <= status_code < 600:
            inc_counter("status_5xx")
        if status_code in {504, 413}:
            inc_counter(f"status_{status_code}")
    except Exception as e:
        # Do not fail request flow due to metrics issues
        log.debug(
            "Metrics increment failed",
            extra={"status": status_code, "error": str(e)},
            exc_info=False,
        )


def register_exception_handlers(app: FastAPI) -> None:
    """Register API exception handlers."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


def _json_error_response(
    *,
    request: Request,
    status_code: int,
    code: str,
    error: str,
    message: str,
) -> JSONResponse:
    rid = _trace_id_from_request(request)
    endpoint = f"{request.method} {request.url.path}"
    route = request.scope.get("route")
    # FastAPI APIRoute provides operation_id; fallback to name
    operation_id = getattr(route, "operation_id", None) or getattr(route, "name", None)

    return error_response(
        status=status_code,
        code=code,
        message=message,
        error=error,
        endpoint=endpoint,
        operationId=operation_id,
        requestId=rid or None,
    )


def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    exc_obj = cast("StarletteHTTPException", exc)
    status_code = exc_obj.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR
    message = str(exc_obj.detail)

    if status_code in _HTTP_ERROR_NAMES:
        err, code = _HTTP_ERROR_NAMES[status_code]
    else:
        err = "HTTP Error" if status_code < 500 else "Internal Error"
        code = "ERR_HTTP" if status_code < 500 else "ERR_INTERNAL"

    log.warning(
        "HTTPException",
        extra={
            "trace_id": _trace_id_from_request(request),
            "path": request.url.path,
            "method": request.method,
            "status": status_code,
        },
        exc_info=False,
    )

    response = _json_error_response(
        request=request,
        status_code=status_code,
        code=code,
        error=err,
        message=message,
    )
    if exc_obj.headers:
        response.headers.update(exc_obj.headers)
    return response


def unhandled_exception_handler(request: Request, _exc: Exception) -> JSONResponse:
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    # Log stack trace with correlation ID if present
    log.exception(
        "UnhandledException",
        extra={
            "trace_id": _trace_id_from_request(request),
            "path": request.url.path,
            "method": request.method,
            "status": status_code,
        },
    )

    return _json_error_response(
        request=request,
        status_code=status_code,
        code="ERR_INTERNAL",
        error="Internal Error",
        message="An unexpected error occurred.",
    )
