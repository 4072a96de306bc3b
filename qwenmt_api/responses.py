"""
Canonical error envelope for failures that do not belong to one API family
(unknown routes, wrong methods, oversized bodies, timeouts, crashes).

Family-specific envelopes (DeepL, DeepLX, OpenAI chat) live in
``routes/envelopes.py``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    # Short, human category (e.g. "Not Found", "Payload Too Large")
    error: str = Field(...)
    # HTTP status code
    status: int = Field(...)
    # Machine-usable code (e.g., "ERR_NOT_FOUND", "ERR_TIMEOUT", "ERR_INTERNAL")
    code: str = Field(...)
    # Human-readable message
    message: str = Field(...)
    details: Any | None = Field(default=None)
    requestId: str | None = Field(default=None)
    # "METHOD PATH"
    endpoint: str = Field(...)
    operationId: str | None = Field(default=None)
    # RFC3339 timestamp
    timestamp: str = Field(...)

    model_config = {"populate_by_name": True}


def _now_rfc3339() -> str:
    return datetime.now(UTC).isoformat()


def error_response(
    status: int,
    code: str,
    message: str,
    *,
    error: str,
    details: Any | None = None,
    endpoint: str,
    operationId: str | None = None,
    requestId: str | None = None,
) -> JSONResponse:
    rid = requestId or str(uuid4())
    body = ErrorResponse(
        error=error,
        status=status,
        code=code,
        message=message,
        details=details,
        requestId=rid,
        endpoint=endpoint,
        operationId=operationId,
        timestamp=_now_rfc3339(),
    )
    return JSONResponse(
        content=body.model_dump(by_alias=True, exclude_none=True), status_code=status
    )
