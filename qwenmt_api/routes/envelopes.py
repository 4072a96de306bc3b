"""
Error envelopes for the three public API families.

Each family answers failures in the shape its clients already parse:

- DeepL:  ``{"error": "<message>"}``
- DeepLX: ``{"code": <status>, "id": <ms timestamp>, "data": "", "message": "<message>"}``
- OpenAI chat: ``{"error": {"message": ..., "type": ..., "code": <status>}}``
"""

from __future__ import annotations

import time
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette import status

UNAUTHORIZED_MESSAGE = "Unauthorized: Invalid or missing API key"
UNAUTHORIZED_GENERIC_MESSAGE = "Unauthorized: Missing or invalid API key"
INVALID_JSON_MESSAGE = "Invalid JSON"

DEEPL_PATHS = frozenset({"/v2/translate", "/api/translate"})
DEEPLX_PATH = "/translate"


def now_ms() -> int:
    return int(time.time() * 1000)


def describe_invalid(exc: Exception) -> str:
    """One-line reason for a rejected request body.

    ``request.json()`` failures (decode errors) become ``Invalid JSON``; a
    pydantic ``ValidationError`` becomes ``<field>: <reason>`` for its first
    error.
    """
    if not isinstance(exc, ValidationError):
        return INVALID_JSON_MESSAGE
    errors = exc.errors(include_url=False)
    if not errors:
        return "invalid request"
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    msg = str(first.get("msg", "invalid value")).removeprefix("Value error, ")
    return f"{loc}: {msg}" if loc else msg


def deepl_error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def deeplx_error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    body: dict[str, Any] = {
        "code": status_code,
        "id": now_ms(),
        "data": "",
        "message": message,
    }
    return JSONResponse(body, status_code=status_code)


def chat_error(message: str, status_code: int = status.HTTP_400_BAD_REQUEST) -> JSONResponse:
    error_type = "invalid_request_error" if status_code < 500 else "upstream_error"
    return JSONResponse(
        {"error": {"message": message, "type": error_type, "code": status_code}},
        status_code=status_code,
    )


def unauthorized(path: str) -> JSONResponse:
    """401 in the envelope of whichever family ``path`` belongs to."""
    if path in DEEPL_PATHS:
        return deepl_error(UNAUTHORIZED_MESSAGE, status.HTTP_401_UNAUTHORIZED)
    if path == DEEPLX_PATH:
        return deeplx_error(UNAUTHORIZED_MESSAGE, status.HTTP_401_UNAUTHORIZED)
    return JSONResponse(
        {
            "code": status.HTTP_401_UNAUTHORIZED,
            "message": UNAUTHORIZED_GENERIC_MESSAGE,
            "data": "",
        },
        status_code=status.HTTP_401_UNAUTHORIZED,
    )
