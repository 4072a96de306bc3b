"""
ASGI middleware for enforcing request body size limits.

A declared Content-Length over the limit is rejected up front; bodies
without one are buffered up to the limit and replayed downstream.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from starlette import status
from starlette.types import Message, Receive, Scope, Send

from ..asgi import get_header
from ..responses import error_response

if TYPE_CHECKING:
    from ..settings import Settings


# Local alias to avoid linter/editor false positives on starlette.types.ASGIApp
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

HTTP_REQUEST = "http.request"


class BodySizeLimitMiddleware:
    """
    Reject POST/PUT/PATCH bodies larger than ``settings.max_request_body_bytes``
    with a 413 ``ErrorResponse``.
    """

    def __init__(self, app: ASGIApp, settings: Settings):
        self.app = app
        self.max_bytes = int(settings.max_request_body_bytes)

    @staticmethod
    def _method_allows_body(scope: Scope) -> bool:
        method = (scope.get("method") or "GET").upper()
        return method in ("POST", "PUT", "PATCH")

    @staticmethod
    def _parse_content_length(value: str) -> int | None:
        try:
            return int(value)
        except ValueError:
            return None

    def _too_large_response(self, scope: Scope) -> JSONResponse:
        trace_id = scope.get("trace_id", "")
        method = scope.get("method") or "GET"
        path = scope.get("path", "")
        return error_response(
            status=status.HTTP_413_CONTENT_TOO_LARGE,
            code="ERR_PAYLOAD_TOO_LARGE",
            message=(
                f"Request body exceeds the maximum allowed size of {self.max_bytes} bytes."
            ),
            error="Payload Too Large",
            endpoint=f"{method} {path}",
            requestId=(str(trace_id) if isinstance(trace_id, str) and trace_id else None),
        )

    async def _drain_body(self, receive: Receive) -> tuple[list[bytes], Message | None, int]:
        """Read the body into memory, stopping as soon as it passes the limit."""
        total = 0
        parts: list[bytes] = []
        extra_message: Message | None = None

        while True:
            message: Message = await receive()
            if message.get("type") != HTTP_REQUEST:
                extra_message = message
                break

            if chunk := (message.get("body") or b""):
                total += len(chunk)
                if total > self.max_bytes:
                    break
                parts.append(chunk)

            if not message.get("more_body", False):
                break

        return parts, extra_message, total

    @staticmethod
    def _create_replay_queue(
        body_parts: list[bytes], extra_message: Message | None
    ) -> list[Message]:
        replay_queue: list[Message] = [
            {
                "type": HTTP_REQUEST,
                "body": part,
                "more_body": i < (len(body_parts) - 1),
            }
            for i, part in enumerate(body_parts)
        ] or [{"type": HTTP_REQUEST, "body": b"", "more_body": False}]

        # A disconnect seen while draining still has to reach the app
        if extra_message is not None:
            replay_queue.append(extra_message)
        return replay_queue

    async def _drain_and_forward(self, scope: Scope, receive: Receive, send: Send) -> None:
        body_parts, extra_message, total = await self._drain_body(receive)
        if total > self.max_bytes:
            await self._too_large_response(scope)(scope, receive, send)
            return

        replay_queue = self._create_replay_queue(body_parts, extra_message)

        async def replay_receive() -> Message:
            return replay_queue.pop(0) if replay_queue else await receive()

        await self.app(scope, replay_receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http" or not self._method_allows_body(scope):
            await self.app(scope, receive, send)
            return

        if content_length := get_header(scope, "content-length"):
            length = self._parse_content_length(content_length)
            if length is not None and length > self.max_bytes:
                await self._too_large_response(scope)(scope, receive, send)
                return
            await self.app(scope, receive, send)
            return

        # No Content-Length header: drain and enforce limit before passing downstream
        await self._drain_and_forward(scope, receive, send)
