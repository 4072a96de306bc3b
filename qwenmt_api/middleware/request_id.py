from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable

from starlette.types import Message, Receive, Scope, Send

from ..asgi import get_header

# Local alias to avoid linter/editor false positives on starlette.types.ASGIApp
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

_MAX_INBOUND_ID = 128


def _inbound_request_id(scope: Scope) -> str | None:
    rid = get_header(scope, "x-request-id")
    if rid and len(rid) <= _MAX_INBOUND_ID and rid.isprintable():
        return rid
    return None


class RequestIDMiddleware:
    """
    ASGI middleware that assigns a per-request trace_id and exposes it via:
      - scope["trace_id"]
      - response header "X-Trace-Id"

    A well-formed inbound ``X-Request-ID`` is reused; otherwise a UUID4 is minted.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        trace_id = _inbound_request_id(scope) or str(uuid.uuid4())
        scope["trace_id"] = trace_id

        async def send_wrapper(message: Message) -> None:
            if message.get("type") == "http.response.start":
                headers = message.setdefault("headers", [])
                headers.append((b"x-trace-id", trace_id.encode("latin-1")))
            await send(message)

        await self.app(scope, receive, send_wrapper)
