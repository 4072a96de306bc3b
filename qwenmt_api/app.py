from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from anyio import move_on_after
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette import status
from starlette.middleware.gzip import GZipMiddleware
from starlette.types import Message, Receive, Scope, Send

from qwenmt_core import __version__

from .errors import register_exception_handlers
from .logging_config import RequestResponseLoggerMiddleware, setup_logging
from .middleware.auth import AuthMiddleware
from .middleware.body_limit import BodySizeLimitMiddleware
from .middleware.request_id import RequestIDMiddleware
from .responses import error_response
from .services.translator import close_translator_service, configure_translator_service
from .settings import Settings

# Define locally to avoid linter/editor issues with starlette.types.ASGIApp
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

log = logging.getLogger("qwenmt_api.app")


class TimeoutMiddleware:
    """Enforces a timeout for ASGI requests.

    Cancels requests that exceed the specified duration and returns a
    504 Gateway Timeout response, unless the response has already started.
    """

    def __init__(self, app: ASGIApp, timeout_seconds: float = 300.0):
        self.app = app
        self.timeout = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal started
            if message.get("type") == "http.response.start":
                started = True
            await send(message)

        with move_on_after(self.timeout) as cancel_scope:
            await self.app(scope, receive, send_wrapper)
        if cancel_scope.cancelled_caught and not started:
            await self._send_timeout(scope, receive, send)

    async def _send_timeout(self, scope: Scope, receive: Receive, send: Send) -> None:
        trace_id = scope.get("trace_id", "")
        method = scope.get("method", "GET")
        path = scope.get("path", "")
        log.warning(
            "Request timed out",
            extra={"trace_id": trace_id, "path": path, "method": method, "status": 504},
        )

        response = error_response(
            status=status.HTTP_504_GATEWAY_TIMEOUT,
            code="ERR_TIMEOUT",
            message="The request took too long to complete.",
            error="Timeout",
            endpoint=f"{method} {path}",
            requestId=str(trace_id) if isinstance(trace_id, str) and trace_id else None,
        )
        await response(scope, receive, send)


def _get_docs_urls(settings: Settings) -> tuple[str | None, str | None, str | None]:
    """OpenAPI, Swagger UI and Redoc paths in dev (when enabled); all None otherwise."""
    if settings.is_dev and settings.expose_openapi_in_dev:
        return "/openapi.json", "/docs", "/redoc"
    return None, None, None


def _configure_cors(fastapi_app: FastAPI, settings: Settings) -> None:
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
        expose_headers=["X-Trace-Id"],
        allow_credentials=False,
        max_age=86400,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    # The translator (and its HTTP client) is created lazily on first use
    yield
    await close_translator_service()
    log.info("Upstream client closed")


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application with:
    - CORS for browser clients
    - Request ID, body size limit, API-key auth, request timeout
    - Structured logging and request/response logging
    - Unified error handlers
    - Conditional OpenAPI/docs exposure in dev
    """
    settings = settings or Settings()  # reads env with QWENMT_ prefix

    # Initialize logging once per process
    setup_logging(settings)
    log.info(
        "Starting Qwen-MT API",
        extra={
            "env": settings.environment,
            "port": settings.port,
            "upstream": settings.upstream_base_url,
            "auth_enabled": settings.auth_enabled,
        },
    )

    openapi_url, docs_url, redoc_url = _get_docs_urls(settings)

    fastapi_app = FastAPI(
        title="Qwen-MT Translation API",
        version=__version__,
        openapi_url=openapi_url,
        docs_url=docs_url,
        redoc_url=redoc_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    fastapi_app.state.settings = settings
    configure_translator_service(settings.upstream_config())

    register_exception_handlers(fastapi_app)

    # Request pipeline middlewares (order matters, last added is outermost):
    # body limit and auth short-circuit innermost, CORS wraps them so browsers
    # can read 401/413 bodies, then timeout, logging, gzip, and RequestID
    # outermost so it can stamp trace_id on all responses.
    fastapi_app.add_middleware(BodySizeLimitMiddleware, settings=settings)
    fastapi_app.add_middleware(AuthMiddleware, settings=settings)
    _configure_cors(fastapi_app, settings)
    fastapi_app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)
    fastapi_app.add_middleware(RequestResponseLoggerMiddleware)
    fastapi_app.add_middleware(GZipMiddleware, minimum_size=1024)
    # Must be last-added to be outermost
    fastapi_app.add_middleware(RequestIDMiddleware)

    from .routes.chat import router as chat_router
    from .routes.deepl import router as deepl_router
    from .routes.deeplx import router as deeplx_router
    from .routes.health import router as health_router

    fastapi_app.include_router(health_router)
    fastapi_app.include_router(deeplx_router)
    fastapi_app.include_router(deepl_router)
    fastapi_app.include_router(chat_router)

    return fastapi_app
