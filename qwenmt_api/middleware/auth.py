from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from starlette.types import Receive, Scope, Send

from ..asgi import get_header, get_query_param
from ..log_sanitizer import mask_secret, sanitize_for_log
from ..routes.envelopes import unauthorized

if TYPE_CHECKING:
    from ..settings import Settings


logger = logging.getLogger(__name__)

# Local alias to avoid linter/editor false positives on starlette.types.ASGIApp
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

_OPENAPI_PATHS = frozenset({"/openapi.json", "/docs", "/docs/index.html", "/redoc"})
_PUBLIC_GETS = frozenset({"/", "/health"})

# Authorization schemes accepted, in lookup order
_AUTH_SCHEMES = ("DeepL-Auth-Key ", "Bearer ")


def extract_api_key(scope: Scope) -> str | None:
    """
    Find the caller's API key.

    Lookup order: ``Authorization: DeepL-Auth-Key <k>``,
    ``Authorization: Bearer <k>``, ``X-API-Key: <k>``, ``?api_key=<k>``.
    """
    if authorization := get_header(scope, "authorization"):
        for scheme in _AUTH_SCHEMES:
            if authorization[: len(scheme)].lower() == scheme.lower():
                if key := authorization[len(scheme) :].strip():
                    return key
    if key := (get_header(scope, "x-api-key") or "").strip():
        return key
    if key := (get_query_param(scope, "api_key") or "").strip():
        return key
    return None


class AuthMiddleware:
    """
    ASGI middleware enforcing an API key on translation endpoints when
    ``settings.auth_enabled`` is set. Skips auth for:
      - GET / and GET /health
      - CORS preflight (OPTIONS)
      - /openapi.json and /docs (only when environment == dev and expose_openapi_in_dev is True)

    Rejections use the 401 envelope of the endpoint family being called.
    """

    def __init__(self, app: ASGIApp, settings: Settings):
        self.app = app
        self.settings = settings
        if settings.using_default_key:
            logger.warning(
                "Auth enabled without QWENMT_API_KEYS; accepting the default key",
                extra={"key_hint": mask_secret(next(iter(settings.api_keys)))},
            )

    def _is_auth_skipped(self, scope: Scope) -> bool:
        if not self.settings.auth_enabled:
            return True

        path: str = scope.get("path", "") or ""
        method: str = (scope.get("method") or "GET").upper()

        if method == "OPTIONS":
            return True
        if method == "GET" and path in _PUBLIC_GETS:
            return True

        if path in _OPENAPI_PATHS:
            if self.settings.is_dev and self.settings.expose_openapi_in_dev:
                logger.debug("Auth skipped: OpenAPI docs in dev mode")
                return True
            logger.warning(
                "OpenAPI path blocked outside dev",
                extra={"path": sanitize_for_log(path)},
            )
        return False

    def _is_valid(self, provided: str | None) -> bool:
        # Compare against every key so timing does not reveal which one matched
        provided_b = (provided or "").encode("utf-8")
        matched = False
        for key in self.settings.api_keys:
            if hmac.compare_digest(provided_b, key.encode("utf-8")):
                matched = True
        return matched and provided is not None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http" or self._is_auth_skipped(scope):
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        provided = extract_api_key(scope)
        if self._is_valid(provided):
            await self.app(scope, receive, send)
            return

        trace_id = scope.get("trace_id", "")
        logger.warning(
            "Auth failed",
            extra={
                "path": sanitize_for_log(path),
                "method": scope.get("method", ""),
                "trace_id": trace_id,
                "key_present": provided is not None,
            },
        )
        await unauthorized(path)(scope, receive, send)
