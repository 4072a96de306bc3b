"""
Client for the upstream Gradio "join queue, then stream results" protocol.

One translation attempt:
  1. POST {base}/gradio_api/queue/join with the job description and a fresh
     session hash; the response must carry an ``event_id``.
  2. GET {base}/gradio_api/queue/data?session_hash=... and decode the pushed
     events until a completion, an error, or the end of the stream.

A job is up to ``max_attempts`` attempts with linear backoff between them.
Only failures accepted by ``policy.is_retryable`` are retried, every attempt
mints a new session hash, and the whole job holds a single AdmissionLimiter
slot.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import anyio
import httpx

from .config import UpstreamConfig
from .errors import (
    ExhaustedRetriesError,
    NoResultError,
    TranslationFailedError,
    UpstreamError,
    UpstreamJoinError,
    UpstreamProcessError,
    UpstreamStreamError,
    UpstreamTimeoutError,
    UpstreamTransientError,
)
from .languages import normalize
from .limiter import AdmissionLimiter
from .metrics import inc_counter
from .policy import RetryPolicy, is_retryable
from .sse import StreamEvent, iter_events

__all__ = ["QueueClient", "TranslationJob", "new_session_hash"]

log = logging.getLogger("qwenmt_core.upstream")

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/138.0.0.0 Safari/537.36 Edg/138.0.0.0"
)

BROWSER_HEADERS: dict[str, str] = {
    "Accept-Language": "en-US,en;q=0.9,zh-CN;q=0.8,zh;q=0.7",
    "Priority": "u=1, i",
    "Sec-Ch-Ua": '"Not)A;Brand";v="8", "Chromium";v="138", "Microsoft Edge";v="138"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"macOS"',
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "User-Agent": USER_AGENT,
    "X-Studio-Token": "",
}

DATA_TYPES = ["textbox", "dropdown", "dropdown"]

_BODY_PREVIEW = 512


def new_session_hash() -> str:
    """12 lowercase hex characters (48 bits) from the OS CSPRNG."""
    return secrets.token_hex(6)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _preview(text: str) -> str:
    return (text or "")[:_BODY_PREVIEW]


@dataclass(frozen=True)
class TranslationJob:
    """One attempt's worth of work; languages are already upstream display strings."""

    text: str
    source_lang: str
    target_lang: str
    session_hash: str

    def join_payload(self, config: UpstreamConfig) -> dict[str, Any]:
        return {
            "data": [self.text, self.source_lang, self.target_lang],
            "event_data": None,
            "fn_index": config.fn_index,
            "trigger_id": config.trigger_id,
            "data_type": list(DATA_TYPES),
            "session_hash": self.session_hash,
        }


class QueueClient:
    """
    Translate text through the upstream queue.

    The client is async and owns its ``httpx.AsyncClient`` unless one is
    injected (tests pass one built on ``httpx.MockTransport``). ``sleep`` and
    ``token_factory`` are injectable so backoff and session hashes can be
    observed.
    """

    def __init__(
        self,
        config: UpstreamConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        limiter: AdmissionLimiter | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        token_factory: Callable[[], str] = new_session_hash,
    ) -> None:
        self._config = config or UpstreamConfig()
        self._policy = RetryPolicy(
            max_attempts=self._config.max_attempts,
            backoff_step=self._config.backoff_step_s,
        )
        self._limiter = limiter or AdmissionLimiter(self._config.max_concurrency)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                self._config.attempt_timeout_s,
                connect=self._config.connect_timeout_s,
            ),
            follow_redirects=True,
        )
        self._sleep = sleep
        self._token_factory = token_factory

    @property
    def config(self) -> UpstreamConfig:
        return self._config

    @property
    def limiter(self) -> AdmissionLimiter:
        return self._limiter

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> QueueClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def translate_one(self, text: str, source_lang: str, target_lang: str) -> str:
        """
        Translate a single text.

        Raises:
            TranslationFailedError: the job ended without a translation
                (ExhaustedRetriesError when every attempt was spent on
                retryable failures).
        """
        src = normalize(source_lang)
        tgt = normalize(target_lang)
        return await self._limiter.run(lambda: self._run_job(text, src, tgt))

    async def translate_many(
        self, texts: Iterable[str], source_lang: str, target_lang: str
    ) -> list[str]:
        """Translate ``texts`` one after another; the first failure aborts the batch."""
        results: list[str] = []
        for text in texts:
            results.append(await self.translate_one(text, source_lang, target_lang))
        return results

    # ------------------------------------------------------------------
    # Job / attempt machinery
    # ------------------------------------------------------------------

    async def _run_job(self, text: str, source_lang: str, target_lang: str) -> str:
        attempts = 0

        while True:
            if attempts > 0:
                delay = self._policy.delay_before(attempts)
                inc_counter("upstream_retries")
                log.info(
                    "Retrying translation",
                    extra={"attempt": attempts + 1, "delay_s": delay},
                )
                await self._sleep(delay)

            attempts += 1
            job = TranslationJob(text, source_lang, target_lang, self._token_factory())
            try:
                result = await self._attempt(job)
            except UpstreamError as exc:
                log.info(
                    "Translation attempt failed",
                    extra={
                        "attempt": attempts,
                        "session_hash": job.session_hash,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )
                if is_retryable(exc) and attempts < self._policy.max_attempts:
                    continue
                raise self._job_failed(exc, attempts) from exc

            inc_counter("translations_ok")
            return result

    def _job_failed(self, last_error: UpstreamError, attempts: int) -> TranslationFailedError:
        inc_counter("translations_failed")
        log.warning(
            "Translation failed",
            extra={
                "attempts": attempts,
                "error_type": type(last_error).__name__,
                "error": str(last_error),
            },
        )
        if attempts >= self._policy.max_attempts and is_retryable(last_error):
            return ExhaustedRetriesError(last_error, attempts)
        return TranslationFailedError(last_error, attempts)

    async def _attempt(self, job: TranslationJob) -> str:
        """
        Run one join + stream cycle under the attempt deadline.

        Raises:
            UpstreamError: any per-attempt failure.
        """
        inc_counter("upstream_attempts")
        timeout = self._config.attempt_timeout_s
        try:
            with anyio.fail_after(timeout):
                event_id = await self._join(job)
                log.debug(
                    "Joined queue",
                    extra={"session_hash": job.session_hash, "event_id": event_id},
                )
                return await self._stream(job)
        except TimeoutError as exc:
            raise UpstreamTimeoutError(f"attempt exceeded {timeout:g}s") from exc

    async def _join(self, job: TranslationJob) -> str:
        """Submit the job and return the upstream event id.

        Raises:
            UpstreamJoinError: on transport errors, non-2xx status, a body that is
                not a JSON object, or a missing ``event_id``.
        """
        ts = _now_ms()
        try:
            resp = await self._client.post(
                self._config.join_url,
                params={"t": ts, "__theme": "light", "backend_url": "/"},
                json=job.join_payload(self._config),
                headers=self._join_headers(ts),
            )
        except httpx.RequestError as exc:
            raise UpstreamJoinError(f"failed to join queue: {exc}") from exc

        if not resp.is_success:
            raise UpstreamJoinError(
                f"failed to join queue: HTTP {resp.status_code} {_preview(resp.text)}",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamJoinError(
                f"failed to parse join response: {exc}, body: {_preview(resp.text)}",
                status_code=resp.status_code,
            ) from exc

        event_id = (
            cast("Mapping[str, Any]", body).get("event_id") if isinstance(body, Mapping) else None
        )
        if not event_id:
            raise UpstreamJoinError(
                f"failed to join queue, no event_id in response: {_preview(resp.text)}",
                status_code=resp.status_code,
            )
        return str(event_id)

    async def _stream(self, job: TranslationJob) -> str:
        """Consume the data stream for ``job`` until a terminal event.

        Raises:
            UpstreamStreamError: the stream could not be opened or broke off.
            UpstreamProcessError: a completion event carried ``output.error``.
            UpstreamTransientError: an ``unexpected_error`` event arrived.
            NoResultError: the stream ended without any of the above.
        """
        ts = _now_ms()
        try:
            async with self._client.stream(
                "GET",
                self._config.data_url,
                params={"session_hash": job.session_hash, "studio_token": ""},
                headers=self._data_headers(ts),
            ) as resp:
                if not resp.is_success:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise UpstreamStreamError(
                        f"failed to open data stream: HTTP {resp.status_code} {_preview(body)}",
                        status_code=resp.status_code,
                    )
                async for event in iter_events(resp.aiter_bytes()):
                    text = self._interpret(event)
                    if text is not None:
                        return text
        except httpx.RequestError as exc:
            raise UpstreamStreamError(f"data stream failed: {exc}") from exc

        raise NoResultError()

    @staticmethod
    def _interpret(event: StreamEvent) -> str | None:
        """Return the translation carried by ``event``, raise on error events, else None."""
        if event.is_unexpected_error:
            raise UpstreamTransientError(
                f"unexpected_error: {event.message or 'unexpected_error occurred'}"
            )
        if event.is_completed:
            if (err := event.output_error()) is not None:
                raise UpstreamProcessError(f"process_error: {err or 'empty error message'}")
            return event.output_text()
        return None

    def _referer(self, ts: int) -> str:
        return f"{self._config.base_url}/?t={ts}&__theme=light&backend_url=/"

    def _join_headers(self, ts: int) -> dict[str, str]:
        return BROWSER_HEADERS | {
            "Accept": "*/*",
            "Content-Type": "application/json",
            "Origin": self._config.base_url,
            "Referer": self._referer(ts),
        }

    def _data_headers(self, ts: int) -> dict[str, str]:
        return BROWSER_HEADERS | {
            "Accept": "text/event-stream",
            "Referer": self._referer(ts),
        }
