"""Fake upstream for exercising QueueClient over httpx.MockTransport."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from qwenmt_core.config import UpstreamConfig
from qwenmt_core.upstream import QueueClient

BASE_URL = "https://upstream.test"


def data_line(obj: Any) -> str:
    return f"data: {json.dumps(obj, ensure_ascii=False)}\n\n"


def completed(text: str) -> str:
    return data_line({"msg": "process_completed", "output": {"data": [text]}, "success": True})


def process_error(message: str) -> str:
    return data_line({"msg": "process_completed", "output": {"error": message}, "success": False})


def unexpected_error(message: str = "upstream hiccup") -> str:
    return data_line({"msg": "unexpected_error", "message": message})


def heartbeat() -> str:
    return data_line({"msg": "heartbeat"})


async def chunked(body: str, sizes: Sequence[int]) -> AsyncIterator[bytes]:
    """Yield ``body`` encoded as UTF-8 in chunks of the given byte sizes."""
    raw = body.encode("utf-8")
    pos = 0
    for size in sizes:
        yield raw[pos : pos + size]
        pos += size
    if pos < len(raw):
        yield raw[pos:]


async def never_ending() -> AsyncIterator[bytes]:
    yield heartbeat().encode("utf-8")
    await asyncio.sleep(3600)


class FakeUpstream:
    """
    Scripted upstream. ``streams`` holds one entry per attempt: either an SSE
    body string, an ``httpx.Response`` to return from the data endpoint, or a
    callable producing one.
    """

    def __init__(self, streams: Sequence[Any], *, join_response: httpx.Response | None = None):
        self.streams = list(streams)
        self.join_response = join_response
        self.joins: list[dict[str, Any]] = []
        self.join_requests: list[httpx.Request] = []
        self.data_sessions: list[str] = []
        self.data_requests: list[httpx.Request] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/gradio_api/queue/join":
            self.join_requests.append(request)
            self.joins.append(json.loads(request.content))
            if self.join_response is not None:
                return self.join_response
            return httpx.Response(200, json={"event_id": f"evt-{len(self.joins)}"})

        if request.url.path == "/gradio_api/queue/data":
            self.data_requests.append(request)
            self.data_sessions.append(request.url.params["session_hash"])
            idx = min(len(self.data_sessions), len(self.streams)) - 1
            script = self.streams[idx]
            if callable(script):
                script = script()
            if isinstance(script, httpx.Response):
                return script
            return httpx.Response(
                200, content=script, headers={"content-type": "text/event-stream"}
            )

        return httpx.Response(404, json={"detail": "Not Found"})


def build_client(
    fake: FakeUpstream,
    http: httpx.AsyncClient,
    sleeps: list[float] | None = None,
    **overrides: Any,
) -> QueueClient:
    recorded = sleeps if sleeps is not None else []

    async def fake_sleep(delay: float) -> None:
        recorded.append(delay)

    config = UpstreamConfig(base_url=BASE_URL, **overrides)
    return QueueClient(config, client=http, sleep=fake_sleep)


def mock_http(fake: FakeUpstream) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
