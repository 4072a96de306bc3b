"""
QueueClient against a scripted upstream (httpx.MockTransport).

Covers the two-phase protocol, the retry policy with its linear backoff,
slot ownership across retries and the attempt deadline.
"""

from __future__ import annotations

import asyncio
import re

import httpx
import pytest

from qwenmt_core.config import UpstreamConfig
from qwenmt_core.errors import (
    ExhaustedRetriesError,
    NoResultError,
    TranslationFailedError,
    UpstreamJoinError,
    UpstreamProcessError,
    UpstreamStreamError,
    UpstreamTimeoutError,
    UpstreamTransientError,
)
from qwenmt_core.upstream import QueueClient, new_session_hash

from .helpers import (
    FakeUpstream,
    build_client,
    chunked,
    completed,
    heartbeat,
    mock_http,
    never_ending,
    process_error,
    unexpected_error,
)


def test_session_hash_shape() -> None:
    hashes = {new_session_hash() for _ in range(50)}
    assert len(hashes) == 50
    for h in hashes:
        assert re.fullmatch(r"[0-9a-f]{12}", h)


class TestProtocol:
    @pytest.mark.asyncio
    async def test_join_then_stream_success(self) -> None:
        fake = FakeUpstream([heartbeat() + completed("你好，世界")])
        async with mock_http(fake) as http:
            client = build_client(fake, http)
            result = await client.translate_one("Hello world", "auto", "ZH")

        assert result == "你好，世界"
        assert len(fake.joins) == 1
        payload = fake.joins[0]
        assert payload["data"] == ["Hello world", "自动检测", "简体中文"]
        assert payload["fn_index"] == 2
        assert payload["trigger_id"] == 11
        assert payload["event_data"] is None
        assert payload["data_type"] == ["textbox", "dropdown", "dropdown"]
        assert fake.data_sessions == [payload["session_hash"]]

    @pytest.mark.asyncio
    async def test_request_shape(self) -> None:
        fake = FakeUpstream([completed("ok")])
        async with mock_http(fake) as http:
            await build_client(fake, http).translate_one("x", "EN", "ZH")

        join = fake.join_requests[0]
        assert join.method == "POST"
        assert join.url.params["__theme"] == "light"
        assert join.url.params["backend_url"] == "/"
        assert join.url.params["t"].isdigit()
        assert join.headers["Origin"] == "https://upstream.test"
        assert join.headers["Content-Type"] == "application/json"

        data = fake.data_requests[0]
        assert data.method == "GET"
        assert data.headers["Accept"] == "text/event-stream"
        assert data.url.params["studio_token"] == ""

    @pytest.mark.asyncio
    async def test_result_split_across_chunks(self) -> None:
        body = completed("Bonjour")
        fake = FakeUpstream([lambda: chunked(body, [7, 11, 3])])
        async with mock_http(fake) as http:
            assert await build_client(fake, http).translate_one("Hello", "EN", "FR") == "Bonjour"
        assert fake.joins[0]["data"][2] == "FR"

    @pytest.mark.asyncio
    async def test_translate_many_keeps_order(self) -> None:
        fake = FakeUpstream([completed("一"), completed("二"), completed("三")])
        async with mock_http(fake) as http:
            client = build_client(fake, http)
            out = await client.translate_many(["one", "two", "three"], "EN", "ZH")
        assert out == ["一", "二", "三"]
        assert [j["data"][0] for j in fake.joins] == ["one", "two", "three"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_join_http_error_is_not_retried(self) -> None:
        fake = FakeUpstream(
            [completed("unused")], join_response=httpx.Response(500, text="queue full")
        )
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http, sleeps).translate_one("x", "auto", "ZH")

        err = info.value
        assert not isinstance(err, ExhaustedRetriesError)
        assert isinstance(err.last_error, UpstreamJoinError)
        assert err.last_error.status_code == 500
        assert err.attempts == 1
        assert sleeps == []
        assert fake.data_sessions == []

    @pytest.mark.asyncio
    async def test_join_without_event_id(self) -> None:
        fake = FakeUpstream([completed("unused")], join_response=httpx.Response(200, json={}))
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http).translate_one("x", "auto", "ZH")
        assert isinstance(info.value.last_error, UpstreamJoinError)
        assert "no event_id" in str(info.value)

    @pytest.mark.asyncio
    async def test_join_with_malformed_body(self) -> None:
        fake = FakeUpstream([completed("unused")], join_response=httpx.Response(200, text="<html>"))
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http).translate_one("x", "auto", "ZH")
        assert isinstance(info.value.last_error, UpstreamJoinError)

    @pytest.mark.asyncio
    async def test_process_error_fails_after_one_attempt(self) -> None:
        fake = FakeUpstream([process_error("text too long"), completed("unused")])
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http, sleeps).translate_one("x", "auto", "ZH")

        assert isinstance(info.value.last_error, UpstreamProcessError)
        assert info.value.attempts == 1
        assert len(fake.joins) == 1
        assert sleeps == []
        assert "translation failed after 1 attempt: process_error: text too long" == str(
            info.value
        )

    @pytest.mark.asyncio
    async def test_empty_process_error_still_fails(self) -> None:
        fake = FakeUpstream([process_error(""), completed("unused")])
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http).translate_one("x", "auto", "ZH")

        assert isinstance(info.value.last_error, UpstreamProcessError)
        assert info.value.attempts == 1
        assert str(info.value.last_error) == "process_error: empty error message"

    @pytest.mark.asyncio
    async def test_stream_without_result(self) -> None:
        fake = FakeUpstream([heartbeat() + "data: [DONE]\n" + completed("too late")])
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http).translate_one("x", "auto", "ZH")
        assert isinstance(info.value.last_error, NoResultError)
        assert info.value.attempts == 1

    @pytest.mark.asyncio
    async def test_data_stream_http_error(self) -> None:
        fake = FakeUpstream([httpx.Response(502, text="bad gateway")])
        async with mock_http(fake) as http:
            with pytest.raises(TranslationFailedError) as info:
                await build_client(fake, http).translate_one("x", "auto", "ZH")
        assert isinstance(info.value.last_error, UpstreamStreamError)
        assert info.value.last_error.status_code == 502

    @pytest.mark.asyncio
    async def test_attempt_deadline(self) -> None:
        fake = FakeUpstream([never_ending])
        async with mock_http(fake) as http:
            client = build_client(fake, http, attempt_timeout_s=0.05)
            with pytest.raises(TranslationFailedError) as info:
                await client.translate_one("x", "auto", "ZH")
        assert isinstance(info.value.last_error, UpstreamTimeoutError)
        assert info.value.attempts == 1


class TestRetry:
    @pytest.mark.asyncio
    async def test_two_transient_failures_then_success(self) -> None:
        fake = FakeUpstream([unexpected_error(), unexpected_error(), completed("done")])
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            result = await build_client(fake, http, sleeps).translate_one("x", "auto", "ZH")

        assert result == "done"
        assert sleeps == [1.0, 2.0]
        hashes = [j["session_hash"] for j in fake.joins]
        assert len(hashes) == 3
        assert len(set(hashes)) == 3
        assert fake.data_sessions == hashes

    @pytest.mark.asyncio
    async def test_exhausted_retries(self) -> None:
        fake = FakeUpstream([unexpected_error("overloaded")])
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            with pytest.raises(ExhaustedRetriesError) as info:
                await build_client(fake, http, sleeps).translate_one("x", "auto", "ZH")

        err = info.value
        assert err.attempts == 3
        assert isinstance(err.last_error, UpstreamTransientError)
        assert err.__cause__ is err.last_error
        assert "after 3 attempts" in str(err)
        assert "overloaded" in str(err)
        assert sleeps == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_single_attempt_budget(self) -> None:
        fake = FakeUpstream([unexpected_error("busy"), completed("unused")])
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            client = build_client(fake, http, sleeps, max_attempts=1)
            with pytest.raises(ExhaustedRetriesError) as info:
                await client.translate_one("x", "auto", "ZH")

        assert info.value.attempts == 1
        assert info.value.__cause__ is info.value.last_error
        assert sleeps == []
        assert len(fake.joins) == 1

    @pytest.mark.asyncio
    async def test_session_not_found_is_retried(self) -> None:
        fake = FakeUpstream(
            [httpx.Response(404, json={"detail": "Session not found."}), completed("ok")]
        )
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            result = await build_client(fake, http, sleeps).translate_one("x", "auto", "ZH")
        assert result == "ok"
        assert sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_backoff_step_is_configurable(self) -> None:
        fake = FakeUpstream([unexpected_error()])
        sleeps: list[float] = []
        async with mock_http(fake) as http:
            client = build_client(fake, http, sleeps, max_attempts=4, backoff_step_s=0.5)
            with pytest.raises(ExhaustedRetriesError):
                await client.translate_one("x", "auto", "ZH")
        assert sleeps == [0.5, 1.0, 1.5]

    @pytest.mark.asyncio
    async def test_job_holds_one_slot_across_retries(self) -> None:
        fake = FakeUpstream([unexpected_error(), completed("ok")])
        observed: list[tuple[int, int]] = []

        async with mock_http(fake) as http:
            client: QueueClient

            async def recording_sleep(delay: float) -> None:
                await asyncio.sleep(0)
                observed.append((client.limiter.active, client.limiter.queued))

            client = QueueClient(
                UpstreamConfig(base_url="https://upstream.test", max_concurrency=1),
                client=http,
                sleep=recording_sleep,
            )
            first = asyncio.ensure_future(client.translate_one("a", "auto", "ZH"))
            second = asyncio.ensure_future(client.translate_one("b", "auto", "ZH"))
            results = await asyncio.gather(first, second)

        assert results == ["ok", "ok"]
        # While job "a" backs off it still holds the only slot and "b" waits.
        assert observed == [(1, 1)]
        assert [j["data"][0] for j in fake.joins] == ["a", "a", "b"]
