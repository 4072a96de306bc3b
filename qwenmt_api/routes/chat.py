"""
OpenAI-compatible chat completions backed by the translation queue.

The last user message is the text to translate; languages come from the
non-standard ``translation_options`` object. Streaming clients receive the
finished translation as a single content chunk followed by a stop chunk and
``data: [DONE]``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator

import orjson
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette import status

from qwenmt_core import TranslationFailedError
from qwenmt_core.sse import DONE_SENTINEL, EVENT_PREFIX

from ..schemas import (
    AssistantMessage,
    ChatChoice,
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatUsage,
    ChunkChoice,
    ChunkDelta,
)
from ..services import translator
from ..settings import Settings
from .envelopes import chat_error, describe_invalid

router = APIRouter()

log = logging.getLogger("qwenmt_api.routes.chat")


def _completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4()}"


def _sse(chunk: ChatCompletionChunk | str) -> bytes:
    if isinstance(chunk, str):
        return f"{EVENT_PREFIX} {chunk}\n\n".encode()
    payload = orjson.dumps(chunk.model_dump(exclude_none=True))
    return EVENT_PREFIX.encode() + b" " + payload + b"\n\n"


async def _single_chunk_stream(
    completion_id: str, created: int, model: str, content: str
) -> AsyncIterator[bytes]:
    yield _sse(
        ChatCompletionChunk(
            id=completion_id,
            created=created,
            model=model,
            choices=[ChunkChoice(delta=ChunkDelta(content=content))],
        )
    )
    yield _sse(
        ChatCompletionChunk(
            id=completion_id,
            created=created,
            model=model,
            choices=[ChunkChoice(delta=ChunkDelta(), finish_reason="stop")],
        )
    )
    yield _sse(DONE_SENTINEL)


@router.post(
    "/v1/chat/completions",
    tags=["chat"],
    response_model=ChatCompletionResponse,
)
async def chat_completions(
    request: Request,
) -> ChatCompletionResponse | StreamingResponse | JSONResponse:
    try:
        req = ChatCompletionRequest.model_validate(await request.json())
    except ValueError as exc:
        return chat_error(describe_invalid(exc))

    settings: Settings = request.app.state.settings
    model = req.model or settings.default_model
    text = req.text
    try:
        translated = await translator.get_translator_service().translate(
            text, req.source_lang, req.target_lang
        )
    except TranslationFailedError as exc:
        log.warning(
            "Chat translation failed",
            extra={"attempts": exc.attempts, "stream": req.stream},
        )
        return chat_error(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    completion_id = _completion_id()
    created = int(time.time())

    if req.stream:
        return StreamingResponse(
            _single_chunk_stream(completion_id, created, model, translated),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"},
        )

    return ChatCompletionResponse(
        id=completion_id,
        created=created,
        model=model,
        choices=[ChatChoice(message=AssistantMessage(content=translated))],
        usage=ChatUsage(
            prompt_tokens=len(text),
            completion_tokens=len(translated),
            total_tokens=len(text) + len(translated),
        ),
    )
