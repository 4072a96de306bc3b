from __future__ import annotations

from typing import Any, Literal, cast

from pydantic import BaseModel, Field, field_validator, model_validator

# Shared validation messages
TEXT_BLANK_ERROR = "text must not be empty"
TARGET_LANG_ERROR = "target_lang must not be empty"

DEFAULT_SOURCE_LANG = "auto"
DEFAULT_CHAT_TARGET_LANG = "ZH"


def _default_source_lang(v: Any) -> Any:
    # null or blank means auto-detect
    if v is None or (isinstance(v, str) and not v.strip()):
        return DEFAULT_SOURCE_LANG
    return v.strip() if isinstance(v, str) else v


def _require_lang(v: str) -> str:
    if v := v.strip():
        return v
    raise ValueError(TARGET_LANG_ERROR)


# -----------------------
# DeepLX DTOs
# -----------------------


class DeepLXRequest(BaseModel):
    text: str
    source_lang: str = Field(default=DEFAULT_SOURCE_LANG)
    target_lang: str

    @field_validator("text")
    @classmethod
    def _check_text(cls, v: str) -> str:
        # Whitespace is part of the text to translate; only reject blank input
        if v.strip():
            return v
        raise ValueError(TEXT_BLANK_ERROR)

    @field_validator("source_lang", mode="before")
    @classmethod
    def _default_source(cls, v: Any) -> Any:
        return _default_source_lang(v)

    @field_validator("target_lang")
    @classmethod
    def _check_target(cls, v: str) -> str:
        return _require_lang(v)


class DeepLXResponse(BaseModel):
    code: int = 200
    id: int
    data: str


# -----------------------
# DeepL DTOs
# -----------------------


class DeepLRequest(BaseModel):
    text: list[str] = Field(..., min_length=1)
    source_lang: str = Field(default=DEFAULT_SOURCE_LANG)
    target_lang: str

    @field_validator("text")
    @classmethod
    def _check_texts(cls, v: list[str]) -> list[str]:
        if any(not t.strip() for t in v):
            raise ValueError("text entries must not be empty")
        return v

    @field_validator("source_lang", mode="before")
    @classmethod
    def _default_source(cls, v: Any) -> Any:
        return _default_source_lang(v)

    @field_validator("target_lang")
    @classmethod
    def _check_target(cls, v: str) -> str:
        return _require_lang(v)


class DeepLTranslation(BaseModel):
    detected_source_language: str
    text: str


class DeepLResponse(BaseModel):
    translations: list[DeepLTranslation] = Field(
        default_factory=lambda: cast("list[DeepLTranslation]", [])
    )


# -----------------------
# OpenAI chat DTOs
# -----------------------


class ChatMessage(BaseModel):
    role: str
    content: Any = None


class TranslationOptions(BaseModel):
    source_lang: str | None = None
    target_lang: str | None = None


class ChatCompletionRequest(BaseModel):
    model: str | None = None
    messages: list[ChatMessage] = Field(..., min_length=1)
    stream: bool = False
    translation_options: TranslationOptions | None = None

    @model_validator(mode="after")
    def _check_last_message(self) -> ChatCompletionRequest:
        last = self.messages[-1]
        if last.role != "user" or not isinstance(last.content, str) or not last.content:
            raise ValueError("last message must be from user and have content")
        return self

    @property
    def text(self) -> str:
        return cast("str", self.messages[-1].content)

    @property
    def source_lang(self) -> str:
        opts = self.translation_options
        return (opts.source_lang if opts else None) or DEFAULT_SOURCE_LANG

    @property
    def target_lang(self) -> str:
        opts = self.translation_options
        return (opts.target_lang if opts else None) or DEFAULT_CHAT_TARGET_LANG


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class ChatChoice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: Literal["stop"] = "stop"


class ChatUsage(BaseModel):
    # Counted in characters; the upstream does not report tokens
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionResponse(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[ChatChoice]
    usage: ChatUsage


class ChunkDelta(BaseModel):
    content: str | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChunkDelta
    finish_reason: Literal["stop"] | None = None


class ChatCompletionChunk(BaseModel):
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: list[ChunkChoice]


# -----------------------
# Health / service info
# -----------------------


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    service: str = "qwenmtapi"


class ServiceInfo(BaseModel):
    service: str
    version: str
    endpoints: dict[str, str]
    languages: dict[str, str]
