"""
Translation service used by the HTTP routes.

Wraps one ``QueueClient`` (and through it one ``httpx.AsyncClient`` and one
``AdmissionLimiter``) for the whole process. Routes reach it through
``get_translator_service()`` so tests can swap in a client backed by a fake
upstream.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from qwenmt_core import QueueClient, UpstreamConfig
from qwenmt_core.languages import normalize

from ..settings import Settings

log = logging.getLogger("qwenmt_api.services.translator")


class TranslatorService:
    """Thin async facade over the upstream queue client."""

    def __init__(self, client: QueueClient) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: UpstreamConfig) -> TranslatorService:
        log.info(
            "Creating upstream client",
            extra={
                "base_url": config.base_url,
                "max_concurrency": config.max_concurrency,
                "max_attempts": config.max_attempts,
            },
        )
        return cls(QueueClient(config))

    @property
    def client(self) -> QueueClient:
        return self._client

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        return await self._client.translate_one(text, source_lang, target_lang)

    async def translate_batch(
        self, texts: Sequence[str], source_lang: str, target_lang: str
    ) -> list[str]:
        return await self._client.translate_many(texts, source_lang, target_lang)

    @staticmethod
    def display_language(tag: str) -> str:
        """Upstream display string for ``tag`` (what DeepL clients see as the detected language)."""
        return normalize(tag)

    async def aclose(self) -> None:
        await self._client.aclose()


# Module-level facade
class _TranslatorServiceSingleton:
    """Singleton holder for translator service."""

    def __init__(self) -> None:
        self._instance: TranslatorService | None = None
        self._config: UpstreamConfig | None = None

    def configure(self, config: UpstreamConfig) -> None:
        """Build later instances from ``config``; an installed instance is kept."""
        self._config = config

    def get_instance(self) -> TranslatorService:
        """Get or create the translator service instance."""
        if self._instance is None:
            config = self._config or Settings().upstream_config()
            self._instance = TranslatorService.from_config(config)
        return self._instance

    def set_instance(self, service: TranslatorService | None) -> None:
        self._instance = service

    async def close(self) -> None:
        if self._instance is not None:
            instance, self._instance = self._instance, None
            await instance.aclose()


_singleton = _TranslatorServiceSingleton()


def configure_translator_service(config: UpstreamConfig) -> None:
    """Set the upstream config the process-wide service is built from."""
    _singleton.configure(config)


def get_translator_service() -> TranslatorService:
    """Get or create a singleton translator service instance."""
    return _singleton.get_instance()


def set_translator_service(service: TranslatorService | None) -> None:
    """Replace the process-wide service (used by tests)."""
    _singleton.set_instance(service)


async def close_translator_service() -> None:
    await _singleton.close()
