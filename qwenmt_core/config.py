"""
Upstream client configuration.

The core never reads the environment; the HTTP layer builds an
UpstreamConfig from its settings and hands it over.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["DEFAULT_BASE_URL", "UpstreamConfig"]

DEFAULT_BASE_URL = "https://qwen-qwen3-mt-demo.ms.show"


def _normalize_base_url(base_url: str) -> str:
    """Strip whitespace and trailing slashes so paths can be appended safely."""
    return str(base_url or "").strip().rstrip("/")


@dataclass(frozen=True)
class UpstreamConfig:
    """Frozen snapshot of upstream connection and retry settings."""

    base_url: str = DEFAULT_BASE_URL
    max_concurrency: int = 2
    max_attempts: int = 3
    backoff_step_s: float = 1.0
    connect_timeout_s: float = 10.0
    attempt_timeout_s: float = 120.0
    # Gradio function slot of the translation handler on the demo page.
    fn_index: int = 2
    trigger_id: int = 11

    def __post_init__(self) -> None:
        base = _normalize_base_url(self.base_url)
        if not base:
            raise ValueError("base_url must be set")
        object.__setattr__(self, "base_url", base)

    @property
    def join_url(self) -> str:
        return f"{self.base_url}/gradio_api/queue/join"

    @property
    def data_url(self) -> str:
        return f"{self.base_url}/gradio_api/queue/data"
