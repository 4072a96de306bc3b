"""HTTP surface for the Qwen-MT queue adapter: DeepL, DeepLX and OpenAI-chat endpoints."""

from .app import create_app

__all__ = ["create_app"]
