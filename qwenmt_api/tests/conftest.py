from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from qwenmt_api.app import create_app
from qwenmt_api.services import translator
from qwenmt_api.services.translator import TranslatorService
from qwenmt_api.settings import Settings
from qwenmt_core import metrics
from qwenmt_core.tests.helpers import FakeUpstream, build_client, completed, mock_http

TEST_KEY = "sk-test-0123456789"


@pytest.fixture(autouse=True)
def api_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Isolate every test from the developer's environment and the shared metrics."""
    for name in (
        "QWENMT_AUTH_ENABLED",
        "QWENMT_API_KEYS",
        "QWENMT_ALLOWED_ORIGINS",
        "QWENMT_DEFAULT_MODEL",
        "QWENMT_REQUEST_TIMEOUT_SECONDS",
        "QWENMT_MAX_REQUEST_BODY_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("QWENMT_ENV", "dev")
    monkeypatch.setenv("QWENMT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("QWENMT_LOG_LEVEL", "WARNING")
    metrics.reset()


@pytest.fixture
def install_upstream() -> Iterator[Callable[..., FakeUpstream]]:
    """Route the app's translator through a scripted fake upstream."""

    def _install(*streams: Any, **kwargs: Any) -> FakeUpstream:
        fake = FakeUpstream(list(streams) or [completed("你好，世界")], **kwargs)
        translator.set_translator_service(TranslatorService(build_client(fake, mock_http(fake))))
        return fake

    yield _install
    translator.set_translator_service(None)


@pytest.fixture
def upstream(install_upstream: Callable[..., FakeUpstream]) -> FakeUpstream:
    return install_upstream()


@pytest.fixture
def make_client() -> Callable[..., TestClient]:
    def _make() -> TestClient:
        return TestClient(create_app(Settings()))

    return _make


@pytest.fixture
def client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()


@pytest.fixture
def auth_client(monkeypatch: pytest.MonkeyPatch, make_client: Callable[..., TestClient]) -> TestClient:
    monkeypatch.setenv("QWENMT_AUTH_ENABLED", "true")
    monkeypatch.setenv("QWENMT_API_KEYS", TEST_KEY)
    return make_client()
