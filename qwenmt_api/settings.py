"""Qwen-MT adapter settings.

Everything is read from environment variables prefixed ``QWENMT_``. A
``.env`` file (and ``.env.development`` in dev) next to the package is
loaded first without overriding variables that are already set.

Upstream-related values are handed to the translation core as a frozen
``UpstreamConfig`` via ``Settings.upstream_config()``.
"""

from __future__ import annotations

import contextlib
import os
from pathlib import Path

from qwenmt_core.config import DEFAULT_BASE_URL, UpstreamConfig

DEFAULT_API_KEY = "sk-default"


def _load_env_file(path: Path) -> None:
    """Load KEY=VALUE from a .env-style file into os.environ if not already set."""
    with contextlib.suppress(Exception):
        if not path.exists():
            return
        with path.open(encoding="utf-8") as f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip('"').strip("'")
                if key and key not in os.environ:
                    os.environ[key] = value


def _load_envs_for_runtime() -> None:
    """
    Load .env (base) and .env.development (when in dev) so Settings sees overrides.
    Only sets variables not already present in the environment.
    """
    try:
        root = Path(__file__).resolve().parents[1]
    except Exception:
        return
    _load_env_file(root / ".env")
    env = (os.environ.get("QWENMT_ENV", "dev") or "dev").strip().lower()
    if env in {"dev", "development"}:
        _load_env_file(root / ".env.development")


# One-time load at import
_load_envs_for_runtime()


def _get_env(name: str, default: str | None = None) -> str | None:
    return os.environ.get(name, default)


def _parse_bool(val: str | None, default: bool = False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(val: str | None, default: int) -> int:
    try:
        return int(str(val)) if val is not None else default
    except Exception:
        return default


def _parse_float(val: str | None, default: float) -> float:
    try:
        f = float(str(val)) if val is not None else default
    except Exception:
        return default
    return f if f > 0 else default


def _parse_csv(val: str | None) -> list[str]:
    if not val:
        return []
    items = [s.strip() for s in str(val).split(",")]
    return [s for s in items if s]


class Settings:
    """
    Runtime configuration loaded from environment variables with prefix
    QWENMT_.

        Variables:
        - QWENMT_ENV: "dev" or "prod" (default: dev)
        - QWENMT_API_HOST: bind address (default: 127.0.0.1)
        - QWENMT_API_PORT: int (default: 8787)
        - QWENMT_ALLOWED_ORIGINS: CSV list (default: *)
        - QWENMT_AUTH_ENABLED: require an API key (default: false)
        - QWENMT_API_KEYS: CSV of accepted keys; when auth is enabled and
            this is empty, "sk-default" is accepted
        - QWENMT_LOG_LEVEL: INFO|DEBUG|WARNING|ERROR (default: INFO)
        - QWENMT_LOG_DIR: logs directory path (default: logs)
        - QWENMT_REQUEST_TIMEOUT_SECONDS: int seconds (default: 300)
        - QWENMT_MAX_REQUEST_BODY_BYTES: int bytes (default: 1_048_576)
        - QWENMT_EXPOSE_OPENAPI_IN_DEV: bool (default: true)
        - QWENMT_UPSTREAM_BASE_URL: upstream Gradio app
        - QWENMT_MAX_CONCURRENCY: concurrent upstream jobs (default: 2)
        - QWENMT_MAX_ATTEMPTS: attempts per job (default: 3)
        - QWENMT_BACKOFF_STEP_SECONDS: linear backoff step (default: 1.0)
        - QWENMT_CONNECT_TIMEOUT_SECONDS: upstream connect timeout (default: 10)
        - QWENMT_ATTEMPT_TIMEOUT_SECONDS: deadline per attempt (default: 120)
        - QWENMT_DEFAULT_MODEL: model name echoed by chat completions
            (default: qwen-mt)
    """

    def __init__(self) -> None:
        # Environment
        self.environment: str = (_get_env("QWENMT_ENV", "dev") or "dev").strip().lower()
        self.is_dev: bool = self.environment in {"dev", "development"}

        # Network
        self.host: str = _get_env("QWENMT_API_HOST", "127.0.0.1") or "127.0.0.1"
        self.port: int = _parse_int(_get_env("QWENMT_API_PORT"), 8787)
        self.allowed_origins: list[str] = _parse_csv(_get_env("QWENMT_ALLOWED_ORIGINS")) or ["*"]

        # Auth
        self.auth_enabled: bool = _parse_bool(_get_env("QWENMT_AUTH_ENABLED"), False)
        self.api_keys: frozenset[str] = frozenset(_parse_csv(_get_env("QWENMT_API_KEYS")))
        self.using_default_key: bool = self.auth_enabled and not self.api_keys
        if self.using_default_key:
            self.api_keys = frozenset({DEFAULT_API_KEY})

        # Logging
        self.log_level: str = (_get_env("QWENMT_LOG_LEVEL", "INFO") or "INFO").upper()
        self.log_dir: str = _get_env("QWENMT_LOG_DIR", "logs") or "logs"

        # Timeouts and limits
        self.request_timeout_seconds: int = _parse_int(
            _get_env("QWENMT_REQUEST_TIMEOUT_SECONDS"), 300
        )
        self.max_request_body_bytes: int = _parse_int(
            _get_env("QWENMT_MAX_REQUEST_BODY_BYTES"), 1_048_576
        )

        # Docs in dev
        self.expose_openapi_in_dev: bool = _parse_bool(
            _get_env("QWENMT_EXPOSE_OPENAPI_IN_DEV"), True
        )

        # Upstream
        self.upstream_base_url: str = (
            _get_env("QWENMT_UPSTREAM_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL
        )
        self.max_concurrency: int = max(1, _parse_int(_get_env("QWENMT_MAX_CONCURRENCY"), 2))
        self.max_attempts: int = max(1, _parse_int(_get_env("QWENMT_MAX_ATTEMPTS"), 3))
        self.backoff_step_seconds: float = _parse_float(
            _get_env("QWENMT_BACKOFF_STEP_SECONDS"), 1.0
        )
        self.connect_timeout_seconds: float = _parse_float(
            _get_env("QWENMT_CONNECT_TIMEOUT_SECONDS"), 10.0
        )
        self.attempt_timeout_seconds: float = _parse_float(
            _get_env("QWENMT_ATTEMPT_TIMEOUT_SECONDS"), 120.0
        )
        self.default_model: str = _get_env("QWENMT_DEFAULT_MODEL", "qwen-mt") or "qwen-mt"

    def upstream_config(self) -> UpstreamConfig:
        return UpstreamConfig(
            base_url=self.upstream_base_url,
            max_concurrency=self.max_concurrency,
            max_attempts=self.max_attempts,
            backoff_step_s=self.backoff_step_seconds,
            connect_timeout_s=self.connect_timeout_seconds,
            attempt_timeout_s=self.attempt_timeout_seconds,
        )
