from __future__ import annotations

import threading

_lock = threading.Lock()

counters: dict[str, int] = {
    "requests_total": 0,
    "status_4xx": 0,
    "status_5xx": 0,
    "status_504": 0,
    "status_413": 0,
    "upstream_attempts": 0,
    "upstream_retries": 0,
    "translations_ok": 0,
    "translations_failed": 0,
}


def inc_counter(name: str) -> None:
    """Thread-safe increment of a named counter."""
    with _lock:
        if name not in counters:
            counters[name] = 0
        counters[name] += 1


def snapshot() -> dict[str, int]:
    """Return a thread-safe copy of the counters."""
    with _lock:
        return dict(counters)


def reset() -> None:
    with _lock:
        for name in counters:
            counters[name] = 0
