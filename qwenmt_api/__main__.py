"""
Entry point for the Qwen-MT API server (``python -m qwenmt_api`` or ``qwenmt-api``).
"""

from __future__ import annotations

import logging
import sys

import uvicorn

from .settings import Settings


def main() -> int:
    """
    Programmatic uvicorn launcher.
    - Binds to the configured host and port.
    - Disables uvicorn access log (we emit our own structured logs).
    - Graceful shutdown on KeyboardInterrupt.
    """
    settings = Settings()

    config = uvicorn.Config(
        app="qwenmt_api.app:create_app",
        factory=True,
        host=settings.host,
        port=int(settings.port),
        log_level=(settings.log_level or "info").lower(),
        proxy_headers=False,
        access_log=False,
        use_colors=False,
    )
    server = uvicorn.Server(config)

    try:
        server.run()
        return 0
    except KeyboardInterrupt:
        return 130
    except (OSError, RuntimeError) as e:
        logging.getLogger(__name__).error("Server error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
