from __future__ import annotations

from fastapi import APIRouter

from qwenmt_core import __version__
from qwenmt_core import metrics as core_metrics
from qwenmt_core.languages import GENERIC_TAGS, to_upstream

from ..schemas import HealthResponse, ServiceInfo

router = APIRouter()

SERVICE_NAME = "qwenmtapi"

ENDPOINTS: dict[str, str] = {
    "POST /translate": "DeepLX-compatible single text translation",
    "POST /v2/translate": "DeepL-compatible batch translation",
    "POST /api/translate": "DeepL-compatible batch translation (alias)",
    "POST /v1/chat/completions": "OpenAI-compatible chat completions",
    "GET /health": "Liveness probe",
    "GET /metrics": "Process-local counters",
}


@router.get("/", tags=["system"], response_model=ServiceInfo)
async def root() -> ServiceInfo:
    """
    GET /: Describe the service: endpoints and the language codes it
    understands, each mapped to the upstream display name.
    """
    return ServiceInfo(
        service=SERVICE_NAME,
        version=__version__,
        endpoints=ENDPOINTS,
        languages={tag: to_upstream(tag) for tag in GENERIC_TAGS},
    )


@router.get("/health", tags=["system"], response_model=HealthResponse)
async def health() -> HealthResponse:
    """GET /health: Always ``{"status": "ok", "service": "qwenmtapi"}``."""
    return HealthResponse(service=SERVICE_NAME)


@router.get("/metrics", tags=["system"])
async def metrics() -> dict[str, int]:
    """
    GET /metrics: Counter snapshot:
      requests_total, status_4xx, status_5xx, status_504, status_413,
      upstream_attempts, upstream_retries, translations_ok, translations_failed
    """
    return core_metrics.snapshot()
