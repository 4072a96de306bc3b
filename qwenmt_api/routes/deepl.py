from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette import status

from qwenmt_core import TranslationFailedError

from ..schemas import DeepLRequest, DeepLResponse, DeepLTranslation
from ..services import translator
from .envelopes import deepl_error, describe_invalid

router = APIRouter()

log = logging.getLogger("qwenmt_api.routes.deepl")


async def _translate(request: Request) -> DeepLResponse | JSONResponse:
    try:
        req = DeepLRequest.model_validate(await request.json())
    except ValueError as exc:
        return deepl_error(describe_invalid(exc))

    service = translator.get_translator_service()
    try:
        results = await service.translate_batch(req.text, req.source_lang, req.target_lang)
    except TranslationFailedError as exc:
        log.warning(
            "DeepL translation failed",
            extra={"texts": len(req.text), "attempts": exc.attempts},
        )
        return deepl_error(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    detected = service.display_language(req.source_lang)
    return DeepLResponse(
        translations=[
            DeepLTranslation(detected_source_language=detected, text=text) for text in results
        ]
    )


@router.post("/v2/translate", tags=["translate"], response_model=DeepLResponse)
async def translate_deepl_v2(request: Request) -> DeepLResponse | JSONResponse:
    """POST /v2/translate: DeepL-compatible batch translation, texts handled in order."""
    return await _translate(request)


@router.post("/api/translate", tags=["translate"], response_model=DeepLResponse)
async def translate_deepl_api(request: Request) -> DeepLResponse | JSONResponse:
    return await _translate(request)
