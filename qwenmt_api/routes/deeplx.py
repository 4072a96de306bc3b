from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette import status

from qwenmt_core import TranslationFailedError

from ..log_sanitizer import sanitize_for_log
from ..schemas import DeepLXRequest, DeepLXResponse
from ..services import translator
from .envelopes import deeplx_error, describe_invalid, now_ms

router = APIRouter()

log = logging.getLogger("qwenmt_api.routes.deeplx")


@router.post(
    "/translate",
    tags=["translate"],
    response_model=DeepLXResponse,
    status_code=status.HTTP_200_OK,
)
async def translate_deeplx(request: Request) -> DeepLXResponse | JSONResponse:
    """
    POST /translate (DeepLX)
    - Body: {text, source_lang?, target_lang}
    - 400 on malformed JSON or missing fields, before any upstream call
    - 500 with the DeepLX envelope when the translation job fails
    """
    try:
        req = DeepLXRequest.model_validate(await request.json())
    except ValueError as exc:
        return deeplx_error(describe_invalid(exc))

    try:
        result = await translator.get_translator_service().translate(
            req.text, req.source_lang, req.target_lang
        )
    except TranslationFailedError as exc:
        log.warning(
            "DeepLX translation failed",
            extra={
                "target_lang": sanitize_for_log(req.target_lang),
                "attempts": exc.attempts,
            },
        )
        return deeplx_error(str(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return DeepLXResponse(id=now_ms(), data=result)
