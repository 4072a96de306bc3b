from .translator import (
    TranslatorService,
    close_translator_service,
    get_translator_service,
    set_translator_service,
)

__all__ = [
    "TranslatorService",
    "close_translator_service",
    "get_translator_service",
    "set_translator_service",
]
