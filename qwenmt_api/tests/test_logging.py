from __future__ import annotations

import json
import logging

from qwenmt_api.log_sanitizer import mask_secret, sanitize_for_log
from qwenmt_api.logging_config import (
    ISOFormatter,
    RedactionConfig,
    RedactionFilter,
    RedactionService,
)

KEY = "sk-live-abcdef123456"


def _service() -> RedactionService:
    return RedactionService([KEY], RedactionConfig())


def test_configured_keys_are_scrubbed():
    out = _service().redact_text(f"calling with key={KEY} done")
    assert KEY not in out
    assert "key=*** done" in out


def test_credential_header_values_are_scrubbed():
    svc = _service()
    out = svc.redact_text("Authorization: Bearer other-secret\nX-API-Key: k2\nAccept: */*")
    assert "other-secret" not in out
    assert "k2" not in out
    assert "Accept: */*" in out


def test_header_dicts_are_blanked():
    out = _service().redact_value({"headers": {"Authorization": "DeepL-Auth-Key x", "Host": "h"}})
    assert out == {"headers": {"Authorization": "***", "Host": "h"}}


def test_filter_redacts_message_args_and_extras():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "key %s", (KEY,), None)
    record.headers = {"x-api-key": KEY}
    assert RedactionFilter([KEY]).filter(record) is True
    assert KEY not in record.getMessage()
    assert record.headers == {"x-api-key": "***"}


def test_json_formatter_emits_structured_fields():
    record = logging.LogRecord("qwenmt_core.upstream", logging.INFO, __file__, 1, "retry", (), None)
    record.attempt = 2
    record.delay_s = 1.0
    payload = json.loads(ISOFormatter(RedactionConfig()).format(record))
    assert payload["message"] == "retry"
    assert payload["level"] == "info"
    assert payload["logger"] == "qwenmt_core.upstream"
    assert payload["attempt"] == 2
    assert payload["delay_s"] == 1.0
    assert "ts" in payload


def test_sanitize_for_log():
    assert sanitize_for_log("a\nb\x00c") == "a\\nbc"
    assert sanitize_for_log("x" * 300, max_length=10) == "xxxxxxx..."
    assert sanitize_for_log(None) == "None"


def test_mask_secret():
    assert mask_secret(KEY) == "sk-l…3456"
    assert mask_secret("short") == "***"
    assert mask_secret(None) == "<none>"
