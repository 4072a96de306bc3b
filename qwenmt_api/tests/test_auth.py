from __future__ import annotations

import pytest

from qwenmt_api.middleware.auth import extract_api_key
from qwenmt_api.settings import DEFAULT_API_KEY

TEST_KEY = "sk-test-0123456789"

DEEPLX_BODY = {"text": "Hello world", "target_lang": "ZH"}
DEEPL_BODY = {"text": ["Hello world"], "target_lang": "ZH"}


def _scope(headers=(), query=b""):
    return {
        "type": "http",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers],
        "query_string": query,
    }


@pytest.mark.parametrize(
    "headers",
    [
        {"Authorization": f"DeepL-Auth-Key {TEST_KEY}"},
        {"Authorization": f"Bearer {TEST_KEY}"},
        {"X-API-Key": TEST_KEY},
    ],
)
def test_accepted_key_locations(auth_client, upstream, headers):
    r = auth_client.post("/translate", json=DEEPLX_BODY, headers=headers)
    if r.status_code != 200:
        raise AssertionError(r.text)


def test_query_param_key(auth_client, upstream):
    r = auth_client.post(f"/translate?api_key={TEST_KEY}", json=DEEPLX_BODY)
    assert r.status_code == 200


def test_authorization_header_wins_over_x_api_key():
    scope = _scope([("Authorization", "Bearer first"), ("X-API-Key", "second")], b"api_key=third")
    assert extract_api_key(scope) == "first"


def test_deepl_scheme_checked_before_bearer():
    assert extract_api_key(_scope([("Authorization", "DeepL-Auth-Key k1")])) == "k1"
    assert extract_api_key(_scope([("Authorization", "Basic abc")], b"api_key=q")) == "q"
    assert extract_api_key(_scope()) is None


def test_deeplx_unauthorized_envelope(auth_client, upstream):
    r = auth_client.post("/translate", json=DEEPLX_BODY, headers={"X-API-Key": "wrong"})
    if r.status_code != 401:
        raise AssertionError(r.text)
    body = r.json()
    assert body["code"] == 401
    assert body["data"] == ""
    assert body["message"] == "Unauthorized: Invalid or missing API key"
    assert upstream.joins == []


def test_deepl_unauthorized_envelope(auth_client, upstream):
    r = auth_client.post("/v2/translate", json=DEEPL_BODY)
    assert r.status_code == 401
    assert r.json() == {"error": "Unauthorized: Invalid or missing API key"}


def test_other_paths_unauthorized_envelope(auth_client, upstream):
    r = auth_client.post(
        "/v1/chat/completions", json={"messages": [{"role": "user", "content": "hi"}]}
    )
    assert r.status_code == 401
    assert r.json() == {
        "code": 401,
        "message": "Unauthorized: Missing or invalid API key",
        "data": "",
    }


def test_public_endpoints_skip_auth(auth_client):
    assert auth_client.get("/health").status_code == 200
    assert auth_client.get("/").status_code == 200


def test_cors_preflight_skips_auth(auth_client):
    r = auth_client.options(
        "/translate",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization",
        },
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"
    assert r.headers["access-control-max-age"] == "86400"


def test_default_key_when_none_configured(monkeypatch, make_client, upstream):
    monkeypatch.setenv("QWENMT_AUTH_ENABLED", "true")
    client = make_client()
    r = client.post("/translate", json=DEEPLX_BODY, headers={"X-API-Key": DEFAULT_API_KEY})
    assert r.status_code == 200


def test_auth_disabled_by_default(client, upstream):
    r = client.post("/translate", json=DEEPLX_BODY)
    assert r.status_code == 200
