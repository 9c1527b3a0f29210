import base64
import hashlib
import hmac
import logging
from datetime import datetime, timezone

from okxfi.core.config import Settings
from okxfi.services.okx_signing import build_okx_headers, build_prehash, okx_timestamp, sign_prehash

TIMESTAMP = "2024-05-01T12:30:45.123Z"


def _settings(**overrides) -> Settings:
    values = {
        "OKX_API_KEY": "api-key",
        "OKX_SECRET_KEY": "secret",
        "OKX_API_PASSPHRASE": "pass",
        "OKX_PROJECT_ID": "project",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _expected_signature(prehash: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), prehash.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def test_timestamp_has_millisecond_precision() -> None:
    when = datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)

    assert okx_timestamp(when) == TIMESTAMP


def test_prehash_joins_query_and_body() -> None:
    get_prehash = build_prehash(TIMESTAMP, "get", "/api/v5/dex/aggregator/quote", "chainIndex=501&amount=10")
    post_prehash = build_prehash(TIMESTAMP, "POST", "/api/v5/dex/market/price", "", [{"chainIndex": "1"}])

    assert get_prehash == f"{TIMESTAMP}GET/api/v5/dex/aggregator/quote?chainIndex=501&amount=10"
    assert post_prehash == f'{TIMESTAMP}POST/api/v5/dex/market/price[{{"chainIndex":"1"}}]'


def test_signature_is_deterministic_hmac_sha256() -> None:
    prehash = build_prehash(TIMESTAMP, "GET", "/api/v5/dex/aggregator/supported/chain")

    first = sign_prehash(prehash, "secret")
    second = sign_prehash(prehash, "secret")

    assert first == second == _expected_signature(prehash, "secret")
    assert sign_prehash(prehash, "other") != first


def test_headers_include_project_when_configured() -> None:
    headers = build_okx_headers(
        "GET",
        "/api/v5/dex/aggregator/all-tokens",
        "chainIndex=501",
        settings=_settings(),
        timestamp=TIMESTAMP,
    )

    prehash = f"{TIMESTAMP}GET/api/v5/dex/aggregator/all-tokens?chainIndex=501"
    assert headers == {
        "Content-Type": "application/json",
        "OK-ACCESS-KEY": "api-key",
        "OK-ACCESS-SIGN": _expected_signature(prehash, "secret"),
        "OK-ACCESS-TIMESTAMP": TIMESTAMP,
        "OK-ACCESS-PASSPHRASE": "pass",
        "OK-ACCESS-PROJECT": "project",
    }


def test_missing_credentials_only_warn(caplog) -> None:
    settings = _settings(OKX_API_KEY=None, OKX_SECRET_KEY=None, OKX_API_PASSPHRASE=None, OKX_PROJECT_ID=None)

    with caplog.at_level(logging.WARNING, logger="okxfi.services.okx_signing"):
        headers = build_okx_headers("GET", "/api/v5/dex/balance/supported/chain", settings=settings)

    assert headers["OK-ACCESS-KEY"] == ""
    assert headers["OK-ACCESS-PASSPHRASE"] == ""
    assert "OK-ACCESS-PROJECT" not in headers
    assert headers["OK-ACCESS-TIMESTAMP"].endswith("Z")
    messages = [record.getMessage() for record in caplog.records]
    assert any("secret or passphrase is not set" in message for message in messages)
    assert any("OKX_PROJECT_ID is not set" in message for message in messages)


def test_signature_changes_with_timestamp() -> None:
    settings = _settings()
    path = "/api/v5/dex/aggregator/quote"

    first = build_okx_headers("GET", path, "chainIndex=501", settings=settings, timestamp=TIMESTAMP)
    second = build_okx_headers("GET", path, "chainIndex=501", settings=settings, timestamp="2024-05-01T12:30:46.000Z")
    repeat = build_okx_headers("GET", path, "chainIndex=501", settings=settings, timestamp=TIMESTAMP)

    assert first["OK-ACCESS-SIGN"] != second["OK-ACCESS-SIGN"]
    assert first["OK-ACCESS-SIGN"] == repeat["OK-ACCESS-SIGN"]
