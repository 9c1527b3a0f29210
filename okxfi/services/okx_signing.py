from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import okx.utils as OkxUtils

from okxfi.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def okx_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, as OKX expects."""
    now = now or datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _body_text(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if isinstance(body, bytes):
        return body.decode("utf-8")
    return json.dumps(body, separators=(",", ":"))


def build_prehash(timestamp: str, method: str, request_path: str, query_string: str = "", body: Any = "") -> str:
    path = request_path + (f"?{query_string}" if query_string else "")
    return f"{timestamp}{method.upper()}{path}{_body_text(body)}"


def sign_prehash(prehash: str, secret_key: str) -> str:
    signature = OkxUtils.sign(prehash, secret_key)
    if isinstance(signature, bytes):
        return signature.decode("utf-8")
    return str(signature)


def build_okx_headers(
    method: str,
    request_path: str,
    query_string: str = "",
    body: Any = "",
    *,
    settings: Settings | None = None,
    timestamp: str | None = None,
) -> dict[str, str]:
    """Return the OK-ACCESS-* header set for one request.

    The timestamp is taken at call time unless given explicitly, so every
    outbound request carries a fresh signature. Missing credentials only
    produce warnings; OKX then rejects the call with an auth error.
    """
    settings = settings or get_settings()
    if not settings.okx_credentials_complete:
        logger.warning("OKX API key, secret or passphrase is not set; API calls may fail")
    if not settings.okx_project_id:
        logger.warning("OKX_PROJECT_ID is not set; some API calls might require it")

    timestamp = timestamp or okx_timestamp()
    prehash = build_prehash(timestamp, method, request_path, query_string, body)
    signature = sign_prehash(prehash, settings.okx_secret_key or "")

    headers = {
        "Content-Type": "application/json",
        "OK-ACCESS-KEY": settings.okx_api_key or "",
        "OK-ACCESS-SIGN": signature,
        "OK-ACCESS-TIMESTAMP": timestamp,
        "OK-ACCESS-PASSPHRASE": settings.okx_passphrase or "",
    }
    if settings.okx_project_id:
        headers["OK-ACCESS-PROJECT"] = settings.okx_project_id
    return headers


__all__ = ["build_okx_headers", "build_prehash", "okx_timestamp", "sign_prehash"]
