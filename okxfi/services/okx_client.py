from __future__ import annotations

import json
import logging
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx

from okxfi.core.config import Settings, get_settings
from okxfi.core.errors import TransportError
from okxfi.services.okx_signing import build_okx_headers

logger = logging.getLogger(__name__)


def encode_query(params: Mapping[str, Any] | None) -> str:
    if not params:
        return ""
    return urlencode([(key, str(value)) for key, value in params.items() if value is not None])


class OkxDexClient:
    """Signed async HTTP client for the OKX Web3 DEX REST API."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = httpx.AsyncClient(
            base_url=self.settings.okx_base_url,
            timeout=self.settings.okx_request_timeout,
            transport=transport,
        )

    async def get(self, request_path: str, params: Mapping[str, Any] | None = None) -> Any:
        query = encode_query(params)
        headers = build_okx_headers("GET", request_path, query, settings=self.settings)
        url = f"{request_path}?{query}" if query else request_path
        return await self._send("GET", url, headers=headers)

    async def post(self, request_path: str, body: Any) -> Any:
        payload = json.dumps(body, separators=(",", ":"))
        headers = build_okx_headers("POST", request_path, "", payload, settings=self.settings)
        return await self._send("POST", request_path, headers=headers, content=payload)

    async def _send(self, method: str, url: str, *, headers: dict[str, str], content: str | None = None) -> Any:
        logger.debug("OKX %s %s", method, url)
        try:
            response = await self._client.request(method, url, headers=headers, content=content)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            body = _decode_body(exc.response)
            detail = body.get("msg") if isinstance(body, dict) else None
            message = f"OKX request {method} {url} failed with HTTP {exc.response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise TransportError(message, status_code=exc.response.status_code, body=body) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"OKX request {method} {url} failed: {exc}") from exc
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"OKX request {method} {url} returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


__all__ = ["OkxDexClient", "encode_query"]
