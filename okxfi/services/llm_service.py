from __future__ import annotations

import logging
from typing import Any

from openrouter import OpenRouter, errors as openrouter_errors

from okxfi.core.config import get_settings
from okxfi.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

CONTEXT_LENGTH_MARKERS = ("context_length_exceeded", "maximum context length", "context length")


def completion_payload(response: Any) -> dict[str, Any]:
    if isinstance(response, dict):
        return response
    dump = getattr(response, "model_dump", None)
    if dump is None:
        raise ValueError(f"Unexpected OpenRouter response type: {type(response).__name__}")
    return dump()


def message_text(content: Any) -> str:
    """Flatten string or multi-part message content into plain text."""
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""
    chunks = [
        part if isinstance(part, str) else part.get("text")
        for part in content
        if isinstance(part, str) or (isinstance(part, dict) and isinstance(part.get("text"), str))
    ]
    return "\n".join(chunks).strip()


def normalize_tool_call(call: dict[str, Any]) -> dict[str, Any]:
    function = call.get("function") or {}
    arguments = function.get("arguments")
    return {
        "id": call.get("id"),
        "type": "function",
        "function": {"name": function.get("name"), "arguments": "{}" if arguments is None else arguments},
    }


def parse_completion(payload: dict[str, Any]) -> dict[str, Any]:
    """First choice of a chat completion as an assistant message dict."""
    try:
        message = payload["choices"][0].get("message") or {}
    except (KeyError, IndexError, TypeError) as exc:
        raise ValueError("OpenRouter completion has no choices") from exc
    calls = message.get("tool_calls") or message.get("toolCalls") or []
    return {
        "role": "assistant",
        "content": message_text(message.get("content")),
        "tool_calls": [normalize_tool_call(call) for call in calls],
    }


def describe_openrouter_error(error: Exception) -> str:
    payload = getattr(getattr(error, "data", None), "error", None)
    message = getattr(payload, "message", None)
    if message:
        code = getattr(payload, "code", None)
        return f"{message} (code={code})" if code is not None else str(message)
    body = getattr(error, "body", None)
    return body.strip() if body else str(error)


def is_context_length_error(error: Exception) -> bool:
    text = f"{getattr(error, 'code', '')} {describe_openrouter_error(error)}".lower()
    return any(marker in text for marker in CONTEXT_LENGTH_MARKERS)


class LLMService:
    """Tool-calling chat completions through OpenRouter."""

    def __init__(self, model_id: str | None = None, *, temperature: float = 0.0, api_key: str | None = None) -> None:
        self.model_id = model_id or get_settings().llm_model_id
        self.temperature = temperature
        self.api_key = api_key
        self._sdk: tuple[str, OpenRouter] | None = None

    def _client_for(self, api_key: str) -> OpenRouter:
        if self._sdk is None or self._sdk[0] != api_key:
            self._sdk = (api_key, OpenRouter(api_key=api_key))
        return self._sdk[1]

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Send one chat-completions request; return the assistant message."""
        api_key = self.api_key or get_settings().openrouter_api_key
        if not api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not set")
        options: dict[str, Any] = {"model": self.model_id, "messages": messages, "temperature": self.temperature}
        if tools:
            options["tools"] = tools
        try:
            response = await self._client_for(api_key).chat.send_async(**options)
        except openrouter_errors.OpenRouterError as exc:
            logger.warning(
                "OpenRouter completion failed (model=%s, status=%s): %s",
                self.model_id,
                getattr(exc, "status_code", None),
                describe_openrouter_error(exc),
            )
            raise
        reply = parse_completion(completion_payload(response))
        logger.debug("Model %s replied with %s tool call(s)", self.model_id, len(reply["tool_calls"]))
        return reply


__all__ = [
    "LLMService",
    "describe_openrouter_error",
    "is_context_length_error",
    "message_text",
    "parse_completion",
]
