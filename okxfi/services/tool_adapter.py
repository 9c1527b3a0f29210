"""LLM-facing wrappers around the OKX command registries.

The model calls tools with a JSON object; the registries expect a flat
``key=value`` argument string. Every failure on this boundary is returned to
the model as text so the conversation can continue.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Collection, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model, model_validator

from okxfi.core.errors import OkxfiError
from okxfi.models.chat import ChatMessage, CommandInfo
from okxfi.services.command_args import build_args_string
from okxfi.services.command_registry import CommandRegistry

logger = logging.getLogger(__name__)

ParamKind = Literal["numeric", "amount", "string"]
ToolFamily = Literal["trade", "market"]

NUMERIC_PATTERN = r"^\d*$"
AMOUNT_PATTERN = r"^\d+(\.\d+)?$"

CHAIN_INDEX_BY_NAME = {
    "solana": "501",
    "ethereum": "1",
    "eth": "1",
    "arbitrum": "42161",
    "arb": "42161",
    "oktc": "66",
    "okx chain": "66",
    "bsc": "56",
    "binance smart chain": "56",
}


@dataclass(slots=True)
class ToolContext:
    """Per-turn information handed to tools that need conversation state."""

    session_id: str | None = None
    user_input: str = ""
    history: list[ChatMessage] = field(default_factory=list)


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def check_optional_strings(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            raise ValueError("Tool input must be a JSON object")
        cleaned: dict[str, Any] = {}
        for key, value in data.items():
            if value is None:
                continue
            if key not in cls.model_fields and not isinstance(value, str):
                raise ValueError(f"Optional parameter '{key}' must be a string")
            cleaned[key] = value
        return cleaned


def infer_param_kind(param: str) -> ParamKind:
    lowered = param.lower()
    if "index" in lowered or ("id" in lowered and "address" not in lowered):
        return "numeric"
    if "amount" in lowered:
        return "amount"
    return "string"


def _field_for(param: str, optional: bool = False) -> tuple[Any, Any]:
    if optional:
        return (Optional[str], Field(default=None, description=f"Value for {param}. Defaults to the configured wallet."))
    kind = infer_param_kind(param)
    if kind == "numeric":
        return (str, Field(pattern=NUMERIC_PATTERN, description=f"Numeric string value for {param}."))
    if kind == "amount":
        return (str, Field(pattern=AMOUNT_PATTERN, description="Numeric string for amount."))
    return (str, Field(description=f"Value for {param}."))


def build_args_model(command: CommandInfo, optional: Collection[str] = ()) -> type[ToolArgs]:
    """Required params become required fields unless listed in ``optional``."""
    fields = {param: _field_for(param, param in optional) for param in command.required_params}
    model_name = "".join(part.title() for part in command.name.split("_")) + "Args"
    return create_model(model_name, __base__=ToolArgs, **fields)


def decode_tool_input(raw_input: Any) -> Any:
    if isinstance(raw_input, (str, bytes)):
        return json.loads(raw_input)
    return raw_input


class AgentTool(ABC):
    """Base class for tools exposed to the model."""

    name: str
    description: str

    @abstractmethod
    def parameters_schema(self) -> dict[str, Any]:
        ...

    @abstractmethod
    async def invoke(self, raw_input: Any, context: ToolContext | None = None) -> str:
        ...

    def to_openai_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters_schema(),
            },
        }


def _describe(command: CommandInfo, family: ToolFamily) -> str:
    required = ", ".join(command.required_params) or "None"
    summary = command.llm_tool_description.rstrip(".")
    if family == "trade":
        action = summary[0].lower() + summary[1:]
        if action.startswith("gets "):
            action = "get " + action[len("gets ") :]
        lead = f"OKX Action: {summary}. Call this to {action}."
    else:
        question = command.ui_description.split(".")[0]
        lead = f"Use for OKX Market/Balance/History API: {summary}. Answers questions like: '{question}'."
    return (
        f"{lead} Required: {required}. Input to this tool MUST be a JSON object "
        "with these parameters as string values."
    )


class CommandTool(AgentTool):
    """Exposes one registry command as a tool with a validated JSON schema."""

    def __init__(
        self,
        command: CommandInfo,
        registry: CommandRegistry,
        *,
        family: ToolFamily = "trade",
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        self.command = command
        self.registry = registry
        self.name = name or command.name
        self.description = description or _describe(command, family)
        # Wallet-backed params may be omitted; the registry fills them in.
        optional = registry.wallet_fallback_params if registry.wallet_address else ()
        self.args_model = build_args_model(command, optional)

    def parameters_schema(self) -> dict[str, Any]:
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        for prop in schema.get("properties", {}).values():
            prop.pop("title", None)
        schema["additionalProperties"] = {
            "type": "string",
            "description": "Other optional string parameters.",
        }
        return schema

    def validate(self, raw_input: Any) -> dict[str, str]:
        parsed = self.args_model.model_validate(decode_tool_input(raw_input))
        return parsed.model_dump(exclude_none=True)

    async def invoke(self, raw_input: Any, context: ToolContext | None = None) -> str:
        try:
            args = self.validate(raw_input)
        except (ValueError, ValidationError) as exc:
            logger.warning("Invalid input for tool %s: %r (%s)", self.name, raw_input, exc)
            return (
                f"Invalid input format for {self.name}. Expected a JSON string matching the schema. "
                f"Error: {exc}"
            )
        logger.info("Calling %s command %s with args %s", self.registry.label, self.command.name, args)
        try:
            result = await self.registry.execute(self.command.name, build_args_string(args))
        except OkxfiError as exc:
            logger.warning("Tool %s failed: %s", self.name, exc)
            return f"Error executing {self.name}: {exc}. Example: {self.command.example}"
        return json.dumps(result, indent=2)


class ChainNameArgs(BaseModel):
    chainName: str = Field(description="Common blockchain name (e.g., Solana, Ethereum, BSC).")  # noqa: N815


def resolve_chain_info(chain_name: str) -> dict[str, str]:
    chain_index = CHAIN_INDEX_BY_NAME.get(chain_name.strip().lower())
    if chain_index:
        return {"chainIndex": chain_index, "resolvedFor": chain_name, "status": "success"}
    return {
        "error": (
            f"Could not resolve chainIndex for {chain_name}. "
            "Ask user for numeric chainIndex or supported name."
        ),
        "status": "not_found",
    }


class ResolveChainInfoTool(AgentTool):
    name = "resolve_chain_info"
    description = (
        "Helper: Converts common chain name (e.g. 'Solana', 'Ethereum') to its OKX numeric chainIndex. "
        'Input MUST be a JSON object like: {"chainName": "Solana"}.'
    )

    def parameters_schema(self) -> dict[str, Any]:
        schema = ChainNameArgs.model_json_schema()
        schema.pop("title", None)
        return schema

    async def invoke(self, raw_input: Any, context: ToolContext | None = None) -> str:
        try:
            args = ChainNameArgs.model_validate(decode_tool_input(raw_input))
        except (ValueError, ValidationError) as exc:
            return (
                "Invalid input format for resolve_chain_info. "
                f"Expected JSON string like '{{\"chainName\": \"value\"}}'. Error: {exc}"
            )
        return json.dumps(resolve_chain_info(args.chainName))


def build_command_tools(registry: CommandRegistry, family: ToolFamily) -> list[CommandTool]:
    return [CommandTool(command, registry, family=family) for command in registry.list_commands()]


def ensure_unique_names(tools: Iterable[AgentTool]) -> None:
    seen: set[str] = set()
    for tool in tools:
        if tool.name in seen:
            raise ValueError(f"Duplicate tool name: {tool.name}")
        seen.add(tool.name)


def build_okx_api_tools(trade_registry: CommandRegistry, market_registry: CommandRegistry) -> list[AgentTool]:
    tools: list[AgentTool] = [
        *build_command_tools(trade_registry, "trade"),
        *build_command_tools(market_registry, "market"),
        ResolveChainInfoTool(),
    ]
    ensure_unique_names(tools)
    return tools


__all__ = [
    "AgentTool",
    "CHAIN_INDEX_BY_NAME",
    "CommandTool",
    "ResolveChainInfoTool",
    "ToolContext",
    "build_args_model",
    "build_command_tools",
    "build_okx_api_tools",
    "ensure_unique_names",
    "infer_param_kind",
    "resolve_chain_info",
]
