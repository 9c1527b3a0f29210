from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from okxfi.core.errors import OkxfiError
from okxfi.services.agent_executor import AgentExecutor, ChatModel
from okxfi.services.command_registry import CommandRegistry
from okxfi.services.swap_service import (
    EXECUTE_TOOL_NAME,
    QUOTE_TOOL_NAME,
    SOLANA_CHAIN_INDEX,
    SolanaSwapService,
    ensure_swap_confirmed,
)
from okxfi.services.tool_adapter import (
    AMOUNT_PATTERN,
    NUMERIC_PATTERN,
    AgentTool,
    CommandTool,
    ToolContext,
    decode_tool_input,
)

logger = logging.getLogger(__name__)

SOL_MINT_ADDRESS = "So11111111111111111111111111111111111111112"
USDC_MINT_ADDRESS = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
SOL_DECIMALS = 9
USDC_DECIMALS = 6

SWAP_SYSTEM_PROMPT = """You are "OKX DEX Copilot," an AI assistant for OKX DEX on Solana.
Your Wallet Address (used by OKX_EXECUTE_SWAP): {wallet_address}.
Default Solana chainIndex for OKX DEX operations: "{chain_index}".

Available Tools:
{tool_lines}

Interaction Guidelines:
- If asked "what can you do?" or "help", list your Available Tools and their main purpose. Do not call a tool for this general query.
- Always state operations are performed via "OKX DEX".

CRITICAL SWAP PROTOCOL (Follow PRECISELY for any swap request):
When a user asks to swap tokens (e.g., "swap 0.01 SOL for USDC"):
1. Identify Tokens & Human Amount: From Token Symbol (e.g., SOL), To Token Symbol (e.g., USDC), Human-readable Amount (e.g., 0.01).
2. Resolve Token Mint Addresses and Decimals:
   * For "SOL": use mint address "{sol_mint}" and decimals {sol_decimals}.
   * For "USDC": use mint address "{usdc_mint}" and decimals {usdc_decimals}.
   * For ANY OTHER token symbol: YOU MUST FIRST use "OKX_GET_TOKEN" to find its mint address and decimals. Params: {{"chainIndex": "{chain_index}", "tokenSymbol": "USER_TOKEN_SYMBOL"}}.
3. Calculate 'amount' in Smallest Units as a STRING (e.g., 0.01 SOL (9 decimals) -> "10000000"; 10 USDC (6 decimals) -> "10000000").
4. Get Quote: call "OKX_GET_QUOTE" with fromTokenAddress, toTokenAddress, amount (smallest units), slippage (default "0.5") and chainIndex "{chain_index}".
5. Present the full quote details returned by OKX_GET_QUOTE.
6. Ask for Explicit Confirmation: "OKX DEX quotes [full details]. Do you want to execute this swap?" Then STOP and wait for the user's reply.
7. Execute ONLY IF THE USER CONFIRMS in a later message: call "OKX_EXECUTE_SWAP" with the quoted fromTokenAddress, toTokenAddress, amount and slippage.
8. If the user does not confirm, DO NOT execute. OKX_EXECUTE_SWAP refuses to run without a prior quote and an explicit confirmation.

General Note: use chainIndex "{chain_index}" for Solana operations. Be concise.
"""


class TokenLookupArgs(BaseModel):
    tokenSymbol: str = Field(description="Token symbol to look up, e.g. BONK.")  # noqa: N815
    chainIndex: str = Field(default=SOLANA_CHAIN_INDEX, pattern=NUMERIC_PATTERN)  # noqa: N815


class ExecuteSwapArgs(BaseModel):
    fromTokenAddress: str = Field(description="Mint address of the token to sell.")  # noqa: N815
    toTokenAddress: str = Field(description="Mint address of the token to buy.")  # noqa: N815
    amount: str = Field(pattern=AMOUNT_PATTERN, description="Amount in smallest units.")
    slippage: str = Field(default="0.5", pattern=AMOUNT_PATTERN, description="Slippage, e.g. 0.5.")
    chainIndex: str = Field(default=SOLANA_CHAIN_INDEX, pattern=NUMERIC_PATTERN)  # noqa: N815


def _schema(model: type[BaseModel]) -> dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


class TokenLookupTool(AgentTool):
    name = "OKX_GET_TOKEN"
    description = (
        "Look up a token by symbol in the OKX DEX token list and return its mint address and decimals. "
        'Input: {"chainIndex": "501", "tokenSymbol": "BONK"}.'
    )

    def __init__(self, trade_registry: CommandRegistry) -> None:
        self.trade_registry = trade_registry

    def parameters_schema(self) -> dict[str, Any]:
        return _schema(TokenLookupArgs)

    async def invoke(self, raw_input: Any, context: ToolContext | None = None) -> str:
        try:
            args = TokenLookupArgs.model_validate(decode_tool_input(raw_input))
        except (ValueError, ValidationError) as exc:
            return f"Invalid input format for {self.name}. Error: {exc}"
        try:
            tokens = await self.trade_registry.execute("okx_get_tokens", f"chainIndex={args.chainIndex}")
        except OkxfiError as exc:
            return f"Error executing {self.name}: {exc}"
        if not isinstance(tokens, dict) or str(tokens.get("code")) != "0":
            return json.dumps(tokens, indent=2)
        symbol = args.tokenSymbol.strip().upper()
        matches = [
            token
            for token in tokens.get("data") or []
            if str(token.get("tokenSymbol", "")).upper() == symbol
        ]
        if not matches:
            return json.dumps(
                {
                    "code": "0",
                    "msg": f"No token with symbol {args.tokenSymbol} on chain {args.chainIndex}. Ask the user for its mint address.",
                    "data": [],
                }
            )
        return json.dumps({"code": "0", "msg": "", "data": matches}, indent=2)


class ExecuteSwapTool(AgentTool):
    name = EXECUTE_TOOL_NAME
    description = (
        "Execute a previously quoted and user-confirmed swap on Solana through OKX DEX: fetches the swap "
        "transaction, signs it with the configured wallet and submits it. Requires fromTokenAddress, "
        "toTokenAddress, amount (smallest units) and slippage."
    )

    def __init__(self, swap_service: SolanaSwapService) -> None:
        self.swap_service = swap_service

    def parameters_schema(self) -> dict[str, Any]:
        return _schema(ExecuteSwapArgs)

    async def invoke(self, raw_input: Any, context: ToolContext | None = None) -> str:
        context = context or ToolContext()
        try:
            args = ExecuteSwapArgs.model_validate(decode_tool_input(raw_input))
        except (ValueError, ValidationError) as exc:
            return f"Invalid input format for {self.name}. Error: {exc}"
        if args.chainIndex != SOLANA_CHAIN_INDEX:
            return f"Error executing {self.name}: only Solana (chainIndex {SOLANA_CHAIN_INDEX}) swaps can be executed."
        try:
            ensure_swap_confirmed(context.history, context.user_input, args.model_dump())
            result = await self.swap_service.execute_swap(args.model_dump())
        except OkxfiError as exc:
            logger.warning("Swap execution refused or failed: %s", exc)
            return f"Error executing {self.name}: {exc}"
        return json.dumps(result, indent=2)


def build_swap_tools(trade_registry: CommandRegistry, swap_service: SolanaSwapService) -> list[AgentTool]:
    def command_tool(command: str, name: str, description: str) -> CommandTool:
        definition = trade_registry.get(command)
        if definition is None:
            raise ValueError(f"Trade registry has no {command} command")
        return CommandTool(definition.info(), trade_registry, name=name, description=description)

    return [
        command_tool(
            "okx_get_supported_chains",
            "OKX_GET_CHAIN_DATA",
            "Get the chains supported by the OKX DEX aggregator.",
        ),
        command_tool(
            "okx_get_liquidity_sources",
            "OKX_GET_LIQUIDITY",
            'Get the liquidity sources OKX DEX routes through on a chain. Input: {"chainIndex": "501"}.',
        ),
        TokenLookupTool(trade_registry),
        command_tool(
            "okx_get_quote",
            QUOTE_TOOL_NAME,
            "Get an OKX DEX swap quote. Input: chainIndex, amount (smallest units), fromTokenAddress, "
            "toTokenAddress and optional slippage, all as strings.",
        ),
        command_tool(
            "okx_get_swap_data",
            "OKX_GET_SWAP_DATA",
            "Get the unsigned OKX DEX swap transaction for a wallet without sending it.",
        ),
        ExecuteSwapTool(swap_service),
    ]


def build_swap_system_prompt(tools: list[AgentTool], wallet_address: str | None) -> str:
    tool_lines = "\n".join(
        f"- {tool.name}: {tool.description.split('.')[0]}. Parameters: "
        f"{json.dumps(list(tool.parameters_schema().get('properties', {})))}"
        for tool in tools
    )
    return SWAP_SYSTEM_PROMPT.format(
        wallet_address=wallet_address or "Not Set",
        chain_index=SOLANA_CHAIN_INDEX,
        tool_lines=tool_lines,
        sol_mint=SOL_MINT_ADDRESS,
        sol_decimals=SOL_DECIMALS,
        usdc_mint=USDC_MINT_ADDRESS,
        usdc_decimals=USDC_DECIMALS,
    )


def build_swap_agent(
    llm: ChatModel,
    trade_registry: CommandRegistry,
    swap_service: SolanaSwapService,
    *,
    max_iterations: int = 8,
) -> AgentExecutor:
    tools = build_swap_tools(trade_registry, swap_service)
    prompt = build_swap_system_prompt(tools, swap_service.wallet_address)
    return AgentExecutor(llm, tools, prompt, max_iterations=max_iterations, name="SwapAgent")


__all__ = [
    "ExecuteSwapTool",
    "SOL_MINT_ADDRESS",
    "TokenLookupTool",
    "USDC_MINT_ADDRESS",
    "build_swap_agent",
    "build_swap_system_prompt",
    "build_swap_tools",
]
