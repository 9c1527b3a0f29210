from __future__ import annotations

from typing import Any

from okxfi.services.command_registry import CommandDefinition, CommandRegistry
from okxfi.services.okx_client import OkxDexClient

AGGREGATOR_SUPPORTED_CHAIN_PATH = "/api/v5/dex/aggregator/supported/chain"
ALL_TOKENS_PATH = "/api/v5/dex/aggregator/all-tokens"
LIQUIDITY_PATH = "/api/v5/dex/aggregator/get-liquidity"
APPROVE_TRANSACTION_PATH = "/api/v5/dex/aggregator/approve-transaction"
QUOTE_PATH = "/api/v5/dex/aggregator/quote"
SWAP_PATH = "/api/v5/dex/aggregator/swap"
HISTORY_PATH = "/api/v5/dex/aggregator/history"
ONCHAIN_SUPPORTED_CHAIN_PATH = "/api/v5/dex/pre-transaction/supported/chain"

QUOTE_OPTIONAL_PARAMS = (
    "dexIds",
    "directRoute",
    "priceImpactProtectionPercentage",
    "feePercent",
)
SWAP_OPTIONAL_PARAMS = (
    "swapReceiverAddress",
    "feePercent",
    "fromTokenReferrerWalletAddress",
    "toTokenReferrerWalletAddress",
    "dexIds",
    "directRoute",
    "priceImpactProtectionPercentage",
    "computeUnitPrice",
    "computeUnitLimit",
    "autoSlippage",
    "maxAutoSlippage",
)


def pick(args: dict[str, str], *keys: str) -> dict[str, str]:
    return {key: args[key] for key in keys if args.get(key)}


def build_trade_commands(client: OkxDexClient) -> list[CommandDefinition]:
    async def supported_chains(args: dict[str, str]) -> Any:
        return await client.get(AGGREGATOR_SUPPORTED_CHAIN_PATH, pick(args, "chainIndex"))

    async def get_tokens(args: dict[str, str]) -> Any:
        return await client.get(ALL_TOKENS_PATH, {"chainIndex": args["chainIndex"]})

    async def get_liquidity_sources(args: dict[str, str]) -> Any:
        return await client.get(LIQUIDITY_PATH, {"chainIndex": args["chainIndex"]})

    async def approve_transaction(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "tokenContractAddress": args["tokenContractAddress"],
            "approveAmount": args["approveAmount"],
        }
        return await client.get(APPROVE_TRANSACTION_PATH, params)

    async def get_quote(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "amount": args["amount"],
            "fromTokenAddress": args["fromTokenAddress"],
            "toTokenAddress": args["toTokenAddress"],
            **pick(args, "slippage", *QUOTE_OPTIONAL_PARAMS),
        }
        return await client.get(QUOTE_PATH, params)

    async def get_swap_data(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "amount": args["amount"],
            "fromTokenAddress": args["fromTokenAddress"],
            "toTokenAddress": args["toTokenAddress"],
            "slippage": args["slippage"],
            "userWalletAddress": args["userWalletAddress"],
            **pick(args, *SWAP_OPTIONAL_PARAMS),
        }
        return await client.get(SWAP_PATH, params)

    async def get_txn_status(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "txHash": args["txHash"],
            **pick(args, "isFromMyProject"),
        }
        return await client.get(HISTORY_PATH, params)

    async def onchain_supported_chains(args: dict[str, str]) -> Any:
        return await client.get(ONCHAIN_SUPPORTED_CHAIN_PATH)

    return [
        CommandDefinition(
            name="okx_get_supported_chains",
            handler=supported_chains,
            ui_description="Retrieve the chains supported by the OKX DEX Aggregator for single-chain swaps.",
            llm_description="Gets chains supported by the DEX aggregator.",
            example="okx_get_supported_chains chainIndex=501",
        ),
        CommandDefinition(
            name="okx_get_tokens",
            handler=get_tokens,
            required_params=("chainIndex",),
            ui_description="Fetches a list of tokens for a specific chain from OKX DEX Aggregator.",
            llm_description="Gets list of tokens for a chainIndex.",
            example="okx_get_tokens chainIndex=501",
        ),
        CommandDefinition(
            name="okx_get_liquidity_sources",
            handler=get_liquidity_sources,
            required_params=("chainIndex",),
            ui_description="Get a list of liquidity sources available for swap from OKX DEX Aggregator.",
            llm_description="Gets liquidity sources for a chainIndex.",
            example="okx_get_liquidity_sources chainIndex=1",
        ),
        CommandDefinition(
            name="okx_approve_transaction",
            handler=approve_transaction,
            required_params=("chainIndex", "tokenContractAddress", "approveAmount"),
            ui_description="Generate the call data for an ERC-20 approval so the DEX router can spend a token.",
            llm_description="Gets token approval call data for EVM chains.",
            example="okx_approve_transaction chainIndex=1 tokenContractAddress=0xTokenAddr approveAmount=1000000",
        ),
        CommandDefinition(
            name="okx_get_quote",
            handler=get_quote,
            required_params=("chainIndex", "amount", "fromTokenAddress", "toTokenAddress"),
            ui_description="Get the best quote for a swap from OKX DEX Aggregator.",
            llm_description="Gets swap quote for specified tokens and amount.",
            example=(
                "okx_get_quote chainIndex=501 amount=100000000 fromTokenAddress=So11... "
                "toTokenAddress=EPjF... slippage=0.5"
            ),
        ),
        CommandDefinition(
            name="okx_get_swap_data",
            handler=get_swap_data,
            required_params=(
                "chainIndex",
                "amount",
                "fromTokenAddress",
                "toTokenAddress",
                "slippage",
                "userWalletAddress",
            ),
            ui_description="Generate the unsigned swap transaction data for a quote from OKX DEX Aggregator.",
            llm_description="Gets swap transaction data for a wallet.",
            example=(
                "okx_get_swap_data chainIndex=501 amount=10000000 fromTokenAddress=So11... "
                "toTokenAddress=EPjF... slippage=0.5 userWalletAddress=yourAddress"
            ),
        ),
        CommandDefinition(
            name="okx_get_txn_status",
            handler=get_txn_status,
            required_params=("chainIndex", "txHash"),
            ui_description="Get the final transaction status of a single-chain swap using txhash from OKX DEX Aggregator.",
            llm_description="Gets transaction status by txHash and chainIndex.",
            example="okx_get_txn_status chainIndex=501 txHash=yourTxHash",
        ),
        CommandDefinition(
            name="okx_get_onchain_supported_chains",
            handler=onchain_supported_chains,
            ui_description="Retrieve information on chains supported by Onchain gateway API.",
            llm_description="Gets chains supported by Onchain Gateway API.",
            example="okx_get_onchain_supported_chains",
        ),
    ]


def build_trade_registry(client: OkxDexClient, wallet_address: str | None = None) -> CommandRegistry:
    return CommandRegistry("OKX Trade API", build_trade_commands(client), wallet_address=wallet_address)


__all__ = [
    "QUOTE_PATH",
    "SWAP_PATH",
    "build_trade_commands",
    "build_trade_registry",
    "pick",
]
