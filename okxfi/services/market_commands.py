from __future__ import annotations

from typing import Any

from okxfi.core.errors import CommandError
from okxfi.services.command_registry import CommandDefinition, CommandRegistry
from okxfi.services.okx_client import OkxDexClient
from okxfi.services.trade_commands import pick

MARKET_SUPPORTED_CHAIN_PATH = "/api/v5/dex/market/supported/chain"
MARKET_PRICE_PATH = "/api/v5/dex/market/price"
MARKET_TRADES_PATH = "/api/v5/dex/market/trades"
MARKET_CANDLES_PATH = "/api/v5/dex/market/candles"
BALANCE_SUPPORTED_CHAIN_PATH = "/api/v5/dex/balance/supported/chain"
BALANCE_TOTAL_VALUE_PATH = "/api/v5/dex/balance/total-value"
BALANCE_ALL_TOKENS_PATH = "/api/v5/dex/balance/all-token-balances-by-address"
BALANCE_SPECIFIC_TOKENS_PATH = "/api/v5/dex/balance/token-balances-by-address"
HISTORY_TRANSACTIONS_PATH = "/api/v5/dex/post-transaction/transactions-by-address"
HISTORY_DETAIL_PATH = "/api/v5/dex/post-transaction/transaction-detail-by-txhash"


def parse_token_pairs(raw: str, default_chain: str | None = None) -> list[dict[str, str]]:
    """Split ``"501:NATIVE,1:0xabc"`` into OKX token address objects."""
    pairs: list[dict[str, str]] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        chain, sep, address = item.partition(":")
        if not sep:
            if not default_chain:
                raise CommandError(f"Token entry '{item}' must look like chainIndex:address")
            chain, address = default_chain, item
        pairs.append({"chainIndex": chain.strip(), "tokenContractAddress": address.strip()})
    return pairs


def build_market_commands(client: OkxDexClient) -> list[CommandDefinition]:
    async def market_supported_chains(args: dict[str, str]) -> Any:
        return await client.get(MARKET_SUPPORTED_CHAIN_PATH, pick(args, "chainIndex"))

    async def market_get_price(args: dict[str, str]) -> Any:
        body = [{"chainIndex": args["chainIndex"], "tokenContractAddress": args["tokenContractAddress"]}]
        return await client.post(MARKET_PRICE_PATH, body)

    async def market_get_trades(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "tokenContractAddress": args["tokenContractAddress"],
            **pick(args, "after", "limit"),
        }
        return await client.get(MARKET_TRADES_PATH, params)

    async def market_get_candles(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "tokenContractAddress": args["tokenContractAddress"],
            **pick(args, "after", "before", "bar", "limit"),
        }
        return await client.get(MARKET_CANDLES_PATH, params)

    async def balance_supported_chains(args: dict[str, str]) -> Any:
        return await client.get(BALANCE_SUPPORTED_CHAIN_PATH)

    async def balance_total_value(args: dict[str, str]) -> Any:
        params = {
            "address": args["address"],
            **pick(args, "chains", "assetType", "excludeRiskToken"),
        }
        return await client.get(BALANCE_TOTAL_VALUE_PATH, params)

    async def balance_all_tokens(args: dict[str, str]) -> Any:
        params = {
            "address": args["address"],
            "chains": args["chains"],
            **pick(args, "excludeRiskToken"),
        }
        return await client.get(BALANCE_ALL_TOKENS_PATH, params)

    async def balance_specific_tokens(args: dict[str, str]) -> Any:
        body: dict[str, Any] = {
            "address": args["address"],
            "tokenContractAddresses": parse_token_pairs(
                args["tokenContractAddresses"], default_chain=args.get("chainIndex")
            ),
        }
        body.update(pick(args, "excludeRiskToken"))
        return await client.post(BALANCE_SPECIFIC_TOKENS_PATH, body)

    async def history_transactions(args: dict[str, str]) -> Any:
        params = {
            "address": args["address"],
            "chains": args["chains"],
            **pick(args, "tokenContractAddress", "begin", "end", "cursor", "limit"),
        }
        return await client.get(HISTORY_TRANSACTIONS_PATH, params)

    async def history_transaction_detail(args: dict[str, str]) -> Any:
        params = {
            "chainIndex": args["chainIndex"],
            "txHash": args["txHash"],
            **pick(args, "itype"),
        }
        return await client.get(HISTORY_DETAIL_PATH, params)

    return [
        CommandDefinition(
            name="okx_market_supported_chains",
            handler=market_supported_chains,
            ui_description="Retrieve information on chains supported by OKX Market API.",
            llm_description="Gets chains supported by Market API.",
            example="okx_market_supported_chains chainIndex=1",
        ),
        CommandDefinition(
            name="okx_market_get_price",
            handler=market_get_price,
            required_params=("chainIndex", "tokenContractAddress"),
            ui_description="Retrieve the latest price of a token using OKX Market API.",
            llm_description="Gets latest token price by chain and address.",
            example="okx_market_get_price chainIndex=66 tokenContractAddress=0xTokenAddr",
        ),
        CommandDefinition(
            name="okx_market_get_trades",
            handler=market_get_trades,
            required_params=("chainIndex", "tokenContractAddress"),
            ui_description="Retrieve the most recent trades of a token using OKX Market API.",
            llm_description="Gets recent trades for a token.",
            example="okx_market_get_trades chainIndex=501 tokenContractAddress=So11... limit=20",
        ),
        CommandDefinition(
            name="okx_market_get_candles",
            handler=market_get_candles,
            required_params=("chainIndex", "tokenContractAddress"),
            ui_description="Retrieve candlestick (OHLCV) data of a token using OKX Market API.",
            llm_description="Gets candlesticks for a token.",
            example="okx_market_get_candles chainIndex=501 tokenContractAddress=So11... bar=1H limit=24",
        ),
        CommandDefinition(
            name="okx_balance_supported_chains",
            handler=balance_supported_chains,
            ui_description="Retrieve the chains supported by the OKX Balance API.",
            llm_description="Gets chains supported by Balance API.",
            example="okx_balance_supported_chains",
        ),
        CommandDefinition(
            name="okx_balance_get_total_value",
            handler=balance_total_value,
            required_params=("address",),
            ui_description="Retrieve total balance of all tokens and DeFi assets for an address.",
            llm_description="Gets total asset value for an address.",
            example="okx_balance_get_total_value address=yourAddress chains=1,501",
        ),
        CommandDefinition(
            name="okx_balance_get_all_token_balances",
            handler=balance_all_tokens,
            required_params=("address", "chains"),
            ui_description="Retrieve the list of token balances held by an address on the given chains.",
            llm_description="Gets all token balances for an address.",
            example="okx_balance_get_all_token_balances address=yourAddress chains=501",
        ),
        CommandDefinition(
            name="okx_balance_get_token_balances",
            handler=balance_specific_tokens,
            required_params=("address", "tokenContractAddresses"),
            ui_description="Retrieve the balances of specific tokens held by an address.",
            llm_description="Gets balances of specific tokens for an address.",
            example=(
                "okx_balance_get_token_balances address=yourAddress "
                "tokenContractAddresses=501:NATIVE,501:EPjF..."
            ),
        ),
        CommandDefinition(
            name="okx_history_get_transactions",
            handler=history_transactions,
            required_params=("address", "chains"),
            ui_description="Query the transaction history of an address across the given chains.",
            llm_description="Gets transaction history for an address.",
            example="okx_history_get_transactions address=yourAddress chains=501 limit=20",
        ),
        CommandDefinition(
            name="okx_history_get_transaction_detail",
            handler=history_transaction_detail,
            required_params=("chainIndex", "txHash"),
            ui_description="Retrieve the details of a single transaction by its hash.",
            llm_description="Gets transaction details by txHash.",
            example="okx_history_get_transaction_detail chainIndex=501 txHash=yourTxHash",
        ),
    ]


def build_market_registry(client: OkxDexClient, wallet_address: str | None = None) -> CommandRegistry:
    return CommandRegistry("OKX Market API", build_market_commands(client), wallet_address=wallet_address)


__all__ = ["build_market_commands", "build_market_registry", "parse_token_pairs"]
