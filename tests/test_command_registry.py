import asyncio
from typing import Any

import pytest

from okxfi.core.errors import CommandError, MissingParameterError, UnknownCommandError
from okxfi.services.command_registry import CommandDefinition, CommandRegistry
from okxfi.services.market_commands import build_market_registry, parse_token_pairs
from okxfi.services.trade_commands import build_trade_registry

WALLET = "WalletAddr1111111111111111111111111111111111"

SAMPLE_VALUES = {
    "chainIndex": "501",
    "amount": "10000000",
    "approveAmount": "1000000",
    "fromTokenAddress": "So11111111111111111111111111111111111111112",
    "toTokenAddress": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "tokenContractAddress": "So11111111111111111111111111111111111111112",
    "tokenContractAddresses": "501:NATIVE,501:EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "slippage": "0.5",
    "userWalletAddress": WALLET,
    "address": WALLET,
    "chains": "501",
    "txHash": "5abc",
}


class _RecordingClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, Any]] = []

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        self.calls.append(("GET", path, params))
        return {"code": "0", "msg": "", "data": [{"path": path}]}

    async def post(self, path: str, body: Any) -> Any:
        self.calls.append(("POST", path, body))
        return {"code": "0", "msg": "", "data": [{"path": path}]}


def _registries(client: _RecordingClient, wallet: str | None = None) -> list[CommandRegistry]:
    return [build_trade_registry(client, wallet), build_market_registry(client, wallet)]


def _args_for(params: tuple[str, ...]) -> str:
    return " ".join(f"{param}={SAMPLE_VALUES[param]}" for param in params)


def test_catalog_matches_expected_commands() -> None:
    trade, market = _registries(_RecordingClient())

    assert trade.names() == [
        "okx_get_supported_chains",
        "okx_get_tokens",
        "okx_get_liquidity_sources",
        "okx_approve_transaction",
        "okx_get_quote",
        "okx_get_swap_data",
        "okx_get_txn_status",
        "okx_get_onchain_supported_chains",
    ]
    assert len(market) == 10
    assert set(trade.names()).isdisjoint(market.names())
    for info in trade.list_commands() + market.list_commands():
        assert info.example.startswith(info.name)
        assert info.ui_description and info.llm_tool_description


def test_every_command_succeeds_with_required_params() -> None:
    async def scenario() -> None:
        client = _RecordingClient()
        for registry in _registries(client):
            for name in registry.names():
                definition = registry.get(name)
                before = len(client.calls)
                result = await registry.execute(name, _args_for(definition.required_params))
                assert result["code"] == "0"
                assert len(client.calls) == before + 1, name

    asyncio.run(scenario())


def test_every_missing_required_param_is_named() -> None:
    async def scenario() -> None:
        client = _RecordingClient()
        for registry in _registries(client):
            for name in registry.names():
                definition = registry.get(name)
                for param in definition.required_params:
                    remaining = tuple(p for p in definition.required_params if p != param)
                    with pytest.raises(MissingParameterError) as excinfo:
                        await registry.execute(name, _args_for(remaining))
                    assert excinfo.value.missing == [param]
                    message = str(excinfo.value)
                    assert f"Missing required parameters for {name}: {param}." in message
                    assert definition.example in message
        assert client.calls == []

    asyncio.run(scenario())


def test_empty_value_counts_as_missing() -> None:
    async def scenario() -> None:
        trade, _ = _registries(_RecordingClient())
        with pytest.raises(MissingParameterError, match="chainIndex"):
            await trade.execute("okx_get_tokens", 'chainIndex=""')

    asyncio.run(scenario())


def test_unknown_command_lists_available() -> None:
    async def scenario() -> None:
        trade, _ = _registries(_RecordingClient())
        with pytest.raises(UnknownCommandError) as excinfo:
            await trade.execute("okx_do_magic", "")
        message = str(excinfo.value)
        assert message.startswith("Unknown OKX Trade API command: okx_do_magic.")
        assert "okx_get_quote" in message

    asyncio.run(scenario())


def test_wallet_address_fills_missing_wallet_params() -> None:
    async def scenario() -> None:
        client = _RecordingClient()
        trade, market = _registries(client, wallet="ConfiguredWallet")

        await market.execute("okx_balance_get_total_value", "chains=1,501")
        await trade.execute(
            "okx_get_swap_data",
            "chainIndex=501 amount=1 fromTokenAddress=A toTokenAddress=B slippage=0.5",
        )
        await market.execute("okx_balance_get_total_value", "address=Explicit")

        assert client.calls[0][2] == {"address": "ConfiguredWallet", "chains": "1,501"}
        assert client.calls[1][2]["userWalletAddress"] == "ConfiguredWallet"
        assert client.calls[2][2]["address"] == "Explicit"

    asyncio.run(scenario())


def test_wallet_fallback_needs_a_configured_wallet() -> None:
    async def scenario() -> None:
        _, market = _registries(_RecordingClient(), wallet=None)
        with pytest.raises(MissingParameterError, match="address"):
            await market.execute("okx_balance_get_total_value", "")

    asyncio.run(scenario())


def test_quote_forwards_optional_params_only_when_given() -> None:
    async def scenario() -> None:
        client = _RecordingClient()
        trade, _ = _registries(client)
        await trade.execute(
            "okx_get_quote",
            "chainIndex=501 amount=100 fromTokenAddress=A toTokenAddress=B slippage=0.5 directRoute=true",
        )
        method, path, params = client.calls[0]
        assert (method, path) == ("GET", "/api/v5/dex/aggregator/quote")
        assert params == {
            "chainIndex": "501",
            "amount": "100",
            "fromTokenAddress": "A",
            "toTokenAddress": "B",
            "slippage": "0.5",
            "directRoute": "true",
        }

    asyncio.run(scenario())


def test_price_and_token_balances_are_posted() -> None:
    async def scenario() -> None:
        client = _RecordingClient()
        _, market = _registries(client)
        await market.execute("okx_market_get_price", "chainIndex=66 tokenContractAddress=0xabc")
        await market.execute(
            "okx_balance_get_token_balances",
            "address=W tokenContractAddresses=501:NATIVE,1:0xdef",
        )
        assert client.calls[0] == (
            "POST",
            "/api/v5/dex/market/price",
            [{"chainIndex": "66", "tokenContractAddress": "0xabc"}],
        )
        assert client.calls[1][2] == {
            "address": "W",
            "tokenContractAddresses": [
                {"chainIndex": "501", "tokenContractAddress": "NATIVE"},
                {"chainIndex": "1", "tokenContractAddress": "0xdef"},
            ],
        }

    asyncio.run(scenario())


def test_parse_token_pairs_uses_default_chain() -> None:
    assert parse_token_pairs("NATIVE", default_chain="501") == [
        {"chainIndex": "501", "tokenContractAddress": "NATIVE"}
    ]
    with pytest.raises(CommandError, match="chainIndex:address"):
        parse_token_pairs("NATIVE")


def test_duplicate_command_names_are_rejected() -> None:
    async def handler(args):
        return args

    definition = CommandDefinition("okx_dup", handler, "ui", "llm", "okx_dup")
    with pytest.raises(ValueError, match="Duplicate"):
        CommandRegistry("Test", [definition, definition])
