from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Mapping

import base58
import httpx
from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from okxfi.core.config import Settings, get_settings
from okxfi.core.errors import ConfigurationError, SwapNotConfirmedError, TransportError
from okxfi.models.chat import ChatMessage
from okxfi.services.command_args import build_args_string
from okxfi.services.command_registry import CommandRegistry
from okxfi.services.history_service import SUCCESS_SUMMARY_MARKER

logger = logging.getLogger(__name__)

SOLANA_CHAIN_INDEX = "501"
QUOTE_TOOL_NAME = "OKX_GET_QUOTE"
EXECUTE_TOOL_NAME = "OKX_EXECUTE_SWAP"

_CONFIRM_PATTERN = re.compile(
    r"^\W*(yes|yep|yeah|y|confirm|confirmed|proceed|go ahead|execute|do it|sure|ok|okay)\b",
    re.IGNORECASE,
)
_NEGATION_PATTERN = re.compile(r"\b(no|nope|not|don't|dont|cancel|stop|wait|abort)\b", re.IGNORECASE)

QUOTE_MATCH_FIELDS = ("fromTokenAddress", "toTokenAddress", "amount")


def is_confirmation(text: str) -> bool:
    """The message opens with a confirmation word and carries no negation."""
    return bool(_CONFIRM_PATTERN.search(text or "")) and not _NEGATION_PATTERN.search(text or "")


def _quoted_args(announcement: ChatMessage | None) -> dict[str, str] | None:
    if announcement is None or announcement.role != "assistant" or not announcement.tool_input:
        return None
    try:
        args = json.loads(announcement.tool_input)
    except ValueError:
        return None
    if not isinstance(args, dict):
        return None
    return {key: str(value).strip() for key, value in args.items() if value is not None}


def pending_quote(history: Iterable[ChatMessage]) -> dict[str, str] | None:
    """Arguments of the newest successful quote not yet consumed by a swap.

    Only a successful execution consumes a quote; refused or failed
    executions leave it pending.
    """
    messages = list(history)
    for index in range(len(messages) - 1, -1, -1):
        message = messages[index]
        if message.role != "tool":
            continue
        succeeded = SUCCESS_SUMMARY_MARKER in message.content
        if message.name == EXECUTE_TOOL_NAME and succeeded:
            return None
        if message.name == QUOTE_TOOL_NAME:
            if not succeeded:
                return None
            return _quoted_args(messages[index - 1] if index else None)
    return None


def has_pending_quote(history: Iterable[ChatMessage]) -> bool:
    return pending_quote(history) is not None


def derive_wallet_address(settings: Settings) -> str | None:
    """WALLET_ADDRESS when set, otherwise the public key of SOLANA_PRIVATE_KEY."""
    if settings.wallet_address:
        return settings.wallet_address
    if not settings.solana_private_key:
        return None
    try:
        return str(Keypair.from_base58_string(settings.solana_private_key).pubkey())
    except ValueError as exc:
        raise ConfigurationError(f"SOLANA_PRIVATE_KEY is not a valid base58 keypair: {exc}") from exc


def ensure_swap_confirmed(
    history: Iterable[ChatMessage],
    user_input: str,
    swap_args: Mapping[str, Any] | None = None,
) -> None:
    quoted = pending_quote(history)
    if quoted is None:
        raise SwapNotConfirmedError(
            "No confirmed quote for this swap. Call OKX_GET_QUOTE, present the quote "
            "and ask the user to confirm before executing."
        )
    if swap_args is not None:
        changed = [
            field
            for field in QUOTE_MATCH_FIELDS
            if str(swap_args.get(field) or "").strip() != quoted.get(field, "")
        ]
        if changed:
            raise SwapNotConfirmedError(
                f"The swap differs from the last quote ({', '.join(changed)}). "
                "Call OKX_GET_QUOTE for the new swap and ask the user to confirm it."
            )
    if not is_confirmation(user_input):
        raise SwapNotConfirmedError(
            "The user has not explicitly confirmed the quoted swap. Ask for confirmation first."
        )


class SolanaSwapService:
    """Signs OKX aggregator swap transactions with the configured keypair."""

    def __init__(
        self,
        trade_registry: CommandRegistry,
        settings: Settings | None = None,
        *,
        keypair: Keypair | None = None,
        rpc_client: AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.trade_registry = trade_registry
        self._keypair = keypair
        self._rpc = rpc_client

    @property
    def keypair(self) -> Keypair:
        if self._keypair is None:
            if not self.settings.solana_private_key:
                raise ConfigurationError("SOLANA_PRIVATE_KEY is not set")
            self._keypair = Keypair.from_base58_string(self.settings.solana_private_key)
        return self._keypair

    @property
    def rpc(self) -> AsyncClient:
        if self._rpc is None:
            if not self.settings.rpc_url:
                raise ConfigurationError("RPC_URL is not set")
            self._rpc = AsyncClient(self.settings.rpc_url)
        return self._rpc

    @property
    def wallet_address(self) -> str | None:
        if self._keypair is None and not self.settings.solana_private_key:
            return self.settings.wallet_address
        return str(self.keypair.pubkey())

    def sign_transaction(self, encoded_tx: str) -> bytes:
        unsigned = VersionedTransaction.from_bytes(base58.b58decode(encoded_tx))
        signed = VersionedTransaction(unsigned.message, [self.keypair])
        return bytes(signed)

    async def send_transaction(self, encoded_tx: str) -> str:
        payload = self.sign_transaction(encoded_tx)
        try:
            response = await self.rpc.send_raw_transaction(payload, opts=TxOpts(skip_preflight=False))
        except (RPCException, httpx.HTTPError) as exc:
            raise TransportError(f"Solana RPC rejected the swap transaction: {exc}") from exc
        signature = str(response.value)
        logger.info("Swap transaction sent: https://solscan.io/tx/%s", signature)
        return signature

    async def execute_swap(self, args: dict[str, str]) -> Any:
        wallet = str(self.keypair.pubkey())
        request = {
            "chainIndex": args.get("chainIndex") or SOLANA_CHAIN_INDEX,
            "amount": args["amount"],
            "fromTokenAddress": args["fromTokenAddress"],
            "toTokenAddress": args["toTokenAddress"],
            "slippage": args.get("slippage") or "0.5",
            "userWalletAddress": wallet,
        }
        swap = await self.trade_registry.execute("okx_get_swap_data", build_args_string(request))
        if not isinstance(swap, dict) or str(swap.get("code")) != "0":
            return swap
        try:
            encoded_tx = swap["data"][0]["tx"]["data"]
        except (KeyError, IndexError, TypeError):
            return {"code": "-1", "msg": "OKX swap response did not include transaction data", "data": []}

        tx_hash = await self.send_transaction(encoded_tx)
        return {
            "code": "0",
            "msg": "",
            "data": [
                {
                    "txHash": tx_hash,
                    "chainIndex": request["chainIndex"],
                    "fromTokenAddress": request["fromTokenAddress"],
                    "toTokenAddress": request["toTokenAddress"],
                    "amount": request["amount"],
                    "userWalletAddress": wallet,
                }
            ],
        }

    async def aclose(self) -> None:
        if self._rpc is not None:
            await self._rpc.close()


__all__ = [
    "EXECUTE_TOOL_NAME",
    "QUOTE_TOOL_NAME",
    "SOLANA_CHAIN_INDEX",
    "SolanaSwapService",
    "derive_wallet_address",
    "ensure_swap_confirmed",
    "has_pending_quote",
    "is_confirmation",
    "pending_quote",
]
