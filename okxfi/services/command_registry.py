from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable

from okxfi.core.errors import MissingParameterError, UnknownCommandError
from okxfi.models.chat import CommandInfo
from okxfi.services.command_args import parse_command_args

logger = logging.getLogger(__name__)

CommandHandler = Callable[[dict[str, str]], Awaitable[Any]]

WALLET_FALLBACK_PARAMS = ("address", "userWalletAddress")


@dataclass(frozen=True, slots=True)
class CommandDefinition:
    """A named OKX operation performing exactly one signed remote call."""

    name: str
    handler: CommandHandler
    ui_description: str
    llm_description: str
    example: str
    required_params: tuple[str, ...] = ()

    def info(self) -> CommandInfo:
        return CommandInfo(
            name=self.name,
            ui_description=self.ui_description,
            llm_tool_description=self.llm_description,
            example=self.example,
            required_params=list(self.required_params),
        )


class CommandRegistry:
    """Declarative name -> definition table with argument validation."""

    def __init__(
        self,
        label: str,
        definitions: Iterable[CommandDefinition],
        *,
        wallet_address: str | None = None,
        wallet_fallback_params: Iterable[str] = WALLET_FALLBACK_PARAMS,
    ) -> None:
        self.label = label
        self.wallet_address = wallet_address
        self.wallet_fallback_params = frozenset(wallet_fallback_params)
        self._commands: dict[str, CommandDefinition] = {}
        for definition in definitions:
            if definition.name in self._commands:
                raise ValueError(f"Duplicate {label} command: {definition.name}")
            self._commands[definition.name] = definition

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)

    def names(self) -> list[str]:
        return list(self._commands)

    def get(self, name: str) -> CommandDefinition | None:
        return self._commands.get(name)

    def list_commands(self) -> list[CommandInfo]:
        return [definition.info() for definition in self._commands.values()]

    def missing_params(self, definition: CommandDefinition, args: dict[str, str]) -> list[str]:
        missing: list[str] = []
        for param in definition.required_params:
            if args.get(param):
                continue
            if param in self.wallet_fallback_params and self.wallet_address:
                continue
            missing.append(param)
        return missing

    async def execute(self, name: str, args_string: str = "") -> Any:
        definition = self._commands.get(name)
        if definition is None:
            raise UnknownCommandError(name, self._commands, label=self.label)

        args = parse_command_args(args_string)
        missing = self.missing_params(definition, args)
        if missing:
            raise MissingParameterError(name, missing, definition.example)

        if self.wallet_address:
            for param in definition.required_params:
                if param in self.wallet_fallback_params and not args.get(param):
                    args[param] = self.wallet_address

        logger.info("Executing %s command %s", self.label, name)
        return await definition.handler(args)


__all__ = ["CommandDefinition", "CommandHandler", "CommandRegistry", "WALLET_FALLBACK_PARAMS"]
