from __future__ import annotations

from typing import Any, Iterable


class OkxfiError(Exception):
    """Base class for errors raised by the okxfi service."""


class ConfigurationError(OkxfiError):
    """A required configuration value is absent."""


class CommandError(OkxfiError):
    """Command-layer failure; reported back to the model as text."""


class UnknownCommandError(CommandError):
    def __init__(self, command: str, available: Iterable[str], *, label: str = "OKX") -> None:
        self.command = command
        self.available = list(available)
        super().__init__(
            f"Unknown {label} command: {command}. Available commands: {', '.join(self.available)}"
        )


class MissingParameterError(CommandError):
    def __init__(self, command: str, missing: Iterable[str], example: str) -> None:
        self.command = command
        self.missing = list(missing)
        self.example = example
        super().__init__(
            f"Missing required parameters for {command}: {', '.join(self.missing)}. Example: {example}"
        )


class SwapNotConfirmedError(CommandError):
    """Execute-swap was requested before a quote was confirmed by the user."""


class TransportError(OkxfiError):
    """Network failure or non-2xx response from a remote endpoint."""

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class AgentInvocationError(OkxfiError):
    """The model call or the agent loop failed for the current turn."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details


__all__ = [
    "AgentInvocationError",
    "CommandError",
    "ConfigurationError",
    "MissingParameterError",
    "OkxfiError",
    "SwapNotConfirmedError",
    "TransportError",
    "UnknownCommandError",
]
