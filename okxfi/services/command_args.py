from __future__ import annotations

import logging
import re
from typing import Any, Mapping

logger = logging.getLogger(__name__)

_ARG_PATTERN = re.compile(r"""(\w+)=("([^"]*)"|'([^']*)'|([^'"\s]+))""")


def parse_command_args(args_string: str | None) -> dict[str, str]:
    """Parse ``key=value key2="value with spaces"`` into a dict.

    Parsing is lenient: fragments that are not a well formed ``key=value``
    token (no ``=``, unmatched quotes) are skipped. Repeated keys keep the
    last value.
    """
    args: dict[str, str] = {}
    if not args_string:
        return args
    cursor = 0
    for match in _ARG_PATTERN.finditer(args_string):
        _log_skipped(args_string[cursor : match.start()])
        cursor = match.end()
        key = match.group(1)
        for group in (3, 4, 5):
            value = match.group(group)
            if value is not None:
                args[key] = value
                break
    _log_skipped(args_string[cursor:])
    return args


def _log_skipped(fragment: str) -> None:
    fragment = fragment.strip()
    if fragment:
        logger.debug("Skipping malformed argument fragment: %r", fragment)


def _quote(value: str) -> str:
    if not value or any(ch.isspace() for ch in value) or "'" in value or '"' in value:
        if '"' in value:
            return f"'{value}'"
        return f'"{value}"'
    return value


def build_args_string(args: Mapping[str, Any]) -> str:
    """Inverse of :func:`parse_command_args` for validated tool input."""
    parts: list[str] = []
    for key, value in args.items():
        if value is None:
            continue
        parts.append(f"{key}={_quote(str(value))}")
    return " ".join(parts)


__all__ = ["build_args_string", "parse_command_args"]
