from __future__ import annotations

import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from okxfi.models.chat import ChatMessage

logger = logging.getLogger(__name__)

_SAMPLE_CHARS = 100
_ERROR_PREFIX_CHARS = 250
_BRIEF_JSON_CHARS = 150
_BRIEF_TEXT_CHARS = 200

SUCCESS_SUMMARY_MARKER = "Successfully returned"


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def summarize_tool_output(name: str, content: str) -> str:
    """Shrink a tool observation before it is written into session history."""
    summary = f"Tool {name} executed. "
    try:
        payload = json.loads(content)
    except (TypeError, ValueError):
        if content.lower().startswith("error executing"):
            return _truncate(content, _ERROR_PREFIX_CHARS)
        return f"Tool {name} output (brief): {content[:_BRIEF_TEXT_CHARS]}..."

    if not isinstance(payload, dict):
        return summary + f"Output (brief): {content[:_BRIEF_JSON_CHARS]}..."

    code = payload.get("code")
    data = payload.get("data")
    if code is not None:
        code = str(code)
    if code == "0" and data not in (None, "", False):
        if isinstance(data, list):
            summary += f"{SUCCESS_SUMMARY_MARKER} {len(data)} items."
            if data:
                sample = json.dumps(data[0], separators=(",", ":"))[:_SAMPLE_CHARS]
                summary += f" (Sample: {sample}...)"
        elif isinstance(data, dict):
            keys = ", ".join(list(data)[:3])
            summary += f"{SUCCESS_SUMMARY_MARKER} data object. (Keys: {keys}...)"
        else:
            summary += "Execution successful, data present."
        return summary
    if code and code != "0":
        return summary + f"Execution failed with code {code}: {payload.get('msg') or 'No details.'}"
    return summary + f"Output (brief): {content[:_BRIEF_JSON_CHARS]}..."


def summarize_for_history(message: ChatMessage) -> ChatMessage:
    if message.role != "tool" or not message.name:
        return message
    summary = summarize_tool_output(message.name, message.content)
    logger.debug("Storing summarized tool observation for %s: %s", message.name, summary)
    return message.model_copy(update={"content": summary})


@dataclass(slots=True)
class _Session:
    messages: list[ChatMessage] = field(default_factory=list)
    touched_at: float = 0.0


@dataclass(slots=True)
class TurnRecord:
    """A staged turn; nothing reaches the store until it is committed."""

    session_id: str
    user_message: ChatMessage
    history: list[ChatMessage]
    committed: bool = False


class SessionHistoryStore:
    """In-memory, session-keyed chat history with summarized tool output.

    Sessions are created lazily, evicted least-recently-used beyond
    ``max_sessions`` and expired after ``ttl_seconds`` without activity.
    Each session keeps at most ``max_messages`` entries (oldest dropped).
    Concurrent turns on one session are not serialized: each commit appends
    its whole turn in one step, in commit order.
    """

    def __init__(
        self,
        *,
        max_sessions: int = 500,
        ttl_seconds: float = 86400.0,
        max_messages: int = 200,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self.max_messages = max_messages
        self._clock = clock
        self._sessions: OrderedDict[str, _Session] = OrderedDict()

    def __len__(self) -> int:
        self._expire()
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        self._expire()
        return session_id in self._sessions

    def sessions(self) -> list[str]:
        self._expire()
        return list(self._sessions)

    def get(self, session_id: str) -> list[ChatMessage]:
        return list(self._touch(session_id).messages)

    def append(self, session_id: str, message: ChatMessage) -> None:
        self.extend(session_id, [message])

    def extend(self, session_id: str, messages: Iterable[ChatMessage]) -> None:
        session = self._touch(session_id)
        session.messages.extend(summarize_for_history(message) for message in messages)
        overflow = len(session.messages) - self.max_messages
        if overflow > 0:
            del session.messages[:overflow]

    def clear(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def begin_turn(self, session_id: str, user_text: str) -> TurnRecord:
        return TurnRecord(
            session_id=session_id,
            user_message=ChatMessage(role="user", content=user_text),
            history=self.get(session_id),
        )

    def commit(self, turn: TurnRecord, responses: Iterable[ChatMessage]) -> None:
        if turn.committed:
            raise RuntimeError(f"Turn for session {turn.session_id} already committed")
        self.extend(turn.session_id, [turn.user_message, *responses])
        turn.committed = True

    def _touch(self, session_id: str) -> _Session:
        self._expire()
        session = self._sessions.get(session_id)
        if session is None:
            session = _Session()
            self._sessions[session_id] = session
            logger.info("Created chat session %s", session_id)
        else:
            self._sessions.move_to_end(session_id)
        session.touched_at = self._clock()
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted least recently used chat session %s", evicted)
        return session

    def _expire(self) -> None:
        now = self._clock()
        expired = [sid for sid, session in self._sessions.items() if now - session.touched_at > self.ttl_seconds]
        for sid in expired:
            del self._sessions[sid]
            logger.info("Expired idle chat session %s", sid)


def history_payload(messages: Iterable[ChatMessage]) -> list[dict[str, Any]]:
    return [message.to_public() for message in messages]


__all__ = [
    "SUCCESS_SUMMARY_MARKER",
    "SessionHistoryStore",
    "TurnRecord",
    "history_payload",
    "summarize_for_history",
    "summarize_tool_output",
]
