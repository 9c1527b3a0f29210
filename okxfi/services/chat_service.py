from __future__ import annotations

import logging
from typing import Mapping, Protocol

from okxfi.core.errors import AgentInvocationError
from okxfi.models.chat import ChatMessage
from okxfi.services.agent_executor import AgentResult
from okxfi.services.history_service import SessionHistoryStore
from okxfi.services.tool_adapter import ToolContext

logger = logging.getLogger(__name__)


class ChatAgent(Protocol):
    async def invoke(
        self,
        user_input: str,
        history: list[ChatMessage],
        context: ToolContext | None = None,
    ) -> AgentResult:
        ...


def result_to_messages(result: AgentResult) -> list[ChatMessage]:
    """Shape an agent result into the uniform response list returned to the client."""
    messages: list[ChatMessage] = []
    for step in result.intermediate_steps:
        action = step.action
        messages.append(
            ChatMessage(
                role="assistant",
                content=f"Okay, I will use the {action.tool} tool. Input: {action.tool_input}.",
                tool_input=action.tool_input,
            )
        )
        messages.append(
            ChatMessage(
                role="tool",
                tool_call_id=action.tool_call_id,
                name=action.tool,
                content=step.observation,
            )
        )
    messages.append(ChatMessage(role="assistant", content=result.output))
    return messages


class ChatService:
    """Runs one chat turn: load history, invoke the agent, commit the turn."""

    def __init__(self, store: SessionHistoryStore, agents: Mapping[str, ChatAgent]) -> None:
        self.store = store
        self.agents = dict(agents)

    @property
    def modes(self) -> list[str]:
        return list(self.agents)

    async def handle_turn(self, session_id: str, message: str, mode: str) -> list[ChatMessage]:
        agent = self.agents.get(mode)
        if agent is None:
            raise ValueError(f"Unsupported chat mode: {mode}")

        turn = self.store.begin_turn(session_id, message)
        logger.info(
            "[%s] New user turn for session %s (history: %s messages)", mode, session_id, len(turn.history)
        )
        context = ToolContext(session_id=session_id, user_input=message, history=turn.history)
        try:
            result = await agent.invoke(message, turn.history, context)
        except AgentInvocationError:
            logger.error("[%s] Turn failed for session %s; history left unchanged", mode, session_id)
            raise
        except Exception as exc:
            logger.exception("[%s] Turn failed for session %s", mode, session_id)
            raise AgentInvocationError(
                f"An unexpected error occurred while processing your request: {exc}",
                details=repr(exc),
            ) from exc

        responses = result_to_messages(result)
        self.store.commit(turn, responses)
        logger.info("[%s] Final assistant response for session %s: %s", mode, session_id, result.output)
        return responses


__all__ = ["ChatAgent", "ChatService", "result_to_messages"]
