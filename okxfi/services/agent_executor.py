from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from okxfi.core.errors import AgentInvocationError, ConfigurationError
from okxfi.models.chat import ChatMessage
from okxfi.services.llm_service import is_context_length_error
from okxfi.services.tool_adapter import AgentTool, ToolContext, ensure_unique_names

logger = logging.getLogger(__name__)

MAX_ITERATIONS_OUTPUT = "Agent stopped due to max iterations."
_OBSERVATION_SAMPLE_CHARS = 300


class ChatModel(Protocol):
    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        ...


@dataclass(slots=True)
class AgentAction:
    tool: str
    tool_input: str
    tool_call_id: str


@dataclass(slots=True)
class AgentStep:
    action: AgentAction
    observation: str


@dataclass(slots=True)
class AgentResult:
    output: str
    intermediate_steps: list[AgentStep] = field(default_factory=list)


def new_tool_call_id() -> str:
    return f"tool_call_{uuid.uuid4().hex[:12]}"


def _tool_call(tool_call_id: str, name: str, arguments: str) -> dict[str, Any]:
    return {
        "id": tool_call_id,
        "type": "function",
        "function": {"name": name, "arguments": arguments},
    }


def history_to_messages(history: Iterable[ChatMessage]) -> list[dict[str, Any]]:
    """Convert stored chat history into the chat-completions message protocol.

    A tool result must follow an assistant message carrying the matching
    ``tool_calls`` entry; announcements recorded with ``tool_input`` become
    that message, and orphan tool results get a synthesized one.
    """
    items = list(history)
    messages: list[dict[str, Any]] = []
    index = 0
    while index < len(items):
        message = items[index]
        following = items[index + 1] if index + 1 < len(items) else None
        if message.role == "user":
            messages.append({"role": "user", "content": message.content})
        elif message.role == "assistant":
            if following is not None and following.role == "tool" and message.tool_input is not None:
                messages.append(
                    {
                        "role": "assistant",
                        "content": message.content,
                        "tool_calls": [_tool_call(following.tool_call_id, following.name, message.tool_input)],
                    }
                )
                messages.append(
                    {"role": "tool", "tool_call_id": following.tool_call_id, "content": following.content}
                )
                index += 2
                continue
            messages.append({"role": "assistant", "content": message.content})
        elif message.role == "tool":
            messages.append(
                {
                    "role": "assistant",
                    "content": "",
                    "tool_calls": [_tool_call(message.tool_call_id, message.name, "{}")],
                }
            )
            messages.append({"role": "tool", "tool_call_id": message.tool_call_id, "content": message.content})
        index += 1
    return messages


class AgentExecutor:
    """Runs the model/tool loop for one user turn."""

    def __init__(
        self,
        llm: ChatModel,
        tools: list[AgentTool],
        system_prompt: str,
        *,
        max_iterations: int = 8,
        name: str = "agent",
    ) -> None:
        ensure_unique_names(tools)
        self.llm = llm
        self.tools = {tool.name: tool for tool in tools}
        self.system_prompt = system_prompt
        self.max_iterations = max_iterations
        self.name = name

    def tool_specs(self) -> list[dict[str, Any]]:
        return [tool.to_openai_spec() for tool in self.tools.values()]

    async def invoke(
        self,
        user_input: str,
        history: list[ChatMessage],
        context: ToolContext | None = None,
    ) -> AgentResult:
        context = context or ToolContext(user_input=user_input, history=list(history))
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            *history_to_messages(history),
            {"role": "user", "content": user_input},
        ]
        steps: list[AgentStep] = []
        for iteration in range(self.max_iterations):
            try:
                reply = await self.llm.complete(messages, self.tool_specs())
            except ConfigurationError as exc:
                raise AgentInvocationError(str(exc)) from exc
            except Exception as exc:
                logger.error("[%s] model call failed on iteration %s: %s", self.name, iteration, exc)
                raise AgentInvocationError(_describe_model_failure(exc), details=repr(exc)) from exc

            tool_calls = reply.get("tool_calls") or []
            if not tool_calls:
                return AgentResult(output=reply.get("content") or "", intermediate_steps=steps)

            actions: list[AgentAction] = []
            for call in tool_calls:
                function = call.get("function") or {}
                tool_input = function.get("arguments") or "{}"
                if not isinstance(tool_input, str):
                    tool_input = json.dumps(tool_input)
                actions.append(AgentAction(function.get("name") or "", tool_input, call.get("id") or new_tool_call_id()))
            messages.append(
                {
                    "role": "assistant",
                    "content": reply.get("content") or "",
                    "tool_calls": [_tool_call(a.tool_call_id, a.tool, a.tool_input) for a in actions],
                }
            )
            for action in actions:
                observation = await self._run_tool(action.tool, action.tool_input, context)
                steps.append(AgentStep(action, observation))
                messages.append({"role": "tool", "tool_call_id": action.tool_call_id, "content": observation})

        logger.warning("[%s] stopped after %s iterations", self.name, self.max_iterations)
        return AgentResult(output=MAX_ITERATIONS_OUTPUT, intermediate_steps=steps)

    async def _run_tool(self, tool_name: str, tool_input: str, context: ToolContext) -> str:
        tool = self.tools.get(tool_name)
        if tool is None:
            return f"{tool_name} is not a valid tool, try one of [{', '.join(self.tools)}]."
        try:
            observation = await tool.invoke(tool_input, context)
        except Exception as exc:
            logger.exception("[%s] tool %s raised", self.name, tool_name)
            return f"Error executing {tool_name}: {exc}"
        sample = observation[:_OBSERVATION_SAMPLE_CHARS]
        if len(observation) > _OBSERVATION_SAMPLE_CHARS:
            sample += "..."
        logger.info("[%s] Tool Call: %s Input: %s Observation (sample): %s", self.name, tool_name, tool_input, sample)
        return observation


def _describe_model_failure(exc: Exception) -> str:
    if is_context_length_error(exc):
        return (
            "Model context length exceeded. The conversation history or tool descriptions are too long. "
            "Please try a shorter query or start a new session."
        )
    return f"An unexpected error occurred while processing your request: {exc}"


__all__ = [
    "AgentAction",
    "AgentExecutor",
    "AgentResult",
    "AgentStep",
    "ChatModel",
    "MAX_ITERATIONS_OUTPUT",
    "history_to_messages",
    "new_tool_call_id",
]
