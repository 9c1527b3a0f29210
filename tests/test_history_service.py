import json

import pytest

from okxfi.models.chat import ChatMessage
from okxfi.services.history_service import SessionHistoryStore, history_payload, summarize_tool_output


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _tool(name: str, content: str, call_id: str = "call_1") -> ChatMessage:
    return ChatMessage(role="tool", name=name, tool_call_id=call_id, content=content)


def test_summary_of_successful_list_reports_count_and_sample() -> None:
    items = [{"tokenSymbol": f"TK{i}", "decimals": "6"} for i in range(5)]
    content = json.dumps({"code": "0", "msg": "", "data": items})

    summary = summarize_tool_output("okx_get_tokens", content)

    assert summary.startswith("Tool okx_get_tokens executed. Successfully returned 5 items.")
    assert '(Sample: {"tokenSymbol":"TK0","decimals":"6"}...)' in summary


def test_summary_of_empty_list_and_object() -> None:
    empty = summarize_tool_output("okx_get_tokens", json.dumps({"code": "0", "data": []}))
    obj = summarize_tool_output("okx_get_quote", json.dumps({"code": 0, "data": {"a": 1, "b": 2, "c": 3, "d": 4}}))

    assert empty == "Tool okx_get_tokens executed. Successfully returned 0 items."
    assert obj.endswith("Successfully returned data object. (Keys: a, b, c...)")


def test_summary_of_failed_call_includes_code_and_message() -> None:
    content = json.dumps({"code": "51000", "msg": "Parameter chainIndex error", "data": []})

    summary = summarize_tool_output("okx_get_quote", content)

    assert summary == "Tool okx_get_quote executed. Execution failed with code 51000: Parameter chainIndex error"


def test_summary_of_plain_text_outputs() -> None:
    error_text = "Error executing okx_get_quote: " + "x" * 400
    invalid_text = "Invalid input format for okx_get_quote. " + "y" * 400

    error_summary = summarize_tool_output("okx_get_quote", error_text)
    invalid_summary = summarize_tool_output("okx_get_quote", invalid_text)
    chain_summary = summarize_tool_output("resolve_chain_info", json.dumps({"chainIndex": "501", "status": "success"}))

    assert error_summary == error_text[:250] + "..."
    assert invalid_summary == f"Tool okx_get_quote output (brief): {invalid_text[:200]}..."
    assert chain_summary.startswith("Tool resolve_chain_info executed. Output (brief): {")


def test_store_summarizes_tool_messages_only() -> None:
    store = SessionHistoryStore()
    content = json.dumps({"code": "0", "data": [{"chainIndex": "501"}]})

    store.extend(
        "s1",
        [
            ChatMessage(role="user", content="chains?"),
            ChatMessage(role="assistant", content="Okay", tool_input="{}"),
            _tool("okx_get_supported_chains", content),
            ChatMessage(role="assistant", content="Solana is supported."),
        ],
    )
    history = store.get("s1")

    assert [m.role for m in history] == ["user", "assistant", "tool", "assistant"]
    assert history[2].content.startswith("Tool okx_get_supported_chains executed. Successfully returned 1 items.")
    assert history[2].tool_call_id == "call_1"
    assert history[3].content == "Solana is supported."
    assert history_payload(history)[0] == {"role": "user", "content": "chains?"}


def test_get_returns_a_copy_and_creates_sessions_lazily() -> None:
    store = SessionHistoryStore()

    assert "fresh" not in store
    history = store.get("fresh")
    history.append(ChatMessage(role="user", content="mutated"))

    assert "fresh" in store
    assert store.get("fresh") == []


def test_least_recently_used_session_is_evicted() -> None:
    store = SessionHistoryStore(max_sessions=2)
    store.append("a", ChatMessage(role="user", content="1"))
    store.append("b", ChatMessage(role="user", content="2"))
    store.get("a")
    store.append("c", ChatMessage(role="user", content="3"))

    assert store.sessions() == ["a", "c"]


def test_idle_sessions_expire() -> None:
    clock = _Clock()
    store = SessionHistoryStore(ttl_seconds=60, clock=clock)
    store.append("old", ChatMessage(role="user", content="hi"))
    clock.now = 30
    store.append("new", ChatMessage(role="user", content="hi"))
    clock.now = 61

    assert store.sessions() == ["new"]
    assert len(store) == 1


def test_message_cap_drops_oldest_entries() -> None:
    store = SessionHistoryStore(max_messages=3)
    for index in range(5):
        store.append("s", ChatMessage(role="user", content=str(index)))

    assert [m.content for m in store.get("s")] == ["2", "3", "4"]


def test_turn_is_invisible_until_committed() -> None:
    store = SessionHistoryStore()
    turn = store.begin_turn("s", "hello")

    assert store.get("s") == []
    store.commit(turn, [ChatMessage(role="assistant", content="hi there")])

    assert [m.content for m in store.get("s")] == ["hello", "hi there"]
    with pytest.raises(RuntimeError):
        store.commit(turn, [])


def test_abandoned_turn_leaves_history_unchanged() -> None:
    store = SessionHistoryStore()
    store.commit(store.begin_turn("s", "first"), [ChatMessage(role="assistant", content="one")])

    store.begin_turn("s", "second")

    assert [m.content for m in store.get("s")] == ["first", "one"]


def test_concurrent_turns_commit_contiguous_blocks() -> None:
    store = SessionHistoryStore()
    first = store.begin_turn("s", "question A")
    second = store.begin_turn("s", "question B")

    # Both turns were started from the same (empty) history.
    assert first.history == second.history == []

    store.commit(second, [ChatMessage(role="assistant", content="answer B")])
    store.commit(first, [ChatMessage(role="assistant", content="answer A")])

    assert [m.content for m in store.get("s")] == ["question B", "answer B", "question A", "answer A"]


def test_clear_removes_session() -> None:
    store = SessionHistoryStore()
    store.append("s", ChatMessage(role="user", content="hi"))

    store.clear("s")

    assert "s" not in store
