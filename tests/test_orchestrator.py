"""Tests for the two-phase turn state machine."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import pytest
from fakes import text_reply, tool_reply

from concierge.context import TurnContext
from concierge.errors import UpstreamError
from concierge.models import KnowledgeSnippet, Profile, StoredMessage
from concierge.orchestrator import TurnRunner, TurnState, history_messages, run_turn
from concierge.tools.base import ToolResult

FINAL = json.dumps({
    "type": "answer",
    "message": "Start with a lightweight CRM that has drip email and reminders built in.",
    "actions": [{"label": "See CRMs", "action": "view_services", "params": {"category": "CRM"}}],
})


def _context(**kwargs) -> TurnContext:
    defaults = {"thread_id": "t1", "text": "best CRM for 20 deals a year"}
    defaults.update(kwargs)
    return TurnContext(**defaults)


def _mock_registry(result: ToolResult | None = None) -> MagicMock:
    reg = MagicMock()
    reg.get_schemas.return_value = [{"name": "vendor_search", "input_schema": {}}]
    reg.execute = AsyncMock(return_value=result or ToolResult(data={"services": []}))
    return reg


def _connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


# -- history_messages ----------------------------------------------------------


def _msg(i: int, role: str, content: str) -> StoredMessage:
    return StoredMessage(
        id=i, thread_id="t1", role=role, content=content, created_at="2025-01-01T00:00:00"
    )


def test_history_messages_oldest_first() -> None:
    history = [_msg(1, "user", "q"), _msg(2, "assistant", "a")]
    assert history_messages(history) == [
        {"role": "user", "content": "q"},
        {"role": "assistant", "content": "a"},
    ]


def test_history_messages_drops_leading_assistant() -> None:
    history = [_msg(1, "assistant", "a0"), _msg(2, "user", "q1"), _msg(3, "assistant", "a1")]
    assert history_messages(history)[0] == {"role": "user", "content": "q1"}


# -- Single pass -----------------------------------------------------------------


async def test_single_pass_without_tools() -> None:
    create = AsyncMock(return_value=text_reply(FINAL))
    reg = _mock_registry()

    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", reg),
    ):
        result = await run_turn(_context())

    assert result.type == "answer"
    assert result.trust is None
    assert create.await_count == 1
    kwargs = create.await_args.kwargs
    assert kwargs["tools"] == reg.get_schemas.return_value
    assert kwargs["tool_choice"] is None
    reg.execute.assert_not_awaited()


async def test_prompt_contains_history_and_context() -> None:
    create = AsyncMock(return_value=text_reply(FINAL))
    ctx = _context(
        history=[_msg(1, "user", "earlier"), _msg(2, "assistant", "{}")],
        profile=Profile(territory="TX", niche="Luxury"),
        snippets=[KnowledgeSnippet(id="c1", title="CRM guide", content="Use reminders")],
        market_pulse=["CRM demand up"],
    )

    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", _mock_registry()),
    ):
        await run_turn(ctx)

    messages = create.await_args.args[0]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[-1]["content"] == "best CRM for 20 deals a year"
    system = create.await_args.kwargs["system"]
    assert "Territory: TX" in system
    assert "CRM demand up" in system
    assert "CRM guide" in system


# -- Tool resolution -------------------------------------------------------------


async def test_tool_round_then_final_answer() -> None:
    create = AsyncMock(
        side_effect=[
            tool_reply(("tu1", "vendor_search", {"category": "CRM"}), text="Checking."),
            text_reply(FINAL),
        ]
    )
    reg = _mock_registry(ToolResult(data={"services": [{"id": "crm-1"}]}))
    ctx = _context()

    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", reg),
    ):
        runner = TurnRunner(ctx)
        result = await runner.run()

    assert result.actions[0].action == "view_services"
    assert runner.state is TurnState.DONE
    assert runner.tool_calls == ["vendor_search"]
    reg.execute.assert_awaited_once_with("vendor_search", {"category": "CRM"}, context=ctx)

    assert create.await_count == 2
    second = create.await_args_list[1]
    assert second.kwargs["tool_choice"] == {"type": "none"}
    messages = second.args[0]
    assert messages[-2]["role"] == "assistant"
    assert messages[-2]["content"][1]["type"] == "tool_use"
    tool_result = messages[-1]["content"][0]
    assert tool_result["type"] == "tool_result"
    assert tool_result["tool_use_id"] == "tu1"
    assert json.loads(tool_result["content"]) == {"services": [{"id": "crm-1"}]}
    assert tool_result["is_error"] is False


async def test_multiple_tool_calls_run_in_model_order() -> None:
    create = AsyncMock(
        side_effect=[
            tool_reply(
                ("a", "kb_search", {"query": "crm"}),
                ("b", "vendor_search", {}),
                ("c", "recommend_bundle", {"goal": "crm"}),
            ),
            text_reply(FINAL),
        ]
    )
    reg = _mock_registry()

    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", reg),
    ):
        await run_turn(_context())

    names = [c.args[0] for c in reg.execute.await_args_list]
    assert names == ["kb_search", "vendor_search", "recommend_bundle"]
    ids = [r["tool_use_id"] for r in create.await_args_list[1].args[0][-1]["content"]]
    assert ids == ["a", "b", "c"]


async def test_tool_error_result_is_passed_to_model() -> None:
    create = AsyncMock(side_effect=[tool_reply(("a", "nope", {})), text_reply(FINAL)])
    reg = _mock_registry(ToolResult(error="Unknown tool: nope"))

    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", reg),
    ):
        await run_turn(_context())

    tool_result = create.await_args_list[1].args[0][-1]["content"][0]
    assert tool_result["is_error"] is True


async def test_second_round_of_tools_is_rejected() -> None:
    create = AsyncMock(
        side_effect=[
            tool_reply(("a", "vendor_search", {})),
            tool_reply(("b", "vendor_search", {})),
        ]
    )
    reg = _mock_registry()

    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", reg),
        pytest.raises(UpstreamError),
    ):
        await run_turn(_context())

    assert reg.execute.await_count == 1


# -- Failures ----------------------------------------------------------------------


async def test_first_call_failure_is_upstream_error() -> None:
    create = AsyncMock(side_effect=_connection_error())
    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", _mock_registry()),
        pytest.raises(UpstreamError),
    ):
        await run_turn(_context())


async def test_second_call_failure_is_upstream_error() -> None:
    create = AsyncMock(side_effect=[tool_reply(("a", "vendor_search", {})), _connection_error()])
    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", _mock_registry()),
        pytest.raises(UpstreamError),
    ):
        await run_turn(_context())


async def test_unparseable_reply_is_upstream_error() -> None:
    create = AsyncMock(return_value=text_reply("Sure! A CRM is great."))
    with (
        patch("concierge.orchestrator.create_message", create),
        patch("concierge.orchestrator.registry", _mock_registry()),
        pytest.raises(UpstreamError),
    ):
        await run_turn(_context())
