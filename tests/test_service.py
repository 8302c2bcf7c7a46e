"""End-to-end tests for the concierge request boundary."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import anthropic
import httpx
import pytest
from conftest import Stores
from fakes import text_reply, tool_reply

from concierge import service
from concierge.models import ConciergeResponse
from concierge.trust import BOOKING_LABEL

pytestmark = pytest.mark.usefixtures("api_key")

SHORT_ANSWER = json.dumps({"type": "answer", "message": "A simple CRM is enough."})
RICH_ANSWER = json.dumps({
    "type": "actions",
    "message": "At 20 deals a year, a lightweight CRM with drip email covers what you need.",
    "quick_replies": ["Compare the two"],
    "actions": [{"label": "See CRMs", "action": "view_services", "params": {"category": "CRM"}}],
    "citations": [{"title": "CRM guide", "source": "kb", "id": "c1"}],
})


def _model(*replies):
    return patch("concierge.orchestrator.create_message", AsyncMock(side_effect=list(replies)))


def _connection_error() -> anthropic.APIConnectionError:
    return anthropic.APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


async def _seed_knowledge(stores: Stores, n: int) -> None:
    for i in range(n):
        await stores.knowledge.add_document(f"CRM guide {i}", [f"crm deals advice {i}"])


# -- Validation ------------------------------------------------------------------


@pytest.mark.parametrize(
    "payload",
    [
        {"text": "hi"},
        {"thread_id": "t1"},
        {"thread_id": "", "text": "hi"},
        {"thread_id": "t1", "text": "   "},
        {"thread_id": "t1", "text": None},
        {},
        None,
        ["thread_id", "text"],
    ],
)
async def test_missing_fields_return_400(stores: Stores, payload) -> None:
    create = AsyncMock()
    with patch("concierge.orchestrator.create_message", create):
        status, body = await service.respond(payload)

    assert status == 400
    assert body["message"] == "Missing required fields"
    assert body["handoff"] == {"suggest": True, "reason": "Invalid request"}
    create.assert_not_awaited()


# -- Success -----------------------------------------------------------------------


async def test_crm_scenario_forces_handoff(stores: Stores) -> None:
    with _model(text_reply(SHORT_ANSWER)):
        status, body = await service.respond(
            {"thread_id": "t1", "text": "best CRM for 20 deals a year", "user_id": None}
        )

    assert status == 200
    assert 25 <= body["trust"]["confidence"] <= 35
    assert body["handoff"]["suggest"] is True
    assert any(
        a["label"] == BOOKING_LABEL and a["action"] == "book_meeting" for a in body["actions"]
    )


async def test_well_supported_answer_scores_100(stores: Stores) -> None:
    await _seed_knowledge(stores, 4)
    with _model(text_reply(RICH_ANSWER)):
        status, body = await service.respond({"thread_id": "t1", "text": "best CRM for 20 deals"})

    assert status == 200
    assert body["trust"]["confidence"] == 100
    assert body["handoff"]["suggest"] is False
    assert [a["label"] for a in body["actions"]] == ["See CRMs"]
    assert body["quick_replies"] == ["Compare the two"]
    assert len(body["trust"]["peer_patterns"]) == 3


async def test_quick_replies_filled_when_model_gives_none(stores: Stores) -> None:
    with _model(text_reply(SHORT_ANSWER)):
        _, body = await service.respond({"thread_id": "t1", "text": "best CRM for my team"})
    assert body["quick_replies"][0] == "What's your budget for a CRM?"


@pytest.mark.parametrize("field", ["quick_replies", "actions", "citations"])
async def test_null_optional_field_still_succeeds(stores: Stores, field: str) -> None:
    reply = json.dumps(
        {"type": "answer", "message": "A simple CRM is enough for you.", field: None}
    )
    with _model(text_reply(reply)):
        status, body = await service.respond({"thread_id": "t1", "text": "best CRM"})
    assert status == 200
    assert isinstance(body[field], list)


async def test_successful_turn_logs_user_then_assistant(stores: Stores) -> None:
    with _model(text_reply(RICH_ANSWER)):
        _, body = await service.respond(
            {"thread_id": "t1", "text": "best CRM for 20 deals", "user_id": "u1"}
        )

    rows = await stores.messages.recent("t1", limit=10)
    assert [r.role for r in rows] == ["user", "assistant"]
    assert {r.thread_id for r in rows} == {"t1"}
    assert rows[0].content == "best CRM for 20 deals"
    assert json.loads(rows[1].content) == body


async def test_logged_confidence_round_trips(stores: Stores) -> None:
    with _model(text_reply(RICH_ANSWER)):
        _, body = await service.respond({"thread_id": "t1", "text": "crm"})

    rows = await stores.messages.recent("t1", limit=2)
    stored = ConciergeResponse.model_validate_json(rows[1].content)
    assert stored.trust.confidence == body["trust"]["confidence"]
    assert json.loads(json.dumps(body))["trust"]["confidence"] == body["trust"]["confidence"]


async def test_second_turn_sees_first_turn_history(stores: Stores) -> None:
    create = AsyncMock(side_effect=[text_reply(SHORT_ANSWER), text_reply(SHORT_ANSWER)])
    with patch("concierge.orchestrator.create_message", create):
        await service.respond({"thread_id": "t1", "text": "first"})
        await service.respond({"thread_id": "t1", "text": "second"})

    messages = create.await_args_list[1].args[0]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[0]["content"] == "first"
    assert len(await stores.messages.recent("t1", limit=10)) == 4


async def test_tool_turn_end_to_end(stores: Stores) -> None:
    await stores.services.add_service("crm-1", "Lite CRM", "crm for small teams", "CRM", 25)
    with _model(tool_reply(("tu1", "vendor_search", {"category": "CRM"})), text_reply(RICH_ANSWER)):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})
    assert status == 200
    assert body["type"] == "actions"


# -- Failures ----------------------------------------------------------------------


def _assert_technical_issue(status: int, body: dict) -> None:
    assert status == 500
    assert body["message"] == (
        "I'm having trouble processing your request right now. "
        "Let me connect you with a human agent concierge."
    )
    assert body["handoff"] == {"suggest": True, "reason": "Technical issue"}
    assert body["actions"] == [
        {
            "label": "Book with an Agent Concierge",
            "action": "book_meeting",
            "params": {"source": "concierge", "topic": "technical_issue"},
        }
    ]


async def test_first_model_call_failure(stores: Stores) -> None:
    with _model(_connection_error()):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})
    _assert_technical_issue(status, body)
    assert await stores.messages.recent("t1", limit=10) == []


async def test_second_model_call_failure(stores: Stores) -> None:
    with _model(tool_reply(("tu1", "vendor_search", {})), _connection_error()):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})
    _assert_technical_issue(status, body)
    assert await stores.messages.recent("t1", limit=10) == []


async def test_tool_failure(stores: Stores) -> None:
    with (
        _model(tool_reply(("tu1", "vendor_search", {}))),
        patch.object(stores.services, "search", AsyncMock(side_effect=RuntimeError("db down"))),
    ):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})
    _assert_technical_issue(status, body)
    assert await stores.messages.recent("t1", limit=10) == []


async def test_schema_mismatch_is_technical_issue(stores: Stores) -> None:
    with _model(text_reply('{"type": "poem", "message": "roses"}')):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})
    _assert_technical_issue(status, body)


async def test_unexpected_exception_is_technical_issue(stores: Stores) -> None:
    with patch("concierge.service.build_turn_context", AsyncMock(side_effect=KeyError("x"))):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})
    _assert_technical_issue(status, body)
    assert "KeyError" not in json.dumps(body)


async def test_missing_api_key_fails_before_any_io(
    stores: Stores, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr("concierge.config.settings.anthropic_api_key", "")
    build = AsyncMock()
    with patch("concierge.service.build_turn_context", build):
        status, body = await service.respond({"thread_id": "t1", "text": "crm"})

    assert status == 500
    assert body["handoff"]["suggest"] is True
    build.assert_not_awaited()


# -- Thread history & feedback -----------------------------------------------------


async def test_thread_messages_expands_assistant_json(stores: Stores) -> None:
    with _model(text_reply(RICH_ANSWER)):
        _, body = await service.respond({"thread_id": "t1", "text": "crm"})
    await stores.messages.append_turn("t1", None, "raw", "not json")

    status, result = await service.thread_messages("t1")

    assert status == 200
    messages = result["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
    assert messages[1]["content"] == body["message"]
    assert messages[1]["trust"] == body["trust"]
    assert messages[1]["actions"] == body["actions"]
    assert messages[3]["content"] == "not json"
    assert "trust" not in messages[3]


async def test_thread_messages_scoped_to_user(stores: Stores) -> None:
    await stores.messages.append_turn("t1", "u1", "mine", "a")
    _, anon = await service.thread_messages("t1")
    _, mine = await service.thread_messages("t1", user_id="u1")
    assert anon["messages"] == []
    assert len(mine["messages"]) == 2


async def test_feedback_is_stored(stores: Stores) -> None:
    status, body = await service.submit_feedback(
        {"answer_id": 7, "helpful": False, "reason": "Pricing is wrong", "anon_id": "a1"}
    )
    assert status == 200
    assert body["ok"] is True
    rows = await stores.feedback.list_for_answer("7")
    assert rows[0]["id"] == body["id"]
    assert rows[0]["reason"] == "Pricing is wrong"


@pytest.mark.parametrize(
    "payload",
    [{}, {"answer_id": "7"}, {"helpful": True}, {"answer_id": "7", "helpful": "yes"}, None],
)
async def test_feedback_validation(stores: Stores, payload) -> None:
    status, body = await service.submit_feedback(payload)
    assert status == 400
    assert "error" in body
