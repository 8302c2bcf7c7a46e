"""Request boundary for the concierge.

Every public coroutine here returns ``(status, body)``. All failures are
converted to fixed, user-safe payloads; no exception text reaches a client.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field, StrictBool, ValidationError, field_validator

from concierge.context import build_turn_context
from concierge.errors import ConfigurationError, UpstreamError
from concierge.llm.client import ensure_configured
from concierge.models import ConciergeResponse, StoredMessage
from concierge.orchestrator import run_turn
from concierge.quick_replies import suggest_quick_replies
from concierge.store.feedback import FeedbackStore
from concierge.store.messages import MessageLog
from concierge.trust import BOOKING_LABEL, apply_trust_policy

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields"
TECHNICAL_ISSUE_MESSAGE = (
    "I'm having trouble processing your request right now. "
    "Let me connect you with a human agent concierge."
)
CONFIGURATION_MESSAGE = (
    "I'm having trouble connecting to my AI service right now. "
    "Let me connect you with a human agent concierge."
)


def invalid_request_body() -> dict[str, Any]:
    return {
        "type": "answer",
        "message": MISSING_FIELDS_MESSAGE,
        "handoff": {"suggest": True, "reason": "Invalid request"},
    }


def _apology_body(message: str, reason: str) -> dict[str, Any]:
    return {
        "type": "answer",
        "message": message,
        "handoff": {"suggest": True, "reason": reason},
        "actions": [
            {
                "label": BOOKING_LABEL,
                "action": "book_meeting",
                "params": {"source": "concierge", "topic": "technical_issue"},
            }
        ],
    }


def technical_issue_body() -> dict[str, Any]:
    return _apology_body(TECHNICAL_ISSUE_MESSAGE, "Technical issue")


def configuration_error_body() -> dict[str, Any]:
    return _apology_body(CONFIGURATION_MESSAGE, "Service configuration issue")


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RespondRequest(BaseModel):
    thread_id: str = Field(min_length=1)
    text: str = Field(min_length=1)
    user_id: str | None = None

    @field_validator("thread_id", "text", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("user_id", mode="before")
    @classmethod
    def _normalise_user(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        return str(value) if value is not None else None


class FeedbackRequest(BaseModel):
    answer_id: str = Field(min_length=1)
    helpful: StrictBool
    reason: str | None = None
    thread_id: str | None = None
    user_id: str | None = None
    anon_id: str | None = None

    @field_validator("answer_id", mode="before")
    @classmethod
    def _coerce_answer_id(cls, value: Any) -> Any:
        return str(value).strip() if isinstance(value, int | str) else value

    @field_validator("reason", "thread_id", "user_id", "anon_id", mode="before")
    @classmethod
    def _blank(cls, value: Any) -> Any:
        return _blank_to_none(value)


# ---------------------------------------------------------------------------
# POST /concierge/respond
# ---------------------------------------------------------------------------


def _finalise(
    response: ConciergeResponse, user_text: str, titles: list[str]
) -> ConciergeResponse:
    if not response.quick_replies:
        response = response.model_copy(
            update={"quick_replies": suggest_quick_replies(user_text, response.message)}
        )
    return apply_trust_policy(response, titles)


async def respond(payload: Any) -> tuple[int, dict[str, Any]]:
    """Handle one concierge turn end to end."""
    if not isinstance(payload, dict):
        return 400, invalid_request_body()
    try:
        request = RespondRequest.model_validate(payload)
    except ValidationError:
        logger.warning("Rejected concierge request: missing thread_id or text")
        return 400, invalid_request_body()

    logger.info(
        "Concierge turn: thread=%s user=%s text=%.50r",
        request.thread_id,
        request.user_id or "anonymous",
        request.text,
    )

    try:
        ensure_configured()
        context = await build_turn_context(
            request.thread_id, request.text, user_id=request.user_id
        )
        reply = await run_turn(context)
        response = _finalise(reply, request.text, [s.title for s in context.snippets])
        body = response.model_dump(mode="json")
        await MessageLog.get().append_turn(
            request.thread_id,
            request.user_id,
            request.text,
            json.dumps(body),
        )
    except ConfigurationError:
        logger.exception("Concierge is not configured")
        return 500, configuration_error_body()
    except UpstreamError:
        logger.exception("Concierge turn failed upstream (thread=%s)", request.thread_id)
        return 500, technical_issue_body()
    except Exception:
        logger.exception("Unexpected concierge failure (thread=%s)", request.thread_id)
        return 500, technical_issue_body()

    logger.info(
        "Concierge reply: thread=%s type=%s confidence=%d handoff=%s",
        request.thread_id,
        body["type"],
        body["trust"]["confidence"],
        body["handoff"]["suggest"],
    )
    return 200, body


# ---------------------------------------------------------------------------
# GET /concierge/threads/{thread_id}/messages
# ---------------------------------------------------------------------------


def expand_message(message: StoredMessage) -> dict[str, Any]:
    """Client view of a stored row; assistant JSON is unpacked when valid."""
    item: dict[str, Any] = {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "created_at": message.created_at,
    }
    if message.role != "assistant":
        return item
    try:
        parsed = ConciergeResponse.model_validate_json(message.content)
    except ValidationError:
        return item
    item.update(
        content=parsed.message,
        trust=parsed.trust.model_dump() if parsed.trust else None,
        citations=[c.model_dump() for c in parsed.citations],
        actions=[a.model_dump() for a in parsed.actions],
        quick_replies=parsed.quick_replies,
        handoff=parsed.handoff.model_dump(),
    )
    return item


async def thread_messages(
    thread_id: str, user_id: str | None = None
) -> tuple[int, dict[str, Any]]:
    if not thread_id.strip():
        return 400, {"error": "thread_id is required"}
    try:
        rows = await MessageLog.get().list_thread(thread_id, user_id=user_id or None)
    except Exception:
        logger.exception("Failed to load thread %s", thread_id)
        return 500, {"error": "Could not load messages"}
    return 200, {"messages": [expand_message(m) for m in rows]}


# ---------------------------------------------------------------------------
# POST /concierge/feedback
# ---------------------------------------------------------------------------


async def submit_feedback(payload: Any) -> tuple[int, dict[str, Any]]:
    if not isinstance(payload, dict):
        return 400, {"error": "answer_id and helpful are required"}
    try:
        request = FeedbackRequest.model_validate(payload)
    except ValidationError:
        return 400, {"error": "answer_id and helpful are required"}

    try:
        feedback_id = await FeedbackStore.get().add(
            answer_id=request.answer_id,
            helpful=request.helpful,
            reason=request.reason,
            thread_id=request.thread_id,
            user_id=request.user_id,
            anon_id=request.anon_id,
        )
    except Exception:
        logger.exception("Failed to store feedback for %s", request.answer_id)
        return 500, {"error": "Could not store feedback"}
    return 200, {"ok": True, "id": feedback_id}
