"""Data models shared across the concierge service."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

ActionKind = Literal["view_services", "start_workflow", "open_link", "book_meeting"]
ResponseType = Literal["answer", "ask", "actions"]
SnippetSource = Literal["marketplace", "kb"]


class Profile(BaseModel):
    """Read-only snapshot of the requesting agent's attributes."""

    territory: str = "Unknown"
    niche: str = "General"
    experience_level: str = "new_agent"
    extra: dict[str, Any] = Field(default_factory=dict)


DEFAULT_PROFILE = Profile()


class KnowledgeSnippet(BaseModel):
    """A knowledge-base chunk plus its parent document's title and source."""

    id: str
    title: str
    source: SnippetSource = "kb"
    content: str


class StoredMessage(BaseModel):
    """One row of the append-only message log."""

    id: int
    thread_id: str
    user_id: str | None = None
    role: Literal["user", "assistant"]
    content: str
    created_at: str


# ---------------------------------------------------------------------------
# ConciergeResponse: the structured reply contract
# ---------------------------------------------------------------------------


class Action(BaseModel):
    label: str
    action: ActionKind
    params: dict[str, Any] = Field(default_factory=dict)


class Trust(BaseModel):
    confidence: int = Field(ge=0, le=100)
    peer_patterns: list[str] = Field(default_factory=list)


class Citation(BaseModel):
    title: str
    source: SnippetSource
    id: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return "" if value is None else str(value)


class Handoff(BaseModel):
    suggest: bool = False
    reason: str | None = None


class ConciergeResponse(BaseModel):
    """The JSON object returned to the client for every turn.

    ``trust`` is left unset by the model parser and filled in by
    :func:`concierge.trust.apply_trust_policy`.
    """

    type: ResponseType
    message: str
    quick_replies: list[str] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    trust: Trust | None = None
    citations: list[Citation] = Field(default_factory=list)
    handoff: Handoff = Field(default_factory=Handoff)
