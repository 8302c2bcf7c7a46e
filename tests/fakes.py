"""Fake Anthropic Messages API responses for orchestrator tests."""

from dataclasses import dataclass, field
from typing import Any
from unittest.mock import MagicMock


@dataclass
class FakeBlock:
    type: str
    text: str = ""
    id: str = ""
    name: str = ""
    input: dict[str, Any] = field(default_factory=dict)


def text_reply(text: str) -> MagicMock:
    msg = MagicMock()
    msg.content = [FakeBlock(type="text", text=text)]
    msg.stop_reason = "end_turn"
    return msg


def tool_reply(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> MagicMock:
    """A reply requesting tools; each call is ``(id, name, input)``."""
    msg = MagicMock()
    blocks = [FakeBlock(type="text", text=text)] if text else []
    blocks.extend(FakeBlock(type="tool_use", id=i, name=n, input=a) for i, n, a in calls)
    msg.content = blocks
    msg.stop_reason = "tool_use"
    return msg
