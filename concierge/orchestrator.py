"""Conversation orchestrator: one concierge turn as an explicit state machine.

    AWAITING_MODEL ──tool calls──▶ RESOLVING_TOOLS ──▶ AWAITING_MODEL ──▶ DONE
          │                                                 ▲
          └──────────────────── final JSON ─────────────────┘

Tools resolve at most once per turn. The follow-up call is made with
``tool_choice: none``; a tool call in that reply is an upstream failure.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

import anthropic

from concierge.errors import UpstreamError
from concierge.llm.client import (
    create_message,
    serialize_content,
    text_of,
    tool_uses_of,
)
from concierge.llm.parsing import parse_response
from concierge.llm.prompt import build_system_prompt
from concierge.tools import registry

if TYPE_CHECKING:
    from concierge.context import TurnContext
    from concierge.models import ConciergeResponse, StoredMessage

logger = logging.getLogger(__name__)


class TurnState(enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    RESOLVING_TOOLS = "resolving_tools"
    DONE = "done"


def history_messages(history: list[StoredMessage]) -> list[dict[str, Any]]:
    """Prior turns as API messages, oldest first, starting with a user turn."""
    messages = [{"role": m.role, "content": m.content} for m in history]
    while messages and messages[0]["role"] != "user":
        messages.pop(0)
    return messages


class TurnRunner:
    """Drives a single turn. Create one per request."""

    def __init__(self, context: TurnContext) -> None:
        self.context = context
        self.state = TurnState.AWAITING_MODEL
        self.tools_resolved = False
        self.tool_calls: list[str] = []
        self._system = build_system_prompt(context)
        self._messages: list[dict[str, Any]] = [
            *history_messages(context.history),
            {"role": "user", "content": context.text},
        ]
        self._pending: Any = None
        self._result: ConciergeResponse | None = None

    async def run(self) -> ConciergeResponse:
        while self.state is not TurnState.DONE:
            if self.state is TurnState.AWAITING_MODEL:
                await self._await_model()
            else:
                await self._resolve_tools()
        assert self._result is not None
        return self._result

    async def _await_model(self) -> None:
        tools = registry.get_schemas()
        # The tool definitions must still accompany a history that contains
        # tool_use blocks; tool_choice "none" keeps the model from using them.
        tool_choice = {"type": "none"} if self.tools_resolved else None
        try:
            reply = await create_message(
                self._messages,
                system=self._system,
                tools=tools,
                tool_choice=tool_choice,
            )
        except anthropic.APIError as exc:
            raise UpstreamError(f"Model call failed: {type(exc).__name__}") from exc

        uses = tool_uses_of(reply)
        if uses:
            if self.tools_resolved:
                raise UpstreamError("Model requested tools after tools were resolved")
            self._pending = reply
            self.state = TurnState.RESOLVING_TOOLS
            return

        self._result = parse_response(text_of(reply))
        self.state = TurnState.DONE

    async def _resolve_tools(self) -> None:
        reply = self._pending
        uses = tool_uses_of(reply)
        logger.info(
            "Thread %s: %d tool call(s): %s",
            self.context.thread_id,
            len(uses),
            ", ".join(b.name for b in uses),
        )
        self._messages.append({
            "role": "assistant",
            "content": serialize_content(reply.content),
        })

        tool_results: list[dict[str, Any]] = []
        for block in uses:
            result = await registry.execute(block.name, block.input, context=self.context)
            self.tool_calls.append(block.name)
            tool_results.append({
                "type": "tool_result",
                "tool_use_id": block.id,
                "content": result.to_content(),
                "is_error": not result.success,
            })
        self._messages.append({"role": "user", "content": tool_results})

        self._pending = None
        self.tools_resolved = True
        self.state = TurnState.AWAITING_MODEL


async def run_turn(context: TurnContext) -> ConciergeResponse:
    """Run one turn and return the parsed, validated model reply.

    Raises:
        UpstreamError: the model failed or its reply was unusable.
        ConfigurationError: no model credential is configured.
    """
    return await TurnRunner(context).run()
