"""Async Anthropic client used by the orchestrator."""

from __future__ import annotations

import logging
from typing import Any

import anthropic

from concierge.config import settings
from concierge.errors import ConfigurationError

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client.

    Retries are disabled: a failed call fails the turn and the user resends.
    """
    global _client  # noqa: PLW0603
    if not settings.model_configured:
        msg = "ANTHROPIC_API_KEY is not configured"
        raise ConfigurationError(msg)
    if _client is None:
        _client = anthropic.AsyncAnthropic(
            api_key=settings.anthropic_api_key,
            max_retries=0,
            timeout=settings.request_timeout_s,
        )
    return _client


def ensure_configured() -> None:
    """Fail fast, before any I/O, when no model credential is set."""
    _get_client()


async def create_message(
    messages: list[dict[str, Any]],
    *,
    system: str,
    tools: list[dict[str, Any]] | None = None,
    tool_choice: dict[str, Any] | None = None,
) -> Any:
    """One non-streaming Messages API call. Returns the SDK ``Message``."""
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": settings.concierge_model,
        "max_tokens": settings.max_tokens,
        "temperature": settings.temperature,
        "system": system,
        "messages": messages,
    }
    if tools:
        kwargs["tools"] = tools
    if tool_choice is not None:
        kwargs["tool_choice"] = tool_choice
    response = await client.messages.create(**kwargs)
    logger.debug(
        "Model %s stop_reason=%s", settings.concierge_model, response.stop_reason
    )
    return response


def text_of(response: Any) -> str:
    """Concatenate the text blocks of a Messages API response."""
    return "".join(b.text for b in response.content if b.type == "text")


def tool_uses_of(response: Any) -> list[Any]:
    """The ``tool_use`` blocks of a response, in model order."""
    return [b for b in response.content if b.type == "tool_use"]


def serialize_content(content: list[Any]) -> list[dict[str, Any]]:
    """Convert SDK content blocks to plain dicts for message history."""
    result: list[dict[str, Any]] = []
    for block in content:
        if block.type == "text":
            result.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            result.append({
                "type": "tool_use",
                "id": block.id,
                "name": block.name,
                "input": block.input,
            })
    return result
