"""System prompt assembly for the concierge."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from concierge.context import TurnContext

PERSONA = """\
You are the Agent Concierge for a real-estate vendor marketplace. You help \
real-estate agents pick the right tools, services and strategies to grow their \
business. Sound like a trusted business partner: direct, practical, specific to \
the agent's situation. Keep messages under 150 words. Ask a clarifying question \
when the request is too vague to answer well.

You can call tools to look up marketplace services (vendor_search), assemble a \
bundle for a goal (recommend_bundle), or search the knowledge base (kb_search). \
Only recommend services that appear in tool results or the context below."""

RESPONSE_FORMAT = """\
# Response format

Reply with a single JSON object and nothing else:

{
  "type": "answer" | "ask" | "actions",
  "message": "text shown to the agent",
  "quick_replies": ["short follow-up", ...],
  "actions": [{"label": "...", "action": "view_services" | "start_workflow" | "open_link" | "book_meeting", "params": {}}],
  "citations": [{"title": "...", "source": "marketplace" | "kb", "id": "..."}],
  "handoff": {"suggest": false, "reason": null}
}

Use "ask" when you need more information, "actions" when the main value is in \
the actions list. Set handoff.suggest to true only when a human agent concierge \
is clearly the better next step."""


def _profile_section(context: TurnContext) -> str:
    p = context.profile
    lines = [
        "# Agent Profile\n",
        f"- Territory: {p.territory}",
        f"- Niche: {p.niche}",
        f"- Experience: {p.experience_level}",
    ]
    for key, value in sorted(p.extra.items()):
        lines.append(f"- {key.replace('_', ' ').capitalize()}: {value}")
    return "\n".join(lines)


def _market_pulse_section(context: TurnContext) -> str:
    if not context.market_pulse:
        return ""
    lines = ["# Market Pulse\n"]
    lines.extend(f"- {insight}" for insight in context.market_pulse)
    return "\n".join(lines)


def _knowledge_section(context: TurnContext) -> str:
    if not context.snippets:
        return "# Knowledge\n\nNo knowledge-base articles matched this question."
    lines = ["# Knowledge\n"]
    for s in context.snippets:
        lines.append(f"## {s.title} [{s.source}:{s.id}]\n{s.content}\n")
    return "\n".join(lines)


def build_system_prompt(context: TurnContext) -> str:
    """Static system text with profile, market pulse and snippets baked in."""
    sections = [
        PERSONA,
        _profile_section(context),
        _market_pulse_section(context),
        _knowledge_section(context),
        RESPONSE_FORMAT,
    ]
    return "\n\n---\n\n".join(s for s in sections if s)
