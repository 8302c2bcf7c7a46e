"""Trust & handoff policy.

The confidence score is an uncalibrated 0-100 heuristic made of four capped
components. It only gates the handoff decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from concierge.config import settings
from concierge.models import Action, ConciergeResponse, Handoff, Trust

logger = logging.getLogger(__name__)

PEER_POINTS_PER_SNIPPET = 10
PEER_CAP = 40
INVENTORY_WITH_ACTIONS = 25
INVENTORY_WITHOUT_ACTIONS = 10
CLARITY_LONG = 20
CLARITY_SHORT = 10
CLARITY_MIN_CHARS = 50
KB_RICH = 15
KB_THIN = 5
KB_RICH_MIN_SNIPPETS = 4

MAX_PEER_PATTERNS = 3

LOW_CONFIDENCE_REASON = (
    "I want to make sure you get the right answer. An agent concierge can "
    "review your situation and give you a tailored recommendation."
)

BOOKING_LABEL = "Book with an Agent Concierge"


def booking_action(topic: str) -> Action:
    return Action(
        label=BOOKING_LABEL,
        action="book_meeting",
        params={"source": "concierge", "topic": topic},
    )


@dataclass(frozen=True)
class TrustBreakdown:
    peer: int
    inventory: int
    clarity: int
    kb: int

    @property
    def confidence(self) -> int:
        return self.peer + self.inventory + self.clarity + self.kb


def score(snippet_count: int, action_count: int, message: str) -> TrustBreakdown:
    """Score one reply. The sum is always within [25, 100]."""
    snippet_count = max(0, snippet_count)
    return TrustBreakdown(
        peer=min(PEER_CAP, snippet_count * PEER_POINTS_PER_SNIPPET),
        inventory=INVENTORY_WITH_ACTIONS if action_count >= 1 else INVENTORY_WITHOUT_ACTIONS,
        clarity=CLARITY_LONG if len(message) > CLARITY_MIN_CHARS else CLARITY_SHORT,
        kb=KB_RICH if snippet_count >= KB_RICH_MIN_SNIPPETS else KB_THIN,
    )


def apply_trust_policy(
    response: ConciergeResponse,
    snippet_titles: list[str],
) -> ConciergeResponse:
    """Populate ``trust`` and force a handoff when confidence is low.

    The model's own handoff is kept only when confidence clears the
    threshold. Below it, handoff is always suggested and a booking action
    is appended (once). Returns a new response; the input is not mutated.
    """
    breakdown = score(len(snippet_titles), len(response.actions), response.message)
    confidence = breakdown.confidence
    trust = Trust(
        confidence=confidence,
        peer_patterns=list(dict.fromkeys(snippet_titles))[:MAX_PEER_PATTERNS],
    )

    update: dict = {"trust": trust}
    if confidence < settings.handoff_threshold:
        booking = booking_action("low_confidence")
        actions = list(response.actions)
        if booking not in actions:
            actions.append(booking)
        update["actions"] = actions
        update["handoff"] = Handoff(suggest=True, reason=LOW_CONFIDENCE_REASON)
        logger.info("Low confidence (%d), forcing handoff", confidence)

    return response.model_copy(update=update)
