"""Per-turn context: everything the orchestrator needs, loaded up front."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from concierge.config import settings
from concierge.models import DEFAULT_PROFILE, KnowledgeSnippet, Profile, StoredMessage
from concierge.store.knowledge import KnowledgeStore
from concierge.store.market_pulse import MarketPulseStore, territory_cohort
from concierge.store.messages import MessageLog
from concierge.store.profiles import ProfileStore

logger = logging.getLogger(__name__)


@dataclass
class TurnContext:
    """Inputs to a single concierge turn.

    Built once by :func:`build_turn_context` and passed explicitly into the
    orchestrator so a turn can be run (and tested) without touching storage.
    """

    thread_id: str
    text: str
    user_id: str | None = None
    profile: Profile = field(default_factory=lambda: DEFAULT_PROFILE)
    history: list[StoredMessage] = field(default_factory=list)
    snippets: list[KnowledgeSnippet] = field(default_factory=list)
    market_pulse: list[str] = field(default_factory=list)

    @property
    def snippet_count(self) -> int:
        return len(self.snippets)


async def _load_market_pulse(profile: Profile) -> list[str]:
    """Territory cohort first, then the general cohort. Never raises."""
    cohorts = [settings.market_pulse_cohort]
    if profile.territory and profile.territory != DEFAULT_PROFILE.territory:
        cohorts.insert(0, territory_cohort(profile.territory))
    try:
        return await MarketPulseStore.get().recent_insights(
            cohorts, limit=settings.market_pulse_limit
        )
    except Exception:
        logger.exception("Market pulse read failed")
        return []


async def build_turn_context(
    thread_id: str, text: str, user_id: str | None = None
) -> TurnContext:
    """Load profile, history, knowledge snippets and market pulse."""
    profile = await ProfileStore.get().load_profile(user_id)
    history = await MessageLog.get().recent(thread_id, settings.history_window)
    snippets = await KnowledgeStore.get().search(text, k=settings.kb_limit)
    if not snippets:
        logger.warning("No knowledge snippets for thread %s", thread_id)
    market_pulse = await _load_market_pulse(profile)

    logger.info(
        "Context for thread %s: %d history, %d snippets, %d insights",
        thread_id,
        len(history),
        len(snippets),
        len(market_pulse),
    )
    return TurnContext(
        thread_id=thread_id,
        text=text,
        user_id=user_id,
        profile=profile,
        history=history,
        snippets=snippets,
        market_pulse=market_pulse,
    )
