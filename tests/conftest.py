"""Shared test fixtures."""

from dataclasses import dataclass
from pathlib import Path

import pytest

from concierge.config import settings
from concierge.llm import client as llm_client
from concierge.store.feedback import FeedbackStore
from concierge.store.knowledge import KnowledgeStore
from concierge.store.market_pulse import MarketPulseStore
from concierge.store.messages import MessageLog
from concierge.store.profiles import ProfileStore
from concierge.store.services import ServiceCatalog

_STORE_CLASSES = (
    MessageLog,
    ProfileStore,
    KnowledgeStore,
    MarketPulseStore,
    ServiceCatalog,
    FeedbackStore,
)


@pytest.fixture(autouse=False)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("concierge.config.settings.turso_database_url", "")


@dataclass
class Stores:
    messages: MessageLog
    profiles: ProfileStore
    knowledge: KnowledgeStore
    market_pulse: MarketPulseStore
    services: ServiceCatalog
    feedback: FeedbackStore


@pytest.fixture
def stores(tmp_path: Path, _no_turso) -> Stores:
    """Point every store singleton at one temporary database file."""
    db_path = tmp_path / "concierge.db"
    instances = {}
    for cls in _STORE_CLASSES:
        cls._reset()
        cls._instance = cls(db_path=db_path)
        instances[cls] = cls._instance
    yield Stores(
        messages=instances[MessageLog],
        profiles=instances[ProfileStore],
        knowledge=instances[KnowledgeStore],
        market_pulse=instances[MarketPulseStore],
        services=instances[ServiceCatalog],
        feedback=instances[FeedbackStore],
    )
    for cls in _STORE_CLASSES:
        cls._reset()


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Configure a fake model credential and a fresh client."""
    monkeypatch.setattr(settings, "anthropic_api_key", "test-key")
    monkeypatch.setattr(llm_client, "_client", None)
    return "test-key"
