"""MarketPulseStore: recently generated aggregate insight strings."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from concierge.db import get_connection

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS concierge_market_pulse (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    cohort_key   TEXT NOT NULL,
    insights     TEXT NOT NULL,
    generated_at TEXT NOT NULL
)
"""

# Rows read per cohort before flattening.
_ROWS_PER_COHORT = 3


def territory_cohort(territory: str) -> str:
    """Cohort key for a territory, as written by the insight generator."""
    return f"region={territory}"


class MarketPulseStore:
    """Insight batches keyed by cohort (``general``, ``region=TX``, ...).

    Singleton accessed via ``MarketPulseStore.get()``.
    """

    _instance: MarketPulseStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> MarketPulseStore:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        cls._instance = None

    async def _connect(self):  # noqa: ANN201
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    async def add(self, cohort_key: str, insights: list[str]) -> None:
        """Store one batch of insights for a cohort."""
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO concierge_market_pulse (cohort_key, insights, generated_at) "
                "VALUES (?, ?, ?)",
                (cohort_key, json.dumps(insights), datetime.now(UTC).isoformat()),
            )
            await db.commit()
        finally:
            await db.close()

    async def recent_insights(self, cohorts: list[str], limit: int = 5) -> list[str]:
        """Newest insights for the given cohorts, in cohort priority order.

        Duplicates are dropped and the result is capped at *limit*.
        """
        insights: list[str] = []
        db = await self._connect()
        try:
            for cohort in cohorts:
                cursor = await db.execute(
                    """
                    SELECT insights FROM concierge_market_pulse
                    WHERE cohort_key = ?
                    ORDER BY id DESC
                    LIMIT ?
                    """,
                    (cohort, _ROWS_PER_COHORT),
                )
                for (raw,) in await cursor.fetchall():
                    for insight in json.loads(raw):
                        if insight not in insights:
                            insights.append(insight)
                        if len(insights) >= limit:
                            return insights
        finally:
            await db.close()
        return insights
