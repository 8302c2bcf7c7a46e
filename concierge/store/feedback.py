"""FeedbackStore: thumbs up/down and corrections on concierge answers."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from concierge.db import get_connection

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS concierge_feedback (
    id         TEXT PRIMARY KEY,
    answer_id  TEXT NOT NULL,
    thread_id  TEXT,
    user_id    TEXT,
    anon_id    TEXT,
    helpful    INTEGER NOT NULL,
    reason     TEXT,
    created_at TEXT NOT NULL
)
"""


class FeedbackStore:
    """Singleton accessed via ``FeedbackStore.get()``."""

    _instance: FeedbackStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> FeedbackStore:
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

    async def add(
        self,
        answer_id: str,
        helpful: bool,
        reason: str | None = None,
        thread_id: str | None = None,
        user_id: str | None = None,
        anon_id: str | None = None,
    ) -> str:
        """Record one piece of feedback. Returns its id."""
        feedback_id = uuid.uuid4().hex
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT INTO concierge_feedback
                    (id, answer_id, thread_id, user_id, anon_id, helpful, reason, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    feedback_id,
                    answer_id,
                    thread_id,
                    user_id,
                    anon_id,
                    int(helpful),
                    reason,
                    datetime.now(UTC).isoformat(),
                ),
            )
            await db.commit()
            logger.info("Feedback on answer %s: helpful=%s", answer_id, helpful)
            return feedback_id
        finally:
            await db.close()

    async def list_for_answer(self, answer_id: str) -> list[dict]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT id, helpful, reason, created_at FROM concierge_feedback "
                "WHERE answer_id = ? ORDER BY created_at",
                (answer_id,),
            )
            rows = await cursor.fetchall()
            return [
                {"id": r[0], "helpful": bool(r[1]), "reason": r[2], "created_at": r[3]}
                for r in rows
            ]
        finally:
            await db.close()
