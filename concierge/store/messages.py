"""MessageLog: append-only conversation history keyed by thread."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from concierge.db import get_connection
from concierge.models import StoredMessage

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS concierge_chat_messages (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    thread_id  TEXT NOT NULL,
    user_id    TEXT,
    role       TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
    content    TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_concierge_chat_messages_thread
    ON concierge_chat_messages (thread_id, id)
"""

_COLUMNS = "id, thread_id, user_id, role, content, created_at"


def _row_to_message(row: tuple) -> StoredMessage:
    return StoredMessage(
        id=row[0],
        thread_id=row[1],
        user_id=row[2],
        role=row[3],
        content=row[4],
        created_at=row[5],
    )


class MessageLog:
    """Persists concierge turns in SQLite / Turso.

    Rows are never updated or deleted. Insertion order (the autoincrement
    ``id``) is the canonical message order within a thread.

    Singleton accessed via ``MessageLog.get()``.  Pass an explicit *db_path*
    for test isolation.
    """

    _instance: MessageLog | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> MessageLog:
        """Return the shared MessageLog instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self):  # noqa: ANN201
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.execute(_CREATE_INDEX)
            await db.commit()
            self._initialised = True
        return db

    # -- Write -----------------------------------------------------------------

    async def append_turn(
        self,
        thread_id: str,
        user_id: str | None,
        user_text: str,
        assistant_content: str,
    ) -> None:
        """Write the user message and then the assistant reply in one commit."""
        now = datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            for role, content in (("user", user_text), ("assistant", assistant_content)):
                await db.execute(
                    """
                    INSERT INTO concierge_chat_messages
                        (thread_id, user_id, role, content, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (thread_id, user_id, role, content, now),
                )
            await db.commit()
            logger.debug("Logged turn for thread %s", thread_id)
        finally:
            await db.close()

    # -- Read ------------------------------------------------------------------

    async def recent(self, thread_id: str, limit: int) -> list[StoredMessage]:
        """Return the last *limit* messages of a thread, oldest first."""
        if limit <= 0:
            return []
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_COLUMNS} FROM concierge_chat_messages
                WHERE thread_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (thread_id, limit),
            )
            rows = await cursor.fetchall()
            return [_row_to_message(row) for row in reversed(rows)]
        finally:
            await db.close()

    async def list_thread(
        self, thread_id: str, user_id: str | None = None
    ) -> list[StoredMessage]:
        """Return a whole thread oldest first, scoped to one user.

        Anonymous callers (``user_id=None``) only see rows written without a
        user.
        """
        db = await self._connect()
        try:
            if user_id is None:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM concierge_chat_messages "
                    "WHERE thread_id = ? AND user_id IS NULL ORDER BY id",
                    (thread_id,),
                )
            else:
                cursor = await db.execute(
                    f"SELECT {_COLUMNS} FROM concierge_chat_messages "
                    "WHERE thread_id = ? AND user_id = ? ORDER BY id",
                    (thread_id, user_id),
                )
            rows = await cursor.fetchall()
            return [_row_to_message(row) for row in rows]
        finally:
            await db.close()
