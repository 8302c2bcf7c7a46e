"""ProfileStore: read access to agent profiles."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from concierge.db import get_connection
from concierge.models import DEFAULT_PROFILE, Profile

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS profiles (
    user_id          TEXT PRIMARY KEY,
    territory        TEXT,
    niche            TEXT,
    experience_level TEXT,
    extra            TEXT NOT NULL DEFAULT '{}',
    updated_at       TEXT NOT NULL
)
"""


class ProfileStore:
    """Profiles in SQLite / Turso.

    Singleton accessed via ``ProfileStore.get()``.  Pass an explicit *db_path*
    for test isolation.
    """

    _instance: ProfileStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ProfileStore:
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

    async def upsert(
        self,
        user_id: str,
        territory: str | None = None,
        niche: str | None = None,
        experience_level: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Insert or replace a profile record."""
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO profiles
                    (user_id, territory, niche, experience_level, extra, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    territory,
                    niche,
                    experience_level,
                    json.dumps(extra or {}),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def load_profile(self, user_id: str | None) -> Profile:
        """Return the stored profile for *user_id*, or the default profile.

        Anonymous callers and unknown users both get ``DEFAULT_PROFILE``;
        a missing record is not an error. Null columns fall back to the
        default value for that attribute.
        """
        if not user_id:
            return DEFAULT_PROFILE

        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT territory, niche, experience_level, extra "
                "FROM profiles WHERE user_id = ?",
                (user_id,),
            )
            row = await cursor.fetchone()
        finally:
            await db.close()

        if not row:
            logger.info("No profile for user %s, using defaults", user_id)
            return DEFAULT_PROFILE

        return Profile(
            territory=row[0] or DEFAULT_PROFILE.territory,
            niche=row[1] or DEFAULT_PROFILE.niche,
            experience_level=row[2] or DEFAULT_PROFILE.experience_level,
            extra=json.loads(row[3]) if row[3] else {},
        )
