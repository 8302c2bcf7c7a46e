"""ServiceCatalog: read access to marketplace service listings."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from concierge.db import get_connection
from concierge.store.knowledge import extract_terms

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS services (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    category    TEXT NOT NULL DEFAULT '',
    price       REAL,
    is_active   INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL
)
"""

_COLUMNS = ("id", "title", "description", "category", "price")


class ServiceCatalog:
    """Marketplace services in SQLite / Turso.

    Singleton accessed via ``ServiceCatalog.get()``.
    """

    _instance: ServiceCatalog | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> ServiceCatalog:
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

    async def add_service(
        self,
        service_id: str,
        title: str,
        description: str = "",
        category: str = "",
        price: float | None = None,
        is_active: bool = True,
    ) -> None:
        db = await self._connect()
        try:
            await db.execute(
                """
                INSERT OR REPLACE INTO services
                    (id, title, description, category, price, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    service_id,
                    title,
                    description,
                    category,
                    price,
                    int(is_active),
                    datetime.now(UTC).isoformat(),
                ),
            )
            await db.commit()
        finally:
            await db.close()

    async def search(
        self,
        query: str | None = None,
        category: str | None = None,
        budget_min: float | None = None,
        budget_max: float | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Active services matching every given filter.

        ``category`` is a case-insensitive substring match. Budget bounds are
        inclusive and exclude unpriced services. ``query`` matches any of its
        terms against title or description, best matches first.
        """
        where = ["is_active = 1"]
        params: list[Any] = []

        if category:
            where.append("lower(category) LIKE ?")
            params.append(f"%{category.lower()}%")
        if budget_min is not None:
            where.append("price IS NOT NULL AND price >= ?")
            params.append(budget_min)
        if budget_max is not None:
            where.append("price IS NOT NULL AND price <= ?")
            params.append(budget_max)

        order = "created_at DESC"
        hit_params: list[Any] = []
        terms = extract_terms(query or "")
        if terms:
            hit_expr = " + ".join(
                "(CASE WHEN lower(title) LIKE ? OR lower(description) LIKE ? THEN 1 ELSE 0 END)"
                for _ in terms
            )
            for term in terms:
                pattern = f"%{term}%"
                hit_params.extend([pattern, pattern])
            where.append(f"({hit_expr}) > 0")
            params.extend(hit_params)
            order = f"({hit_expr}) DESC, created_at DESC"

        sql = (
            f"SELECT {', '.join(_COLUMNS)} FROM services "
            f"WHERE {' AND '.join(where)} ORDER BY {order} LIMIT ?"
        )
        db = await self._connect()
        try:
            cursor = await db.execute(sql, (*params, *hit_params, limit))
            rows = await cursor.fetchall()
        finally:
            await db.close()

        return [dict(zip(_COLUMNS, row, strict=True)) for row in rows]
