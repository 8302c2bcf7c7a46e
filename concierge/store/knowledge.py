"""KnowledgeStore: keyword search over knowledge-base chunks."""

from __future__ import annotations

import logging
import re
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from concierge.db import get_connection
from concierge.models import KnowledgeSnippet

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS kb_documents (
    id         TEXT PRIMARY KEY,
    title      TEXT NOT NULL,
    source     TEXT NOT NULL DEFAULT 'kb' CHECK (source IN ('marketplace', 'kb')),
    created_at TEXT NOT NULL
)
"""

_CREATE_CHUNKS = """
CREATE TABLE IF NOT EXISTS kb_chunks (
    id          TEXT PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES kb_documents (id),
    content     TEXT NOT NULL,
    created_at  TEXT NOT NULL
)
"""

# Terms shorter than this are ignored by the keyword match.
MIN_TERM_LENGTH = 3
_MAX_TERMS = 8

_WORD = re.compile(r"[a-z0-9]+")


def extract_terms(query: str) -> list[str]:
    """Lowercase, de-duplicated search terms from free text, in order."""
    seen: list[str] = []
    for word in _WORD.findall(query.lower()):
        if len(word) >= MIN_TERM_LENGTH and word not in seen:
            seen.append(word)
    return seen[:_MAX_TERMS]


class KnowledgeStore:
    """Knowledge documents and their chunks in SQLite / Turso.

    Search is a plain ``LIKE`` match per term; rows are ranked by how many
    terms they hit, newest first on ties. There is no stemming and no
    semantic ranking.

    Singleton accessed via ``KnowledgeStore.get()``.
    """

    _instance: KnowledgeStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    @classmethod
    def get(cls) -> KnowledgeStore:
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        cls._instance = None

    async def _connect(self):  # noqa: ANN201
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            await db.execute(_CREATE_DOCUMENTS)
            await db.execute(_CREATE_CHUNKS)
            await db.commit()
            self._initialised = True
        return db

    # -- Write -----------------------------------------------------------------

    async def add_document(
        self, title: str, chunks: list[str], source: str = "kb"
    ) -> str:
        """Store a document and its chunks. Returns the document id."""
        doc_id = uuid.uuid4().hex
        now = datetime.now(UTC).isoformat()
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO kb_documents (id, title, source, created_at) VALUES (?, ?, ?, ?)",
                (doc_id, title, source, now),
            )
            for content in chunks:
                await db.execute(
                    "INSERT INTO kb_chunks (id, document_id, content, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (uuid.uuid4().hex, doc_id, content, now),
                )
            await db.commit()
            logger.info("Stored knowledge document %r (%d chunks)", title, len(chunks))
            return doc_id
        finally:
            await db.close()

    # -- Read ------------------------------------------------------------------

    async def search(self, query: str, k: int = 6) -> list[KnowledgeSnippet]:
        """Return up to *k* chunks matching any term of *query*."""
        terms = extract_terms(query)
        if not terms or k <= 0:
            return []

        hit_expr = " + ".join(
            "(CASE WHEN lower(c.content) LIKE ? OR lower(d.title) LIKE ? THEN 1 ELSE 0 END)"
            for _ in terms
        )
        params: list[str | int] = []
        for term in terms:
            pattern = f"%{term}%"
            params.extend([pattern, pattern])
        params.append(k)

        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT id, title, source, content FROM (
                    SELECT c.id AS id, d.title AS title, d.source AS source,
                           c.content AS content, c.created_at AS created_at,
                           ({hit_expr}) AS hits
                    FROM kb_chunks c
                    JOIN kb_documents d ON d.id = c.document_id
                )
                WHERE hits > 0
                ORDER BY hits DESC, created_at DESC
                LIMIT ?
                """,
                tuple(params),
            )
            rows = await cursor.fetchall()
        finally:
            await db.close()

        return [
            KnowledgeSnippet(id=row[0], title=row[1], source=row[2], content=row[3])
            for row in rows
        ]
