from collections.abc import Callable
from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docproc.database.connection import get_connection
from docproc.database.models import KnowledgeEntry, KnowledgeQuery, utcnow
from docproc.database.repositories.base import BaseKnowledgeRepository
from docproc.database.serialization import dump, load


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class KnowledgeRepository(BaseKnowledgeRepository):
    """Database operations for the knowledge_entries table.

    Keyword search is a case-insensitive substring match over title, content
    and keywords.
    """

    def create(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        with get_connection() as conn:
            self._insert(conn, entry)
            conn.commit()
        return entry

    def find_by_id(self, id: int) -> KnowledgeEntry | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT id, data FROM knowledge_entries WHERE id = %s", (id,))
                row = cur.fetchone()
        if row is None:
            return None
        return self._to_entry(row)

    def search(self, query: KnowledgeQuery) -> list[KnowledgeEntry]:
        clauses = ["is_active", "(expires_at IS NULL OR expires_at > NOW())"]
        params: list[Any] = []
        if query.latest_only:
            clauses.append("is_latest_version")
        types = [t.value for t in query.types]
        if query.type is not None:
            types.append(query.type.value)
        if types:
            clauses.append("knowledge_type = ANY(%s)")
            params.append(types)
        if query.ids:
            clauses.append("id = ANY(%s)")
            params.append(query.ids)
        if query.public_only:
            clauses.append("(organization_id IS NULL OR is_public)")
        elif query.organization_id is not None:
            clauses.append("(organization_id IS NULL OR is_public OR organization_id = %s)")
            params.append(query.organization_id)
        if query.query:
            pattern = _like_pattern(query.query)
            clauses.append("(title ILIKE %s OR content ILIKE %s OR keywords ILIKE %s)")
            params.extend([pattern, pattern, pattern])
        limit = ""
        if query.limit is not None:
            limit = "LIMIT %s"
            params.append(query.limit)

        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT id, data FROM knowledge_entries
                    WHERE {" AND ".join(clauses)}
                    ORDER BY priority DESC, confidence_score DESC, id
                    {limit}
                    """,  # noqa: S608
                    params,
                )
                rows = cur.fetchall()
        return [self._to_entry(row) for row in rows]

    def create_version(self, previous_id: int, entry: KnowledgeEntry) -> KnowledgeEntry | None:
        with get_connection() as conn:
            previous = self._lock(conn, previous_id)
            if previous is None:
                conn.rollback()
                return None
            entry.version = previous.version + 1
            entry.previous_version_id = previous.id
            entry.is_latest_version = True
            previous.is_latest_version = False
            previous.is_active = False
            self._write(conn, previous)
            self._insert(conn, entry)
            conn.commit()
        return entry

    def _modify(
        self, id: int, mutate: Callable[[KnowledgeEntry], bool]
    ) -> KnowledgeEntry | None:
        with get_connection() as conn:
            entry = self._lock(conn, id)
            if entry is None or not mutate(entry):
                conn.rollback()
                return None
            self._write(conn, entry)
            conn.commit()
        return entry

    def _lock(self, conn: psycopg.Connection[Any], id: int) -> KnowledgeEntry | None:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                "SELECT id, data FROM knowledge_entries WHERE id = %s FOR UPDATE",
                (id,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return self._to_entry(row)

    def _insert(self, conn: psycopg.Connection[Any], entry: KnowledgeEntry) -> None:
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                INSERT INTO knowledge_entries
                (title, knowledge_type, content, keywords, organization_id, is_public,
                 is_active, is_latest_version, expires_at, priority, confidence_score,
                 created_at, updated_at, data)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (*self._columns(entry), entry.created_at, entry.updated_at, Jsonb(dump(entry))),
            )
            row = cur.fetchone()
        if row is None:
            raise RuntimeError("INSERT into knowledge_entries returned no row")
        entry.id = row["id"]

    def _write(self, conn: psycopg.Connection[Any], entry: KnowledgeEntry) -> None:
        entry.updated_at = utcnow()
        conn.execute(
            """
            UPDATE knowledge_entries
            SET title = %s, knowledge_type = %s, content = %s, keywords = %s,
                organization_id = %s, is_public = %s, is_active = %s,
                is_latest_version = %s, expires_at = %s, priority = %s,
                confidence_score = %s, updated_at = %s, data = %s
            WHERE id = %s
            """,
            (*self._columns(entry), entry.updated_at, Jsonb(dump(entry)), entry.id),
        )

    @staticmethod
    def _columns(entry: KnowledgeEntry) -> tuple[Any, ...]:
        return (
            entry.title,
            entry.type.value,
            entry.content,
            "\n".join(entry.keywords),
            entry.organization_id,
            entry.is_public,
            entry.is_active,
            entry.is_latest_version,
            entry.expires_at,
            entry.priority,
            entry.confidence_score,
        )

    @staticmethod
    def _to_entry(row: dict[str, Any]) -> KnowledgeEntry:
        return load(KnowledgeEntry, {**row["data"], "id": row["id"]})
