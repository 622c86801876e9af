from collections.abc import Callable
from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docproc.database.connection import get_connection
from docproc.database.models import Result, utcnow
from docproc.database.repositories.base import BaseResultRepository
from docproc.database.serialization import dump, load


class ResultRepository(BaseResultRepository):
    """Database operations for the processing_results table."""

    def create(self, result: Result) -> Result:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, data FROM processing_results
                    WHERE job_id = %s AND NOT is_superseded
                    FOR UPDATE
                    """,
                    (result.job_id,),
                )
                for row in cur.fetchall():
                    previous = self._to_result(row)
                    previous.is_superseded = True
                    previous.updated_at = utcnow()
                    cur.execute(
                        """
                        UPDATE processing_results
                        SET is_superseded = TRUE, updated_at = %s, data = %s
                        WHERE id = %s
                        """,
                        (previous.updated_at, Jsonb(dump(previous)), previous.id),
                    )
                cur.execute(
                    """
                    INSERT INTO processing_results
                    (job_id, is_superseded, validation_status, created_at, updated_at, data)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    RETURNING id
                    """,
                    (
                        result.job_id,
                        result.is_superseded,
                        result.validation_status.value,
                        result.created_at,
                        result.updated_at,
                        Jsonb(dump(result)),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT into processing_results returned no row")
        result.id = row["id"]
        return result

    def find_by_id(self, id: int) -> Result | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT id, data FROM processing_results WHERE id = %s", (id,))
                row = cur.fetchone()
        if row is None:
            return None
        return self._to_result(row)

    def find_current_for_job(self, job_id: int) -> Result | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, data FROM processing_results
                    WHERE job_id = %s AND NOT is_superseded
                    ORDER BY id DESC
                    LIMIT 1
                    """,
                    (job_id,),
                )
                row = cur.fetchone()
        if row is None:
            return None
        return self._to_result(row)

    def list_for_job(self, job_id: int) -> list[Result]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, data FROM processing_results WHERE job_id = %s ORDER BY id",
                    (job_id,),
                )
                rows = cur.fetchall()
        return [self._to_result(row) for row in rows]

    def _modify(self, id: int, mutate: Callable[[Result], bool]) -> Result | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, data FROM processing_results WHERE id = %s FOR UPDATE",
                    (id,),
                )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    return None
                result = self._to_result(row)
                if not mutate(result):
                    conn.rollback()
                    return None
                result.updated_at = utcnow()
                cur.execute(
                    """
                    UPDATE processing_results
                    SET is_superseded = %s, validation_status = %s, updated_at = %s, data = %s
                    WHERE id = %s
                    """,
                    (
                        result.is_superseded,
                        result.validation_status.value,
                        result.updated_at,
                        Jsonb(dump(result)),
                        id,
                    ),
                )
            conn.commit()
        return result

    @staticmethod
    def _to_result(row: dict[str, Any]) -> Result:
        return load(Result, {**row["data"], "id": row["id"]})
