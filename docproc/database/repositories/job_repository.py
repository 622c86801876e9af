from collections.abc import Callable
from datetime import datetime
from typing import Any

from psycopg import errors
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from docproc.database.connection import get_connection
from docproc.database.enums import TERMINAL_STATUSES, JobStatus
from docproc.database.models import Job, JobQuery, ProcessingStats, utcnow
from docproc.database.repositories.base import BaseJobRepository
from docproc.database.serialization import dump, load


class JobRepository(BaseJobRepository):
    """Database operations for the processing_jobs table."""

    def create(self, job: Job) -> Job:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                try:
                    cur.execute(
                        """
                        INSERT INTO processing_jobs
                        (job_id, status, processing_type, priority, user_id, organization_id,
                         template_id, related_entity_type, related_entity_id,
                         progress_updated_at, created_at, updated_at, data)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING id
                        """,
                        (
                            job.job_id,
                            job.status.value,
                            job.processing_type.value,
                            job.priority,
                            job.user_id,
                            job.organization_id,
                            job.template_id,
                            job.related_entity_type,
                            job.related_entity_id,
                            job.progress_updated_at,
                            job.created_at,
                            job.updated_at,
                            Jsonb(dump(job)),
                        ),
                    )
                except errors.UniqueViolation as exc:
                    conn.rollback()
                    raise ValueError(f"Duplicate job id {job.job_id}") from exc
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError("INSERT into processing_jobs returned no row")
        job.id = row["id"]
        return job

    def find_by_id(self, id: int) -> Job | None:
        return self._find_one("id = %s", (id,))

    def find_by_job_id(self, job_id: str) -> Job | None:
        return self._find_one("job_id = %s", (job_id,))

    def query(self, query: JobQuery) -> list[Job]:
        where, params = self._where(query)
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT id, data FROM processing_jobs
                    WHERE {where}
                    ORDER BY created_at DESC, id DESC
                    LIMIT %s
                    """,  # noqa: S608
                    (*params, query.limit),
                )
                rows = cur.fetchall()
        return [self._to_job(row) for row in rows]

    def stats(self, query: JobQuery) -> ProcessingStats:
        where, params = self._where(query)
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT status, COUNT(*) AS jobs,
                           COALESCE(SUM((data->>'total_tokens')::bigint), 0) AS tokens,
                           COALESCE(SUM((data->>'actual_cost')::numeric), 0) AS cost,
                           AVG((data->>'processing_time_ms')::bigint) AS avg_time
                    FROM processing_jobs
                    WHERE {where}
                    GROUP BY status
                    """,  # noqa: S608
                    params,
                )
                rows = cur.fetchall()

        stats = ProcessingStats()
        for row in rows:
            stats.by_status[row["status"]] = row["jobs"]
            stats.total_jobs += row["jobs"]
            stats.total_tokens += int(row["tokens"])
            stats.total_cost += float(row["cost"])
            if row["status"] == JobStatus.COMPLETED.value and row["avg_time"] is not None:
                stats.average_processing_time_ms = float(row["avg_time"])
        return stats

    def count_active_for_template(self, template_id: int) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT COUNT(*) FROM processing_jobs
                    WHERE template_id = %s AND NOT (status = ANY(%s))
                    """,
                    (template_id, [s.value for s in TERMINAL_STATUSES]),
                )
                row = cur.fetchone()
        return int(row[0]) if row else 0

    def find_stale_processing(self, cutoff: datetime) -> list[Job]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, data FROM processing_jobs
                    WHERE status = %s AND progress_updated_at < %s
                    ORDER BY progress_updated_at
                    """,
                    (JobStatus.PROCESSING.value, cutoff),
                )
                rows = cur.fetchall()
        return [self._to_job(row) for row in rows]

    def _modify(self, id: int, mutate: Callable[[Job], bool]) -> Job | None:
        """Row-locked read-modify-write of one job."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT id, data FROM processing_jobs WHERE id = %s FOR UPDATE",
                    (id,),
                )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    return None
                job = self._to_job(row)
                if not mutate(job):
                    conn.rollback()
                    return None
                job.updated_at = utcnow()
                cur.execute(
                    """
                    UPDATE processing_jobs
                    SET status = %s, priority = %s, template_id = %s,
                        progress_updated_at = %s, updated_at = %s, data = %s
                    WHERE id = %s
                    """,
                    (
                        job.status.value,
                        job.priority,
                        job.template_id,
                        job.progress_updated_at,
                        job.updated_at,
                        Jsonb(dump(job)),
                        id,
                    ),
                )
            conn.commit()
        return job

    def _find_one(self, condition: str, params: tuple[Any, ...]) -> Job | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT id, data FROM processing_jobs WHERE {condition}",  # noqa: S608
                    params,
                )
                row = cur.fetchone()
        if row is None:
            return None
        return self._to_job(row)

    @staticmethod
    def _where(query: JobQuery) -> tuple[str, tuple[Any, ...]]:
        clauses = ["TRUE"]
        params: list[Any] = []
        filters = (
            ("status", query.status.value if query.status else None),
            ("user_id", query.user_id),
            ("organization_id", query.organization_id),
            ("processing_type", query.processing_type.value if query.processing_type else None),
            ("template_id", query.template_id),
            ("related_entity_type", query.related_entity_type),
            ("related_entity_id", query.related_entity_id),
        )
        for column, value in filters:
            if value is not None:
                clauses.append(f"{column} = %s")
                params.append(value)
        return " AND ".join(clauses), tuple(params)

    @staticmethod
    def _to_job(row: dict[str, Any]) -> Job:
        return load(Job, {**row["data"], "id": row["id"]})
