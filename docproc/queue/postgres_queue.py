from docproc.database.connection import get_connection
from docproc.queue.base import BaseJobQueue


class PostgresJobQueue(BaseJobQueue):
    """Durable queue on the job_queue table.

    Claiming deletes the head row under FOR UPDATE SKIP LOCKED, so any number
    of workers can poll concurrently without claiming the same job twice.
    """

    def enqueue(self, job_id: int, priority: int, delay_seconds: float = 0.0) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO job_queue (job_id, priority, available_at)
                VALUES (%s, %s, NOW() + make_interval(secs => %s))
                ON CONFLICT (job_id) DO UPDATE
                SET priority = EXCLUDED.priority,
                    available_at = EXCLUDED.available_at,
                    enqueued_at = NOW(),
                    seq = nextval(pg_get_serial_sequence('job_queue', 'seq'))
                """,
                (job_id, priority, max(0.0, delay_seconds)),
            )
            conn.commit()

    def claim_next(self) -> int | None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM job_queue
                    WHERE job_id = (
                        SELECT job_id FROM job_queue
                        WHERE available_at <= NOW()
                        ORDER BY priority DESC, available_at, seq
                        LIMIT 1
                        FOR UPDATE SKIP LOCKED
                    )
                    RETURNING job_id
                    """
                )
                row = cur.fetchone()
            conn.commit()
        return int(row[0]) if row else None

    def remove(self, job_id: int) -> bool:
        with get_connection() as conn:
            cur = conn.execute("DELETE FROM job_queue WHERE job_id = %s", (job_id,))
            removed = cur.rowcount > 0
            conn.commit()
        return removed

    def size(self) -> int:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM job_queue")
                row = cur.fetchone()
        return int(row[0]) if row else 0
