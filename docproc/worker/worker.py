import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from docproc.config.settings import Settings
from docproc.jobs.orchestrator import JobOrchestrator
from docproc.logging.logger import Log
from docproc.queue.base import BaseJobQueue
from docproc.worker.job_runner import JobRunner

STUCK_CHECK_INTERVAL_SECONDS = 60.0


class Worker:
    """Poll loop: claim -> dispatch to the thread pool -> sleep when idle."""

    def __init__(
        self,
        queue: BaseJobQueue,
        job_runner: JobRunner,
        orchestrator: JobOrchestrator,
        settings: Settings,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._queue = queue
        self._job_runner = job_runner
        self._orchestrator = orchestrator
        self._settings = settings
        self._sleep = sleep
        self._clock = clock
        self._last_stuck_check: float | None = None

    def run(self, max_jobs: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_jobs is set, stop after dispatching that many jobs and waiting
        for them to finish (for testing).
        """
        pool_size = max(1, self._settings.max_workers)
        Log.info(f"Worker started with {pool_size} threads, polling for jobs")
        jobs_done = 0
        in_flight: set[Future[None]] = set()
        with ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="job") as pool:
            try:
                while max_jobs is None or jobs_done < max_jobs:
                    in_flight = {f for f in in_flight if not f.done()}
                    if len(in_flight) >= pool_size:
                        wait(in_flight, return_when=FIRST_COMPLETED)
                        continue
                    job_id = self._try_claim_job()
                    if job_id is not None:
                        in_flight.add(pool.submit(self._run_job, job_id))
                        jobs_done += 1
                        continue
                    self._check_stuck_jobs()
                    Log.debug("No jobs available, sleeping")
                    self._sleep(self._settings.job_poll_interval_seconds)
            except KeyboardInterrupt:
                Log.info("Worker shutting down gracefully, waiting for running jobs")

    def _run_job(self, job_id: int) -> None:
        try:
            self._job_runner.run(job_id)
        except Exception as exc:
            Log.exception(f"Unhandled error while running job {job_id}: {exc}")

    def _try_claim_job(self) -> int | None:
        """Attempt to claim the next ready job. Gracefully handle storage errors."""
        try:
            return self._queue.claim_next()
        except Exception as exc:
            Log.warning(f"Queue error, will retry: {exc}")
            return None

    def _check_stuck_jobs(self) -> None:
        now = self._clock()
        if (
            self._last_stuck_check is not None
            and now - self._last_stuck_check < STUCK_CHECK_INTERVAL_SECONDS
        ):
            return
        self._last_stuck_check = now
        try:
            stuck = self._orchestrator.find_stuck_jobs()
        except Exception as exc:
            Log.warning(f"Stuck job check failed: {exc}")
            return
        for job in stuck:
            Log.warning(
                f"Job {job.job_id} looks stuck in {job.current_step or 'PROCESSING'} "
                f"since {job.progress_updated_at}"
            )
