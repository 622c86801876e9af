from docproc.config.settings import Settings
from docproc.database.models import Job
from docproc.database.repositories.base import BaseJobRepository
from docproc.jobs.backoff import next_delay
from docproc.logging.logger import Log
from docproc.notifications.webhook import WebhookNotifier
from docproc.processor.exceptions import JobCancelledError
from docproc.processor.processor import Processor
from docproc.providers.exceptions import PermanentProviderError
from docproc.queue.base import BaseJobQueue
from docproc.results.store import ResultStore
from docproc.templates.store import TemplateStore


class JobRunner:
    """Run one claimed job, catch exceptions, and apply retry logic."""

    def __init__(
        self,
        processor: Processor,
        job_repo: BaseJobRepository,
        queue: BaseJobQueue,
        template_store: TemplateStore,
        result_store: ResultStore,
        notifier: WebhookNotifier,
        settings: Settings,
    ) -> None:
        self._processor = processor
        self._job_repo = job_repo
        self._queue = queue
        self._template_store = template_store
        self._result_store = result_store
        self._notifier = notifier
        self._settings = settings

    def run(self, job_id: int) -> None:
        """Execute a single job with error handling. Never raises for pipeline failures."""
        job = self._job_repo.mark_processing(job_id)
        if job is None:
            Log.info(f"Job {job_id} is no longer queued, skipping")
            return
        Log.info(f"Running job {job.job_id} (attempt {job.retry_count + 1})")
        try:
            context = self._processor.process(job)
        except JobCancelledError as exc:
            Log.info(str(exc))
            return
        except Exception as exc:
            self._handle_failure(job_id, job, exc)
            return

        if context.result is None or context.result.id is None:
            raise ValueError(f"Job {job.job_id} finished without a persisted result")
        completed = self._job_repo.mark_completed(job_id, context.result.id)
        if completed is None:
            self._result_store.discard(context.result.id)
            Log.info(f"Job {job.job_id} was cancelled before completion, result discarded")
            return
        Log.info(f"Job {job.job_id} completed successfully")
        self._record_template_usage(completed, success=True)
        self._notifier.notify(completed, context.result)

    def _handle_failure(self, job_id: int, job: Job, exc: Exception) -> None:
        """Count the attempt; re-enqueue with backoff while retries remain, else fail."""
        Log.error(f"Job {job.job_id} failed: {exc}")
        details = {"type": type(exc).__name__, "message": str(exc)}
        retry_count = job.retry_count + 1
        permanent = isinstance(exc, PermanentProviderError)
        give_up = permanent and not self._settings.retry_permanent_errors

        if retry_count < job.max_retries and not give_up:
            if self._job_repo.mark_retrying(job_id, retry_count, str(exc), details) is None:
                Log.warning(f"Job {job.job_id} changed state during failure handling")
                return
            delay = next_delay(job.retry_count, self._settings.retry_base_delay_seconds)
            if self._job_repo.mark_queued(job_id) is None:
                Log.info(f"Job {job.job_id} was cancelled while retrying")
                return
            try:
                self._queue.enqueue(job_id, job.priority, delay)
            except Exception as enqueue_exc:
                Log.exception(f"Job {job.job_id} could not be re-enqueued")
                self._fail(
                    job_id,
                    job,
                    retry_count,
                    f"Could not enqueue retry: {enqueue_exc}",
                    {"type": type(enqueue_exc).__name__, "message": str(enqueue_exc)},
                )
                return
            Log.warning(
                f"Job {job.job_id} will be retried in {delay:.0f}s "
                f"(retry {retry_count} of {job.max_retries})"
            )
            return

        self._fail(job_id, job, min(retry_count, job.max_retries), str(exc), details)

    def _fail(
        self,
        job_id: int,
        job: Job,
        retry_count: int,
        message: str,
        details: dict[str, str],
    ) -> None:
        failed = self._job_repo.mark_failed(job_id, retry_count, message, details)
        if failed is None:
            Log.warning(f"Job {job.job_id} changed state during failure handling")
            return
        Log.error(f"Job {job.job_id} permanently failed after {job.retry_count + 1} attempts")
        self._record_template_usage(failed, success=False)
        self._notifier.notify(failed)

    def _record_template_usage(self, job: Job, *, success: bool) -> None:
        if job.template_id is None:
            return
        self._template_store.record_completion(
            job.template_id,
            success=success,
            cost=job.actual_cost,
            processing_time_ms=job.processing_time_ms,
        )
