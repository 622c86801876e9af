import uuid
from datetime import timedelta
from pathlib import PurePosixPath
from urllib.parse import urlparse

from docproc.config.settings import Settings
from docproc.database.enums import JobStatus
from docproc.database.models import Job, JobQuery, ProcessingStats, Result, Template, utcnow
from docproc.database.repositories.base import BaseJobRepository
from docproc.jobs.exceptions import JobNotFoundError, JobValidationError
from docproc.jobs.models import JobSpec, JobStatusView
from docproc.logging.logger import Log
from docproc.providers.models import ModelConfig
from docproc.providers.registry import ProviderRegistry
from docproc.queue.base import BaseJobQueue
from docproc.results.store import ResultStore
from docproc.templates.exceptions import TemplateNotFoundError
from docproc.templates.store import TemplateStore

MIN_PRIORITY = 1
MAX_PRIORITY = 5
MAX_RETRIES_LIMIT = 10


class JobOrchestrator:
    """Submission and administration of processing jobs.

    Execution and the retry decision live in the worker's JobRunner; this
    class owns everything a caller can do synchronously.
    """

    def __init__(
        self,
        job_repo: BaseJobRepository,
        queue: BaseJobQueue,
        template_store: TemplateStore,
        result_store: ResultStore,
        registry: ProviderRegistry,
        settings: Settings,
    ) -> None:
        self._job_repo = job_repo
        self._queue = queue
        self._template_store = template_store
        self._result_store = result_store
        self._registry = registry
        self._settings = settings

    def submit(self, spec: JobSpec) -> Job:
        """Validate, persist and enqueue a job. Returns immediately.

        Raises:
            JobValidationError: the job is rejected and nothing is persisted.
        """
        max_retries = (
            spec.max_retries if spec.max_retries is not None else self._settings.default_max_retries
        )
        template = self._validate(spec, max_retries)
        job = Job(
            job_id=spec.job_id or str(uuid.uuid4()),
            processing_type=spec.processing_type,
            document=spec.document,
            user_id=spec.user_id,
            organization_id=spec.organization_id,
            template_id=template.id if template else None,
            config=spec.config,
            custom_instructions=spec.custom_instructions,
            knowledge_entry_ids=list(spec.knowledge_entry_ids),
            required_knowledge_types=list(spec.required_knowledge_types),
            priority=spec.priority,
            max_retries=max_retries,
            scheduled_at=spec.scheduled_at,
            requested_provider=spec.provider,
            requested_model=spec.model,
            related_entity_type=spec.related_entity_type,
            related_entity_id=spec.related_entity_id,
            callback_url=spec.callback_url,
            metadata=dict(spec.metadata),
            tags=list(spec.tags),
        )
        try:
            job = self._job_repo.create(job)
        except ValueError as exc:
            raise JobValidationError(str(exc)) from exc

        delay = 0.0
        if spec.scheduled_at is not None:
            delay = max(0.0, (spec.scheduled_at - utcnow()).total_seconds())
        Log.info(
            f"Submitted job {job.job_id} (id {job.id}, {job.processing_type.value}, "
            f"priority {job.priority}, delay {delay:.0f}s)"
        )
        return self._enqueue(job, delay)

    def get_job(self, job_id: str) -> Job:
        job = self._job_repo.find_by_job_id(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def get_status(self, job_id: str) -> JobStatusView | None:
        job = self._job_repo.find_by_job_id(job_id)
        if job is None:
            return None
        return JobStatusView(
            job_id=job.job_id,
            status=job.status,
            progress=job.progress,
            current_step=job.current_step,
            steps=job.steps,
            retry_count=job.retry_count,
            max_retries=job.max_retries,
            error_message=job.error_message,
            progress_updated_at=job.progress_updated_at,
            result_id=job.result_id,
        )

    def cancel(self, job_id: str) -> bool:
        """Cancel a PENDING, QUEUED or RETRYING job. False when not cancellable."""
        job = self._job_repo.find_by_job_id(job_id)
        if job is None or job.id is None:
            Log.warning(f"Cancel requested for unknown job {job_id}")
            return False
        cancelled = self._job_repo.mark_cancelled(job.id)
        if cancelled is None:
            Log.warning(f"Job {job_id} cannot be cancelled in status {job.status.value}")
            return False
        self._queue.remove(job.id)
        Log.info(f"Job {job_id} cancelled")
        return True

    def list_jobs(self, query: JobQuery | None = None) -> list[Job]:
        return self._job_repo.query(query or JobQuery())

    def get_result(self, job_id: str) -> Result | None:
        job = self.get_job(job_id)
        return self._result_store.get_current_for_job(_persisted_id(job))

    def resubmit(self, job_id: str, *, user_roles: list[str] | None = None) -> Job:
        """Submit a fresh copy of a finished job. The original stays untouched."""
        job = self.get_job(job_id)
        if not job.status.is_terminal:
            raise JobValidationError(
                f"Job {job_id} is {job.status.value}; only finished jobs can be resubmitted"
            )
        spec = JobSpec(
            processing_type=job.processing_type,
            document=job.document,
            user_id=job.user_id,
            organization_id=job.organization_id,
            user_roles=list(user_roles or []),
            template_id=job.template_id,
            custom_instructions=job.custom_instructions,
            knowledge_entry_ids=list(job.knowledge_entry_ids),
            required_knowledge_types=list(job.required_knowledge_types),
            config=job.config,
            provider=job.requested_provider,
            model=job.requested_model,
            priority=job.priority,
            max_retries=job.max_retries,
            callback_url=job.callback_url,
            related_entity_type=job.related_entity_type,
            related_entity_id=job.related_entity_id,
            metadata={**job.metadata, "resubmitted_from": job.job_id},
            tags=list(job.tags),
        )
        return self.submit(spec)

    def find_stuck_jobs(self) -> list[Job]:
        cutoff = utcnow() - timedelta(seconds=self._settings.stuck_job_ceiling_seconds)
        return self._job_repo.find_stale_processing(cutoff)

    def stats(self, query: JobQuery | None = None) -> ProcessingStats:
        return self._job_repo.stats(query or JobQuery())

    def _enqueue(self, job: Job, delay_seconds: float) -> Job:
        """PENDING -> QUEUED plus the queue entry; a job the queue refuses is failed."""
        id = _persisted_id(job)
        queued = self._job_repo.mark_queued(id)
        if queued is None:
            Log.warning(f"Job {job.job_id} left PENDING before it could be queued")
            return self._job_repo.find_by_id(id) or job
        try:
            self._queue.enqueue(id, job.priority, delay_seconds)
        except Exception as exc:
            Log.exception(f"Job {job.job_id} could not be enqueued")
            failed = self._job_repo.mark_failed(
                id,
                job.retry_count,
                f"Could not enqueue job: {exc}",
                {"type": type(exc).__name__, "message": str(exc)},
            )
            return failed or queued
        return queued

    def _validate(self, spec: JobSpec, max_retries: int) -> Template | None:
        errors: list[str] = []
        if not MIN_PRIORITY <= spec.priority <= MAX_PRIORITY:
            errors.append(f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")
        if not 0 <= max_retries <= MAX_RETRIES_LIMIT:
            errors.append(f"Max retries must be between 0 and {MAX_RETRIES_LIMIT}")
        if not spec.document.url.strip():
            errors.append("Document URL is required")
        if spec.callback_url and urlparse(spec.callback_url).scheme not in ("http", "https"):
            errors.append("Callback URL must be an http(s) URL")
        threshold = spec.config.confidence_threshold
        if threshold is not None and not 0 <= threshold <= 1:
            errors.append("Confidence threshold must be between 0 and 1")

        template: Template | None = None
        if spec.template_id is not None:
            try:
                template = self._template_store.get(spec.template_id)
            except TemplateNotFoundError as exc:
                errors.append(str(exc))
        if template is not None:
            errors.extend(self._template_access_errors(spec, template))

        errors.extend(self._provider_errors(spec, template))
        if errors:
            raise JobValidationError("; ".join(errors))
        return template

    @staticmethod
    def _template_access_errors(spec: JobSpec, template: Template) -> list[str]:
        errors: list[str] = []
        if template.processing_type is not spec.processing_type:
            errors.append(
                f"Template {template.id} is for {template.processing_type.value}, "
                f"not {spec.processing_type.value}"
            )
        if template.organization_id is not None and template.organization_id != spec.organization_id:
            errors.append(f"Template {template.id} belongs to another organization")
        if template.allowed_users and spec.user_id not in template.allowed_users:
            errors.append(f"User {spec.user_id} may not use template {template.id}")
        if template.allowed_roles and not set(spec.user_roles) & set(template.allowed_roles):
            errors.append(f"None of the user's roles may use template {template.id}")

        document = spec.document
        if template.supported_file_types:
            supported = {t.lower().lstrip(".") for t in template.supported_file_types}
            candidates = {(document.type or "").lower()}
            suffix = PurePosixPath(document.name or urlparse(document.url).path).suffix
            candidates.add(suffix.lower().lstrip("."))
            candidates.add((document.type or "").lower().rsplit("/", 1)[-1])
            if not candidates & supported:
                errors.append(
                    f"Document type is not supported by template {template.id} "
                    f"({', '.join(sorted(supported))})"
                )
        if template.max_file_size_mb is not None and document.size is not None:
            if document.size > template.max_file_size_mb * 1024 * 1024:
                errors.append(
                    f"Document exceeds the {template.max_file_size_mb} MB limit of "
                    f"template {template.id}"
                )
        return errors

    def _provider_errors(self, spec: JobSpec, template: Template | None) -> list[str]:
        if spec.provider and not self._registry.is_registered(spec.provider):
            return [f"Unsupported provider '{spec.provider}'"]
        provider_name = spec.provider or (template.default_provider if template else None)
        if provider_name and self._registry.is_registered(provider_name):
            adapter = self._registry.get(provider_name)
        else:
            adapter = self._registry.default_adapter
        errors: list[str] = []
        if spec.model and spec.provider and not adapter.supports_model(spec.model):
            errors.append(f"Model '{spec.model}' is not offered by provider '{spec.provider}'")
        base = template.generation_config if template else ModelConfig()
        config = adapter.default_config().merged(base).merged(
            ModelConfig(temperature=spec.config.temperature, max_tokens=spec.config.max_tokens)
        )
        errors.extend(adapter.validate_config(config))
        return errors


def _persisted_id(job: Job) -> int:
    if job.id is None:
        raise JobNotFoundError(f"Job {job.job_id} has not been persisted")
    return job.id
