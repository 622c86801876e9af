from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from docproc.database.enums import CANCELLABLE_STATUSES, JobStatus, ProcessingType, StepStatus
from docproc.database.models import (
    Job,
    JobQuery,
    JobStep,
    KnowledgeEntry,
    KnowledgeQuery,
    ProcessingStats,
    Result,
    Template,
    utcnow,
)


class BaseJobRepository(ABC):
    """Persistence contract for jobs.

    Every status change goes through ``_modify``, which must run the callback
    under a per-job exclusive lock so writes to one job are serialized. The
    transition helpers below return the updated job, or ``None`` when the job
    is missing or not in a state that allows the transition.
    """

    @abstractmethod
    def create(self, job: Job) -> Job:
        """Persist a new job and return it with ``id`` assigned."""

    @abstractmethod
    def find_by_id(self, id: int) -> Job | None: ...

    @abstractmethod
    def find_by_job_id(self, job_id: str) -> Job | None: ...

    @abstractmethod
    def query(self, query: JobQuery) -> list[Job]:
        """Jobs matching ``query``, newest first."""

    @abstractmethod
    def stats(self, query: JobQuery) -> ProcessingStats: ...

    @abstractmethod
    def count_active_for_template(self, template_id: int) -> int:
        """Number of non-terminal jobs referencing the template."""

    @abstractmethod
    def find_stale_processing(self, cutoff: datetime) -> list[Job]:
        """PROCESSING jobs whose progress timestamp is older than ``cutoff``."""

    @abstractmethod
    def _modify(self, id: int, mutate: Callable[[Job], bool]) -> Job | None: ...

    def mark_queued(self, id: int) -> Job | None:
        def mutate(job: Job) -> bool:
            if job.status not in (JobStatus.PENDING, JobStatus.RETRYING):
                return False
            job.status = JobStatus.QUEUED
            return True

        return self._modify(id, mutate)

    def mark_processing(self, id: int) -> Job | None:
        """QUEUED -> PROCESSING. Resets progress and the step log for the new attempt."""

        def mutate(job: Job) -> bool:
            if job.status is not JobStatus.QUEUED:
                return False
            now = utcnow()
            job.status = JobStatus.PROCESSING
            job.started_at = now
            job.completed_at = None
            job.processing_time_ms = None
            job.progress = 0
            job.current_step = None
            job.steps = []
            job.progress_updated_at = now
            return True

        return self._modify(id, mutate)

    def update_progress(
        self,
        id: int,
        step: str,
        step_status: StepStatus,
        progress: int | None = None,
        output: Any = None,
        error: str | None = None,
    ) -> Job | None:
        """Record a step transition. Progress never decreases."""

        def mutate(job: Job) -> bool:
            if job.status is not JobStatus.PROCESSING:
                return False
            now = utcnow()
            entry = next((s for s in job.steps if s.name == step), None)
            if entry is None:
                entry = JobStep(name=step)
                job.steps.append(entry)
            entry.status = step_status
            if step_status is StepStatus.PROCESSING:
                entry.started_at = now
            elif step_status in (StepStatus.COMPLETED, StepStatus.FAILED):
                entry.completed_at = now
            if output is not None:
                entry.output = output
            if error is not None:
                entry.error = error
            job.current_step = step
            if progress is not None:
                job.progress = max(job.progress, progress)
            job.progress_updated_at = now
            return True

        return self._modify(id, mutate)

    def record_provider_usage(
        self,
        id: int,
        *,
        provider: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        actual_cost: float,
        estimated_cost: float | None = None,
        llm_response: Any = None,
    ) -> Job | None:
        def mutate(job: Job) -> bool:
            if job.status is not JobStatus.PROCESSING:
                return False
            job.llm_provider = provider
            job.llm_model = model
            job.prompt_tokens = prompt_tokens
            job.completion_tokens = completion_tokens
            job.total_tokens = prompt_tokens + completion_tokens
            job.actual_cost = actual_cost
            if estimated_cost is not None:
                job.estimated_cost = estimated_cost
            job.llm_response = llm_response
            return True

        return self._modify(id, mutate)

    def mark_completed(self, id: int, result_id: int | None) -> Job | None:
        """PROCESSING -> COMPLETED. Fails (returns None) if the job was cancelled meanwhile."""

        def mutate(job: Job) -> bool:
            if job.status is not JobStatus.PROCESSING:
                return False
            self._finish(job, JobStatus.COMPLETED)
            job.result_id = result_id
            job.progress = 100
            job.error_message = None
            job.error_details = None
            return True

        return self._modify(id, mutate)

    def mark_retrying(
        self,
        id: int,
        retry_count: int,
        error_message: str,
        error_details: dict[str, Any] | None = None,
    ) -> Job | None:
        def mutate(job: Job) -> bool:
            if job.status is not JobStatus.PROCESSING:
                return False
            job.status = JobStatus.RETRYING
            job.retry_count = retry_count
            job.error_message = error_message
            job.error_details = error_details
            return True

        return self._modify(id, mutate)

    def mark_failed(
        self,
        id: int,
        retry_count: int,
        error_message: str,
        error_details: dict[str, Any] | None = None,
    ) -> Job | None:
        def mutate(job: Job) -> bool:
            if job.status.is_terminal:
                return False
            self._finish(job, JobStatus.FAILED)
            job.retry_count = retry_count
            job.error_message = error_message
            job.error_details = error_details
            return True

        return self._modify(id, mutate)

    def mark_cancelled(self, id: int) -> Job | None:
        def mutate(job: Job) -> bool:
            if job.status not in CANCELLABLE_STATUSES:
                return False
            job.status = JobStatus.CANCELLED
            return True

        return self._modify(id, mutate)

    @staticmethod
    def _finish(job: Job, status: JobStatus) -> None:
        now = utcnow()
        job.status = status
        job.completed_at = now
        if job.started_at is not None:
            job.processing_time_ms = int((now - job.started_at).total_seconds() * 1000)


class BaseTemplateRepository(ABC):
    """Persistence contract for processing templates."""

    @abstractmethod
    def create(self, template: Template) -> Template: ...

    @abstractmethod
    def find_by_id(self, id: int) -> Template | None: ...

    @abstractmethod
    def find_all(
        self,
        processing_type: ProcessingType | None = None,
        organization_id: int | None = None,
        active_only: bool = True,
    ) -> list[Template]:
        """Templates visible to ``organization_id`` (global ones plus its own)."""

    @abstractmethod
    def find_default(self, processing_type: ProcessingType) -> Template | None:
        """The active global default template for the processing type, if any."""

    @abstractmethod
    def delete(self, id: int) -> bool: ...

    @abstractmethod
    def _modify(self, id: int, mutate: Callable[[Template], bool]) -> Template | None: ...

    def update(self, id: int, mutate: Callable[[Template], bool]) -> Template | None:
        return self._modify(id, mutate)

    def record_completion(
        self,
        id: int,
        *,
        success: bool,
        cost: float | None = None,
        processing_time_ms: int | None = None,
    ) -> Template | None:
        """Bump usage counters; averages are rolling over successful runs."""

        def mutate(template: Template) -> bool:
            template.usage_count += 1
            if success:
                template.success_count += 1
                n = template.success_count
                if cost is not None:
                    previous = template.average_cost or 0.0
                    template.average_cost = previous + (cost - previous) / n
                if processing_time_ms is not None:
                    previous_ms = template.average_processing_time_ms or 0
                    template.average_processing_time_ms = int(
                        previous_ms + (processing_time_ms - previous_ms) / n
                    )
            template.success_rate = template.success_count / template.usage_count
            return True

        return self._modify(id, mutate)


class BaseKnowledgeRepository(ABC):
    """Persistence contract for knowledge entries."""

    @abstractmethod
    def create(self, entry: KnowledgeEntry) -> KnowledgeEntry: ...

    @abstractmethod
    def find_by_id(self, id: int) -> KnowledgeEntry | None: ...

    @abstractmethod
    def search(self, query: KnowledgeQuery) -> list[KnowledgeEntry]:
        """Active, non-expired entries matching ``query``.

        Ordered by priority, then confidence score, both descending.
        """

    @abstractmethod
    def _modify(
        self, id: int, mutate: Callable[[KnowledgeEntry], bool]
    ) -> KnowledgeEntry | None: ...

    @abstractmethod
    def create_version(self, previous_id: int, entry: KnowledgeEntry) -> KnowledgeEntry | None:
        """Atomically store ``entry`` as the next version and retire ``previous_id``."""

    def update(
        self, id: int, mutate: Callable[[KnowledgeEntry], bool]
    ) -> KnowledgeEntry | None:
        return self._modify(id, mutate)

    def mark_used(self, ids: list[int]) -> None:
        now = utcnow()

        def mutate(entry: KnowledgeEntry) -> bool:
            entry.usage_count += 1
            entry.last_used_at = now
            return True

        for id in ids:
            self._modify(id, mutate)


class BaseResultRepository(ABC):
    """Persistence contract for processing results."""

    @abstractmethod
    def create(self, result: Result) -> Result:
        """Persist ``result`` and supersede earlier current results of the same job."""

    @abstractmethod
    def find_by_id(self, id: int) -> Result | None: ...

    @abstractmethod
    def find_current_for_job(self, job_id: int) -> Result | None:
        """The non-superseded result of a job, if any."""

    @abstractmethod
    def list_for_job(self, job_id: int) -> list[Result]: ...

    @abstractmethod
    def _modify(self, id: int, mutate: Callable[[Result], bool]) -> Result | None: ...

    def update(self, id: int, mutate: Callable[[Result], bool]) -> Result | None:
        return self._modify(id, mutate)

    def supersede(self, id: int) -> Result | None:
        def mutate(result: Result) -> bool:
            result.is_superseded = True
            return True

        return self._modify(id, mutate)
