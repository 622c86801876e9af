"""In-memory repositories.

Same contracts as the PostgreSQL ones, for local development and tests.
Entities are deep-copied on the way in and out so callers never share state
with the store, and a single lock serializes all writes.
"""

import copy
import itertools
import threading
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from docproc.database.enums import TERMINAL_STATUSES, JobStatus, ProcessingType
from docproc.database.models import (
    Job,
    JobQuery,
    KnowledgeEntry,
    KnowledgeQuery,
    ProcessingStats,
    Result,
    Template,
    utcnow,
)
from docproc.database.repositories.base import (
    BaseJobRepository,
    BaseKnowledgeRepository,
    BaseResultRepository,
    BaseTemplateRepository,
)

T = TypeVar("T", Job, Template, KnowledgeEntry, Result)


class _Store:
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._rows: dict[int, object] = {}
        self._ids = itertools.count(1)

    def insert(self, entity: T) -> T:
        with self.lock:
            entity.id = next(self._ids)
            self._rows[entity.id] = copy.deepcopy(entity)
        return entity

    def get(self, id: int) -> object | None:
        with self.lock:
            row = self._rows.get(id)
            return copy.deepcopy(row) if row is not None else None

    def all(self) -> list[object]:
        with self.lock:
            return [copy.deepcopy(row) for row in self._rows.values()]

    def delete(self, id: int) -> bool:
        with self.lock:
            return self._rows.pop(id, None) is not None

    def modify(self, id: int, mutate: Callable[[T], bool]) -> T | None:
        with self.lock:
            row = self._rows.get(id)
            if row is None:
                return None
            entity: T = copy.deepcopy(row)  # type: ignore[assignment]
            if not mutate(entity):
                return None
            entity.updated_at = utcnow()
            self._rows[id] = copy.deepcopy(entity)
            return entity


class InMemoryJobRepository(BaseJobRepository):
    def __init__(self) -> None:
        self._store = _Store()

    def create(self, job: Job) -> Job:
        with self._store.lock:
            if any(j.job_id == job.job_id for j in self._jobs()):
                raise ValueError(f"Duplicate job id {job.job_id}")
            return self._store.insert(job)

    def find_by_id(self, id: int) -> Job | None:
        return self._store.get(id)  # type: ignore[return-value]

    def find_by_job_id(self, job_id: str) -> Job | None:
        return next((j for j in self._jobs() if j.job_id == job_id), None)

    def query(self, query: JobQuery) -> list[Job]:
        jobs = [j for j in self._jobs() if self._matches(j, query)]
        jobs.sort(key=lambda j: (j.created_at, j.id or 0), reverse=True)
        return jobs[: query.limit]

    def stats(self, query: JobQuery) -> ProcessingStats:
        stats = ProcessingStats()
        durations: list[int] = []
        for job in self._jobs():
            if not self._matches(job, query):
                continue
            stats.total_jobs += 1
            stats.by_status[job.status.value] = stats.by_status.get(job.status.value, 0) + 1
            stats.total_tokens += job.total_tokens
            stats.total_cost += job.actual_cost or 0.0
            if job.status is JobStatus.COMPLETED and job.processing_time_ms is not None:
                durations.append(job.processing_time_ms)
        if durations:
            stats.average_processing_time_ms = sum(durations) / len(durations)
        return stats

    def count_active_for_template(self, template_id: int) -> int:
        return sum(
            1
            for j in self._jobs()
            if j.template_id == template_id and j.status not in TERMINAL_STATUSES
        )

    def find_stale_processing(self, cutoff: datetime) -> list[Job]:
        return [
            j
            for j in self._jobs()
            if j.status is JobStatus.PROCESSING
            and j.progress_updated_at is not None
            and j.progress_updated_at < cutoff
        ]

    def _modify(self, id: int, mutate: Callable[[Job], bool]) -> Job | None:
        return self._store.modify(id, mutate)

    def _jobs(self) -> list[Job]:
        return self._store.all()  # type: ignore[return-value]

    @staticmethod
    def _matches(job: Job, query: JobQuery) -> bool:
        checks = (
            (query.status, job.status),
            (query.user_id, job.user_id),
            (query.organization_id, job.organization_id),
            (query.processing_type, job.processing_type),
            (query.template_id, job.template_id),
            (query.related_entity_type, job.related_entity_type),
            (query.related_entity_id, job.related_entity_id),
        )
        return all(expected is None or expected == actual for expected, actual in checks)


class InMemoryTemplateRepository(BaseTemplateRepository):
    def __init__(self) -> None:
        self._store = _Store()

    def create(self, template: Template) -> Template:
        return self._store.insert(template)

    def find_by_id(self, id: int) -> Template | None:
        return self._store.get(id)  # type: ignore[return-value]

    def find_all(
        self,
        processing_type: ProcessingType | None = None,
        organization_id: int | None = None,
        active_only: bool = True,
    ) -> list[Template]:
        templates = [
            t
            for t in self._templates()
            if (processing_type is None or t.processing_type is processing_type)
            and (
                organization_id is None
                or t.organization_id is None
                or t.organization_id == organization_id
            )
            and (t.is_active or not active_only)
        ]
        templates.sort(key=lambda t: (not t.is_default, t.name, t.id or 0))
        return templates

    def find_default(self, processing_type: ProcessingType) -> Template | None:
        return next(
            (
                t
                for t in sorted(self._templates(), key=lambda t: t.id or 0)
                if t.processing_type is processing_type
                and t.is_default
                and t.is_active
                and t.organization_id is None
            ),
            None,
        )

    def delete(self, id: int) -> bool:
        return self._store.delete(id)

    def _modify(self, id: int, mutate: Callable[[Template], bool]) -> Template | None:
        return self._store.modify(id, mutate)

    def _templates(self) -> list[Template]:
        return self._store.all()  # type: ignore[return-value]


class InMemoryKnowledgeRepository(BaseKnowledgeRepository):
    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = _Store()
        self._clock = clock

    def create(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        return self._store.insert(entry)

    def find_by_id(self, id: int) -> KnowledgeEntry | None:
        return self._store.get(id)  # type: ignore[return-value]

    def search(self, query: KnowledgeQuery) -> list[KnowledgeEntry]:
        now = self._clock()
        types = set(query.types)
        if query.type is not None:
            types.add(query.type)
        needle = query.query.lower() if query.query else None

        def visible(entry: KnowledgeEntry) -> bool:
            if entry.organization_id is None or entry.is_public:
                return True
            if query.public_only:
                return False
            return query.organization_id is None or entry.organization_id == query.organization_id

        def matches_text(entry: KnowledgeEntry) -> bool:
            if needle is None:
                return True
            haystacks = [entry.title, entry.content, *entry.keywords]
            return any(needle in text.lower() for text in haystacks)

        entries = [
            e
            for e in self._store.all()
            if isinstance(e, KnowledgeEntry)
            and e.is_retrievable(now)
            and (e.is_latest_version or not query.latest_only)
            and (not types or e.type in types)
            and (not query.ids or e.id in query.ids)
            and visible(e)
            and matches_text(e)
        ]
        entries.sort(key=lambda e: (-e.priority, -e.confidence_score, e.id or 0))
        if query.limit is not None:
            entries = entries[: query.limit]
        return entries

    def create_version(self, previous_id: int, entry: KnowledgeEntry) -> KnowledgeEntry | None:
        with self._store.lock:
            previous = self.find_by_id(previous_id)
            if previous is None:
                return None
            entry.version = previous.version + 1
            entry.previous_version_id = previous.id
            entry.is_latest_version = True

            def retire(row: KnowledgeEntry) -> bool:
                row.is_latest_version = False
                row.is_active = False
                return True

            self._store.modify(previous_id, retire)
            return self._store.insert(entry)

    def _modify(
        self, id: int, mutate: Callable[[KnowledgeEntry], bool]
    ) -> KnowledgeEntry | None:
        return self._store.modify(id, mutate)


class InMemoryResultRepository(BaseResultRepository):
    def __init__(self) -> None:
        self._store = _Store()

    def create(self, result: Result) -> Result:
        with self._store.lock:
            current = self.find_current_for_job(result.job_id)
            while current is not None and current.id is not None:
                self.supersede(current.id)
                current = self.find_current_for_job(result.job_id)
            return self._store.insert(result)

    def find_by_id(self, id: int) -> Result | None:
        return self._store.get(id)  # type: ignore[return-value]

    def find_current_for_job(self, job_id: int) -> Result | None:
        current = [r for r in self.list_for_job(job_id) if not r.is_superseded]
        return current[-1] if current else None

    def list_for_job(self, job_id: int) -> list[Result]:
        results = [r for r in self._store.all() if isinstance(r, Result) and r.job_id == job_id]
        results.sort(key=lambda r: r.id or 0)
        return results

    def _modify(self, id: int, mutate: Callable[[Result], bool]) -> Result | None:
        return self._store.modify(id, mutate)
