from dataclasses import dataclass

from docproc.config.settings import Settings
from docproc.database.repositories.base import (
    BaseJobRepository,
    BaseKnowledgeRepository,
    BaseResultRepository,
    BaseTemplateRepository,
)
from docproc.database.repositories.job_repository import JobRepository
from docproc.database.repositories.knowledge_repository import KnowledgeRepository
from docproc.database.repositories.memory import (
    InMemoryJobRepository,
    InMemoryKnowledgeRepository,
    InMemoryResultRepository,
    InMemoryTemplateRepository,
)
from docproc.database.repositories.result_repository import ResultRepository
from docproc.database.repositories.template_repository import TemplateRepository
from docproc.queue.base import BaseJobQueue
from docproc.queue.memory_queue import InMemoryJobQueue
from docproc.queue.postgres_queue import PostgresJobQueue


@dataclass
class Storage:
    """Repositories and queue sharing one backend."""

    jobs: BaseJobRepository
    templates: BaseTemplateRepository
    knowledge: BaseKnowledgeRepository
    results: BaseResultRepository
    queue: BaseJobQueue


class StorageFactory:
    """Creates the configured storage backend."""

    @classmethod
    def create(cls, settings: Settings) -> Storage:
        backend = settings.storage_backend.lower()
        if backend == "postgres":
            return Storage(
                jobs=JobRepository(),
                templates=TemplateRepository(),
                knowledge=KnowledgeRepository(),
                results=ResultRepository(),
                queue=PostgresJobQueue(),
            )
        if backend == "memory":
            return cls.in_memory()
        raise ValueError(
            f"Unknown storage backend '{settings.storage_backend}'. "
            "Choose from: ['memory', 'postgres']"
        )

    @classmethod
    def in_memory(cls) -> Storage:
        return Storage(
            jobs=InMemoryJobRepository(),
            templates=InMemoryTemplateRepository(),
            knowledge=InMemoryKnowledgeRepository(),
            results=InMemoryResultRepository(),
            queue=InMemoryJobQueue(),
        )
