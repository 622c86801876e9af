from dataclasses import dataclass
from pathlib import Path

from docproc.config.settings import Settings
from docproc.database.factory import Storage, StorageFactory
from docproc.documents.fetcher import DocumentFetcher
from docproc.documents.file_loader import FileLoader
from docproc.jobs.orchestrator import JobOrchestrator
from docproc.knowledge.store import KnowledgeStore
from docproc.logging.logger import Log
from docproc.notifications.webhook import WebhookNotifier
from docproc.pdf.factory import PdfExtractorFactory
from docproc.processor.processor import build_processor
from docproc.providers.base import BaseProviderAdapter
from docproc.providers.exceptions import UnknownProviderError
from docproc.providers.registry import ProviderRegistry
from docproc.results.store import ResultStore
from docproc.templates.store import TemplateStore
from docproc.worker.job_runner import JobRunner
from docproc.worker.worker import Worker


@dataclass
class Services:
    """Fully wired application objects sharing one storage backend."""

    settings: Settings
    storage: Storage
    registry: ProviderRegistry
    templates: TemplateStore
    knowledge: KnowledgeStore
    results: ResultStore
    orchestrator: JobOrchestrator
    runner: JobRunner
    worker: Worker


def build_services(
    settings: Settings,
    *,
    storage: Storage | None = None,
    registry: ProviderRegistry | None = None,
    fetcher: DocumentFetcher | None = None,
    notifier: WebhookNotifier | None = None,
) -> Services:
    """Wire every component from settings. Collaborators may be injected for tests."""
    storage = storage or StorageFactory.create(settings)
    registry = registry or ProviderRegistry.from_settings(settings)
    fetcher = fetcher or DocumentFetcher(
        FileLoader(Path(settings.files_root)),
        PdfExtractorFactory.create(settings),
        timeout_seconds=settings.document_fetch_timeout_seconds,
    )
    notifier = notifier or WebhookNotifier(timeout_seconds=settings.webhook_timeout_seconds)

    templates = TemplateStore(storage.templates, storage.jobs)
    knowledge = KnowledgeStore(storage.knowledge, embedder=_embedder(settings, registry))
    results = ResultStore(storage.results)
    orchestrator = JobOrchestrator(
        storage.jobs, storage.queue, templates, results, registry, settings
    )
    processor = build_processor(
        settings,
        job_repo=storage.jobs,
        template_store=templates,
        knowledge_store=knowledge,
        result_store=results,
        registry=registry,
        fetcher=fetcher,
    )
    runner = JobRunner(
        processor, storage.jobs, storage.queue, templates, results, notifier, settings
    )
    worker = Worker(storage.queue, runner, orchestrator, settings)
    return Services(
        settings=settings,
        storage=storage,
        registry=registry,
        templates=templates,
        knowledge=knowledge,
        results=results,
        orchestrator=orchestrator,
        runner=runner,
        worker=worker,
    )


def _embedder(settings: Settings, registry: ProviderRegistry) -> BaseProviderAdapter | None:
    if not settings.knowledge_embeddings_enabled:
        return None
    try:
        adapter = registry.get(settings.embedding_provider)
    except UnknownProviderError:
        Log.warning(f"Unknown embedding provider '{settings.embedding_provider}', embeddings disabled")
        return None
    if not adapter.SUPPORTS_EMBEDDINGS:
        Log.warning(f"Provider {adapter.name} cannot embed, embeddings disabled")
        return None
    return adapter
