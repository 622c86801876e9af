from unittest.mock import MagicMock, patch

import pytest

from docproc.config.settings import Settings
from docproc.database.enums import JobStatus, KnowledgeType, ProcessingType
from docproc.database.models import DocumentRef, KnowledgeEntry, Template, TemplatePrompt
from docproc.documents.exceptions import DocumentUnavailableError
from docproc.documents.fetcher import DocumentFetcher
from docproc.jobs.models import JobSpec
from docproc.notifications.webhook import WebhookNotifier
from docproc.providers.example_adapter import ExampleAdapter
from docproc.providers.models import ProviderType
from docproc.providers.registry import ProviderRegistry
from docproc.services import Services, build_services


def _build(
    fetcher: MagicMock, *, max_workers: int = 1, adapter: ExampleAdapter | None = None
) -> tuple[Services, MagicMock]:
    settings = Settings(
        storage_backend="memory",
        default_provider="example",
        fallback_model="example",
        knowledge_embeddings_enabled=False,
        retry_base_delay_seconds=0,
        max_workers=max_workers,
    )
    registry = ProviderRegistry(
        {ProviderType.EXAMPLE: adapter or ExampleAdapter()},
        default_provider=ProviderType.EXAMPLE,
        fallback_model="example",
    )
    notifier = MagicMock(spec=WebhookNotifier)
    services = build_services(settings, registry=registry, fetcher=fetcher, notifier=notifier)
    return services, notifier


def _spec(**overrides: object) -> JobSpec:
    fields: dict[str, object] = {
        "processing_type": ProcessingType.TENDER_EXTRACTION,
        "document": DocumentRef(id=1, url="tender.txt"),
        "user_id": 1,
        "organization_id": 9,
        "callback_url": "https://hooks.test/done",
    }
    fields.update(overrides)
    return JobSpec(**fields)  # type: ignore[arg-type]


class TestEndToEnd:
    def test_submitted_job_completes(self) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        fetcher.fetch_content.return_value = "Budget: $500"
        services, notifier = _build(fetcher)

        job = services.orchestrator.submit(_spec())
        services.worker.run(max_jobs=1)

        status = services.orchestrator.get_status(job.job_id)
        assert status is not None
        assert status.status is JobStatus.COMPLETED
        assert status.progress == 100
        result = services.orchestrator.get_result(job.job_id)
        assert result is not None
        assert status.result_id == result.id
        notifier.notify.assert_called_once()
        assert notifier.notify.call_args.args[0].status is JobStatus.COMPLETED

    def test_template_and_knowledge_flow_into_prompt(self) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        fetcher.fetch_content.return_value = "Budget: $500"
        services, _ = _build(fetcher)
        template = services.templates.create(
            Template(
                name="Tender",
                processing_type=ProcessingType.TENDER_EXTRACTION,
                prompt=TemplatePrompt(user="Extract from: {{document}}"),
                required_knowledge_types=[KnowledgeType.TENDER_RULES],
            )
        )
        services.knowledge.create(
            KnowledgeEntry(
                title="Rules",
                content="Bids close at noon.",
                type=KnowledgeType.TENDER_RULES,
                organization_id=9,
            )
        )
        job = services.orchestrator.submit(_spec(template_id=template.id))
        assert job.id is not None

        services.runner.run(job.id)

        stored = services.orchestrator.get_job(job.job_id)
        assert stored.status is JobStatus.COMPLETED
        knowledge_step = next(s for s in stored.steps if s.name == "retrieve_knowledge")
        assert len(knowledge_step.output["entry_ids"]) == 1
        refreshed = services.templates.get(template.id)  # type: ignore[arg-type]
        assert refreshed.usage_count == 1
        assert refreshed.success_count == 1

    def test_job_without_template_ignores_default_template(self) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        fetcher.fetch_content.return_value = "Budget: $500"
        adapter = ExampleAdapter()
        services, _ = _build(fetcher, adapter=adapter)
        default = services.templates.create(
            Template(
                name="Restricted default",
                processing_type=ProcessingType.TENDER_EXTRACTION,
                prompt=TemplatePrompt(user="TEMPLATE USER TEXT"),
                is_default=True,
                allowed_users=[99],
            )
        )
        job = services.orchestrator.submit(_spec())
        assert job.id is not None

        with patch.object(adapter, "invoke", wraps=adapter.invoke) as invoke:
            services.runner.run(job.id)

        prompt = invoke.call_args.args[0]
        assert prompt == (
            "Extract key information from the following tender document:\n\nBudget: $500"
        )
        stored = services.orchestrator.get_job(job.job_id)
        assert stored.status is JobStatus.COMPLETED
        assert stored.template_id is None
        assert services.templates.get(default.id).usage_count == 0  # type: ignore[arg-type]

    def test_failing_job_is_retried_then_failed(self) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        fetcher.fetch_content.side_effect = DocumentUnavailableError("gone")
        services, notifier = _build(fetcher)

        job = services.orchestrator.submit(_spec(max_retries=2))
        services.worker.run(max_jobs=2)

        stored = services.orchestrator.get_job(job.job_id)
        assert stored.status is JobStatus.FAILED
        assert stored.retry_count == 2
        assert stored.error_message == "gone"
        assert fetcher.fetch_content.call_count == 2
        notifier.notify.assert_called_once()

    def test_cancelled_job_is_never_run(self) -> None:
        fetcher = MagicMock(spec=DocumentFetcher)
        services, _ = _build(fetcher)
        job = services.orchestrator.submit(_spec())

        assert services.orchestrator.cancel(job.job_id) is True
        assert services.storage.queue.claim_next() is None
        fetcher.fetch_content.assert_not_called()


class TestBuildServices:
    def test_unknown_storage_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown storage backend"):
            build_services(Settings(storage_backend="redis", default_provider="example"))
