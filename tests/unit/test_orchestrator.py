from datetime import timedelta
from unittest.mock import patch

import pytest

from docproc.config.settings import Settings
from docproc.database.enums import JobStatus, ProcessingType
from docproc.database.factory import Storage, StorageFactory
from docproc.database.models import DocumentRef, JobQuery, ProcessingConfig, Template, utcnow
from docproc.jobs.exceptions import JobNotFoundError, JobValidationError
from docproc.jobs.models import JobSpec
from docproc.jobs.orchestrator import JobOrchestrator
from docproc.providers.anthropic_adapter import AnthropicAdapter
from docproc.providers.example_adapter import ExampleAdapter
from docproc.providers.models import ModelConfig, ProviderType
from docproc.providers.registry import ProviderRegistry
from docproc.results.parser import ParsedOutput
from docproc.results.store import ResultStore
from docproc.templates.store import TemplateStore


def _make_orchestrator() -> tuple[JobOrchestrator, Storage, TemplateStore]:
    storage = StorageFactory.in_memory()
    templates = TemplateStore(storage.templates, storage.jobs)
    registry = ProviderRegistry(
        {
            ProviderType.EXAMPLE: ExampleAdapter(),
            ProviderType.ANTHROPIC: AnthropicAdapter(api_key="ant"),
        },
        default_provider=ProviderType.EXAMPLE,
        fallback_model="example",
    )
    orchestrator = JobOrchestrator(
        storage.jobs,
        storage.queue,
        templates,
        ResultStore(storage.results),
        registry,
        Settings(default_max_retries=3, stuck_job_ceiling_seconds=60),
    )
    return orchestrator, storage, templates


def _spec(**overrides: object) -> JobSpec:
    fields: dict[str, object] = {
        "processing_type": ProcessingType.TENDER_EXTRACTION,
        "document": DocumentRef(id=1, url="tender.pdf", name="tender.pdf", size=1024),
        "user_id": 1,
    }
    fields.update(overrides)
    return JobSpec(**fields)  # type: ignore[arg-type]


def _template(templates: TemplateStore, **overrides: object) -> int:
    fields: dict[str, object] = {
        "name": "Tender",
        "processing_type": ProcessingType.TENDER_EXTRACTION,
    }
    fields.update(overrides)
    created = templates.create(Template(**fields))  # type: ignore[arg-type]
    assert created.id is not None
    return created.id


class TestSubmit:
    def test_submit_persists_and_enqueues(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()

        job = orchestrator.submit(_spec(priority=3, provider="claude", model="claude-2.1"))

        assert job.id is not None
        stored = storage.jobs.find_by_id(job.id)
        assert stored is not None
        assert stored.status is JobStatus.QUEUED
        assert stored.max_retries == 3
        assert stored.requested_provider == "claude"
        assert stored.requested_model == "claude-2.1"
        assert storage.queue.claim_next() == job.id

    def test_generates_unique_job_ids(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        first = orchestrator.submit(_spec())
        second = orchestrator.submit(_spec())
        assert first.job_id != second.job_id

    def test_duplicate_explicit_job_id(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        orchestrator.submit(_spec(job_id="fixed"))
        with pytest.raises(JobValidationError, match="Duplicate"):
            orchestrator.submit(_spec(job_id="fixed"))

    def test_scheduled_job_is_delayed(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()

        orchestrator.submit(_spec(scheduled_at=utcnow() + timedelta(hours=1)))

        assert storage.queue.size() == 1
        assert storage.queue.claim_next() is None

    def test_queue_failure_marks_job_failed(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()

        with patch.object(storage.queue, "enqueue", side_effect=RuntimeError("queue down")):
            job = orchestrator.submit(_spec())

        assert job.status is JobStatus.FAILED
        assert job.error_message == "Could not enqueue job: queue down"
        stored = orchestrator.get_status(job.job_id)
        assert stored is not None
        assert stored.status is JobStatus.FAILED
        assert storage.queue.size() == 0

    def test_returns_queued_job(self) -> None:
        orchestrator, _, _ = _make_orchestrator()

        job = orchestrator.submit(_spec())

        assert job.status is JobStatus.QUEUED


class TestValidation:
    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"priority": 0}, "Priority"),
            ({"priority": 6}, "Priority"),
            ({"max_retries": 11}, "Max retries"),
            ({"document": DocumentRef(id=1, url=" ")}, "Document URL"),
            ({"callback_url": "ftp://x"}, "Callback URL"),
            ({"config": ProcessingConfig(confidence_threshold=2)}, "Confidence threshold"),
            ({"provider": "mystery"}, "Unsupported provider"),
            ({"provider": "anthropic", "model": "gpt-4"}, "not offered"),
            ({"config": ProcessingConfig(temperature=1.5), "provider": "anthropic"}, "Temperature"),
            ({"template_id": 99}, "Template 99 not found"),
        ],
    )
    def test_rejected_specs(self, overrides: dict[str, object], message: str) -> None:
        orchestrator, storage, _ = _make_orchestrator()

        with pytest.raises(JobValidationError, match=message):
            orchestrator.submit(_spec(**overrides))
        assert storage.jobs.query(JobQuery()) == []

    def test_errors_are_combined(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        with pytest.raises(JobValidationError, match="Priority.*Callback"):
            orchestrator.submit(_spec(priority=9, callback_url="mailto:a"))

    def test_template_type_must_match(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(templates, processing_type=ProcessingType.BID_ANALYSIS)

        with pytest.raises(JobValidationError, match="is for BID_ANALYSIS"):
            orchestrator.submit(_spec(template_id=template_id))

    def test_template_of_other_organization(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(templates, organization_id=2)

        with pytest.raises(JobValidationError, match="another organization"):
            orchestrator.submit(_spec(template_id=template_id, organization_id=1))

    def test_template_role_and_user_restrictions(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(templates, allowed_roles=["analyst"], allowed_users=[1, 2])

        with pytest.raises(JobValidationError, match="roles"):
            orchestrator.submit(_spec(template_id=template_id, user_roles=["viewer"]))
        with pytest.raises(JobValidationError, match="User 3"):
            orchestrator.submit(_spec(template_id=template_id, user_id=3, user_roles=["analyst"]))
        assert orchestrator.submit(_spec(template_id=template_id, user_roles=["analyst"])).id

    def test_template_file_type_and_size(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(templates, supported_file_types=[".pdf"], max_file_size_mb=1)

        assert orchestrator.submit(_spec(template_id=template_id)).id
        with pytest.raises(JobValidationError, match="not supported"):
            orchestrator.submit(
                _spec(template_id=template_id, document=DocumentRef(id=1, url="a.docx"))
            )
        with pytest.raises(JobValidationError, match="1 MB limit"):
            orchestrator.submit(
                _spec(
                    template_id=template_id,
                    document=DocumentRef(id=1, url="big.pdf", size=2 * 1024 * 1024),
                )
            )

    def test_mime_type_matches_supported_extension(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(templates, supported_file_types=["pdf"])

        document = DocumentRef(id=1, url="files/123", type="application/pdf")
        assert orchestrator.submit(_spec(template_id=template_id, document=document)).id

    def test_template_generation_config_is_validated(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(
            templates,
            default_provider="anthropic",
            generation_config=ModelConfig(temperature=1.8),
        )

        with pytest.raises(JobValidationError, match="Temperature"):
            orchestrator.submit(_spec(template_id=template_id))

    def test_inactive_template_rejected(self) -> None:
        orchestrator, _, templates = _make_orchestrator()
        template_id = _template(templates)
        templates.deactivate(template_id)

        with pytest.raises(JobValidationError, match="not found"):
            orchestrator.submit(_spec(template_id=template_id))


class TestStatusAndCancel:
    def test_get_status(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        job = orchestrator.submit(_spec())

        status = orchestrator.get_status(job.job_id)

        assert status is not None
        assert status.status is JobStatus.QUEUED
        assert status.progress == 0
        assert status.max_retries == 3

    def test_unknown_job(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        assert orchestrator.get_status("nope") is None
        assert orchestrator.cancel("nope") is False
        with pytest.raises(JobNotFoundError):
            orchestrator.get_job("nope")

    def test_cancel_queued_job_removes_it_from_queue(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()
        job = orchestrator.submit(_spec())

        assert orchestrator.cancel(job.job_id) is True

        assert storage.queue.size() == 0
        assert orchestrator.get_job(job.job_id).status is JobStatus.CANCELLED
        assert orchestrator.cancel(job.job_id) is False

    def test_cannot_cancel_processing_job(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()
        job = orchestrator.submit(_spec())
        assert job.id is not None
        storage.jobs.mark_processing(job.id)

        assert orchestrator.cancel(job.job_id) is False


class TestResultsAndResubmit:
    def test_get_result(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()
        job = orchestrator.submit(_spec())
        assert job.id is not None
        assert orchestrator.get_result(job.job_id) is None

        ResultStore(storage.results).save(
            job.id, ParsedOutput(content="x", raw_content="x"), confidence_threshold=0.5
        )

        assert orchestrator.get_result(job.job_id).content == "x"  # type: ignore[union-attr]

    def test_resubmit_finished_job(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()
        job = orchestrator.submit(_spec(tags=["a"], metadata={"k": "v"}))
        orchestrator.cancel(job.job_id)

        copy = orchestrator.resubmit(job.job_id)

        assert copy.job_id != job.job_id
        assert copy.id is not None
        assert storage.jobs.find_by_id(copy.id).status is JobStatus.QUEUED  # type: ignore[union-attr]
        assert copy.metadata == {"k": "v", "resubmitted_from": job.job_id}
        assert copy.tags == ["a"]
        assert orchestrator.get_job(job.job_id).status is JobStatus.CANCELLED

    def test_resubmit_active_job_rejected(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        job = orchestrator.submit(_spec())
        with pytest.raises(JobValidationError, match="only finished jobs"):
            orchestrator.resubmit(job.job_id)


class TestAdministration:
    def test_list_and_stats(self) -> None:
        orchestrator, _, _ = _make_orchestrator()
        orchestrator.submit(_spec(user_id=1))
        orchestrator.submit(_spec(user_id=2))

        assert len(orchestrator.list_jobs(JobQuery(user_id=2))) == 1
        assert orchestrator.stats().by_status == {"QUEUED": 2}

    def test_find_stuck_jobs(self) -> None:
        orchestrator, storage, _ = _make_orchestrator()
        job = orchestrator.submit(_spec())
        assert job.id is not None
        storage.jobs.mark_processing(job.id)

        assert orchestrator.find_stuck_jobs() == []
        later = utcnow() + timedelta(minutes=5)
        with patch("docproc.jobs.orchestrator.utcnow", return_value=later):
            assert [j.id for j in orchestrator.find_stuck_jobs()] == [job.id]
