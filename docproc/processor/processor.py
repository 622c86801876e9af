from docproc.config.settings import Settings
from docproc.database.enums import StepStatus
from docproc.database.models import Job
from docproc.database.repositories.base import BaseJobRepository
from docproc.documents.fetcher import DocumentFetcher
from docproc.knowledge.store import KnowledgeStore
from docproc.logging.logger import Log
from docproc.processor.pipeline import PipelineContext, PipelineStep
from docproc.processor.steps import (
    AssemblePromptStep,
    FetchDocumentStep,
    InvokeProviderStep,
    LoadTemplateStep,
    PersistResultStep,
    PostProcessStep,
    RetrieveKnowledgeStep,
)
from docproc.prompting.assembler import PromptAssembler
from docproc.providers.registry import ProviderRegistry
from docproc.results.store import ResultStore
from docproc.templates.store import TemplateStore


class Processor:
    """Runs the pipeline for one job that is already PROCESSING.

    Pipeline: template -> document -> knowledge -> prompt -> provider ->
    post-process -> persist. Each step is recorded in the job's step log and
    raises its progress when it completes; a failing step is marked failed and
    the error propagates to the caller.
    """

    def __init__(self, job_repo: BaseJobRepository, steps: list[PipelineStep]) -> None:
        self._job_repo = job_repo
        self._steps = steps

    def process(self, job: Job) -> PipelineContext:
        Log.info(f"Processing job {job.id} ({job.processing_type.value})")
        context = PipelineContext(job=job)
        for step in self._steps:
            self._job_repo.update_progress(context.job_id, step.name, StepStatus.PROCESSING)
            try:
                context = step.run(context)
            except Exception as exc:
                self._job_repo.update_progress(
                    context.job_id, step.name, StepStatus.FAILED, error=str(exc)
                )
                raise
            self._job_repo.update_progress(
                context.job_id,
                step.name,
                StepStatus.COMPLETED,
                progress=step.progress,
                output=step.describe(context),
            )
        return context


def build_processor(
    settings: Settings,
    *,
    job_repo: BaseJobRepository,
    template_store: TemplateStore,
    knowledge_store: KnowledgeStore,
    result_store: ResultStore,
    registry: ProviderRegistry,
    fetcher: DocumentFetcher,
) -> Processor:
    """Build a Processor with the standard step sequence."""
    steps: list[PipelineStep] = [
        LoadTemplateStep(template_store),
        FetchDocumentStep(fetcher),
        RetrieveKnowledgeStep(knowledge_store),
        AssemblePromptStep(PromptAssembler(settings.knowledge_snippet_chars)),
        InvokeProviderStep(registry, job_repo),
        PostProcessStep(),
        PersistResultStep(job_repo, result_store, settings.confidence_threshold),
    ]
    return Processor(job_repo, steps)
