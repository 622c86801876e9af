from typing import Any

from docproc.database.enums import JobStatus
from docproc.database.repositories.base import BaseJobRepository
from docproc.documents.fetcher import DocumentFetcher
from docproc.knowledge.store import KnowledgeStore
from docproc.logging.logger import Log
from docproc.processor.exceptions import JobCancelledError
from docproc.processor.pipeline import PipelineContext, PipelineStep
from docproc.prompting.assembler import PromptAssembler
from docproc.prompting.rules import apply_postprocessing, apply_preprocessing
from docproc.providers.models import ModelConfig, TaskRequirements
from docproc.providers.registry import ProviderRegistry
from docproc.results.parser import parse_output
from docproc.results.store import ResultStore
from docproc.templates.store import TemplateStore


def _context_length(prompt: str) -> int:
    """Rough token count, used only for provider routing."""
    return len(prompt) // 4


class LoadTemplateStep(PipelineStep):
    """The job's own template, even if deactivated since submission.

    Jobs submitted without a template run on the built-in prompt for their type.
    """

    name = "load_template"
    progress = 5

    def __init__(self, template_store: TemplateStore) -> None:
        self._template_store = template_store

    def run(self, context: PipelineContext) -> PipelineContext:
        job = context.job
        if job.template_id is None:
            return context
        context.template = self._template_store.get(job.template_id, include_inactive=True)
        Log.info(f"Job {job.id} using template {context.template.id} v{context.template.version}")
        return context

    def describe(self, context: PipelineContext) -> Any:
        if context.template is None:
            return None
        return {"template_id": context.template.id, "version": context.template.version}


class FetchDocumentStep(PipelineStep):
    name = "fetch_document"
    progress = 10

    def __init__(self, fetcher: DocumentFetcher) -> None:
        self._fetcher = fetcher

    def run(self, context: PipelineContext) -> PipelineContext:
        text = self._fetcher.fetch_content(context.job.document)
        if context.template is not None and context.template.preprocessing_rules:
            text = apply_preprocessing(text, context.template.preprocessing_rules)
        context.document_text = text
        Log.info(f"Fetched {len(text)} chars for job {context.job.id}")
        return context

    def describe(self, context: PipelineContext) -> Any:
        return {"characters": len(context.document_text)}


class RetrieveKnowledgeStep(PipelineStep):
    name = "retrieve_knowledge"
    progress = 20

    def __init__(self, knowledge_store: KnowledgeStore) -> None:
        self._knowledge_store = knowledge_store

    def run(self, context: PipelineContext) -> PipelineContext:
        context.knowledge = self._knowledge_store.resolve_for_job(context.job, context.template)
        return context

    def describe(self, context: PipelineContext) -> Any:
        return {"entry_ids": [entry.id for entry in context.knowledge]}


class AssemblePromptStep(PipelineStep):
    name = "assemble_prompt"
    progress = 30

    def __init__(self, assembler: PromptAssembler) -> None:
        self._assembler = assembler

    def run(self, context: PipelineContext) -> PipelineContext:
        context.prompt = self._assembler.assemble(
            context.job,
            context.document_text,
            context.template,
            context.knowledge,
        )
        return context

    def describe(self, context: PipelineContext) -> Any:
        if context.prompt is None:
            return None
        return {
            "characters": len(context.prompt.text),
            "response_format": context.prompt.response_format,
        }


class InvokeProviderStep(PipelineStep):
    name = "invoke_provider"
    progress = 80

    def __init__(self, registry: ProviderRegistry, job_repo: BaseJobRepository) -> None:
        self._registry = registry
        self._job_repo = job_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.prompt is None:
            raise ValueError("PipelineContext.prompt must be set before the provider call")
        job = context.job
        template = context.template
        resolved = self._registry.resolve(
            job.requested_provider,
            job.requested_model,
            template_provider=template.default_provider if template else None,
            template_model=template.default_model if template else None,
            task_type=job.processing_type.value,
            requirements=TaskRequirements(
                context_length=_context_length(context.prompt.text),
                needs_citations=job.config.needs_citations,
                needs_real_time=job.config.needs_real_time,
                budget=job.config.budget,
            ),
        )
        config = self._build_config(context)
        estimated_cost = resolved.adapter.estimate_cost(context.prompt.text, resolved.model, config)
        Log.info(
            f"Job {job.id} calling {resolved.provider_type.value}/{resolved.model} "
            f"(estimated cost {estimated_cost:.4f})"
        )

        response = self._registry.invoke_with_fallback(context.prompt.text, resolved, config)
        updated = self._job_repo.record_provider_usage(
            context.job_id,
            provider=response.provider,
            model=response.model,
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
            actual_cost=response.cost,
            estimated_cost=estimated_cost,
            llm_response={
                "finish_reason": response.finish_reason,
                "processing_time_ms": response.processing_time_ms,
                "metadata": response.metadata,
                "raw": response.raw,
            },
        )
        if updated is not None:
            context.job = updated
        context.resolved = resolved
        context.response = response
        Log.info(
            f"Job {job.id} got {response.usage.total_tokens} tokens from "
            f"{response.provider}/{response.model} in {response.processing_time_ms}ms"
        )
        return context

    def describe(self, context: PipelineContext) -> Any:
        if context.response is None:
            return None
        return {
            "provider": context.response.provider,
            "model": context.response.model,
            "total_tokens": context.response.usage.total_tokens,
            "cost": context.response.cost,
        }

    @staticmethod
    def _build_config(context: PipelineContext) -> ModelConfig:
        base = context.template.generation_config if context.template else ModelConfig()
        overrides = ModelConfig(
            temperature=context.job.config.temperature,
            max_tokens=context.job.config.max_tokens,
            response_format="json" if context.prompt and context.prompt.wants_json else None,
        )
        return base.merged(overrides)


class PostProcessStep(PipelineStep):
    name = "post_process"
    progress = 90

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.response is None or context.prompt is None:
            raise ValueError("PipelineContext.response must be set before post-processing")
        template = context.template
        content = context.response.content
        if template is not None and template.postprocessing_rules:
            content = apply_postprocessing(content, template.postprocessing_rules)
        schema_fields = (
            template.extraction_schema.fields
            if template is not None and template.extraction_schema is not None
            else None
        )
        context.output = parse_output(
            content,
            wants_json=context.prompt.wants_json,
            schema_fields=schema_fields,
            finish_reason=context.response.finish_reason,
        )
        if context.output.parse_failed:
            Log.warning(f"Job {context.job.id}: structured output not parseable, kept raw content")
        return context

    def describe(self, context: PipelineContext) -> Any:
        if context.output is None:
            return None
        return {
            "parsed": not context.output.parse_failed,
            "validation_errors": len(context.output.validation_errors),
            "confidence": context.output.confidence,
        }


class PersistResultStep(PipelineStep):
    """Saves the result unless the job left PROCESSING while the provider was called."""

    name = "persist_result"
    progress = 100

    def __init__(
        self,
        job_repo: BaseJobRepository,
        result_store: ResultStore,
        default_confidence_threshold: float,
    ) -> None:
        self._job_repo = job_repo
        self._result_store = result_store
        self._default_confidence_threshold = default_confidence_threshold

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.output is None:
            raise ValueError("PipelineContext.output must be set before persist")
        current = self._job_repo.find_by_id(context.job_id)
        if current is None or current.status is not JobStatus.PROCESSING:
            status = current.status.value if current else "missing"
            raise JobCancelledError(f"Job {context.job.id} is {status}, result discarded")

        response = context.response
        template = context.template
        context.result = self._result_store.save(
            context.job_id,
            context.output,
            confidence_threshold=self._threshold(context),
            language=context.job.config.language,
            metadata={
                "provider": response.provider if response else None,
                "model": response.model if response else None,
                "template_id": template.id if template else None,
                "template_version": template.version if template else None,
                **(response.metadata if response else {}),
            },
        )
        return context

    def describe(self, context: PipelineContext) -> Any:
        return {"result_id": context.result.id if context.result else None}

    def _threshold(self, context: PipelineContext) -> float:
        if context.job.config.confidence_threshold is not None:
            return context.job.config.confidence_threshold
        if context.template is not None and context.template.confidence_threshold is not None:
            return context.template.confidence_threshold
        return self._default_confidence_threshold


