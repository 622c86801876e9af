from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from docproc.database.models import Job, KnowledgeEntry, Result, Template
from docproc.prompting.assembler import AssembledPrompt
from docproc.providers.models import ProviderResponse
from docproc.providers.registry import ResolvedProvider
from docproc.results.parser import ParsedOutput


@dataclass(slots=True)
class PipelineContext:
    job: Job
    template: Template | None = None
    document_text: str = ""
    knowledge: list[KnowledgeEntry] = field(default_factory=list)
    prompt: AssembledPrompt | None = None
    resolved: ResolvedProvider | None = None
    response: ProviderResponse | None = None
    output: ParsedOutput | None = None
    result: Result | None = None

    @property
    def job_id(self) -> int:
        if self.job.id is None:
            raise ValueError(f"Job {self.job.job_id} has not been persisted")
        return self.job.id


class PipelineStep(ABC):
    """One phase of a job. ``progress`` is reached when the step completes."""

    name: ClassVar[str]
    progress: ClassVar[int]

    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError

    def describe(self, context: PipelineContext) -> Any:
        """Step output recorded in the job's step log."""
        return None
