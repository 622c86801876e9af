from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from docproc.database.enums import JobStatus, KnowledgeType, ProcessingType
from docproc.database.models import DocumentRef, JobStep, ProcessingConfig


@dataclass
class JobSpec:
    """Everything a caller supplies to submit a job."""

    processing_type: ProcessingType
    document: DocumentRef
    user_id: int
    organization_id: int | None = None
    user_roles: list[str] = field(default_factory=list)
    template_id: int | None = None
    custom_instructions: str | None = None
    knowledge_entry_ids: list[int] = field(default_factory=list)
    required_knowledge_types: list[KnowledgeType] = field(default_factory=list)
    config: ProcessingConfig = field(default_factory=ProcessingConfig)
    provider: str | None = None
    model: str | None = None
    priority: int = 1
    scheduled_at: datetime | None = None
    max_retries: int | None = None
    callback_url: str | None = None
    related_entity_type: str | None = None
    related_entity_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    job_id: str | None = None


@dataclass(frozen=True)
class JobStatusView:
    """Read-only snapshot for status polling."""

    job_id: str
    status: JobStatus
    progress: int
    current_step: str | None
    steps: list[JobStep]
    retry_count: int
    max_retries: int
    error_message: str | None
    progress_updated_at: datetime | None
    result_id: int | None
