from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from docproc.database.enums import (
    IssueSeverity,
    JobStatus,
    KnowledgeSource,
    KnowledgeType,
    ProcessingType,
    StepStatus,
    ValidationStatus,
)
from docproc.providers.models import ModelConfig


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Jobs -------------------------------------------------------------------


@dataclass
class DocumentRef:
    """Reference to the source document. Opaque to the pipeline beyond fetching it."""

    id: int
    url: str
    name: str = ""
    type: str | None = None
    size: int | None = None


@dataclass
class ProcessingConfig:
    """Per-job knobs that override template defaults."""

    output_format: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    confidence_threshold: float | None = None
    language: str | None = None
    extract_fields: list[str] = field(default_factory=list)
    budget: str = "medium"
    needs_citations: bool = False
    needs_real_time: bool = False


@dataclass
class JobStep:
    """One entry of the ordered step log."""

    name: str
    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    output: Any = None
    error: str | None = None


@dataclass
class Job:
    """One unit of processing work."""

    job_id: str
    processing_type: ProcessingType
    document: DocumentRef
    user_id: int
    status: JobStatus = JobStatus.PENDING
    id: int | None = None
    organization_id: int | None = None
    template_id: int | None = None
    config: ProcessingConfig = field(default_factory=ProcessingConfig)
    custom_instructions: str | None = None
    knowledge_entry_ids: list[int] = field(default_factory=list)
    required_knowledge_types: list[KnowledgeType] = field(default_factory=list)
    priority: int = 1
    retry_count: int = 0
    max_retries: int = 3
    scheduled_at: datetime | None = None
    requested_provider: str | None = None
    requested_model: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    processing_time_ms: int | None = None
    llm_provider: str | None = None
    llm_model: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float | None = None
    actual_cost: float | None = None
    llm_response: Any = None
    error_message: str | None = None
    error_details: dict[str, Any] | None = None
    result_id: int | None = None
    progress: int = 0
    current_step: str | None = None
    steps: list[JobStep] = field(default_factory=list)
    progress_updated_at: datetime | None = None
    related_entity_type: str | None = None
    related_entity_id: int | None = None
    callback_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class JobQuery:
    """Filters for listing jobs. ``None`` fields are ignored."""

    status: JobStatus | None = None
    user_id: int | None = None
    organization_id: int | None = None
    processing_type: ProcessingType | None = None
    template_id: int | None = None
    related_entity_type: str | None = None
    related_entity_id: int | None = None
    limit: int = 100


# --- Templates --------------------------------------------------------------


@dataclass
class PromptExample:
    input: str
    output: str


@dataclass
class TemplatePrompt:
    system: str | None = None
    user: str | None = None
    examples: list[PromptExample] = field(default_factory=list)
    variables: list[str] = field(default_factory=list)


@dataclass
class SchemaField:
    """A typed field of an extraction schema. ``children`` describe nested objects."""

    name: str
    type: str = "string"
    description: str | None = None
    required: bool = False
    children: list["SchemaField"] = field(default_factory=list)


@dataclass
class ExtractionSchema:
    fields: list[SchemaField] = field(default_factory=list)


@dataclass
class ChangelogEntry:
    version: str
    changes: str
    changed_by: int | None = None
    changed_at: datetime = field(default_factory=utcnow)


@dataclass
class Template:
    """A reusable prompt/processing recipe for a processing type."""

    name: str
    processing_type: ProcessingType
    prompt: TemplatePrompt = field(default_factory=TemplatePrompt)
    id: int | None = None
    description: str | None = None
    extraction_schema: ExtractionSchema | None = None
    default_model: str | None = None
    default_provider: str | None = None
    generation_config: ModelConfig = field(default_factory=ModelConfig)
    output_format: str = "text"
    confidence_threshold: float | None = None
    preprocessing_rules: list[dict[str, Any]] = field(default_factory=list)
    postprocessing_rules: list[dict[str, Any]] = field(default_factory=list)
    supported_file_types: list[str] = field(default_factory=list)
    max_file_size_mb: int | None = None
    required_knowledge_types: list[KnowledgeType] = field(default_factory=list)
    is_active: bool = True
    is_default: bool = False
    organization_id: int | None = None
    tags: list[str] = field(default_factory=list)
    usage_count: int = 0
    success_count: int = 0
    success_rate: float | None = None
    average_cost: float | None = None
    average_processing_time_ms: int | None = None
    allowed_roles: list[str] = field(default_factory=list)
    allowed_users: list[int] = field(default_factory=list)
    version: str = "1.0.0"
    changelog: list[ChangelogEntry] = field(default_factory=list)
    created_by: int | None = None
    updated_by: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


# --- Knowledge --------------------------------------------------------------


@dataclass
class ReviewAction:
    action: str
    performed_by: int | None = None
    performed_at: datetime = field(default_factory=utcnow)
    notes: str | None = None


@dataclass
class KnowledgeEntry:
    """A unit of retrievable domain context."""

    title: str
    type: KnowledgeType
    content: str
    source: KnowledgeSource = KnowledgeSource.MANUAL_ENTRY
    id: int | None = None
    description: str | None = None
    structured_data: Any = None
    categories: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    language: str | None = None
    is_active: bool = True
    is_public: bool = False
    organization_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    expires_at: datetime | None = None
    priority: int = 1
    usage_count: int = 0
    last_used_at: datetime | None = None
    confidence_score: float = 1.0
    source_document_id: int | None = None
    source_document_url: str | None = None
    embedding_vector: list[float] | None = None
    embedding_model: str | None = None
    version: int = 1
    previous_version_id: int | None = None
    is_latest_version: bool = True
    is_verified: bool = False
    verified_by: int | None = None
    verified_at: datetime | None = None
    validation_history: list[ReviewAction] = field(default_factory=list)
    created_by: int | None = None
    updated_by: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and self.expires_at < (now or utcnow())

    def is_retrievable(self, now: datetime | None = None) -> bool:
        return self.is_active and not self.is_expired(now)


@dataclass
class KnowledgeQuery:
    """Search filters.

    With ``organization_id`` set, only public, global (unowned) and that
    organization's entries match; ``public_only`` restricts to public and
    global entries.
    """

    query: str | None = None
    type: KnowledgeType | None = None
    types: list[KnowledgeType] = field(default_factory=list)
    organization_id: int | None = None
    public_only: bool = False
    ids: list[int] = field(default_factory=list)
    latest_only: bool = True
    limit: int | None = None


# --- Results ----------------------------------------------------------------


@dataclass
class ValidationIssue:
    field: str
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR


@dataclass
class DetectedEntity:
    type: str
    value: str
    confidence: float = 0.0


@dataclass
class Relationship:
    type: str
    source: str
    target: str
    confidence: float = 0.0


@dataclass
class Feedback:
    user_id: int
    feedback: str
    rating: int | None = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class Result:
    """The output of one completed job attempt."""

    job_id: int
    id: int | None = None
    content: Any = None
    raw_content: str = ""
    extracted_data: Any = None
    summary: str | None = None
    confidence: float = 0.0
    validation_status: ValidationStatus = ValidationStatus.PENDING
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    entities: list[DetectedEntity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    language: str | None = None
    requires_human_review: bool = False
    is_reviewed: bool = False
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    human_feedback: list[Feedback] = field(default_factory=list)
    is_superseded: bool = False
    metadata: dict[str, Any] = field(default_factory=dict)
    is_exported: bool = False
    exported_at: datetime | None = None
    exported_by: int | None = None
    export_format: str | None = None
    integrated_with: str | None = None
    integration_id: str | None = None
    integration_status: str | None = None
    integration_error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ProcessingStats:
    """Aggregates over a set of jobs."""

    total_jobs: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    total_tokens: int = 0
    total_cost: float = 0.0
    average_processing_time_ms: float | None = None
