from enum import Enum


class JobStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    RETRYING = "RETRYING"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.QUEUED, JobStatus.RETRYING})


class ProcessingType(str, Enum):
    TENDER_EXTRACTION = "TENDER_EXTRACTION"
    BID_ANALYSIS = "BID_ANALYSIS"
    COMPLIANCE_CHECK = "COMPLIANCE_CHECK"
    DOCUMENT_SUMMARY = "DOCUMENT_SUMMARY"
    DATA_EXTRACTION = "DATA_EXTRACTION"
    CLASSIFICATION = "CLASSIFICATION"
    TRANSLATION = "TRANSLATION"
    COMPARISON = "COMPARISON"
    VALIDATION = "VALIDATION"
    CUSTOM = "CUSTOM"


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class KnowledgeType(str, Enum):
    TENDER_RULES = "TENDER_RULES"
    COMPLIANCE_REQUIREMENTS = "COMPLIANCE_REQUIREMENTS"
    TECHNICAL_SPECIFICATIONS = "TECHNICAL_SPECIFICATIONS"
    EVALUATION_CRITERIA = "EVALUATION_CRITERIA"
    LEGAL_TERMS = "LEGAL_TERMS"
    INDUSTRY_STANDARDS = "INDUSTRY_STANDARDS"
    BEST_PRACTICES = "BEST_PRACTICES"
    FAQ = "FAQ"
    GLOSSARY = "GLOSSARY"
    CUSTOM = "CUSTOM"


class KnowledgeSource(str, Enum):
    MANUAL_ENTRY = "MANUAL_ENTRY"
    DOCUMENT_UPLOAD = "DOCUMENT_UPLOAD"
    WEB_SCRAPING = "WEB_SCRAPING"
    API_INTEGRATION = "API_INTEGRATION"
    AI_GENERATED = "AI_GENERATED"
    USER_FEEDBACK = "USER_FEEDBACK"


class ValidationStatus(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"
    PARTIAL = "PARTIAL"
    PENDING = "PENDING"
    NOT_APPLICABLE = "NOT_APPLICABLE"


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
