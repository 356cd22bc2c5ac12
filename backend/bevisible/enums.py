"""String enums shared by models, schemas and services."""

from enum import Enum


class PromptStatus(str, Enum):
    DRAFT = "draft"
    IMPROVED = "improved"
    SELECTED = "selected"
    ACTIVE = "active"
    INACTIVE = "inactive"


class SessionHealth(str, Enum):
    HEALTHY = "healthy"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    UNKNOWN = "unknown"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    DISABLED = "disabled"


class BatchStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed executor-driven transitions for a schedule batch
BATCH_TRANSITIONS = {
    BatchStatus.PENDING.value: {BatchStatus.EXECUTING.value, BatchStatus.FAILED.value},
    BatchStatus.EXECUTING.value: {BatchStatus.COMPLETED.value, BatchStatus.FAILED.value},
    BatchStatus.FAILED.value: {BatchStatus.PENDING.value},
    BatchStatus.COMPLETED.value: set(),
}


class ReportStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingStage(str, Enum):
    """Ordered report processing stages."""
    INITIALIZED = "initialized"
    PERPLEXITY = "perplexity"
    GOOGLE_AI_OVERVIEW = "google_ai_overview"
    URL_PROCESSING = "url_processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Stages executed by the orchestrator, in order
PIPELINE_STAGES = [
    ProcessingStage.PERPLEXITY.value,
    ProcessingStage.GOOGLE_AI_OVERVIEW.value,
    ProcessingStage.URL_PROCESSING.value,
]

PROVIDER_STAGES = PIPELINE_STAGES[:2]

# Rank used for forward-only advancement; FAILED is resumable so it ranks lowest
STAGE_ORDER = {
    ProcessingStage.FAILED.value: -1,
    ProcessingStage.INITIALIZED.value: 0,
    ProcessingStage.PERPLEXITY.value: 1,
    ProcessingStage.GOOGLE_AI_OVERVIEW.value: 2,
    ProcessingStage.URL_PROCESSING.value: 3,
    ProcessingStage.COMPLETED.value: 4,
}


class StageStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    EXPIRED = "expired"
    SKIPPED = "skipped"


# A stage in one of these states is never re-run
FINISHED_STAGE_STATUSES = {StageStatus.COMPLETE.value, StageStatus.SKIPPED.value}


class ResultStatus(str, Enum):
    OK = "ok"
    NO_RESULT = "no_result"
    ERROR = "error"
