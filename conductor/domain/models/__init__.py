from .errors import (
    ErrorKind,
    RETRYABLE_KINDS,
    ConductorError,
    ValidationError,
    ToolExecutionError,
    SchemaMismatchError,
    TaskInfeasible,
    IterationBudgetExhausted,
    DuplicateNameError,
    ConstructionError,
    PipelineConstructionError,
    NotFound,
    EpisodeAlreadyOpenError,
    EpisodeNotOpenError,
    EpisodeOwnershipError,
)
from .envelope import ErrorInfo, ResultEnvelope
from .invokable import Invokable, CancellationToken
from .agent_state import AgentStatus, AttemptOutcome, AttemptRecord, AgentRunState

__all__ = [
    "ErrorKind",
    "RETRYABLE_KINDS",
    "ConductorError",
    "ValidationError",
    "ToolExecutionError",
    "SchemaMismatchError",
    "TaskInfeasible",
    "IterationBudgetExhausted",
    "DuplicateNameError",
    "ConstructionError",
    "PipelineConstructionError",
    "NotFound",
    "EpisodeAlreadyOpenError",
    "EpisodeNotOpenError",
    "EpisodeOwnershipError",
    "ErrorInfo",
    "ResultEnvelope",
    "Invokable",
    "CancellationToken",
    "AgentStatus",
    "AttemptOutcome",
    "AttemptRecord",
    "AgentRunState",
]
