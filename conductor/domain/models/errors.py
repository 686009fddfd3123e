from typing import Dict, Any, Optional
from enum import Enum


class ErrorKind(str, Enum):
    """Error categories carried by a failed ResultEnvelope"""
    VALIDATION_ERROR = "validation_error"
    TOOL_EXECUTION_ERROR = "tool_execution_error"
    TIMEOUT = "timeout"
    SCHEMA_MISMATCH = "schema_mismatch"
    TASK_INFEASIBLE = "task_infeasible"
    ITERATION_BUDGET_EXHAUSTED = "iteration_budget_exhausted"
    DUPLICATE_NAME = "duplicate_name"
    CONSTRUCTION_ERROR = "construction_error"
    CANCELLED = "cancelled"
    PARTIAL_FAILURE = "partial_failure"
    EPISODE_ALREADY_OPEN = "episode_already_open"
    EPISODE_NOT_OPEN = "episode_not_open"
    EPISODE_OWNERSHIP = "episode_ownership"
    PLANNING_ERROR = "planning_error"
    NOT_FOUND = "not_found"


# Failures the agent loop and pipeline may retry
RETRYABLE_KINDS = frozenset({ErrorKind.TOOL_EXECUTION_ERROR, ErrorKind.TIMEOUT})


class ConductorError(Exception):
    """Base class for all engine errors"""

    kind: ErrorKind = ErrorKind.TOOL_EXECUTION_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}


class ValidationError(ConductorError):
    """Inputs do not match a declared schema"""
    kind = ErrorKind.VALIDATION_ERROR


class ToolExecutionError(ConductorError):
    """A tool handler failed"""
    kind = ErrorKind.TOOL_EXECUTION_ERROR


class SchemaMismatchError(ConductorError):
    """A pipeline payload violates a step contract"""
    kind = ErrorKind.SCHEMA_MISMATCH


class TaskInfeasible(ConductorError):
    kind = ErrorKind.TASK_INFEASIBLE


class IterationBudgetExhausted(ConductorError):
    kind = ErrorKind.ITERATION_BUDGET_EXHAUSTED


class DuplicateNameError(ConductorError):
    """A component name is already registered"""
    kind = ErrorKind.DUPLICATE_NAME


class ConstructionError(ConductorError):
    """A definition failed build-time validation"""
    kind = ErrorKind.CONSTRUCTION_ERROR


class PipelineConstructionError(ConstructionError):
    """A pipeline definition failed static validation"""


class NotFound(ConductorError):
    kind = ErrorKind.NOT_FOUND


class EpisodeAlreadyOpenError(ConductorError):
    kind = ErrorKind.EPISODE_ALREADY_OPEN


class EpisodeNotOpenError(ConductorError):
    kind = ErrorKind.EPISODE_NOT_OPEN


class EpisodeOwnershipError(ConductorError):
    """Raised when an episode is closed by a caller that did not open it"""
    kind = ErrorKind.EPISODE_OWNERSHIP
