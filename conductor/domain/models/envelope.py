from typing import Dict, Any, Optional
from pydantic import BaseModel, Field, model_validator

from .errors import ConductorError, ErrorKind


class ErrorInfo(BaseModel):
    """Structured description of a failure"""
    kind: ErrorKind = Field(description="Error category")
    message: str = Field(description="Human readable error message")
    details: Dict[str, Any] = Field(default_factory=dict, description="Kind-specific payload")


class ResultEnvelope(BaseModel):
    """Uniform return contract of tools, agents, teams and pipelines"""
    success: bool
    result: Optional[Any] = None
    error: Optional[ErrorInfo] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Execution trace")

    @model_validator(mode="after")
    def _check_consistency(self) -> "ResultEnvelope":
        if self.success and self.error is not None:
            raise ValueError("a successful envelope cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("a failed envelope must carry an error")
        return self

    @classmethod
    def ok(cls, result: Any = None, **metadata: Any) -> "ResultEnvelope":
        return cls(success=True, result=result, metadata=metadata)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        **metadata: Any
    ) -> "ResultEnvelope":
        return cls(
            success=False,
            error=ErrorInfo(kind=kind, message=message, details=details or {}),
            metadata=metadata
        )

    @classmethod
    def from_exception(cls, exc: ConductorError, **metadata: Any) -> "ResultEnvelope":
        """Convert an engine error into a failed envelope"""

        return cls.fail(exc.kind, exc.message, dict(exc.details), **metadata)

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None
