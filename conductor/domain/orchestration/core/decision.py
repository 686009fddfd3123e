"""
Contract of the external decision capability

The agent loop sends a DecisionRequest and expects one of three tagged
decisions back: invoke a tool, complete the task, or declare it infeasible.
"""

from typing import Annotated, Dict, Any, List, Literal, Protocol, Union, Mapping
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from conductor.domain.models.agent_state import AttemptRecord
from conductor.domain.models.errors import ConductorError, ErrorKind


class DecisionRequest(BaseModel):
    task: str
    tool_catalog: List[Dict[str, Any]] = Field(default_factory=list)
    memory_context: Dict[str, Any] = Field(default_factory=dict)
    prior_attempts: List[AttemptRecord] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list, description="Corrections from the loop, e.g. unknown tool proposals")


class InvokeTool(BaseModel):
    kind: Literal["invoke"] = "invoke"
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)


class Complete(BaseModel):
    kind: Literal["complete"] = "complete"
    result: Any = None


class Infeasible(BaseModel):
    kind: Literal["infeasible"] = "infeasible"
    reason: str = "task infeasible"


Decision = Annotated[Union[InvokeTool, Complete, Infeasible], Field(discriminator="kind")]

_decision_adapter: TypeAdapter = TypeAdapter(Decision)


class DecisionCapability(Protocol):
    """Black-box planner, usually backed by an LLM"""

    async def decide(self, request: DecisionRequest) -> Union[InvokeTool, Complete, Infeasible]:
        ...


class DecisionParseError(ConductorError):
    """The decision capability answered outside the tri-state contract"""
    kind = ErrorKind.PLANNING_ERROR


def parse_decision(payload: Any) -> Union[InvokeTool, Complete, Infeasible]:
    """Build a decision from either the tagged form or the short form.

    Short forms: {"invoke": name, "args": {...}}, {"complete": result},
    {"infeasible": reason}.
    """

    if not isinstance(payload, Mapping):
        raise DecisionParseError(
            f"Decision must be an object, got {type(payload).__name__}",
            {"payload": payload}
        )

    data = dict(payload)
    if "kind" not in data:
        if "invoke" in data:
            data = {"kind": "invoke", "tool": data["invoke"], "args": data.get("args") or {}}
        elif "complete" in data:
            data = {"kind": "complete", "result": data["complete"]}
        elif "infeasible" in data:
            data = {"kind": "infeasible", "reason": str(data["infeasible"])}

    try:
        return _decision_adapter.validate_python(data)
    except PydanticValidationError as exc:
        raise DecisionParseError(
            f"Unrecognised decision: {exc.errors()[0]['msg']}",
            {"payload": data}
        ) from exc
