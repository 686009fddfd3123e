from typing import Dict, List, Any, Optional, Tuple, Mapping
from pydantic import BaseModel, ConfigDict, Field, model_validator
from enum import Enum

from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import DuplicateNameError, PipelineConstructionError
from conductor.domain.models.invokable import CancellationToken
from .shape import shape_errors, shape_satisfies, payload_errors


class ErrorPolicy(str, Enum):
    """What a pipeline does when a step's tool fails"""
    FAIL_FAST = "fail_fast"
    SKIP = "skip"


class PipelineStep(BaseModel):
    """One link of the chain, bound to a single invokable"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    tool: Any = Field(description="Tool, agent, team or pipeline; anything with async run(inputs)")
    chain_position: int = Field(ge=1, description="1-based execution order")
    expected_input_shape: Dict[str, Any] = Field(default_factory=dict)
    produced_output_shape: Dict[str, Any] = Field(default_factory=dict)
    on_error: ErrorPolicy = ErrorPolicy.FAIL_FAST
    default: Any = Field(None, description="Payload used in place of the output when a skipped step fails")
    max_attempts: int = Field(default=1, ge=1)


class Pipeline(BaseModel):
    """A statically validated chain of steps.

    Validation runs at construction, so a malformed pipeline never exists.
    """
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    description: str = ""
    steps: Tuple[PipelineStep, ...]
    input_shape: Optional[Dict[str, Any]] = Field(None, description="Shape of the initial payload, if known")

    @model_validator(mode="after")
    def _validate_chain(self) -> "Pipeline":
        validate_steps(self.name, self.steps, self.input_shape)
        return self

    @property
    def chain(self) -> Tuple[PipelineStep, ...]:
        """Steps in execution order"""
        return tuple(sorted(self.steps, key=lambda step: step.chain_position))

    async def run(
        self,
        inputs: Mapping[str, Any],
        cancel_token: Optional[CancellationToken] = None
    ) -> ResultEnvelope:
        from .pipeline_executor import PipelineExecutor

        return await PipelineExecutor().execute(self, inputs, cancel_token=cancel_token)

    def step_names(self) -> List[str]:
        return [step.name for step in self.chain]

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "steps": [
                {"name": step.name, "chain_position": step.chain_position, "on_error": step.on_error.value}
                for step in self.chain
            ]
        }


def validate_steps(
    pipeline_name: str,
    steps: Tuple[PipelineStep, ...],
    input_shape: Optional[Dict[str, Any]] = None
) -> Tuple[PipelineStep, ...]:
    """Check a chain and return its steps in execution order"""

    if not steps:
        raise PipelineConstructionError(f"Pipeline '{pipeline_name}' has no steps", {"pipeline": pipeline_name})

    names = set()
    for step in steps:
        if step.name in names:
            raise DuplicateNameError(
                f"Step '{step.name}' appears twice in pipeline '{pipeline_name}'",
                {"pipeline": pipeline_name, "name": step.name}
            )
        names.add(step.name)

    ordered = tuple(sorted(steps, key=lambda step: step.chain_position))
    positions = [step.chain_position for step in ordered]
    if positions != list(range(1, len(ordered) + 1)):
        raise PipelineConstructionError(
            f"Pipeline '{pipeline_name}' chain positions must be unique and contiguous from 1, got {positions}",
            {"pipeline": pipeline_name, "positions": positions}
        )

    for step in ordered:
        if not callable(getattr(step.tool, "run", None)):
            raise PipelineConstructionError(
                f"Step '{step.name}' is not bound to an invokable",
                {"pipeline": pipeline_name, "step": step.name}
            )

        problems = shape_errors(step.expected_input_shape) + shape_errors(step.produced_output_shape)
        if problems:
            raise PipelineConstructionError(
                f"Step '{step.name}' declares an invalid shape: {'; '.join(problems)}",
                {"pipeline": pipeline_name, "step": step.name, "problems": problems}
            )

        if step.on_error == ErrorPolicy.SKIP:
            problems = payload_errors(step.default, step.produced_output_shape)
            if problems:
                raise PipelineConstructionError(
                    f"Default of skippable step '{step.name}' does not match its output shape",
                    {"pipeline": pipeline_name, "step": step.name, "problems": problems}
                )

    if input_shape is not None:
        problems = shape_errors(input_shape) or shape_satisfies(input_shape, ordered[0].expected_input_shape)
        if problems:
            raise PipelineConstructionError(
                f"Pipeline input does not satisfy step '{ordered[0].name}': {'; '.join(problems)}",
                {"pipeline": pipeline_name, "step": ordered[0].name, "problems": problems}
            )

    for previous, current in zip(ordered, ordered[1:]):
        problems = shape_satisfies(previous.produced_output_shape, current.expected_input_shape)
        if problems:
            raise PipelineConstructionError(
                f"Step '{previous.name}' output does not satisfy step '{current.name}': {'; '.join(problems)}",
                {
                    "pipeline": pipeline_name,
                    "from_step": previous.name,
                    "to_step": current.name,
                    "problems": problems
                }
            )

    return ordered


class PipelineBuilder:
    """Collects steps and builds a validated Pipeline"""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._steps: List[PipelineStep] = []
        self._input_shape: Optional[Dict[str, Any]] = None

    def input_shape(self, shape: Dict[str, Any]) -> "PipelineBuilder":
        self._input_shape = shape
        return self

    def step(
        self,
        name: str,
        tool: Any,
        chain_position: Optional[int] = None,
        expects: Optional[Dict[str, Any]] = None,
        produces: Optional[Dict[str, Any]] = None,
        on_error: ErrorPolicy = ErrorPolicy.FAIL_FAST,
        default: Any = None,
        max_attempts: int = 1
    ) -> "PipelineBuilder":
        """Add a step; without an explicit position it goes after the last one"""

        self._steps.append(PipelineStep(
            name=name,
            tool=tool,
            chain_position=chain_position if chain_position is not None else len(self._steps) + 1,
            expected_input_shape=expects or {},
            produced_output_shape=produces or {},
            on_error=on_error,
            default=default,
            max_attempts=max_attempts
        ))
        return self

    def build(self) -> Pipeline:
        return Pipeline(
            name=self.name,
            description=self.description,
            steps=tuple(self._steps),
            input_shape=self._input_shape
        )
