from typing import Dict, Any, Optional, Iterable, Union, Mapping
import json

from conductor.domain.context.memory.memory_store import MemoryStore
from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import ErrorKind, ValidationError
from conductor.domain.models.invokable import CancellationToken
from conductor.domain.tool.tool_registry import Tool, ToolRegistry
from conductor.infrastructure.config import AgentLoopConfig
from .agent_loop import AgentLoop
from .decision import DecisionCapability


class Agent:
    """An LLM-driven tool orchestrator.

    The definition is fixed at construction. Runs share nothing except the
    memory store, so independent runs may proceed concurrently.
    """

    def __init__(
        self,
        name: str,
        decider: DecisionCapability,
        tools: Iterable[Tool] = (),
        description: str = "",
        task: str = "",
        llm_binding: Optional[str] = None,
        config: Optional[AgentLoopConfig] = None,
        memory: Optional[MemoryStore] = None
    ):
        self.name = name
        self.description = description
        self.task = task
        self.llm_binding = llm_binding
        self.tools = ToolRegistry(tools)
        self.memory = memory
        self.loop = AgentLoop(name, self.tools, decider, config=config, memory=memory)

    async def run(
        self,
        inputs: Union[str, Mapping[str, Any], None] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> ResultEnvelope:
        """Run the agent on a task string, a {"task": ...} record, or its default task"""

        try:
            task = self.resolve_task(inputs)
        except ValidationError as exc:
            return ResultEnvelope.from_exception(exc, agent=self.name)
        if not task:
            return ResultEnvelope.fail(
                ErrorKind.VALIDATION_ERROR,
                f"Agent '{self.name}' has no task to run",
                {"agent": self.name}
            )
        return await self.loop.run(task, cancel_token=cancel_token)

    def resolve_task(self, inputs: Union[str, Mapping[str, Any], None]) -> str:
        if inputs is None:
            return self.task
        if isinstance(inputs, str):
            return inputs
        if not isinstance(inputs, Mapping):
            raise ValidationError(
                f"Agent '{self.name}' expects a task string or a record, got {type(inputs).__name__}",
                {"agent": self.name, "input_type": type(inputs).__name__}
            )

        extra = {key: value for key, value in inputs.items() if key != "task"}
        task = str(inputs.get("task") or self.task)
        if extra:
            task = f"{task}\n\nInputs: {json.dumps(extra, default=str, sort_keys=True)}"
        return task

    def get_info(self) -> Dict[str, Any]:
        """Get agent information"""
        return {
            "name": self.name,
            "description": self.description,
            "task": self.task,
            "tools": self.tools.names(),
            "llm_binding": self.llm_binding
        }
