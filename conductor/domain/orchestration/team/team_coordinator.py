from typing import Dict, List, Any, Optional, Sequence, Union, Mapping
import asyncio
import structlog

from conductor.domain.context.memory.memory_store import MemoryStore
from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import ConstructionError, DuplicateNameError, ErrorKind, ValidationError
from conductor.domain.models.invokable import CancellationToken
from conductor.domain.orchestration.core.agent import Agent
from conductor.domain.orchestration.core.agent_loop import AgentLoop
from conductor.domain.orchestration.core.decision import DecisionCapability
from conductor.domain.tool.tool_registry import Tool, ToolRegistry
from conductor.infrastructure.config import AgentLoopConfig

logger = structlog.get_logger(__name__)


class Team:
    """Coordinates several agents on one task.

    Unmanaged teams broadcast the task and return every member's envelope
    in declaration order. Managed teams run a coordinating agent loop whose
    tools are the members themselves.
    """

    def __init__(
        self,
        name: str,
        agents: Sequence[Agent],
        manager_enabled: bool = False,
        manager_decider: Optional[DecisionCapability] = None,
        description: str = "",
        task: str = "",
        config: Optional[AgentLoopConfig] = None,
        member_timeout: Optional[float] = None,
        memory: Optional[MemoryStore] = None,
        log_config: Optional[Dict[str, Any]] = None
    ):
        if not agents:
            raise ConstructionError(f"Team '{name}' needs at least one agent", {"team": name})

        seen = set()
        for agent in agents:
            if agent.name in seen:
                raise DuplicateNameError(
                    f"Agent '{agent.name}' appears twice in team '{name}'",
                    {"team": name, "name": agent.name}
                )
            seen.add(agent.name)

        if manager_enabled and manager_decider is None:
            raise ConstructionError(
                f"Managed team '{name}' requires a manager decision capability",
                {"team": name}
            )

        self.name = name
        self.agents = list(agents)
        self.manager_enabled = manager_enabled
        self.manager_decider = manager_decider
        self.description = description
        self.task = task
        self.config = config or AgentLoopConfig()
        self.member_timeout = member_timeout
        self.memory = memory
        self.log_config = dict(log_config or {})

    async def run(
        self,
        inputs: Union[str, Mapping[str, Any], None] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> ResultEnvelope:
        if inputs is not None and not isinstance(inputs, (str, Mapping)):
            return ResultEnvelope.from_exception(ValidationError(
                f"Team '{self.name}' expects a task string or a record, got {type(inputs).__name__}",
                {"team": self.name, "input_type": type(inputs).__name__}
            ), team=self.name)

        with structlog.contextvars.bound_contextvars(team=self.name, **self.log_config):
            if self.manager_enabled:
                return await self._run_managed(inputs, cancel_token)

            results = await self.run_each(inputs, cancel_token)
            logger.info(
                "Team finished",
                mode="unmanaged",
                succeeded=sum(1 for envelope in results if envelope.success),
                members=len(results)
            )
            return ResultEnvelope.ok(results, team=self.name, mode="unmanaged")

    async def run_each(
        self,
        inputs: Union[str, Mapping[str, Any], None] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[ResultEnvelope]:
        """Run every member independently; results keep declaration order"""

        if inputs is None and self.task:
            inputs = self.task
        return list(await asyncio.gather(
            *(agent.run(inputs, cancel_token=cancel_token) for agent in self.agents)
        ))

    async def _run_managed(
        self,
        inputs: Union[str, Mapping[str, Any], None],
        cancel_token: Optional[CancellationToken]
    ) -> ResultEnvelope:
        task = self._resolve_task(inputs)
        if not task:
            return ResultEnvelope.fail(
                ErrorKind.VALIDATION_ERROR,
                f"Team '{self.name}' has no task to run",
                {"team": self.name}
            )

        # Member failures stop the manager without cancelling the caller
        manager_token = CancellationToken(parent=cancel_token)
        contributions: List[Dict[str, Any]] = []
        failures: List[Dict[str, Any]] = []

        delegates = [
            self._delegate_tool(agent, contributions, failures, manager_token, cancel_token)
            for agent in self.agents
        ]
        manager = AgentLoop(
            f"{self.name}.manager",
            ToolRegistry(delegates),
            self.manager_decider,
            config=self.config.model_copy(update={"tool_timeout": None, "max_tool_attempts": 1}),
            memory=self.memory
        )
        outcome = await manager.run(task, cancel_token=manager_token)

        if failures:
            logger.warning("Team partially failed", failed=[f["agent"] for f in failures])
            return ResultEnvelope.fail(
                ErrorKind.PARTIAL_FAILURE,
                f"{len(failures)} member(s) of team '{self.name}' failed",
                {
                    "partial_results": contributions,
                    "failures": failures,
                    "manager_error": outcome.error.model_dump() if outcome.error else None
                },
                team=self.name,
                mode="managed"
            )

        if not outcome.success:
            details = dict(outcome.error.details)
            details["partial_results"] = contributions
            return ResultEnvelope.fail(
                outcome.error.kind,
                outcome.error.message,
                details,
                team=self.name,
                mode="managed"
            )

        return ResultEnvelope.ok(
            {"result": outcome.result, "contributions": contributions},
            team=self.name,
            mode="managed"
        )

    def _delegate_tool(
        self,
        agent: Agent,
        contributions: List[Dict[str, Any]],
        failures: List[Dict[str, Any]],
        manager_token: CancellationToken,
        cancel_token: Optional[CancellationToken]
    ) -> Tool:
        """Expose a member agent's run entry point as a manager tool"""

        async def delegate(arguments: Dict[str, Any]) -> ResultEnvelope:
            subtask = arguments["task"]
            try:
                envelope = await asyncio.wait_for(
                    agent.run({"task": subtask}, cancel_token=cancel_token),
                    timeout=self.member_timeout
                )
            except asyncio.TimeoutError:
                envelope = ResultEnvelope.fail(
                    ErrorKind.TIMEOUT,
                    f"Agent '{agent.name}' timed out after {self.member_timeout}s",
                    {"agent": agent.name, "timeout": self.member_timeout}
                )

            if envelope.success:
                contributions.append({"agent": agent.name, "task": subtask, "result": envelope.result})
            else:
                failures.append({"agent": agent.name, "task": subtask, "error": envelope.error.model_dump()})
                manager_token.cancel(f"member agent '{agent.name}' failed")
            return envelope

        return Tool(
            name=agent.name,
            description=agent.description or f"Delegate a subtask to agent '{agent.name}'",
            input_schema=("task",),
            handler=delegate,
            category="team_member"
        )

    def _resolve_task(self, inputs: Union[str, Mapping[str, Any], None]) -> str:
        if inputs is None:
            return self.task
        if isinstance(inputs, str):
            return inputs
        return str(inputs.get("task") or self.task)

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "agents": [agent.name for agent in self.agents],
            "manager_enabled": self.manager_enabled
        }
