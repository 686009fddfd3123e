from typing import Dict, List, Any, Optional, Tuple, Union
import asyncio
import time
import uuid
import structlog

from conductor.domain.context.context_manager import ContextManager
from conductor.domain.context.memory.memory_store import MemoryStore
from conductor.domain.models.agent_state import (
    AgentRunState, AgentStatus, AttemptOutcome, AttemptRecord
)
from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import ConductorError, ErrorKind, RETRYABLE_KINDS
from conductor.domain.models.invokable import CancellationToken
from conductor.domain.tool.tool_registry import ToolRegistry
from conductor.infrastructure.config import AgentLoopConfig
from conductor.infrastructure.observability.logging import agent_logger, metrics
from .decision import (
    Complete, DecisionCapability, DecisionRequest, Infeasible, InvokeTool, parse_decision
)

logger = structlog.get_logger(__name__)

Decision = Union[InvokeTool, Complete, Infeasible]


class AgentLoop:
    """Bounded Planning -> Acting -> Evaluating state machine.

    Every cycle asks the decision capability what to do next. Tool failures
    are retried up to ``max_tool_attempts`` and then fed back into Planning.
    The loop always terminates: each cycle consumes one unit of
    ``max_iterations``, including cycles spent on planning errors.
    """

    def __init__(
        self,
        name: str,
        tools: ToolRegistry,
        decider: DecisionCapability,
        config: Optional[AgentLoopConfig] = None,
        memory: Optional[MemoryStore] = None
    ):
        self.name = name
        self.tools = tools
        self.decider = decider
        self.config = config or AgentLoopConfig()
        self.context_manager = ContextManager(memory, relevant_limit=self.config.memory_context_limit)

    async def run(self, task: str, cancel_token: Optional[CancellationToken] = None) -> ResultEnvelope:
        """Drive the loop for one task"""

        state = AgentRunState(run_id=uuid.uuid4().hex[:12], agent_name=self.name, task=task)
        token = cancel_token or CancellationToken()
        started = time.perf_counter()

        with structlog.contextvars.bound_contextvars(run_id=state.run_id):
            agent_logger.log_agent_event("run_started", self.name, state.run_id, {"task": task[:200]})

            envelope = await self._drive(state, token)

            metrics.record_latency(f"agent.{self.name}", (time.perf_counter() - started) * 1000)
            agent_logger.log_agent_event(
                "run_finished",
                self.name,
                state.run_id,
                {"success": envelope.success, "error_kind": envelope.error_kind}
            )

        return envelope

    async def _drive(self, state: AgentRunState, token: CancellationToken) -> ResultEnvelope:
        notes: List[str] = []

        while state.iteration < self.config.max_iterations:
            if token.cancelled:
                return self._cancelled(state, token)

            state.iteration += 1
            self._transition(state, AgentStatus.PLANNING)
            decision = await self._plan(state, notes)
            notes = []

            if decision is None:
                continue
            if token.cancelled:
                return self._cancelled(state, token)

            if isinstance(decision, Complete):
                self._transition(state, AgentStatus.DONE, "complete")
                await self.context_manager.record_result(state, decision.result)
                return ResultEnvelope.ok(decision.result, **self._trace(state))

            if isinstance(decision, Infeasible):
                self._transition(state, AgentStatus.FAILED, "infeasible")
                return ResultEnvelope.fail(
                    ErrorKind.TASK_INFEASIBLE,
                    decision.reason,
                    {"attempts": self._dump_attempts(state)},
                    **self._trace(state)
                )

            if decision.tool not in self.tools:
                envelope = await self._reject_unknown_tool(state, decision)
                if envelope is not None:
                    return envelope
                notes = [
                    f"Tool '{decision.tool}' is not available. "
                    f"Choose one of: {', '.join(self.tools.names()) or '(none)'}"
                ]
                continue

            state.invalid_proposals = 0
            self._transition(state, AgentStatus.ACTING, decision.tool)
            outcome, calls = await self._act(decision, token)

            if outcome is None:
                return self._cancelled(state, token)

            self._transition(state, AgentStatus.EVALUATING, "success" if outcome.success else "failure")
            await self.context_manager.record_attempt(state, AttemptRecord(
                iteration=state.iteration,
                outcome=AttemptOutcome.SUCCEEDED if outcome.success else AttemptOutcome.FAILED,
                tool=decision.tool,
                args=decision.args,
                result=outcome.result,
                error=outcome.error.message if outcome.error else None,
                tool_attempts=calls
            ))

        self._transition(state, AgentStatus.FAILED, "iteration_budget_exhausted")
        return ResultEnvelope.fail(
            ErrorKind.ITERATION_BUDGET_EXHAUSTED,
            f"Agent '{self.name}' did not finish within {self.config.max_iterations} iterations",
            {"attempts": self._dump_attempts(state)},
            **self._trace(state)
        )

    async def _plan(self, state: AgentRunState, notes: List[str]) -> Optional[Decision]:
        """Ask for the next decision; failures are recorded and yield None"""

        request = await self.context_manager.build_request(state, self.tools, notes)
        started = time.perf_counter()

        try:
            decision = await self._call_decider(request)
        except asyncio.TimeoutError:
            error = f"Decision call timed out after {self.config.decision_timeout}s"
        except ConductorError as exc:
            error = exc.message
        except Exception as exc:
            error = f"Decision capability failed: {exc}"
        else:
            metrics.record_latency(f"decision.{self.name}", (time.perf_counter() - started) * 1000)
            return decision

        logger.warning("Planning failed", agent=self.name, iteration=state.iteration, error=error)
        await self.context_manager.record_attempt(state, AttemptRecord(
            iteration=state.iteration,
            outcome=AttemptOutcome.PLANNING_ERROR,
            error=error
        ))
        return None

    async def _call_decider(self, request: DecisionRequest) -> Decision:
        pending = self.decider.decide(request)
        if self.config.decision_timeout is not None:
            raw = await asyncio.wait_for(pending, timeout=self.config.decision_timeout)
        else:
            raw = await pending

        if isinstance(raw, (InvokeTool, Complete, Infeasible)):
            return raw
        return parse_decision(raw)

    async def _act(
        self,
        decision: InvokeTool,
        token: CancellationToken
    ) -> Tuple[Optional[ResultEnvelope], int]:
        """Invoke the chosen tool with bounded retries"""

        tool = self.tools.get(decision.tool)
        outcome: Optional[ResultEnvelope] = None

        for attempt in range(1, self.config.max_tool_attempts + 1):
            if attempt > 1 and token.cancelled:
                return None, attempt - 1

            outcome = await tool.run(decision.args, timeout=self.config.tool_timeout)
            if outcome.success or outcome.error_kind not in RETRYABLE_KINDS:
                return outcome, attempt

            logger.info(
                "Tool call failed",
                agent=self.name,
                tool=tool.name,
                attempt=attempt,
                max_attempts=self.config.max_tool_attempts,
                error=outcome.error.message
            )

        return outcome, self.config.max_tool_attempts

    async def _reject_unknown_tool(self, state: AgentRunState, decision: InvokeTool) -> Optional[ResultEnvelope]:
        """Re-prompt once on an unknown tool; fail on the second in a row"""

        state.invalid_proposals += 1
        await self.context_manager.record_attempt(state, AttemptRecord(
            iteration=state.iteration,
            outcome=AttemptOutcome.PLANNING_ERROR,
            tool=decision.tool,
            args=decision.args,
            error=f"unknown tool '{decision.tool}'"
        ))

        if state.invalid_proposals < 2:
            logger.info("Unknown tool proposed, re-prompting", agent=self.name, tool=decision.tool)
            return None

        self._transition(state, AgentStatus.FAILED, "unknown_tool")
        return ResultEnvelope.fail(
            ErrorKind.TASK_INFEASIBLE,
            f"Decision capability kept proposing unknown tool '{decision.tool}'",
            {"tool": decision.tool, "available": self.tools.names(), "attempts": self._dump_attempts(state)},
            **self._trace(state)
        )

    def _cancelled(self, state: AgentRunState, token: CancellationToken) -> ResultEnvelope:
        self._transition(state, AgentStatus.FAILED, "cancelled")
        return ResultEnvelope.fail(
            ErrorKind.CANCELLED,
            token.reason or "cancelled",
            {"attempts": self._dump_attempts(state)},
            **self._trace(state)
        )

    def _transition(self, state: AgentRunState, status: AgentStatus, reason: Optional[str] = None):
        previous = state.status
        state.update_status(status)
        agent_logger.log_status_transition(
            state.run_id,
            previous.value,
            status.value,
            reason=reason,
            iteration=state.iteration
        )

    @staticmethod
    def _dump_attempts(state: AgentRunState) -> List[Dict[str, Any]]:
        return [attempt.model_dump() for attempt in state.attempts]

    @staticmethod
    def _trace(state: AgentRunState) -> Dict[str, Any]:
        summary = state.get_state_summary()
        summary.pop("last_activity", None)
        return summary
