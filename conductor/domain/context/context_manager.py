from typing import Dict, List, Any, Optional
import structlog

from conductor.domain.models.agent_state import AgentRunState, AttemptRecord, AttemptOutcome
from conductor.domain.models.errors import EpisodeNotOpenError
from conductor.domain.orchestration.core.decision import DecisionRequest
from conductor.domain.tool.tool_registry import ToolRegistry
from .memory.memory_entry import MemoryTier
from .memory.memory_store import MemoryStore

logger = structlog.get_logger(__name__)


class ContextManager:
    """Assembles decision context from memory and writes run results back"""

    def __init__(self, memory: Optional[MemoryStore] = None, relevant_limit: int = 5):
        self.memory = memory
        self.relevant_limit = relevant_limit

    async def build_request(
        self,
        state: AgentRunState,
        tools: ToolRegistry,
        notes: Optional[List[str]] = None
    ) -> DecisionRequest:
        """Build the Planning input for the current cycle"""

        memory_context: Dict[str, Any] = {"working": list(state.working_memory)}
        if self.memory is not None:
            memory_context.update(await self.memory.recall(state.task, limit=self.relevant_limit))

        return DecisionRequest(
            task=state.task,
            tool_catalog=tools.catalog(),
            memory_context=memory_context,
            prior_attempts=list(state.attempts),
            notes=notes or []
        )

    async def record_attempt(self, state: AgentRunState, attempt: AttemptRecord):
        """Keep the attempt in the run state and persist successful steps"""

        state.record_attempt(attempt)

        if self.memory is None or attempt.outcome != AttemptOutcome.SUCCEEDED:
            return

        key = f"{state.agent_name}:{state.run_id}:step:{attempt.iteration}"
        value = {"tool": attempt.tool, "args": attempt.args, "result": attempt.result}
        await self.memory.add(key, value, tier=MemoryTier.SHORT_TERM)

        # Open episodes see every step of the runs made inside them
        if self.memory.episodic.is_open:
            try:
                await self.memory.add(key, value, tier=MemoryTier.EPISODIC)
            except EpisodeNotOpenError:
                # Closed by its owner while this step was being stored
                logger.debug("Episode closed before step was recorded", key=key)

    async def record_result(self, state: AgentRunState, result: Any):
        if self.memory is None:
            return

        await self.memory.add(
            f"{state.agent_name}:result:{state.run_id}",
            {"task": state.task, "result": result},
            tier=MemoryTier.LONG_TERM
        )
        logger.debug("Stored final result", agent=state.agent_name, run_id=state.run_id)
