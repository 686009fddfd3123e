from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentStatus(str, Enum):
    """Agent loop states"""
    IDLE = "idle"
    PLANNING = "planning"
    ACTING = "acting"
    EVALUATING = "evaluating"
    DONE = "done"
    FAILED = "failed"


class AttemptOutcome(str, Enum):
    """Outcome of one planning cycle, fed back to the decision capability"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PLANNING_ERROR = "planning_error"


class AttemptRecord(BaseModel):
    """One Planning/Acting cycle as seen by the decision capability"""
    iteration: int = Field(description="1-based planning cycle")
    outcome: AttemptOutcome
    tool: Optional[str] = Field(None, description="Tool invoked in this cycle")
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Any] = None
    error: Optional[str] = None
    tool_attempts: int = Field(default=0, description="Handler calls including retries")


class AgentRunState(BaseModel):
    """Complete state of a single agent loop run"""
    run_id: str
    agent_name: str
    task: str
    status: AgentStatus = Field(default=AgentStatus.IDLE)
    iteration: int = 0
    attempts: List[AttemptRecord] = Field(default_factory=list)
    working_memory: List[Dict[str, Any]] = Field(default_factory=list, description="Successful tool results")
    invalid_proposals: int = Field(default=0, description="Consecutive proposals of unknown tools")
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    def update_status(self, status: AgentStatus):
        """Update agent status"""
        self.status = status
        self.last_activity = utcnow()

    def record_attempt(self, attempt: AttemptRecord):
        self.attempts.append(attempt)
        if attempt.outcome == AttemptOutcome.SUCCEEDED:
            self.working_memory.append({
                "tool": attempt.tool,
                "args": attempt.args,
                "result": attempt.result
            })

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "run_id": self.run_id,
            "agent": self.agent_name,
            "status": self.status.value,
            "iterations": self.iteration,
            "tool_calls": sum(a.tool_attempts for a in self.attempts),
            "failures": len([a for a in self.attempts if a.outcome != AttemptOutcome.SUCCEEDED]),
            "last_activity": self.last_activity.isoformat()
        }
