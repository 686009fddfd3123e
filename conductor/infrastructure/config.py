"""
Engine configuration

Settings are read from CONDUCTOR_* environment variables and fan out into
the per-component configs used by the agent loop and the memory store.
"""

from typing import Optional
from pydantic import BaseModel, Field
import os


class AgentLoopConfig(BaseModel):
    """Budgets and timeouts for one agent loop"""
    max_iterations: int = Field(default=10, ge=1, description="Global cap on Planning/Acting cycles")
    max_tool_attempts: int = Field(default=3, ge=1, description="Handler calls per tool decision, retries included")
    tool_timeout: Optional[float] = Field(default=30.0, description="Seconds per tool call; None disables")
    decision_timeout: Optional[float] = Field(default=60.0, description="Seconds per decision call; None disables")
    memory_context_limit: int = Field(default=5, ge=0, description="Long-term hits included in planning context")


class MemoryConfig(BaseModel):
    """Capacities of the three memory tiers"""
    short_term_capacity: int = Field(default=100, ge=1)
    short_term_ttl: float = Field(default=3600.0, gt=0, description="Default TTL in seconds")
    long_term_capacity: int = Field(default=1000, ge=1)
    long_term_top_k: int = Field(default=5, ge=1)


class EngineSettings(BaseModel):
    """Process-wide settings"""
    log_level: str = "INFO"
    log_format: str = "json"
    service_name: str = "conductor"
    agent: AgentLoopConfig = Field(default_factory=AgentLoopConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from the environment, falling back to defaults"""

        agent_defaults = AgentLoopConfig()
        memory_defaults = MemoryConfig()

        return cls(
            log_level=os.getenv("CONDUCTOR_LOG_LEVEL", "INFO"),
            log_format=os.getenv("CONDUCTOR_LOG_FORMAT", "json"),
            service_name=os.getenv("CONDUCTOR_SERVICE_NAME", "conductor"),
            agent=AgentLoopConfig(
                max_iterations=int(os.getenv("CONDUCTOR_MAX_ITERATIONS", agent_defaults.max_iterations)),
                max_tool_attempts=int(os.getenv("CONDUCTOR_MAX_TOOL_ATTEMPTS", agent_defaults.max_tool_attempts)),
                tool_timeout=_optional_float("CONDUCTOR_TOOL_TIMEOUT", agent_defaults.tool_timeout),
                decision_timeout=_optional_float("CONDUCTOR_DECISION_TIMEOUT", agent_defaults.decision_timeout),
            ),
            memory=MemoryConfig(
                short_term_capacity=int(os.getenv("CONDUCTOR_SHORT_TERM_CAPACITY", memory_defaults.short_term_capacity)),
                short_term_ttl=float(os.getenv("CONDUCTOR_SHORT_TERM_TTL", memory_defaults.short_term_ttl)),
                long_term_capacity=int(os.getenv("CONDUCTOR_LONG_TERM_CAPACITY", memory_defaults.long_term_capacity)),
                long_term_top_k=int(os.getenv("CONDUCTOR_LONG_TERM_TOP_K", memory_defaults.long_term_top_k)),
            ),
        )


def _optional_float(name: str, default: Optional[float]) -> Optional[float]:
    # "none" or "0" disables the timeout
    raw = os.getenv(name)
    if raw is None:
        return default
    if raw.strip().lower() in ("", "none", "0"):
        return None
    return float(raw)
