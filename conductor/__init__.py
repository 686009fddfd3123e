"""
Conductor: tools, agents, teams and pipelines behind one result contract.
"""

from conductor.domain.models import (
    CancellationToken,
    ConductorError,
    ErrorInfo,
    ErrorKind,
    ResultEnvelope,
)
from conductor.domain.context.memory import MemoryStore, MemoryTier
from conductor.domain.tool import Tool, ToolRegistry
from conductor.domain.orchestration.core.agent import Agent
from conductor.domain.orchestration.core.decision import Complete, DecisionRequest, Infeasible, InvokeTool
from conductor.domain.orchestration.team import Team
from conductor.domain.orchestration.pipeline import ErrorPolicy, Pipeline, PipelineBuilder
from conductor.domain.registry import Registry
from conductor.infrastructure.config import AgentLoopConfig, EngineSettings, MemoryConfig

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ConductorError",
    "ErrorInfo",
    "ErrorKind",
    "ResultEnvelope",
    "MemoryStore",
    "MemoryTier",
    "Tool",
    "ToolRegistry",
    "Agent",
    "Complete",
    "DecisionRequest",
    "Infeasible",
    "InvokeTool",
    "Team",
    "ErrorPolicy",
    "Pipeline",
    "PipelineBuilder",
    "Registry",
    "AgentLoopConfig",
    "EngineSettings",
    "MemoryConfig",
]
