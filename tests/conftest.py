"""
Pytest Configuration and Fixtures
"""

from typing import Any, Callable, List, Sequence, Union

import pytest

from conductor.domain.context.memory import MemoryStore
from conductor.domain.orchestration.core.decision import (
    Complete, DecisionRequest, Infeasible, InvokeTool
)
from conductor.domain.tool.tool_registry import Tool
from conductor.infrastructure.config import AgentLoopConfig, MemoryConfig
from conductor.infrastructure.observability.logging import metrics

Step = Union[InvokeTool, Complete, Infeasible, dict, Exception, Callable[[DecisionRequest], Any]]


class ScriptedDecider:
    """Decision capability that replays a fixed script.

    Each step is a decision, a raw dict, an exception to raise, or a
    callable receiving the request. The last step repeats once the script
    is exhausted.
    """

    def __init__(self, script: Sequence[Step]):
        self.script = list(script)
        self.requests: List[DecisionRequest] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def decide(self, request: DecisionRequest):
        self.requests.append(request)
        step = self.script[min(len(self.requests), len(self.script)) - 1]

        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(request)
        return step


class FakeClock:
    """Manually advanced replacement for time.monotonic"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_tool(name: str, handler: Callable[..., Any], inputs: Sequence[str] = (), **kwargs) -> Tool:
    return Tool(name=name, description=f"{name} tool", input_schema=tuple(inputs), handler=handler, **kwargs)


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory(clock) -> MemoryStore:
    """A small memory store driven by the fake clock"""
    return MemoryStore(
        MemoryConfig(short_term_capacity=10, short_term_ttl=60.0, long_term_capacity=10, long_term_top_k=3),
        clock=clock
    )


@pytest.fixture
def fast_config() -> AgentLoopConfig:
    return AgentLoopConfig(max_iterations=5, max_tool_attempts=2, tool_timeout=1.0, decision_timeout=1.0)
