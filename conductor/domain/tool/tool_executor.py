from typing import Dict, Any, Optional, Mapping, TYPE_CHECKING
import asyncio
import inspect
import time
import structlog

from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import ConductorError, ErrorKind
from conductor.infrastructure.observability.logging import agent_logger, metrics
from .tool_validator import ToolInputValidator

if TYPE_CHECKING:
    from .tool_registry import Tool

logger = structlog.get_logger(__name__)


async def execute_tool(
    tool: "Tool",
    inputs: Mapping[str, Any],
    timeout: Optional[float] = None
) -> ResultEnvelope:
    """Invoke a tool and fold every outcome into a ResultEnvelope.

    Missing inputs fail before the handler runs. Handler exceptions and
    timeouts become failed envelopes; only task cancellation propagates.
    The tool's own timeout takes precedence over ``timeout``.
    """

    try:
        arguments = ToolInputValidator.bind_arguments(tool, inputs)
    except ConductorError as exc:
        logger.warning("Tool input rejected", tool=tool.name, error=exc.message)
        return ResultEnvelope.from_exception(exc, tool=tool.name)

    effective_timeout = tool.timeout if tool.timeout is not None else timeout
    started = time.perf_counter()

    try:
        envelope = await _call_handler(tool, arguments, effective_timeout)
    except asyncio.TimeoutError:
        envelope = ResultEnvelope.fail(
            ErrorKind.TIMEOUT,
            f"Tool '{tool.name}' timed out after {effective_timeout}s",
            {"tool": tool.name, "timeout": effective_timeout}
        )
    except ConductorError as exc:
        envelope = ResultEnvelope.from_exception(exc)
    except Exception as exc:
        envelope = ResultEnvelope.fail(
            ErrorKind.TOOL_EXECUTION_ERROR,
            f"Tool '{tool.name}' failed: {exc}",
            {"tool": tool.name, "exception": type(exc).__name__}
        )

    duration_ms = (time.perf_counter() - started) * 1000
    metrics.record_latency(f"tool.{tool.name}", duration_ms)
    agent_logger.log_tool_execution(
        tool_name=tool.name,
        input_data=dict(inputs),
        output_data=envelope.result,
        duration_ms=duration_ms,
        success=envelope.success,
        error=envelope.error.message if envelope.error else None
    )

    return envelope


async def _call_handler(tool: "Tool", arguments: Any, timeout: Optional[float]) -> ResultEnvelope:
    if _is_coroutine_handler(tool.handler):
        pending = tool.handler(arguments)
    else:
        # Blocking handlers run on the default thread pool
        loop = asyncio.get_running_loop()
        pending = loop.run_in_executor(None, tool.handler, arguments)

    if timeout is not None:
        outcome = await asyncio.wait_for(pending, timeout=timeout)
    else:
        outcome = await pending

    if inspect.isawaitable(outcome):
        outcome = await outcome

    if isinstance(outcome, ResultEnvelope):
        return outcome
    return ResultEnvelope.ok(outcome)


def _is_coroutine_handler(handler: Any) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(getattr(handler, "__call__", None))


def describe_tool(tool: "Tool") -> Dict[str, Any]:
    """Catalog entry handed to the decision capability"""

    return {
        "name": tool.name,
        "description": tool.description,
        "inputs": list(tool.input_schema)
    }
