from typing import Dict, List, Any, Optional, Mapping, TYPE_CHECKING
import time
import uuid
import structlog

from conductor.domain.models.envelope import ResultEnvelope
from conductor.domain.models.errors import ErrorKind, RETRYABLE_KINDS
from conductor.domain.models.invokable import CancellationToken
from conductor.infrastructure.observability.logging import agent_logger, metrics
from .shape import payload_errors, describe_shape

if TYPE_CHECKING:
    from .pipeline import Pipeline, PipelineStep

logger = structlog.get_logger(__name__)


class PipelineExecutor:
    """Runs a pipeline's steps in chain order, threading the payload through.

    Any contract violation stops the run. A failing tool stops it too,
    unless its step opts into skipping with a default payload. Steps that
    already ran are not rolled back.
    """

    async def execute(
        self,
        pipeline: "Pipeline",
        inputs: Mapping[str, Any],
        cancel_token: Optional[CancellationToken] = None
    ) -> ResultEnvelope:
        from .pipeline import ErrorPolicy

        run_id = uuid.uuid4().hex[:12]
        token = cancel_token or CancellationToken()
        executed: List[str] = []
        skipped: List[str] = []
        payload: Any = inputs
        started = time.perf_counter()

        def trace(**extra: Any) -> Dict[str, Any]:
            return {"run_id": run_id, "pipeline": pipeline.name, "executed": list(executed),
                    "skipped": list(skipped), **extra}

        with structlog.contextvars.bound_contextvars(run_id=run_id):
            agent_logger.log_agent_event("pipeline_started", pipeline.name, run_id,
                                         {"steps": pipeline.step_names()})
            try:
                for step in pipeline.chain:
                    if token.cancelled:
                        return ResultEnvelope.fail(
                            ErrorKind.CANCELLED,
                            token.reason or "cancelled",
                            {"step": step.name},
                            **trace()
                        )

                    problems = payload_errors(payload, step.expected_input_shape)
                    if problems:
                        return self._mismatch(step, "input", step.expected_input_shape, payload, problems, trace())

                    outcome = await self._invoke(step, payload)

                    if not outcome.success:
                        if step.on_error == ErrorPolicy.SKIP:
                            logger.info("Step failed, continuing with default", step=step.name,
                                        error=outcome.error.message)
                            skipped.append(step.name)
                            payload = step.default
                            continue

                        logger.warning("Step failed, aborting pipeline", step=step.name,
                                       error=outcome.error.message)
                        return outcome.model_copy(update={"metadata": trace(failed_step=step.name)})

                    problems = payload_errors(outcome.result, step.produced_output_shape)
                    if problems:
                        return self._mismatch(step, "output", step.produced_output_shape, outcome.result,
                                              problems, trace())

                    executed.append(step.name)
                    payload = outcome.result

                return ResultEnvelope.ok(payload, **trace())
            finally:
                metrics.record_latency(f"pipeline.{pipeline.name}", (time.perf_counter() - started) * 1000)

    async def _invoke(self, step: "PipelineStep", payload: Any) -> ResultEnvelope:
        outcome: Optional[ResultEnvelope] = None

        for attempt in range(1, step.max_attempts + 1):
            outcome = await step.tool.run(payload)
            if outcome.success or outcome.error_kind not in RETRYABLE_KINDS:
                break
            logger.info("Retrying step", step=step.name, attempt=attempt, max_attempts=step.max_attempts)

        return outcome

    @staticmethod
    def _mismatch(
        step: "PipelineStep",
        side: str,
        expected: Dict[str, Any],
        actual: Any,
        problems: List[str],
        metadata: Dict[str, Any]
    ) -> ResultEnvelope:
        logger.warning("Step contract violated", step=step.name, side=side, problems=problems)
        return ResultEnvelope.fail(
            ErrorKind.SCHEMA_MISMATCH,
            f"Step '{step.name}' {side} does not match its declared shape: {'; '.join(problems)}",
            {
                "step": step.name,
                "side": side,
                "expected": expected,
                "actual": describe_shape(actual),
                "problems": problems
            },
            failed_step=step.name,
            **metadata
        )
