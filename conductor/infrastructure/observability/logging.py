import structlog
import logging
import sys
from typing import Dict, Any, List, Optional
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "conductor"
) -> None:
    """Route structlog through stdlib logging on stdout.

    Events carry whatever is bound in contextvars at the time of the
    call: ``run_id`` inside an agent loop or pipeline run, ``team`` and
    the team's log config inside a team run, ``component`` inside an
    HTTP request.
    """

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        drop_empty_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("CONDUCTOR_ENVIRONMENT", "development")
    )


def drop_empty_fields(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Leave unset optional fields out of the rendered event"""

    return {key: value for key, value in event_dict.items() if value is not None}


class AgentLogger:
    """Named events for agent runs, tool calls and memory writes"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_agent_event(
        self,
        event_type: str,
        agent_name: str,
        run_id: str,
        data: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.logger.info(
            "agent_event",
            event_type=event_type,
            agent_name=agent_name,
            run_id=run_id,
            data=data or {},
            **kwargs
        )

    def log_tool_execution(
        self,
        tool_name: str,
        input_data: Dict[str, Any],
        output_data: Optional[Any] = None,
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        """Argument values and results stay out of the log; only their shape is recorded"""

        self.logger.info(
            "tool_execution",
            tool_name=tool_name,
            input_keys=sorted(input_data.keys()),
            output_type=type(output_data).__name__ if output_data is not None else None,
            duration_ms=duration_ms,
            success=success,
            error=error
        )

    def log_status_transition(
        self,
        run_id: str,
        from_status: str,
        to_status: str,
        reason: Optional[str] = None,
        iteration: Optional[int] = None
    ):
        self.logger.info(
            "status_transition",
            run_id=run_id,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            iteration=iteration
        )

    def log_memory_update(
        self,
        tier: str,
        action: str,
        key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.logger.debug(
            "memory_update",
            tier=tier,
            action=action,
            key=key,
            details=details or {}
        )


agent_logger = AgentLogger("conductor")


class LatencyStats:
    """Running aggregate of one operation's latency"""

    def __init__(self):
        self.count = 0
        self.total_ms = 0.0
        self.min_ms: Optional[float] = None
        self.max_ms = 0.0

    def add(self, duration_ms: float):
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = duration_ms if self.min_ms is None else min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def as_dict(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total_ms / self.count if self.count else 0.0,
            "min": self.min_ms or 0.0,
            "max": self.max_ms
        }


class MetricsCollector:
    """Write-only metrics sink; the engine emits but never reads back.

    Every write is also logged as a ``metric`` event so an external
    collector can scrape the log stream.
    """

    def __init__(self):
        self.latencies: Dict[str, LatencyStats] = {}
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        self.latencies.setdefault(operation, LatencyStats()).add(duration_ms)
        self._emit("latency", operation=operation, duration_ms=round(duration_ms, 3), tags=tags or {})

    def record_tokens(self, model_name: str, token_count: int):
        """Token usage of one model call, as a per-model counter"""
        self.increment_counter(f"tokens.{model_name}", token_count, tags={"model": model_name})

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] = self.counters.get(name, 0) + value
        self._emit("counter", name=name, value=value, tags=tags or {})

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self.gauges[name] = value
        self._emit("gauge", name=name, value=value, tags=tags or {})

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Operator view of everything recorded so far"""

        summary: Dict[str, Any] = {f"latency.{name}": stats.as_dict() for name, stats in self.latencies.items()}
        summary.update(self.counters)
        summary.update(self.gauges)
        return summary

    def reset(self):
        self.latencies.clear()
        self.counters.clear()
        self.gauges.clear()

    @staticmethod
    def _emit(metric_type: str, **fields: Any):
        agent_logger.logger.info("metric", metric_type=metric_type, **fields)


metrics = MetricsCollector()
