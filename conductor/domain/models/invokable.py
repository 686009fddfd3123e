from typing import Dict, Any, Optional, Protocol, runtime_checkable

from .envelope import ResultEnvelope


@runtime_checkable
class Invokable(Protocol):
    """Anything that can be run with named inputs and answers with an envelope.

    Tools, agents, teams and pipelines all satisfy this, so the pipeline
    executor and the team coordinator can treat them alike.
    """

    name: str

    async def run(self, inputs: Dict[str, Any]) -> ResultEnvelope:
        ...


class CancellationToken:
    """Cooperative cancellation checked between suspension points"""

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self.parent = parent
        self._cancelled = False
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by caller"):
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    @property
    def cancelled(self) -> bool:
        # A child is cancelled with its parent, never the other way round
        return self._cancelled or (self.parent is not None and self.parent.cancelled)

    @property
    def reason(self) -> Optional[str]:
        if self._cancelled:
            return self._reason
        return self.parent.reason if self.parent is not None else None
