"""
Progress Event Handling

Best-effort fan-out of run progress to any number of subscribers (CLI
console, API status cache, tests). A failing subscriber never affects the run.
"""

import inspect
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """A single progress update for a run."""
    run_id: int
    phase: str
    discovered_count: int
    percentage: int
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProgressChannel:
    """Publishes `ProgressEvent`s to registered handlers."""

    def __init__(self):
        self.handlers: List[Callable] = []
        self.last_events: Dict[int, ProgressEvent] = {}

    def subscribe(self, handler: Callable) -> None:
        """Add a handler; sync and async callables are both accepted."""
        self.handlers.append(handler)

    def unsubscribe(self, handler: Callable) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    async def emit(self, run_id: int, phase: str, discovered_count: int = 0,
                   percentage: int = 0, message: str = "") -> ProgressEvent:
        event = ProgressEvent(
            run_id=run_id,
            phase=phase,
            discovered_count=discovered_count,
            percentage=max(0, min(100, int(percentage))),
            message=message,
        )
        self.last_events[run_id] = event

        for handler in list(self.handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.debug(f"Progress handler error (ignored): {e}")

        return event

    def last_event(self, run_id: int) -> Optional[ProgressEvent]:
        return self.last_events.get(run_id)
