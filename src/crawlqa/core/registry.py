"""
Run Registry and Run Signals

`RunSignals` carries the cooperative pause/stop/cancel flags that the task
loops check between units of work. `RunRegistry` is the explicit owner of the
active runs; it is created by whoever hosts runs (CLI, API) and passed in.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class RunSignals:
    """
    Cooperative control flags checked at loop checkpoints.

    The wake-up event is only created inside `checkpoint()`, so a signals
    object can be built before the event loop that later awaits it exists.
    """

    def __init__(self):
        self._paused = False
        self._wakeup: Optional[asyncio.Event] = None
        self.stop_requested = False
        self.cancel_requested = False

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def should_halt(self) -> bool:
        return self.stop_requested or self.cancel_requested

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        self._wake()

    def stop(self) -> None:
        self.stop_requested = True
        self._paused = False
        self._wake()

    def cancel(self) -> None:
        self.cancel_requested = True
        self._paused = False
        self._wake()

    def _wake(self) -> None:
        if self._wakeup is not None:
            self._wakeup.set()

    async def checkpoint(self) -> bool:
        """Block while paused. Returns False when the loop must end."""
        while self._paused and not self.should_halt:
            self._wakeup = asyncio.Event()
            await self._wakeup.wait()
        return not self.should_halt


class RunRegistry:
    """Maps run ids to their live controllers."""

    def __init__(self):
        self._runs: Dict[int, Any] = {}

    def register(self, run_id: int, controller: Any) -> None:
        if run_id in self._runs:
            logger.warning(f"Run {run_id} already registered, replacing controller")
        self._runs[run_id] = controller
        logger.debug(f"📇 Registered run {run_id}")

    def deregister(self, run_id: int) -> Optional[Any]:
        controller = self._runs.pop(run_id, None)
        if controller is not None:
            logger.debug(f"📇 Deregistered run {run_id}")
        return controller

    def get(self, run_id: int) -> Optional[Any]:
        return self._runs.get(run_id)

    def active_run_ids(self) -> List[int]:
        return sorted(self._runs)

    def __contains__(self, run_id: int) -> bool:
        return run_id in self._runs

    def __len__(self) -> int:
        return len(self._runs)
