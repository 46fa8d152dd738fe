"""
Run Lifecycle State Machine

    pending → running ⇄ paused → ready_for_execution → executing → completed
    running | paused | executing → cancelled
    running | executing → failed

Transitions are validated against a fixed table; listeners are notified after
every accepted transition.
"""

import logging
from typing import Callable, Dict, FrozenSet, List

from .errors import InvalidTransitionError
from .models import RunStatus

logger = logging.getLogger(__name__)

S = RunStatus

TRANSITIONS: Dict[RunStatus, FrozenSet[RunStatus]] = {
    S.PENDING: frozenset({S.RUNNING}),
    S.RUNNING: frozenset({S.PAUSED, S.READY_FOR_EXECUTION, S.CANCELLED, S.FAILED}),
    S.PAUSED: frozenset({S.RUNNING, S.READY_FOR_EXECUTION, S.CANCELLED}),
    S.READY_FOR_EXECUTION: frozenset({S.EXECUTING}),
    S.EXECUTING: frozenset({S.COMPLETED, S.CANCELLED, S.FAILED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.FAILED: frozenset(),
}

TransitionListener = Callable[[RunStatus, RunStatus], None]


class RunStateMachine:
    """Tracks one run's status and rejects illegal moves."""

    def __init__(self, run_id: int, status: RunStatus = RunStatus.PENDING):
        self.run_id = run_id
        self.status = status
        self.history: List[RunStatus] = [status]
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def can_transition(self, target: RunStatus) -> bool:
        return target in TRANSITIONS[self.status]

    def transition(self, target: RunStatus) -> RunStatus:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.status.value, target.value)

        previous = self.status
        self.status = target
        self.history.append(target)
        logger.info(f"🔁 Run {self.run_id}: {previous.value} → {target.value}")

        for listener in self._listeners:
            listener(previous, target)
        return target

    # Named commands

    def start(self) -> RunStatus:
        return self.transition(RunStatus.RUNNING)

    def pause(self) -> RunStatus:
        return self.transition(RunStatus.PAUSED)

    def resume(self) -> RunStatus:
        if self.status != RunStatus.PAUSED:
            raise InvalidTransitionError(self.status.value, RunStatus.RUNNING.value)
        return self.transition(RunStatus.RUNNING)

    def stop(self) -> RunStatus:
        """Force discovery to end; the run becomes ready for execution."""
        return self.transition(RunStatus.READY_FOR_EXECUTION)

    def begin_execution(self) -> RunStatus:
        return self.transition(RunStatus.EXECUTING)

    def complete(self) -> RunStatus:
        return self.transition(RunStatus.COMPLETED)

    def cancel(self) -> RunStatus:
        return self.transition(RunStatus.CANCELLED)

    def fail(self) -> RunStatus:
        return self.transition(RunStatus.FAILED)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_discovering(self) -> bool:
        return self.status in (RunStatus.RUNNING, RunStatus.PAUSED)
