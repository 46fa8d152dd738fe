"""
Data Model

Records shared by the queue, the discovery engine, the stores and the
cross-browser runner. Every record is a dataclass that round-trips through
dataclasses-json so the SQLite store can keep it as a JSON document.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dataclasses_json import dataclass_json


class Priority(Enum):
    """Scheduling priority of a queue item or scenario."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: Any, default: "Priority" = None) -> "Priority":
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.MEDIUM


_PRIORITY_RANK = {Priority.HIGH: 1, Priority.MEDIUM: 2, Priority.LOW: 3}


class QueueStatus(Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class RunStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    READY_FOR_EXECUTION = "ready_for_execution"
    EXECUTING = "executing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.CANCELLED, RunStatus.FAILED)


class StepAction(Enum):
    """Closed set of step kinds. Anything else parses to UNKNOWN."""
    CLICK = "click"
    FILL = "fill"
    SELECT = "select"
    CHECK = "check"
    HOVER = "hover"
    SUBMIT = "submit"
    NAVIGATE = "navigate"
    WAIT = "wait"
    VERIFY = "verify"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "StepAction":
        if isinstance(raw, StepAction):
            return raw
        name = str(raw or "").strip().lower()
        name = _ACTION_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return cls.UNKNOWN


_ACTION_ALIASES = {
    "type": "fill",
    "input": "fill",
    "tap": "click",
    "press": "click",
    "goto": "navigate",
    "assert": "verify",
    "assert_visible": "verify",
}


class TestStatus(Enum):
    __test__ = False

    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"
    FLAKY = "flaky"


@dataclass_json
@dataclass
class Target:
    """Logical element reference: a primary selector plus optional hints."""
    selector: str
    text: Optional[str] = None
    tag: Optional[str] = None
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass_json
@dataclass
class Step:
    action: StepAction
    target: Optional[Target] = None
    value: Optional[str] = None
    description: Optional[str] = None
    raw_action: Optional[str] = None

    def describe(self) -> str:
        if self.description:
            return self.description
        where = self.target.selector if self.target else ""
        return f"{self.action.value} {where}".strip()


@dataclass_json
@dataclass
class Run:
    target_url: str
    id: Optional[int] = None
    status: RunStatus = RunStatus.PENDING
    pages_discovered: int = 0
    test_cases: int = 0
    passed: int = 0
    failed: int = 0
    flaky: int = 0
    error_message: Optional[str] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None


@dataclass_json
@dataclass
class QueueItem:
    run_id: int
    url: str
    depth: int
    id: Optional[int] = None
    from_page_id: Optional[int] = None
    scenario_id: Optional[int] = None
    priority: Priority = Priority.MEDIUM
    status: QueueStatus = QueueStatus.QUEUED
    discovered_page_id: Optional[int] = None
    error_message: Optional[str] = None
    queued_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None


@dataclass_json
@dataclass
class DiscoveredPage:
    run_id: int
    url: str
    depth: int
    id: Optional[int] = None
    title: str = ""
    screenshot_path: Optional[str] = None
    dom_snapshot: str = ""
    elements_count: int = 0
    is_virtual: bool = False
    state_identifier: Optional[str] = None
    parent_page_id: Optional[int] = None
    change_type: Optional[str] = None
    triggered_by_scenario_id: Optional[int] = None
    dead_end: bool = False
    discovered_at: float = field(default_factory=time.time)


@dataclass_json
@dataclass
class PageEdge:
    run_id: int
    from_page_id: int
    to_page_id: int
    id: Optional[int] = None
    scenario_id: Optional[int] = None
    action: str = ""


@dataclass_json
@dataclass
class InteractionScenario:
    page_id: int
    name: str
    steps: List[Step]
    id: Optional[int] = None
    run_id: Optional[int] = None
    description: str = ""
    expected_outcome: str = ""
    priority: Priority = Priority.MEDIUM
    executed: bool = False
    outcome: Optional[str] = None
    error_message: Optional[str] = None


@dataclass_json
@dataclass
class TestCase:
    __test__ = False

    run_id: int
    page_id: int
    name: str
    type: str
    start_url: str
    steps: List[Step] = field(default_factory=list)
    id: Optional[int] = None
    expected_result: str = ""
    prerequisites: List[Step] = field(default_factory=list)
    cleanup: List[Step] = field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    scenario_id: Optional[int] = None
    status: TestStatus = TestStatus.PENDING
    self_healed: bool = False
    duration_ms: Optional[float] = None
    error: Optional[str] = None


class StepStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass_json
@dataclass
class StepResult:
    """
    Outcome of one step in one engine's run. `index` counts from zero over
    prerequisites and steps together; `phase` tells them apart.
    """
    index: int
    action: str
    status: StepStatus
    phase: str = "step"
    selector: Optional[str] = None
    value: Optional[str] = None
    description: Optional[str] = None
    error: Optional[str] = None
    duration_ms: float = 0.0
    screenshot: Optional[str] = None
    self_healed: bool = False


@dataclass_json
@dataclass
class TestCaseExecution:
    """One engine's attempt at a test case."""
    __test__ = False

    engine: str
    status: TestStatus
    duration_ms: float
    id: Optional[int] = None
    test_case_id: Optional[int] = None
    run_id: Optional[int] = None
    error: Optional[str] = None
    screenshots: List[str] = field(default_factory=list)
    self_healed: bool = False
    healed_steps: List[Dict[str, Any]] = field(default_factory=list)
    step_results: List[StepResult] = field(default_factory=list)


@dataclass
class ConsensusVerdict:
    status: TestStatus
    duration_ms: float
    self_healed: bool
    executions: List[TestCaseExecution] = field(default_factory=list)

    @property
    def passed_engines(self) -> List[str]:
        return [e.engine for e in self.executions if e.status == TestStatus.PASSED]

    @property
    def failed_engines(self) -> List[str]:
        return [e.engine for e in self.executions if e.status == TestStatus.FAILED]
