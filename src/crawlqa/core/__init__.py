"""
Core components: data model, errors, run lifecycle, registry and progress events.
"""

from .errors import (
    CaptureError,
    ConfigError,
    CrawlQAError,
    InvalidTransitionError,
    NavigationError,
    OracleError,
    PersistenceError,
    ResolutionFailure,
    RunFatalError,
)
from .events import ProgressChannel, ProgressEvent
from .models import (
    ConsensusVerdict,
    DiscoveredPage,
    InteractionScenario,
    PageEdge,
    Priority,
    QueueItem,
    QueueStatus,
    Run,
    RunStatus,
    Step,
    StepAction,
    StepResult,
    StepStatus,
    Target,
    TestCase,
    TestCaseExecution,
    TestStatus,
)
from .registry import RunRegistry, RunSignals
from .state_machine import RunStateMachine

__all__ = [
    'CaptureError', 'ConfigError', 'CrawlQAError', 'InvalidTransitionError',
    'NavigationError', 'OracleError', 'PersistenceError', 'ResolutionFailure',
    'RunFatalError',
    'ProgressChannel', 'ProgressEvent',
    'ConsensusVerdict', 'DiscoveredPage', 'InteractionScenario', 'PageEdge',
    'Priority', 'QueueItem', 'QueueStatus', 'Run', 'RunStatus', 'Step',
    'StepAction', 'StepResult', 'StepStatus', 'Target', 'TestCase',
    'TestCaseExecution', 'TestStatus',
    'RunRegistry', 'RunSignals', 'RunStateMachine',
]
