"""
Scenario planning and execution during discovery.
"""

from .executor import ScenarioExecutor, ScenarioOutcome
from .planner import ScenarioPlanner
from .steps import StepRunner
from .test_data import generate_test_value, resolve_fill_value

__all__ = [
    'ScenarioExecutor', 'ScenarioOutcome', 'ScenarioPlanner', 'StepRunner',
    'generate_test_value', 'resolve_fill_value',
]
