"""
CrawlQA - autonomous web UI discovery and cross-browser regression testing.

Discovers a site's reachable pages and same-URL UI states, plans and runs
interaction scenarios, turns them into test cases and executes those across
browser engines with self-healing element location.
"""

from .config.settings import CrawlQAConfig, load_config
from .core.models import Run, RunStatus, TestCase, TestStatus
from .runner import RunController, create_oracle

__version__ = "1.0.0"

__all__ = [
    'CrawlQAConfig', 'load_config',
    'Run', 'RunStatus', 'TestCase', 'TestStatus',
    'RunController', 'create_oracle',
]
