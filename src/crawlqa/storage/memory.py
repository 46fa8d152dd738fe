"""
In-memory discovery store.

Records are copied on the way in and out so callers see the same semantics as
with a database-backed store.
"""

import copy
import itertools
from typing import Dict, List, Optional, Tuple

from ..core.errors import PersistenceError
from ..core.models import (
    DiscoveredPage,
    InteractionScenario,
    PageEdge,
    QueueItem,
    QueueStatus,
    Run,
    TestCase,
    TestCaseExecution,
)
from .base import DiscoveryStore


class InMemoryStore(DiscoveryStore):

    def __init__(self):
        self._ids = itertools.count(1)
        self.runs: Dict[int, Run] = {}
        self.queue: Dict[int, QueueItem] = {}
        self.pages: Dict[int, DiscoveredPage] = {}
        self.edges: Dict[int, PageEdge] = {}
        self.scenarios: Dict[int, InteractionScenario] = {}
        self.test_cases: Dict[int, TestCase] = {}
        self.executions: Dict[int, TestCaseExecution] = {}

        self._queue_keys: Dict[Tuple[int, str], int] = {}
        self._scenario_keys: Dict[Tuple[int, str], int] = {}
        self._virtual_keys: Dict[Tuple[int, str], int] = {}

    def _insert(self, table: Dict[int, object], record):
        record = copy.deepcopy(record)
        record.id = next(self._ids)
        table[record.id] = record
        return copy.deepcopy(record)

    @staticmethod
    def _replace(table: Dict[int, object], record, kind: str) -> None:
        if record.id not in table:
            raise PersistenceError(f"Unknown {kind} id {record.id}")
        table[record.id] = copy.deepcopy(record)

    @staticmethod
    def _get(table: Dict[int, object], record_id: int):
        record = table.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    # Runs

    def create_run(self, run: Run) -> Run:
        return self._insert(self.runs, run)

    def get_run(self, run_id: int) -> Optional[Run]:
        return self._get(self.runs, run_id)

    def update_run(self, run: Run) -> None:
        self._replace(self.runs, run, "run")

    # Queue

    def add_queue_item(self, item: QueueItem) -> Optional[QueueItem]:
        key = (item.run_id, item.url)
        if key in self._queue_keys:
            return None
        stored = self._insert(self.queue, item)
        self._queue_keys[key] = stored.id
        return stored

    def update_queue_item(self, item: QueueItem) -> None:
        self._replace(self.queue, item, "queue item")

    def list_queue_items(self, run_id: int, status: Optional[QueueStatus] = None,
                         depth: Optional[int] = None) -> List[QueueItem]:
        items = [
            item for item in self.queue.values()
            if item.run_id == run_id
            and (status is None or item.status == status)
            and (depth is None or item.depth == depth)
        ]
        return [copy.deepcopy(item) for item in sorted(items, key=lambda i: i.id)]

    def has_queue_item(self, run_id: int, url: str) -> bool:
        return (run_id, url) in self._queue_keys

    # Pages and edges

    def add_page(self, page: DiscoveredPage) -> Optional[DiscoveredPage]:
        key = None
        if page.is_virtual:
            key = (page.parent_page_id, page.state_identifier)
            if key in self._virtual_keys:
                return None
        stored = self._insert(self.pages, page)
        if key is not None:
            self._virtual_keys[key] = stored.id
        return stored

    def update_page(self, page: DiscoveredPage) -> None:
        self._replace(self.pages, page, "page")

    def get_page(self, page_id: int) -> Optional[DiscoveredPage]:
        return self._get(self.pages, page_id)

    def list_pages(self, run_id: int) -> List[DiscoveredPage]:
        return [copy.deepcopy(p) for p in self.pages.values() if p.run_id == run_id]

    def find_virtual_page(self, parent_page_id: int,
                          state_identifier: str) -> Optional[DiscoveredPage]:
        page_id = self._virtual_keys.get((parent_page_id, state_identifier))
        return self._get(self.pages, page_id) if page_id else None

    def add_edge(self, edge: PageEdge) -> PageEdge:
        return self._insert(self.edges, edge)

    def list_edges(self, run_id: int) -> List[PageEdge]:
        return [copy.deepcopy(e) for e in self.edges.values() if e.run_id == run_id]

    # Scenarios

    def add_scenario(self, scenario: InteractionScenario) -> Optional[InteractionScenario]:
        key = (scenario.page_id, scenario.name)
        if key in self._scenario_keys:
            return None
        stored = self._insert(self.scenarios, scenario)
        self._scenario_keys[key] = stored.id
        return stored

    def update_scenario(self, scenario: InteractionScenario) -> None:
        self._replace(self.scenarios, scenario, "scenario")

    def get_scenario(self, scenario_id: int) -> Optional[InteractionScenario]:
        return self._get(self.scenarios, scenario_id)

    def list_scenarios(self, page_id: int) -> List[InteractionScenario]:
        return [copy.deepcopy(s) for s in self.scenarios.values() if s.page_id == page_id]

    # Test cases and executions

    def add_test_case(self, test_case: TestCase) -> TestCase:
        return self._insert(self.test_cases, test_case)

    def update_test_case(self, test_case: TestCase) -> None:
        self._replace(self.test_cases, test_case, "test case")

    def get_test_case(self, test_case_id: int) -> Optional[TestCase]:
        return self._get(self.test_cases, test_case_id)

    def list_test_cases(self, run_id: int) -> List[TestCase]:
        return [copy.deepcopy(t) for t in self.test_cases.values() if t.run_id == run_id]

    def add_execution(self, execution: TestCaseExecution) -> TestCaseExecution:
        return self._insert(self.executions, execution)

    def list_executions(self, test_case_id: int) -> List[TestCaseExecution]:
        return [
            copy.deepcopy(e) for e in self.executions.values()
            if e.test_case_id == test_case_id
        ]
