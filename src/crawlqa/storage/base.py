"""
Discovery Store Contract

The engine is the only writer for a run. Stores must enforce:

- one queue row per (run_id, url)
- one scenario per (page_id, name)
- one virtual page per (parent_page_id, state_identifier)

Inserting a duplicate returns None instead of raising. Any other write failure
raises PersistenceError.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

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


class DiscoveryStore(ABC):

    # Runs

    @abstractmethod
    def create_run(self, run: Run) -> Run: ...

    @abstractmethod
    def get_run(self, run_id: int) -> Optional[Run]: ...

    @abstractmethod
    def update_run(self, run: Run) -> None: ...

    # Queue

    @abstractmethod
    def add_queue_item(self, item: QueueItem) -> Optional[QueueItem]: ...

    @abstractmethod
    def update_queue_item(self, item: QueueItem) -> None: ...

    @abstractmethod
    def list_queue_items(self, run_id: int, status: Optional[QueueStatus] = None,
                         depth: Optional[int] = None) -> List[QueueItem]:
        """Items in insertion order."""

    def has_queue_item(self, run_id: int, url: str) -> bool:
        return any(item.url == url for item in self.list_queue_items(run_id))

    # Pages and edges

    @abstractmethod
    def add_page(self, page: DiscoveredPage) -> Optional[DiscoveredPage]: ...

    @abstractmethod
    def update_page(self, page: DiscoveredPage) -> None: ...

    @abstractmethod
    def get_page(self, page_id: int) -> Optional[DiscoveredPage]: ...

    @abstractmethod
    def list_pages(self, run_id: int) -> List[DiscoveredPage]: ...

    def find_virtual_page(self, parent_page_id: int,
                          state_identifier: str) -> Optional[DiscoveredPage]:
        parent = self.get_page(parent_page_id)
        if parent is None:
            return None
        for page in self.list_pages(parent.run_id):
            if (page.is_virtual and page.parent_page_id == parent_page_id
                    and page.state_identifier == state_identifier):
                return page
        return None

    @abstractmethod
    def add_edge(self, edge: PageEdge) -> PageEdge: ...

    @abstractmethod
    def list_edges(self, run_id: int) -> List[PageEdge]: ...

    # Scenarios

    @abstractmethod
    def add_scenario(self, scenario: InteractionScenario) -> Optional[InteractionScenario]: ...

    @abstractmethod
    def update_scenario(self, scenario: InteractionScenario) -> None: ...

    @abstractmethod
    def get_scenario(self, scenario_id: int) -> Optional[InteractionScenario]: ...

    @abstractmethod
    def list_scenarios(self, page_id: int) -> List[InteractionScenario]: ...

    # Test cases and executions

    @abstractmethod
    def add_test_case(self, test_case: TestCase) -> TestCase: ...

    @abstractmethod
    def update_test_case(self, test_case: TestCase) -> None: ...

    @abstractmethod
    def get_test_case(self, test_case_id: int) -> Optional[TestCase]: ...

    @abstractmethod
    def list_test_cases(self, run_id: int) -> List[TestCase]: ...

    @abstractmethod
    def add_execution(self, execution: TestCaseExecution) -> TestCaseExecution: ...

    @abstractmethod
    def list_executions(self, test_case_id: int) -> List[TestCaseExecution]: ...
