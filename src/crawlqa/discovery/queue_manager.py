"""
Breadth-First Queue Manager

Schedules discovery work items level by level. Within a depth, items are
processed by priority (high, medium, low) and then in the order they were
enqueued. Work items are persisted so a run's queue can be inspected after
the fact; they move forward through queued → processing → completed/failed
and are never deleted.
"""

import logging
import time
from typing import Awaitable, Callable, List, Optional, Set

from ..config.settings import CrawlConfig
from ..core.errors import RunFatalError
from ..core.models import DiscoveredPage, Priority, QueueItem, QueueStatus
from ..core.registry import RunSignals
from ..storage.base import DiscoveryStore
from ..utils.navigation import NavigationUtils, clean_url

logger = logging.getLogger(__name__)

ItemHandler = Callable[[QueueItem], Awaitable[Optional[DiscoveredPage]]]

# Reasons returned by drive()
EXHAUSTED = "exhausted"
MAX_PAGES = "max_pages"
STOPPED = "stopped"


class QueueManager:
    """Persistent BFS scheduler for one run."""

    def __init__(self, store: DiscoveryStore, run_id: int, base_url: str,
                 config: Optional[CrawlConfig] = None,
                 signals: Optional[RunSignals] = None):
        self.store = store
        self.run_id = run_id
        self.config = config or CrawlConfig()
        self.signals = signals or RunSignals()
        self.navigation = NavigationUtils(base_url, self.config.same_domain_only)

        self.visited_urls: Set[str] = set()
        self.pages_discovered = 0

    # Visited set

    def mark_visited(self, url: str) -> None:
        self.visited_urls.add(clean_url(url))

    def is_visited(self, url: str) -> bool:
        return clean_url(url) in self.visited_urls

    # Scheduling

    def enqueue(self, url: str, depth: int, from_page_id: Optional[int] = None,
                scenario_id: Optional[int] = None,
                priority: Priority = Priority.MEDIUM) -> Optional[QueueItem]:
        """
        Add a URL to the queue.

        Returns the stored item, or None when the URL is not eligible: off-domain
        or not http(s), beyond max_depth, already visited, or already queued.
        """
        if not self.navigation.should_enqueue(url):
            return None

        url = clean_url(url)
        if depth > self.config.max_depth:
            logger.debug(f"Not queuing {url}: depth {depth} > max {self.config.max_depth}")
            return None
        if self.is_visited(url) or self.store.has_queue_item(self.run_id, url):
            return None

        item = self.store.add_queue_item(QueueItem(
            run_id=self.run_id,
            url=url,
            depth=depth,
            from_page_id=from_page_id,
            scenario_id=scenario_id,
            priority=Priority.parse(priority),
        ))
        if item:
            logger.info(f"📥 Queued (depth {depth}, {item.priority.value}): {url}")
        return item

    def next_batch(self, depth: int) -> List[QueueItem]:
        """All queued items at a depth, highest priority first, then FIFO."""
        items = self.store.list_queue_items(self.run_id, status=QueueStatus.QUEUED, depth=depth)
        return sorted(items, key=lambda item: (item.priority.rank, item.id))

    def pending_count(self) -> int:
        return len(self.store.list_queue_items(self.run_id, status=QueueStatus.QUEUED))

    # Drive loop

    async def drive(self, handler: ItemHandler) -> str:
        """
        Process the queue depth by depth until it is exhausted, the page
        budget is spent, or the run is stopped.
        """
        for depth in range(self.config.max_depth + 1):
            logger.info(f"🌊 Exploring depth {depth}")

            while True:
                batch = self.next_batch(depth)
                if not batch:
                    break

                for item in batch:
                    if not await self.signals.checkpoint():
                        logger.info("⏹️ Discovery stopped by request")
                        return STOPPED
                    if self.pages_discovered >= self.config.max_pages:
                        logger.info(f"📄 Page budget reached ({self.config.max_pages})")
                        return MAX_PAGES

                    await self._process(item, handler)

        logger.info(f"✅ Queue exhausted after {self.pages_discovered} page(s)")
        return EXHAUSTED

    async def _process(self, item: QueueItem, handler: ItemHandler) -> None:
        item.status = QueueStatus.PROCESSING
        item.started_at = time.time()
        self._save(item)

        try:
            page = await handler(item)
        except RunFatalError as e:
            self._finish(item, QueueStatus.FAILED, error=str(e))
            raise
        except Exception as e:
            logger.error(f"❌ Work item failed for {item.url}: {e}")
            self._finish(item, QueueStatus.FAILED, error=str(e))
            return

        if page is not None:
            self.pages_discovered += 1
            item.discovered_page_id = page.id
        self._finish(item, QueueStatus.COMPLETED)

    def _finish(self, item: QueueItem, status: QueueStatus, error: Optional[str] = None) -> None:
        item.status = status
        item.error_message = error
        item.completed_at = time.time()
        self._save(item)

    def _save(self, item: QueueItem) -> None:
        try:
            self.store.update_queue_item(item)
        except Exception as e:
            logger.error(f"❌ Could not persist queue item {item.id}: {e}")
