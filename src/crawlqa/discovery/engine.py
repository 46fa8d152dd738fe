"""
Discovery Engine

Wires the queue, page actor, oracle, planner and scenario executor together
for one run. Each queue item becomes a visit: navigate, capture, inventory,
plan, execute scenarios. New URLs and virtual pages found along the way feed
back into the queue and store.
"""

import logging
from typing import Optional

from ..browser.page_actor import PageActor
from ..config.settings import CrawlQAConfig
from ..core.errors import RunFatalError
from ..core.events import ProgressChannel
from ..core.models import DiscoveredPage, PageEdge, Priority, QueueItem, Run
from ..core.registry import RunSignals
from ..exploration.executor import ScenarioExecutor
from ..exploration.planner import ScenarioPlanner
from ..exploration.steps import StepRunner
from ..locator.self_healing import SelfHealingLocator
from ..oracle.base import DecisionOracle
from ..state.detector import StateChangeDetector
from ..storage.base import DiscoveryStore
from ..utils.artifacts import ArtifactStore
from ..utils.navigation import clean_url, same_document
from .queue_manager import QueueManager

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """Breadth-first discovery of one run on one browser page."""

    def __init__(self, store: DiscoveryStore, run: Run, page, oracle: DecisionOracle,
                 config: Optional[CrawlQAConfig] = None,
                 signals: Optional[RunSignals] = None,
                 progress: Optional[ProgressChannel] = None,
                 artifacts: Optional[ArtifactStore] = None):
        self.store = store
        self.run = run
        self.config = config or CrawlQAConfig()
        self.signals = signals or RunSignals()
        self.progress = progress
        self.artifacts = artifacts

        self.actor = PageActor(page, self.config.crawl, self.config.timeouts)
        self.detector = StateChangeDetector(page, self.config.timeouts.settle_timeout)
        self.queue = QueueManager(store, run.id, run.target_url, self.config.crawl, self.signals)
        self.planner = ScenarioPlanner(store, oracle, self.config.crawl.max_scenarios_per_page)
        self.step_runner = StepRunner(
            SelfHealingLocator(self.config.timeouts.action_timeout),
            self.config.crawl,
            self.config.timeouts,
        )
        self.executor = ScenarioExecutor(
            store, self.actor, self.detector, self.step_runner, self.queue, self.planner,
            artifacts=artifacts, config=self.config.crawl,
        )

    async def discover(self) -> str:
        """Run the BFS loop; returns why it ended."""
        root = self.queue.enqueue(self.run.target_url, 0, priority=Priority.HIGH)
        if root is None and not self.store.has_queue_item(self.run.id, clean_url(self.run.target_url)):
            raise RunFatalError(f"Start URL is not crawlable: {self.run.target_url}")

        logger.info(f"🚀 Discovery started at {self.run.target_url}")
        await self._emit("crawling", f"Starting at {self.run.target_url}")
        reason = await self.queue.drive(self.process_item)

        await self._emit("discovery_complete", f"Discovery ended: {reason}")
        logger.info(
            f"🏁 Discovery ended ({reason}): {self.queue.pages_discovered} page(s), "
            f"{self.queue.pending_count()} still queued"
        )
        return reason

    async def process_item(self, item: QueueItem) -> Optional[DiscoveredPage]:
        """Visit one queued URL. Returns the recorded page."""
        self.queue.mark_visited(item.url)
        await self.actor.navigate(item.url, item.depth)

        if not same_document(self.actor.url, item.url):
            # Redirected; the landing URL counts as visited too.
            self.queue.mark_visited(self.actor.url)

        capture = await self.actor.capture()
        screenshot_path = None
        if self.artifacts is not None and capture.screenshot:
            screenshot_path = await self.artifacts.save_screenshot(
                capture.screenshot, f"page_{item.id}_{capture.title}"
            )
        elements = await self.actor.extract_elements()

        page = self.store.add_page(DiscoveredPage(
            run_id=self.run.id,
            url=item.url,
            depth=item.depth,
            parent_page_id=item.from_page_id,
            title=capture.title,
            screenshot_path=screenshot_path,
            dom_snapshot=capture.dom,
            elements_count=len(elements),
        ))
        if item.from_page_id is not None:
            self.store.add_edge(PageEdge(
                run_id=self.run.id,
                from_page_id=item.from_page_id,
                to_page_id=page.id,
                scenario_id=item.scenario_id,
                action="navigate",
            ))

        logger.info(f"📄 Page {page.id} at depth {item.depth}: {capture.title or item.url}")
        await self._emit("crawling", f"Discovered {capture.title or item.url}",
                         discovered=self.queue.pages_discovered + 1)

        scenarios = await self.planner.plan_scenarios(page, capture, elements)
        for scenario in scenarios:
            if not await self.signals.checkpoint():
                break
            outcome = await self.executor.execute_scenario(scenario, page, item.depth)
            if outcome.branch_ended:
                logger.warning(f"🚧 Skipping remaining scenarios on {page.url}")
                break

        return page

    async def _emit(self, phase: str, message: str, discovered: Optional[int] = None) -> None:
        if self.progress is None:
            return
        count = self.queue.pages_discovered if discovered is None else discovered
        percentage = int(min(100, count * 100 / max(1, self.config.crawl.max_pages)))
        await self.progress.emit(self.run.id, phase, count, percentage, message)
