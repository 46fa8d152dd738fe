"""
Scenario Executor

Runs one persisted scenario on the live page and decides what it revealed:

- a navigation to an unvisited URL is queued one level deeper
- a significant in-page change becomes a virtual page, which is planned
- afterwards the page is brought back to where the scenario started; if
  that is impossible the page is marked as a dead end

Steps are fail-fast: the first failing step ends the scenario.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..browser.page_actor import PageActor
from ..config.settings import CrawlConfig
from ..core.errors import CaptureError, PersistenceError
from ..core.models import DiscoveredPage, InteractionScenario, PageEdge, QueueItem
from ..discovery.queue_manager import QueueManager
from ..state.detector import StateChangeDetector, StateDelta
from ..storage.base import DiscoveryStore
from ..utils.artifacts import ArtifactStore
from ..utils.navigation import same_document, virtual_page_url
from .planner import ScenarioPlanner
from .steps import StepRunner

logger = logging.getLogger(__name__)


@dataclass
class ScenarioOutcome:
    scenario_id: int
    success: bool
    error: Optional[str] = None
    url_changed: bool = False
    new_url: Optional[str] = None
    enqueued: Optional[QueueItem] = None
    state_change: Optional[StateDelta] = None
    virtual_page: Optional[DiscoveredPage] = None
    branch_ended: bool = False
    healed_steps: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def label(self) -> str:
        if self.branch_ended:
            return "dead_end"
        if not self.success:
            return "failed"
        if self.url_changed:
            return "navigated"
        if self.state_change is not None:
            return "state_change"
        return "completed"


class ScenarioExecutor:

    def __init__(self, store: DiscoveryStore, actor: PageActor, detector: StateChangeDetector,
                 step_runner: StepRunner, queue: QueueManager, planner: ScenarioPlanner,
                 artifacts: Optional[ArtifactStore] = None,
                 config: Optional[CrawlConfig] = None):
        self.store = store
        self.actor = actor
        self.detector = detector
        self.step_runner = step_runner
        self.queue = queue
        self.planner = planner
        self.artifacts = artifacts
        self.config = config or CrawlConfig()

    async def execute_scenario(self, scenario: InteractionScenario, page: DiscoveredPage,
                               depth: int) -> ScenarioOutcome:
        logger.info(f"📋 Executing '{scenario.name}' ({len(scenario.steps)} step(s))")

        start_url = self.actor.url
        before_tag = f"before:{scenario.id}"
        after_tag = f"after:{scenario.id}"
        has_before = await self._snapshot(before_tag)

        outcome = ScenarioOutcome(scenario_id=scenario.id, success=True)
        for index, step in enumerate(scenario.steps, 1):
            try:
                result = await self.step_runner.run(self.actor.page, step, healing=True)
            except Exception as e:
                outcome.success = False
                outcome.error = f"Step {index} ({step.describe()}) failed: {e}"
                logger.warning(f"⚠️ {outcome.error}")
                break

            if result is not None and result.healed:
                outcome.healed_steps.append({
                    'step': index, 'selector': result.selector,
                    'strategy': result.strategy, 'mode': result.mode,
                })
            if self.config.action_delay:
                await asyncio.sleep(self.config.action_delay)

        await self.detector.wait_for_settlement()
        end_url = self.actor.url

        # A failed scenario is not replayable, so nothing it reached is recorded.
        changed = False
        if not same_document(end_url, start_url):
            changed = True
            outcome.url_changed = True
            outcome.new_url = end_url
            if outcome.success and not self.queue.is_visited(end_url):
                outcome.enqueued = self.queue.enqueue(
                    end_url, depth + 1,
                    from_page_id=page.id,
                    scenario_id=scenario.id,
                    priority=scenario.priority,
                )
        elif has_before and await self._snapshot(after_tag):
            delta = self.detector.detect(before_tag, after_tag)
            if delta.is_significant:
                changed = True
                if outcome.success:
                    outcome.state_change = delta
                    outcome.virtual_page = await self._materialize_virtual_page(scenario, page, delta)
                else:
                    logger.info(f"↩️ Ignoring {delta.change_type} left behind by failed '{scenario.name}'")
        self.detector.discard(before_tag, after_tag)

        if changed:
            if not await self.actor.return_to(start_url):
                outcome.branch_ended = True
                self._mark_dead_end(page)

        self._mark_executed(scenario, outcome)
        return outcome

    async def _snapshot(self, tag: str) -> bool:
        try:
            await self.detector.snapshot(tag)
            return True
        except CaptureError as e:
            logger.warning(f"⚠️ {e}")
            return False

    async def _materialize_virtual_page(self, scenario: InteractionScenario,
                                        parent: DiscoveredPage,
                                        delta: StateDelta) -> Optional[DiscoveredPage]:
        if self.store.find_virtual_page(parent.id, delta.state_identifier):
            logger.info(f"♻️ UI state {delta.state_identifier} already recorded under page {parent.id}")
            return None

        try:
            capture = await self.actor.capture()
        except CaptureError as e:
            logger.warning(f"⚠️ Could not capture virtual state: {e}")
            return None

        screenshot_path = None
        if self.artifacts is not None and capture.screenshot:
            screenshot_path = await self.artifacts.save_screenshot(
                capture.screenshot, f"virtual_{parent.id}_{delta.state_identifier}"
            )
        elements = await self.actor.extract_elements()

        try:
            virtual = self.store.add_page(DiscoveredPage(
                run_id=parent.run_id,
                url=virtual_page_url(parent.url, delta.state_identifier),
                depth=parent.depth,
                title=capture.title,
                screenshot_path=screenshot_path,
                dom_snapshot=capture.dom,
                elements_count=len(elements),
                is_virtual=True,
                state_identifier=delta.state_identifier,
                parent_page_id=parent.id,
                change_type=delta.change_type,
                triggered_by_scenario_id=scenario.id,
            ))
            if virtual is None:
                return None
            self.store.add_edge(PageEdge(
                run_id=parent.run_id,
                from_page_id=parent.id,
                to_page_id=virtual.id,
                scenario_id=scenario.id,
                action=delta.change_type,
            ))
        except PersistenceError as e:
            logger.error(f"❌ Could not save virtual page: {e}")
            return None

        logger.info(f"🎭 Virtual page {virtual.url} ({delta.change_type})")
        await self.planner.plan_scenarios(virtual, capture, elements)
        return virtual

    def _mark_dead_end(self, page: DiscoveredPage) -> None:
        logger.warning(f"🚧 Branch ended: cannot return to {page.url}")
        page.dead_end = True
        try:
            self.store.update_page(page)
        except PersistenceError as e:
            logger.error(f"❌ Could not flag dead end on page {page.id}: {e}")

    def _mark_executed(self, scenario: InteractionScenario, outcome: ScenarioOutcome) -> None:
        current = self.store.get_scenario(scenario.id)
        if current is None or current.executed:
            logger.debug(f"Scenario {scenario.id} already marked executed")
            return

        current.executed = True
        current.outcome = outcome.label
        current.error_message = outcome.error
        try:
            self.store.update_scenario(current)
        except PersistenceError as e:
            logger.error(f"❌ Could not mark scenario {scenario.id} executed: {e}")
            return
        scenario.executed = True
        scenario.outcome = current.outcome
        scenario.error_message = current.error_message
