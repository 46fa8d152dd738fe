"""
Run Controller

Owns one run end to end: the lifecycle state machine, the cooperative
signals, discovery on a browser page, test case generation and
cross-browser execution. Lifecycle commands map one-to-one onto state
machine transitions; every accepted transition is persisted.
"""

import asyncio
import logging
import time
from typing import Iterable, Optional, Set

from .browser.manager import browser_session
from .config.settings import CrawlQAConfig
from .core.errors import InvalidTransitionError, PersistenceError, RunFatalError
from .core.events import ProgressChannel
from .core.models import ConsensusVerdict, Run, RunStatus, TestCase, TestStatus
from .core.registry import RunRegistry, RunSignals
from .core.state_machine import RunStateMachine
from .discovery.engine import DiscoveryEngine
from .execution.cross_browser import CrossBrowserRunner, SessionFactory
from .exploration.steps import StepRunner
from .generators.test_case_generator import TestCaseGenerator
from .locator.self_healing import SelfHealingLocator
from .oracle.base import DecisionOracle
from .oracle.openai_oracle import OpenAIOracle
from .oracle.systematic import SystematicOracle
from .storage.base import DiscoveryStore
from .utils.artifacts import ArtifactStore

logger = logging.getLogger(__name__)


def create_oracle(config: CrawlQAConfig) -> DecisionOracle:
    """Build the oracle named by `config.oracle.provider`."""
    if config.oracle.provider == "systematic":
        return SystematicOracle(max_scenarios=config.crawl.max_scenarios_per_page)
    return OpenAIOracle(config.oracle)


class RunController:
    """
    Drives a single run.

    Typical use::

        controller = RunController(store, config, oracle, registry)
        controller.create_run("https://example.com")
        await controller.run_to_completion()
    """

    def __init__(self, store: DiscoveryStore, config: Optional[CrawlQAConfig] = None,
                 oracle: Optional[DecisionOracle] = None,
                 registry: Optional[RunRegistry] = None,
                 progress: Optional[ProgressChannel] = None,
                 session_factory: Optional[SessionFactory] = None,
                 save_artifacts: bool = True):
        self.store = store
        self.config = config or CrawlQAConfig()
        self.oracle = oracle or create_oracle(self.config)
        self.registry = registry if registry is not None else RunRegistry()
        self.progress = progress or ProgressChannel()
        self.save_artifacts = save_artifacts

        if session_factory is None:
            browser_config = self.config.browser

            def session_factory(engine: str):
                return browser_session(browser_config, engine=engine)

        self.session_factory = session_factory

        self.run: Optional[Run] = None
        self.machine: Optional[RunStateMachine] = None
        self.signals = RunSignals()
        self.artifacts: Optional[ArtifactStore] = None
        self._discovery_finished: Optional[asyncio.Event] = None
        self._pending_events: Set[asyncio.Task] = set()

    # Lifecycle

    def create_run(self, target_url: str) -> Run:
        self.run = self.store.create_run(Run(target_url=target_url))
        self.machine = RunStateMachine(self.run.id, self.run.status)
        self.machine.add_listener(self._on_transition)
        logger.info(f"🆕 Run {self.run.id} created for {target_url}")
        return self.run

    async def start(self) -> Run:
        """Discover the site, then generate test cases. Returns the run."""
        self._require_run()
        self._discovery_finished = asyncio.Event()
        try:
            return await self._discover_and_generate()
        finally:
            self._discovery_finished.set()

    async def _discover_and_generate(self) -> Run:
        self.registry.register(self.run.id, self)
        self.machine.start()

        if self.save_artifacts:
            self.artifacts = ArtifactStore(self.run.target_url, self.config.artifacts_dir,
                                           session_id=f"run_{self.run.id}")

        try:
            async with self.session_factory(self.config.browser.engine) as page:
                engine = DiscoveryEngine(
                    self.store, self.run, page, self.oracle,
                    config=self.config,
                    signals=self.signals,
                    progress=self.progress,
                    artifacts=self.artifacts,
                )
                await engine.discover()
        except RunFatalError as e:
            self._fail(str(e))
            return self.run
        except Exception as e:
            logger.error(f"❌ Run {self.run.id} crashed during discovery: {e}")
            self._fail(f"Discovery crashed: {e}")
            return self.run

        if self.machine.status == RunStatus.CANCELLED:
            self._refresh_counters()
            return self.run

        try:
            TestCaseGenerator(self.store, self.run.id).generate()
            if self.machine.is_discovering:
                self.machine.stop()
            self._refresh_counters()
        except Exception as e:
            logger.error(f"❌ Run {self.run.id} could not generate test cases: {e}")
            self._fail(f"Test generation failed: {e}")
            return self.run

        await self.progress.emit(self.run.id, "ready_for_execution", self.run.pages_discovered,
                                 100, f"{self.run.test_cases} test case(s) ready")
        return self.run

    @property
    def discovery_finished(self) -> bool:
        return self._discovery_finished is None or self._discovery_finished.is_set()

    def pause(self) -> RunStatus:
        self._require_run()
        status = self.machine.pause()
        self.signals.pause()
        return status

    def resume(self) -> RunStatus:
        self._require_run()
        status = self.machine.resume()
        self.signals.resume()
        return status

    def stop(self) -> RunStatus:
        """End discovery early; the loop exits at its next checkpoint."""
        self._require_run()
        status = self.machine.stop()
        self.signals.stop()
        return status

    def cancel(self) -> RunStatus:
        self._require_run()
        status = self.machine.cancel()
        self.signals.cancel()
        return status

    async def execute(self, test_case_ids: Optional[Iterable[int]] = None) -> Run:
        """
        Run the selected (default: all) test cases across the configured engines.

        After a stop the run is already ready for execution while discovery
        finishes its current page; execution waits until test cases exist.
        """
        self._require_run()
        if not self.machine.can_transition(RunStatus.EXECUTING):
            raise InvalidTransitionError(self.machine.status.value, RunStatus.EXECUTING.value)
        if not self.discovery_finished:
            logger.info(f"⏳ Run {self.run.id}: waiting for discovery to wind down before executing")
            await self._discovery_finished.wait()

        self.machine.begin_execution()
        if self.run.id not in self.registry:
            self.registry.register(self.run.id, self)
        self.signals = RunSignals()

        try:
            await self._execute_cases(test_case_ids)
        except RunFatalError as e:
            self._fail(str(e))
            return self.run
        except Exception as e:
            logger.error(f"❌ Run {self.run.id} crashed during execution: {e}")
            self._fail(f"Execution crashed: {e}")
            return self.run

        if self.machine.status == RunStatus.EXECUTING:
            self.machine.complete()
        return self.run

    async def _execute_cases(self, test_case_ids: Optional[Iterable[int]]) -> None:
        test_cases = self.store.list_test_cases(self.run.id)
        if test_cases and test_case_ids is not None:
            wanted = set(test_case_ids)
            test_cases = [tc for tc in test_cases if tc.id in wanted]

        runner = CrossBrowserRunner(
            self.config.execution,
            session_factory=self.session_factory,
            step_runner=StepRunner(SelfHealingLocator(self.config.timeouts.action_timeout),
                                   self.config.crawl, self.config.timeouts),
            artifacts=self.artifacts,
            timeouts=self.config.timeouts,
        )

        for index, test_case in enumerate(test_cases):
            if not await self.signals.checkpoint():
                break
            verdict = await runner.run_test_case(test_case)
            self._record_verdict(test_case, verdict)

            self._refresh_counters()
            await self.progress.emit(
                self.run.id, "executing", self.run.pages_discovered,
                (index + 1) * 100 / len(test_cases),
                f"{test_case.name}: {test_case.status.value}",
            )
        self._refresh_counters()

    def _record_verdict(self, test_case: TestCase, verdict: ConsensusVerdict) -> None:
        """Persist one verdict; a failed write fails that test case only."""
        test_case.status = verdict.status
        test_case.self_healed = verdict.self_healed
        test_case.duration_ms = verdict.duration_ms
        errors = [e.error for e in verdict.executions if e.error]
        test_case.error = errors[0] if errors else None

        try:
            for execution in verdict.executions:
                self.store.add_execution(execution)
            self.store.update_test_case(test_case)
        except PersistenceError as e:
            logger.error(f"❌ Could not save results of '{test_case.name}': {e}")
            test_case.status = TestStatus.FAILED
            test_case.error = f"Results not saved: {e}"
            try:
                self.store.update_test_case(test_case)
            except PersistenceError as retry_error:
                logger.error(f"❌ Could not mark '{test_case.name}' failed: {retry_error}")

    async def run_to_completion(self, execute: bool = True) -> Run:
        await self.start()
        if execute and self.machine.status == RunStatus.READY_FOR_EXECUTION:
            await self.execute()
        return self.run

    # Internals

    def _require_run(self) -> None:
        if self.run is None:
            raise RuntimeError("create_run() must be called first")

    def _fail(self, message: str) -> None:
        logger.error(f"💥 Run {self.run.id} failed: {message}")
        self.run.error_message = message
        try:
            self._refresh_counters()
        except PersistenceError as e:
            logger.error(f"❌ Could not save counters of run {self.run.id}: {e}")
        if self.machine.can_transition(RunStatus.FAILED):
            self.machine.fail()

    def _refresh_counters(self) -> None:
        """Recompute counters from the store and persist the run."""
        self.run.pages_discovered = len(self.store.list_pages(self.run.id))
        test_cases = self.store.list_test_cases(self.run.id)
        self.run.test_cases = len(test_cases)
        self.run.passed = sum(1 for tc in test_cases if tc.status == TestStatus.PASSED)
        self.run.failed = sum(1 for tc in test_cases if tc.status == TestStatus.FAILED)
        self.run.flaky = sum(1 for tc in test_cases if tc.status == TestStatus.FLAKY)
        self.store.update_run(self.run)

    def _on_transition(self, previous: RunStatus, status: RunStatus) -> None:
        self.run.status = status
        if status == RunStatus.RUNNING and self.run.started_at is None:
            self.run.started_at = time.time()
        if status.is_terminal:
            self.run.ended_at = time.time()
            self.registry.deregister(self.run.id)
        try:
            self.store.update_run(self.run)
        except PersistenceError as e:
            logger.error(f"❌ Could not save status {status.value} of run {self.run.id}: {e}")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.progress.emit(
            self.run.id, status.value, self.run.pages_discovered,
            100 if status.is_terminal else 0, f"{previous.value} → {status.value}",
        ))
        self._pending_events.add(task)
        task.add_done_callback(self._pending_events.discard)
