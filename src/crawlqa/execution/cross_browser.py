"""
Cross-Browser Test Execution

Runs one test case on every configured engine and folds the per-engine
results into a single verdict.

Each engine gets a fresh browser. The first pass runs with healing off; if
any step fails, the whole sequence is replayed once from a fresh navigation
with healing on. A clean replay counts as a self-healed pass.

Every execution carries one result per step of its last attempt; steps after
a failure are reported as skipped.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ..browser.manager import browser_session
from ..config.settings import BrowserConfig, ExecutionConfig, TimeoutConfig
from ..core.errors import NavigationError
from ..core.models import (
    ConsensusVerdict,
    Step,
    StepResult,
    StepStatus,
    TestCase,
    TestCaseExecution,
    TestStatus,
)
from ..exploration.steps import StepRunner
from ..utils.artifacts import ArtifactStore

logger = logging.getLogger(__name__)

# engine name -> async context manager yielding a page
SessionFactory = Callable[[str], Any]


def consensus(executions: List[TestCaseExecution]) -> ConsensusVerdict:
    """
    Combine per-engine executions.

    Some passed and some failed is flaky, all failed is failed, anything else
    passed. Duration is the mean across engines.
    """
    passed = sum(1 for e in executions if e.status == TestStatus.PASSED)
    failed = sum(1 for e in executions if e.status == TestStatus.FAILED)

    if passed > 0 and failed > 0:
        status = TestStatus.FLAKY
    elif failed == len(executions):
        status = TestStatus.FAILED
    else:
        status = TestStatus.PASSED

    duration = sum(e.duration_ms for e in executions) / len(executions) if executions else 0.0
    self_healed = any(e.self_healed for e in executions if e.status == TestStatus.PASSED)

    return ConsensusVerdict(
        status=status,
        duration_ms=duration,
        self_healed=self_healed,
        executions=list(executions),
    )


class CrossBrowserRunner:
    """Executes test cases across browser engines."""

    def __init__(self, config: Optional[ExecutionConfig] = None,
                 session_factory: Optional[SessionFactory] = None,
                 step_runner: Optional[StepRunner] = None,
                 artifacts: Optional[ArtifactStore] = None,
                 timeouts: Optional[TimeoutConfig] = None,
                 browser_config: Optional[BrowserConfig] = None):
        self.config = config or ExecutionConfig()
        self.timeouts = timeouts or TimeoutConfig()
        self.step_runner = step_runner or StepRunner(timeouts=self.timeouts)
        self.artifacts = artifacts

        if session_factory is None:
            browser_config = browser_config or BrowserConfig()

            def session_factory(engine: str):
                return browser_session(browser_config, engine=engine)

        self.session_factory = session_factory

    async def run_test_case(self, test_case: TestCase) -> ConsensusVerdict:
        engines = list(self.config.engines)
        logger.info(f"🧪 Running '{test_case.name}' on {', '.join(engines)}")

        if self.config.parallel:
            executions = await asyncio.gather(
                *(self.run_on_engine(test_case, engine) for engine in engines)
            )
        else:
            executions = []
            for engine in engines:
                executions.append(await self.run_on_engine(test_case, engine))

        verdict = consensus(list(executions))
        icon = {TestStatus.PASSED: "✅", TestStatus.FLAKY: "⚠️"}.get(verdict.status, "❌")
        logger.info(
            f"{icon} '{test_case.name}': {verdict.status.value} "
            f"({verdict.duration_ms:.0f}ms, healed={verdict.self_healed})"
        )
        return verdict

    async def run_on_engine(self, test_case: TestCase, engine: str) -> TestCaseExecution:
        """One engine's execution. Never raises."""
        start = time.time()
        try:
            async with self.session_factory(engine) as page:
                execution = await self._run_with_healing(page, test_case, engine)
        except Exception as e:
            logger.error(f"❌ {engine} could not run '{test_case.name}': {e}")
            execution = TestCaseExecution(
                engine=engine,
                status=TestStatus.FAILED,
                duration_ms=0.0,
                error=f"Engine unavailable: {e}",
            )

        execution.duration_ms = (time.time() - start) * 1000
        execution.test_case_id = test_case.id
        execution.run_id = test_case.run_id
        return execution

    async def _run_with_healing(self, page, test_case: TestCase, engine: str) -> TestCaseExecution:
        screenshots: List[str] = []
        step_results: List[StepResult] = []
        try:
            await self._attempt(page, test_case, engine, False, screenshots, step_results)
            return TestCaseExecution(engine=engine, status=TestStatus.PASSED, duration_ms=0.0,
                                     screenshots=screenshots, step_results=step_results)
        except Exception as first_error:
            if not self.config.enable_healing:
                return TestCaseExecution(engine=engine, status=TestStatus.FAILED, duration_ms=0.0,
                                         error=str(first_error), screenshots=screenshots,
                                         step_results=step_results)
            logger.warning(f"🩹 {engine}: '{test_case.name}' failed ({first_error}), retrying with healing")

        try:
            healed_steps = await self._attempt(page, test_case, engine, True, screenshots, step_results)
        except Exception as e:
            return TestCaseExecution(engine=engine, status=TestStatus.FAILED, duration_ms=0.0,
                                     error=str(e), screenshots=screenshots,
                                     step_results=step_results)

        return TestCaseExecution(
            engine=engine,
            status=TestStatus.PASSED,
            duration_ms=0.0,
            screenshots=screenshots,
            self_healed=True,
            healed_steps=healed_steps,
            step_results=step_results,
        )

    async def _attempt(self, page, test_case: TestCase, engine: str, healing: bool,
                       screenshots: List[str], step_results: List[StepResult]) -> List[Dict[str, Any]]:
        """
        Navigate, run prerequisites and steps, then clean up. Raises on the
        first failing step; `step_results` is refilled for this attempt, with
        everything after the failure marked skipped.
        """
        planned = ([('prerequisite', step) for step in test_case.prerequisites]
                   + [('step', step) for step in test_case.steps])
        step_results[:] = [_skipped_result(index, phase, step)
                           for index, (phase, step) in enumerate(planned)]

        response = await page.goto(test_case.start_url, wait_until='domcontentloaded',
                                   timeout=self.timeouts.navigation_timeout)
        if response is not None and response.status >= 400:
            raise NavigationError(test_case.start_url, 1, f"HTTP {response.status}")

        healed_steps: List[Dict[str, Any]] = []
        step_number = 0
        try:
            for result, (phase, step) in zip(step_results, planned):
                started = time.time()
                try:
                    result.self_healed = await self._run_step(page, step, healing, healed_steps)
                except Exception as e:
                    result.status = StepStatus.FAILED
                    result.error = str(e)
                    raise
                finally:
                    result.duration_ms = (time.time() - started) * 1000
                result.status = StepStatus.PASSED

                if phase == 'step':
                    step_number += 1
                    if self.config.screenshot_each_step:
                        path = await self._checkpoint(page, test_case, engine, step_number)
                        if path:
                            result.screenshot = path
                            screenshots.append(path)
        finally:
            await self._cleanup(page, test_case.cleanup)

        return healed_steps

    async def _run_step(self, page, step: Step, healing: bool,
                        healed_steps: List[Dict[str, Any]]) -> bool:
        """Run one step; True when it only succeeded through healing."""
        outcome = await self.step_runner.run(page, step, healing=healing)
        if outcome is None or not outcome.healed:
            return False
        healed_steps.append({
            'step': step.describe(),
            'original_selector': step.target.selector if step.target else None,
            'healed_selector': outcome.selector,
            'strategy': outcome.strategy,
            'mode': outcome.mode,
        })
        return True

    async def _checkpoint(self, page, test_case: TestCase, engine: str, number: int) -> Optional[str]:
        if self.artifacts is None:
            return None
        try:
            data = await page.screenshot(full_page=False)
        except Exception as e:
            logger.debug(f"Checkpoint screenshot failed: {e}")
            return None
        return await self.artifacts.save_screenshot(
            data, f"tc{test_case.id}_{engine}_step{number}"
        )

    async def _cleanup(self, page, steps: List[Step]) -> None:
        for step in steps:
            try:
                await self.step_runner.run(page, step, healing=True)
            except Exception as e:
                logger.debug(f"Cleanup step '{step.describe()}' failed (ignored): {e}")


def _skipped_result(index: int, phase: str, step: Step) -> StepResult:
    return StepResult(
        index=index,
        action=step.action.value,
        status=StepStatus.SKIPPED,
        phase=phase,
        selector=step.target.selector if step.target else None,
        value=step.value,
        description=step.describe(),
    )
