"""
Tests for cross-browser execution: consensus, the healing retry, engine
failures, prerequisites and cleanup.
"""

import pytest

from crawlqa.config.settings import ExecutionConfig
from crawlqa.core.models import (
    Step,
    StepAction,
    StepStatus,
    Target,
    TestCase,
    TestCaseExecution,
    TestStatus,
)
from crawlqa.execution import CrossBrowserRunner, consensus
from crawlqa.utils.artifacts import ArtifactStore

HOME = "https://shop.test/"


def execution(engine, status, duration=10.0, healed=False):
    return TestCaseExecution(engine=engine, status=status, duration_ms=duration, self_healed=healed)


def click(selector):
    return Step(action=StepAction.CLICK, target=Target(selector=selector))


def case(steps, **kwargs):
    return TestCase(run_id=1, page_id=1, id=7, name="Checkout", type="interaction",
                    start_url=kwargs.pop("start_url", HOME), steps=steps, **kwargs)


def runner(site, engines=("chromium", "firefox"), failing=None, **options):
    return CrossBrowserRunner(
        config=ExecutionConfig(engines=list(engines), screenshot_each_step=False, **options),
        session_factory=site.session_factory(failing),
    )


# Consensus

@pytest.mark.parametrize("statuses, expected", [
    ([TestStatus.PASSED, TestStatus.PASSED], TestStatus.PASSED),
    ([TestStatus.FAILED, TestStatus.FAILED], TestStatus.FAILED),
    ([TestStatus.PASSED, TestStatus.FAILED, TestStatus.PASSED], TestStatus.FLAKY),
    ([], TestStatus.FAILED),
])
def test_consensus_status(statuses, expected):
    executions = [execution(f"e{i}", s) for i, s in enumerate(statuses)]
    assert consensus(executions).status == expected


def test_consensus_duration_and_healing():
    verdict = consensus([
        execution("chromium", TestStatus.PASSED, 100.0, healed=True),
        execution("firefox", TestStatus.PASSED, 300.0),
        execution("webkit", TestStatus.FAILED, 200.0, healed=True),
    ])

    assert verdict.duration_ms == 200.0
    assert verdict.self_healed
    assert len(verdict.executions) == 3


def test_healing_only_counts_from_passing_engines():
    verdict = consensus([
        execution("chromium", TestStatus.FAILED, healed=True),
        execution("firefox", TestStatus.FAILED),
    ])
    assert not verdict.self_healed


# Runner

async def test_passes_on_every_engine(site):
    site.add(HOME, elements=[{"selectors": ["#buy"], "text": "Buy"}])

    verdict = await runner(site).run_test_case(case([click("#buy")]))

    assert verdict.status == TestStatus.PASSED
    assert not verdict.self_healed
    assert [e.engine for e in verdict.executions] == ["chromium", "firefox"]
    assert all(e.test_case_id == 7 and e.run_id == 1 for e in verdict.executions)
    assert [p.engine for p in site.pages] == ["chromium", "firefox"]


async def test_healing_retry_marks_self_healed(site):
    # The primary selector is gone; only the id-substring variant still matches.
    site.add(HOME, elements=[{"selectors": ['[id*="save-btn"]'], "text": "Save"}])

    verdict = await runner(site, engines=["chromium"]).run_test_case(case([click("#save-btn")]))

    chromium = verdict.executions[0]
    assert verdict.status == TestStatus.PASSED
    assert verdict.self_healed
    assert chromium.healed_steps == [{
        "step": "click #save-btn",
        "original_selector": "#save-btn",
        "healed_selector": '[id*="save-btn"]',
        "strategy": "id-contains",
        "mode": "standard",
    }]
    # Fresh navigation for the retry.
    assert site.pages[0].goto_calls == [HOME, HOME]


async def test_no_retry_when_healing_disabled(site):
    site.add(HOME, elements=[{"selectors": ['[id*="save-btn"]'], "text": "Save"}])

    verdict = await runner(site, engines=["chromium"], enable_healing=False).run_test_case(
        case([click("#save-btn")])
    )

    assert verdict.status == TestStatus.FAILED
    assert "#save-btn" in verdict.executions[0].error
    assert site.pages[0].goto_calls == [HOME]


async def test_engine_that_cannot_launch_fails_its_execution(site):
    site.add(HOME, elements=[{"selectors": ["#buy"], "text": "Buy"}])

    verdict = await runner(site, engines=["chromium", "webkit"], failing={"webkit"}).run_test_case(
        case([click("#buy")])
    )

    webkit = verdict.executions[1]
    assert verdict.status == TestStatus.FLAKY
    assert webkit.status == TestStatus.FAILED
    assert webkit.error.startswith("Engine unavailable")


async def test_bad_start_url_fails(site):
    verdict = await runner(site, engines=["chromium"]).run_test_case(
        case([click("#buy")], start_url="https://shop.test/gone")
    )

    assert verdict.status == TestStatus.FAILED
    assert "HTTP 404" in verdict.executions[0].error


async def test_prerequisites_reach_the_ui_state(site):
    site.add(HOME, elements=[
        {"selectors": ["#subscribe"], "text": "Subscribe", "sets_flag": "modal"},
        {"selectors": ["#close"], "text": "Close", "when_flag": "modal", "clears_flag": "modal"},
    ])
    test_case = case([click("#close")], prerequisites=[click("#subscribe")])

    verdict = await runner(site, engines=["chromium"]).run_test_case(test_case)

    assert verdict.status == TestStatus.PASSED
    assert [a[1] for a in site.pages[0].actions] == ["#subscribe", "#close"]


async def test_cleanup_runs_after_a_failed_step(site):
    site.add(HOME, elements=[{"selectors": ["#reset"], "text": "Reset"}])
    test_case = case([click("#missing")], cleanup=[click("#reset"), click("#also-missing")])

    verdict = await runner(site, engines=["chromium"], enable_healing=False).run_test_case(test_case)

    assert verdict.status == TestStatus.FAILED
    assert site.pages[0].actions == [("click", "#reset", "standard")]


async def test_parallel_engines_and_step_screenshots(site, tmp_path):
    site.add(HOME, elements=[{"selectors": ["#buy"], "text": "Buy"}])
    parallel = CrossBrowserRunner(
        config=ExecutionConfig(parallel=True),
        session_factory=site.session_factory(),
        artifacts=ArtifactStore(HOME, base_dir=str(tmp_path), session_id="run_1"),
    )

    verdict = await parallel.run_test_case(case([click("#buy"), Step(action=StepAction.VERIFY,
                                                                     target=Target(selector="body"))]))

    assert verdict.status == TestStatus.PASSED
    assert [e.engine for e in verdict.executions] == ["chromium", "firefox", "webkit"]
    assert all(len(e.screenshots) == 2 for e in verdict.executions)
    assert any(path.endswith("tc7_webkit_step2.png") for path in verdict.executions[2].screenshots)


async def test_step_results_mark_steps_after_a_failure_skipped(site):
    site.add(HOME, elements=[{"selectors": ["#buy"], "text": "Buy"}])
    test_case = case([click("#buy"), click("#missing"), click("#buy")])

    verdict = await runner(site, engines=["chromium"], enable_healing=False).run_test_case(test_case)

    results = verdict.executions[0].step_results
    assert [(r.index, r.selector, r.status) for r in results] == [
        (0, "#buy", StepStatus.PASSED),
        (1, "#missing", StepStatus.FAILED),
        (2, "#buy", StepStatus.SKIPPED),
    ]
    assert "#missing" in results[1].error
    assert results[0].error is None and results[2].error is None
    assert results[2].duration_ms == 0.0
    assert all(r.action == "click" and r.phase == "step" for r in results)


async def test_step_results_cover_prerequisites_and_healing(site):
    site.add(HOME, elements=[
        {"selectors": ["#subscribe"], "text": "Subscribe", "sets_flag": "modal"},
        {"selectors": ['[id*="save-btn"]'], "text": "Save", "when_flag": "modal"},
    ])
    test_case = case([click("#save-btn")], prerequisites=[click("#subscribe")])

    verdict = await runner(site, engines=["chromium"]).run_test_case(test_case)

    results = verdict.executions[0].step_results
    assert verdict.status == TestStatus.PASSED
    # Only the healed retry is reported.
    assert [(r.phase, r.status, r.self_healed) for r in results] == [
        ("prerequisite", StepStatus.PASSED, False),
        ("step", StepStatus.PASSED, True),
    ]


async def test_step_results_when_start_url_fails(site):
    verdict = await runner(site, engines=["chromium"], enable_healing=False).run_test_case(
        case([click("#buy"), click("#pay")], start_url="https://shop.test/gone")
    )

    results = verdict.executions[0].step_results
    assert [r.status for r in results] == [StepStatus.SKIPPED, StepStatus.SKIPPED]


async def test_step_screenshots_are_attached_to_their_results(site, tmp_path):
    site.add(HOME, elements=[{"selectors": ["#buy"], "text": "Buy"}])
    with_screenshots = CrossBrowserRunner(
        config=ExecutionConfig(engines=["chromium"]),
        session_factory=site.session_factory(),
        artifacts=ArtifactStore(HOME, base_dir=str(tmp_path), session_id="run_1"),
    )

    verdict = await with_screenshots.run_test_case(case([click("#buy")], prerequisites=[click("#buy")]))

    results = verdict.executions[0].step_results
    assert results[0].screenshot is None
    assert results[1].screenshot.endswith("tc7_chromium_step1.png")
    assert verdict.executions[0].screenshots == [results[1].screenshot]
