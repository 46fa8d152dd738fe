"""
End-to-end runs through the run controller on a scripted two-page site:
discovery, test generation, cross-browser execution and lifecycle commands
issued while discovery is in progress.
"""

import asyncio

import pytest

from crawlqa.core import QueueStatus, RunRegistry, RunStatus, TestStatus
from crawlqa.core.errors import PersistenceError
from crawlqa.generators import FLOW, INTERACTION, PAGE_LOAD
from crawlqa.oracle import SystematicOracle
from crawlqa.runner import RunController
from crawlqa.storage.memory import InMemoryStore

HOME = "https://shop.test/"
NEXT = "https://shop.test/next"


class HookedOracle(SystematicOracle):
    """Systematic oracle that fires a callback the first time it is consulted."""

    def __init__(self, hook=None):
        super().__init__(max_scenarios=5)
        self.hook = hook
        self.calls = 0

    async def suggest_scenarios(self, observation):
        self.calls += 1
        if self.calls == 1 and self.hook is not None:
            self.hook()
            # let commands scheduled by the hook run while the request is in flight
            await asyncio.sleep(0)
        return await super().suggest_scenarios(observation)


@pytest.fixture
def shop(site):
    site.add(HOME, title="Shop", body="<h1>Shop</h1>",
             elements=[{"selectors": ["#go"], "id": "go", "href": "/next", "text": "Next"}])
    site.add(NEXT, title="Next", body="<h1>Next</h1>")
    return site


@pytest.fixture
def registry():
    return RunRegistry()


@pytest.fixture
def make_controller(shop, store, config, registry):
    config.execution.engines = ["chromium", "firefox"]

    def make(oracle=None):
        return RunController(store, config, oracle=oracle or HookedOracle(), registry=registry,
                             session_factory=shop.session_factory())

    return make


async def test_full_run(make_controller, store, registry, shop):
    controller = make_controller()
    run = controller.create_run(HOME)
    phases = []
    controller.progress.subscribe(lambda event: phases.append(event.phase))

    await controller.run_to_completion()

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.COMPLETED
    assert controller.machine.history == [
        RunStatus.PENDING, RunStatus.RUNNING, RunStatus.READY_FOR_EXECUTION,
        RunStatus.EXECUTING, RunStatus.COMPLETED,
    ]
    assert stored.started_at is not None and stored.ended_at is not None
    assert run.id not in registry

    pages = store.list_pages(run.id)
    assert [(p.url, p.depth) for p in pages] == [(HOME, 0), (NEXT, 1)]
    assert pages[1].parent_page_id == pages[0].id
    assert [(q.url, q.status) for q in store.list_queue_items(run.id)] == [
        (HOME, QueueStatus.COMPLETED), (NEXT, QueueStatus.COMPLETED),
    ]
    edges = store.list_edges(run.id)
    assert [(e.from_page_id, e.to_page_id, e.action) for e in edges] == [
        (pages[0].id, pages[1].id, "navigate")
    ]

    cases = store.list_test_cases(run.id)
    assert sorted(c.type for c in cases) == [INTERACTION, PAGE_LOAD, PAGE_LOAD]
    assert all(c.status == TestStatus.PASSED for c in cases)
    assert (stored.pages_discovered, stored.test_cases, stored.passed) == (2, 3, 3)
    assert (stored.failed, stored.flaky) == (0, 0)

    interaction = next(c for c in cases if c.type == INTERACTION)
    assert interaction.name == "Click Next"
    assert [e.engine for e in store.list_executions(interaction.id)] == ["chromium", "firefox"]

    assert "ready_for_execution" in phases
    assert "executing" in phases


async def test_unreachable_start_url_fails_the_run(make_controller, store, registry, shop):
    shop.add(HOME, status=500)
    controller = make_controller()
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.FAILED
    assert "unreachable" in stored.error_message
    assert stored.test_cases == 0
    assert run.id not in registry


async def test_stop_during_discovery_keeps_what_was_found(make_controller, store, registry):
    holder = {}
    controller = make_controller(HookedOracle(hook=lambda: holder["controller"].stop()))
    holder["controller"] = controller
    run = controller.create_run(HOME)

    await controller.run_to_completion(execute=False)

    assert controller.machine.status == RunStatus.READY_FOR_EXECUTION
    assert run.id in registry
    # The scenario was planned but never run, so nothing past the start page.
    assert [p.url for p in store.list_pages(run.id)] == [HOME]
    cases = store.list_test_cases(run.id)
    assert [c.type for c in cases] == [PAGE_LOAD]

    # A stop during discovery does not halt the later execution phase.
    await controller.execute([cases[0].id])

    assert store.get_run(run.id).status == RunStatus.COMPLETED
    assert store.get_test_case(cases[0].id).status == TestStatus.PASSED


async def test_cancel_during_discovery_skips_generation(make_controller, store, registry):
    holder = {}
    controller = make_controller(HookedOracle(hook=lambda: holder["controller"].cancel()))
    holder["controller"] = controller
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.CANCELLED
    assert stored.pages_discovered == 1
    assert store.list_test_cases(run.id) == []
    assert run.id not in registry


async def test_pause_blocks_until_resume(make_controller, store):
    holder = {}

    def pause_then_schedule_resume():
        holder["controller"].pause()
        asyncio.get_running_loop().call_later(0.05, holder["controller"].resume)

    controller = make_controller(HookedOracle(hook=pause_then_schedule_resume))
    holder["controller"] = controller
    run = controller.create_run(HOME)

    await asyncio.wait_for(controller.run_to_completion(), 5)

    assert controller.machine.history[:4] == [
        RunStatus.PENDING, RunStatus.RUNNING, RunStatus.PAUSED, RunStatus.RUNNING,
    ]
    assert store.get_run(run.id).status == RunStatus.COMPLETED
    assert len(store.list_pages(run.id)) == 2


async def test_flaky_verdict_when_one_engine_is_missing(make_controller, store, shop, config):
    controller = make_controller()
    controller.session_factory = shop.session_factory({"firefox"})
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.COMPLETED
    assert stored.flaky == stored.test_cases == 3
    case = store.list_test_cases(run.id)[0]
    assert case.error.startswith("Engine unavailable")


async def test_in_page_modal_becomes_one_virtual_page(site, store, config, registry):
    site.add(
        HOME, title="Shop", body="<main><h1>Shop</h1></main>",
        elements=[
            {"selectors": ["#subscribe"], "text": "Subscribe", "sets_flag": "modal"},
            {"selectors": ["#close"], "text": "Close", "when_flag": "modal", "clears_flag": "modal"},
        ],
        flag_html={"modal": '<div role="dialog"><h2>Newsletter</h2><button id="close">Close</button></div>'},
    )
    config.execution.engines = ["chromium"]
    controller = RunController(store, config, oracle=HookedOracle(), registry=registry,
                               session_factory=site.session_factory())
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    pages = store.list_pages(run.id)
    virtual = [p for p in pages if p.is_virtual]
    assert len(pages) == 2 and len(virtual) == 1
    assert virtual[0].state_identifier.startswith("modal_opened_")
    assert virtual[0].parent_page_id == pages[0].id

    # The modal's own controls are tested by replaying the click that opened it.
    modal_cases = [c for c in store.list_test_cases(run.id) if c.page_id == virtual[0].id]
    assert sorted(c.name for c in modal_cases) == ["Click Close", "Click Subscribe"]
    assert all(c.start_url == HOME for c in modal_cases)
    assert all(c.status == TestStatus.PASSED for c in modal_cases)
    assert store.get_run(run.id).passed == 4


async def test_execute_requested_right_after_stop_waits_for_test_cases(make_controller, store, registry):
    holder = {}

    def stop_then_execute():
        holder["controller"].stop()
        holder["execution"] = asyncio.ensure_future(holder["controller"].execute())

    controller = make_controller(HookedOracle(hook=stop_then_execute))
    holder["controller"] = controller
    run = controller.create_run(HOME)

    await controller.run_to_completion(execute=False)
    await asyncio.wait_for(holder["execution"], 5)

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.COMPLETED
    cases = store.list_test_cases(run.id)
    assert [(c.type, c.status) for c in cases] == [(PAGE_LOAD, TestStatus.PASSED)]
    assert (stored.test_cases, stored.passed) == (1, 1)
    assert run.id not in registry


class ExecutionWriteFailingStore(InMemoryStore):
    def add_execution(self, execution):
        raise PersistenceError("disk full")


class BrokenTestCaseStore(InMemoryStore):
    def update_test_case(self, test_case):
        raise RuntimeError("connection reset")


async def test_unsaved_results_fail_the_test_case_and_execution_goes_on(shop, config, registry):
    store = ExecutionWriteFailingStore()
    config.execution.engines = ["chromium"]
    controller = RunController(store, config, oracle=HookedOracle(), registry=registry,
                               session_factory=shop.session_factory())
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.COMPLETED
    cases = store.list_test_cases(run.id)
    assert len(cases) == 3
    assert all(c.status == TestStatus.FAILED for c in cases)
    assert all(c.error == "Results not saved: disk full" for c in cases)
    assert stored.failed == 3
    assert run.id not in registry


async def test_unexpected_error_during_execution_fails_the_run(shop, config, registry):
    store = BrokenTestCaseStore()
    config.execution.engines = ["chromium"]
    controller = RunController(store, config, oracle=HookedOracle(), registry=registry,
                               session_factory=shop.session_factory())
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    stored = store.get_run(run.id)
    assert stored.status == RunStatus.FAILED
    assert stored.error_message == "Execution crashed: connection reset"
    assert run.id not in registry


async def test_three_page_journey_becomes_a_flow_test(site, store, config, registry):
    last = "https://shop.test/last"
    site.add(HOME, title="Shop",
             elements=[{"selectors": ["#go"], "id": "go", "href": "/next", "text": "Next"}])
    site.add(NEXT, title="Next",
             elements=[{"selectors": ["#more"], "id": "more", "href": "/last", "text": "More"}])
    site.add(last, title="Last")
    config.crawl.max_depth = 2
    config.execution.engines = ["chromium"]
    controller = RunController(store, config, oracle=HookedOracle(), registry=registry,
                               session_factory=site.session_factory())
    run = controller.create_run(HOME)

    await controller.run_to_completion()

    assert [p.url for p in store.list_pages(run.id)] == [HOME, NEXT, last]
    cases = store.list_test_cases(run.id)
    assert sorted(c.type for c in cases) == [FLOW, INTERACTION, INTERACTION,
                                             PAGE_LOAD, PAGE_LOAD, PAGE_LOAD]
    flow = next(c for c in cases if c.type == FLOW)
    assert flow.name == "Flow: Shop to Last"
    assert flow.status == TestStatus.PASSED

    execution = store.list_executions(flow.id)[0]
    assert [(r.selector, r.status.value) for r in execution.step_results] == [
        ("#go", "passed"), ("#more", "passed"),
    ]
    assert store.get_run(run.id).passed == 6
