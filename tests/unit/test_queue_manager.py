"""
Tests for breadth-first scheduling and the drive loop.
"""

import pytest

from crawlqa.config.settings import CrawlConfig
from crawlqa.core.errors import RunFatalError
from crawlqa.core.models import DiscoveredPage, Priority, QueueStatus
from crawlqa.core.registry import RunSignals
from crawlqa.discovery import EXHAUSTED, MAX_PAGES, STOPPED, QueueManager

BASE = "https://shop.test/"


def make_queue(store, run, **overrides):
    settings = dict(max_depth=2, max_pages=50)
    settings.update(overrides)
    return QueueManager(store, run.id, BASE, CrawlConfig(**settings), RunSignals())


def record_page(store, run, item):
    return store.add_page(DiscoveredPage(run_id=run.id, url=item.url, depth=item.depth))


def test_enqueue_is_idempotent(store, run):
    queue = make_queue(store, run)

    first = queue.enqueue("https://shop.test/a", 1)
    again = queue.enqueue("https://shop.test/a#reviews", 1)

    assert first is not None
    assert again is None
    assert len(store.list_queue_items(run.id)) == 1


def test_enqueue_rejects_ineligible_urls(store, run):
    queue = make_queue(store, run, max_depth=1)
    queue.mark_visited("https://shop.test/seen")

    assert queue.enqueue("https://other.test/", 1) is None
    assert queue.enqueue("mailto:help@shop.test", 1) is None
    assert queue.enqueue("https://shop.test/too-deep", 2) is None
    assert queue.enqueue("https://shop.test/seen", 1) is None


def test_next_batch_orders_by_priority_then_fifo(store, run):
    queue = make_queue(store, run)
    queue.enqueue("https://shop.test/low", 1, priority=Priority.LOW)
    queue.enqueue("https://shop.test/medium-1", 1)
    queue.enqueue("https://shop.test/high", 1, priority=Priority.HIGH)
    queue.enqueue("https://shop.test/medium-2", 1, priority="medium")

    urls = [item.url for item in queue.next_batch(1)]

    assert urls == [
        "https://shop.test/high",
        "https://shop.test/medium-1",
        "https://shop.test/medium-2",
        "https://shop.test/low",
    ]


async def test_drive_processes_depths_in_order(store, run):
    queue = make_queue(store, run)
    queue.enqueue(BASE, 0)
    seen = []

    async def handler(item):
        seen.append((item.depth, item.url))
        if item.depth == 0:
            queue.enqueue("https://shop.test/b", 1, priority=Priority.LOW)
            queue.enqueue("https://shop.test/a", 1, priority=Priority.HIGH)
        return record_page(store, run, item)

    reason = await queue.drive(handler)

    assert reason == EXHAUSTED
    assert seen == [(0, BASE), (1, "https://shop.test/a"), (1, "https://shop.test/b")]
    assert queue.pages_discovered == 3
    statuses = {item.status for item in store.list_queue_items(run.id)}
    assert statuses == {QueueStatus.COMPLETED}


async def test_drive_stops_at_page_budget(store, run):
    queue = make_queue(store, run, max_pages=2)
    for name in ("a", "b", "c"):
        queue.enqueue(f"https://shop.test/{name}", 0)

    async def handler(item):
        return record_page(store, run, item)

    reason = await queue.drive(handler)

    assert reason == MAX_PAGES
    assert queue.pages_discovered == 2
    assert queue.pending_count() == 1


async def test_failed_item_does_not_stop_the_loop(store, run):
    queue = make_queue(store, run)
    queue.enqueue("https://shop.test/broken", 0)
    queue.enqueue("https://shop.test/ok", 0)

    async def handler(item):
        if item.url.endswith("broken"):
            raise ValueError("boom")
        return record_page(store, run, item)

    assert await queue.drive(handler) == EXHAUSTED

    items = {item.url: item for item in store.list_queue_items(run.id)}
    assert items["https://shop.test/broken"].status == QueueStatus.FAILED
    assert items["https://shop.test/broken"].error_message == "boom"
    assert items["https://shop.test/ok"].status == QueueStatus.COMPLETED
    assert items["https://shop.test/ok"].discovered_page_id is not None


async def test_fatal_error_escapes_drive(store, run):
    queue = make_queue(store, run)
    queue.enqueue(BASE, 0)

    async def handler(item):
        raise RunFatalError("start page is gone")

    with pytest.raises(RunFatalError):
        await queue.drive(handler)
    assert store.list_queue_items(run.id)[0].status == QueueStatus.FAILED


async def test_stop_leaves_remaining_items_queued(store, run):
    queue = make_queue(store, run)
    for name in ("a", "b", "c"):
        queue.enqueue(f"https://shop.test/{name}", 0)

    async def handler(item):
        queue.signals.stop()
        return record_page(store, run, item)

    assert await queue.drive(handler) == STOPPED
    assert queue.pages_discovered == 1
    assert queue.pending_count() == 2
