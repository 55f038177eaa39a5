"""Tests for admission, task life cycle and idle signalling."""

from __future__ import annotations

import asyncio

import pytest

from hookcrawl.errors import TransportError
from hookcrawl.plugin import Plugin


@pytest.mark.asyncio
async def test_tasks_run_in_priority_order(make_crawler, fake_fetcher, wait_for_queue):
    crawler = make_crawler(concurrency=1, auto_start=False)
    priorities = [1, 5, 3, 5, 0, 3]
    futures = [crawler.add({"url": f"http://t/{i}", "priority": p}) for i, p in enumerate(priorities)]
    await wait_for_queue(crawler, len(priorities))

    await crawler.start()
    await asyncio.gather(*futures)

    assert fake_fetcher.calls == ["http://t/1", "http://t/3", "http://t/2", "http://t/5", "http://t/0", "http://t/4"]


@pytest.mark.asyncio
async def test_same_id_coalesces_to_one_future(make_crawler, wait_for_queue):
    crawler = make_crawler(auto_start=False)
    first = crawler.add({"url": "http://a/", "meta": {"id": "same"}})
    second = crawler.add("http://b/", {"id": "same"})
    assert first is second
    assert len(crawler.scheduler._futures) == 1

    await wait_for_queue(crawler, 2)
    await crawler.start()
    task = await first
    assert task.meta["id"] == "same"
    await crawler.join()
    assert not crawler.scheduler.is_pending("same")


@pytest.mark.asyncio
async def test_pending_never_exceeds_concurrency(make_crawler, fake_fetcher):
    fake_fetcher.latency = 0.01
    crawler = make_crawler(concurrency=3)
    seen = []
    crawler.scheduler.on("active", lambda task: seen.append(crawler.scheduler.pending))

    await asyncio.gather(*[crawler.add({"url": f"http://c/{i}"}) for i in range(12)])

    assert fake_fetcher.max_active == 3
    assert max(seen) <= 3
    assert crawler.scheduler.pending == 0


@pytest.mark.asyncio
async def test_empty_and_idle_fire_once_per_transition(make_crawler):
    crawler = make_crawler(concurrency=2)
    events = {"empty": 0, "idle": 0}
    crawler.scheduler.on("empty", lambda: events.__setitem__("empty", events["empty"] + 1))
    crawler.scheduler.on("idle", lambda: events.__setitem__("idle", events["idle"] + 1))

    await asyncio.gather(*[crawler.add({"url": f"http://e/{i}"}) for i in range(3)])
    await crawler.join()
    assert events == {"empty": 1, "idle": 1}

    # already idle: re-checking does not fire again
    await crawler.scheduler._check_signals()
    assert events == {"empty": 1, "idle": 1}

    await crawler.add({"url": "http://e/again"})
    await crawler.join()
    assert events == {"empty": 2, "idle": 2}


@pytest.mark.asyncio
async def test_finish_hooks_and_drain_run_on_idle(fake_fetcher):
    from hookcrawl.crawler import Crawler

    drained = []
    crawler = Crawler({"drain": lambda c: drained.append(c)}, fetcher=fake_fetcher)
    finished = []
    await crawler.use(Plugin("finisher", finish=lambda c: finished.append("done")))

    await crawler.add({"url": "http://f/1"})
    await crawler.join()

    assert finished == ["done"]
    assert drained == [crawler]


@pytest.mark.asyncio
async def test_cancel_in_before_skips_fetch(make_crawler, fake_fetcher):
    crawler = make_crawler()
    after_calls = []
    callback_calls = []
    await crawler.use(Plugin("canceller", priority=1000, before=lambda task, c: task.cancel()))
    await crawler.use(Plugin("watcher", after=lambda task, c: after_calls.append(task.url)))

    task = await crawler.add({"url": "http://x/", "callback": lambda t, c: callback_calls.append(t)})

    assert task.cancelled
    assert task.response is None
    assert task.error is None
    assert fake_fetcher.calls == []
    assert after_calls == []
    assert callback_calls == []


@pytest.mark.asyncio
async def test_callback_runs_before_resolution(make_crawler):
    crawler = make_crawler()
    seen = []

    async def callback(task, c):
        seen.append(task.response.status_code)

    task = await crawler.add({"url": "http://cb/", "callback": callback})
    assert seen == [200]
    assert task.response.status_code == 200


@pytest.mark.asyncio
async def test_hook_exception_rejects_task(make_crawler):
    crawler = make_crawler()

    def boom(task, c):
        raise ValueError("bad hook")

    await crawler.use(Plugin("boom", after=boom))
    with pytest.raises(ValueError, match="bad hook"):
        await crawler.add({"url": "http://boom/"})
    assert crawler.scheduler.pending == 0


@pytest.mark.asyncio
async def test_on_error_exception_rejects_task(make_crawler, fake_fetcher):
    fake_fetcher.failing.add("http://err/")
    crawler = make_crawler()

    def explode(error, task, c):
        raise RuntimeError("handler failed")

    await crawler.use(Plugin("explode", priority=1000, on_error=explode))
    with pytest.raises(RuntimeError, match="handler failed"):
        await crawler.add({"url": "http://err/"})


@pytest.mark.asyncio
async def test_unhandled_error_resolves_with_error(make_crawler, fake_fetcher):
    fake_fetcher.failing.add("http://lost/")
    # callback returning a falsy value swallows the default retry/drop decision
    crawler = make_crawler(attempts=[0, [], lambda ctx: None])

    task = await crawler.add({"url": "http://lost/"})

    assert isinstance(task.error, TransportError)
    assert crawler.scheduler.pending == 0


@pytest.mark.asyncio
async def test_partial_response_attached_on_http_error(make_crawler, fake_fetcher):
    fake_fetcher.pages["http://missing/"] = (404, "<h1>Not here</h1>")
    crawler = make_crawler(attempts=0)

    task = await crawler.add({"url": "http://missing/"})

    assert task.response.status_code == 404
    assert task.error.status_code == 404


@pytest.mark.asyncio
async def test_spawner_builds_task_from_url(make_crawler, fake_fetcher):
    fake_fetcher.pages["http://shop/item/7"] = (200, "<h1>Widget</h1>")
    crawler = make_crawler()
    crawler.register_spawner({"regex": r"/item/\d+", "spawn": lambda url, meta: {"rule": {"name": "h1"}}})

    task = await crawler.add("http://shop/item/7", {"source": "test"})

    assert task.extracted == {"name": "Widget"}
    assert task.meta["source"] == "test"


@pytest.mark.asyncio
async def test_unmatched_url_resolves_without_fetch(make_crawler, fake_fetcher):
    crawler = make_crawler()
    crawler.register_spawner({"validator": lambda url, meta: False, "spawn": lambda url, meta: {}})

    task = await crawler.add("http://nowhere/")

    assert fake_fetcher.calls == []
    assert task.response is None


@pytest.mark.asyncio
async def test_pause_holds_tasks_until_start(make_crawler, fake_fetcher, wait_for_queue):
    crawler = make_crawler()
    crawler.pause()
    future = crawler.add({"url": "http://p/"})
    await wait_for_queue(crawler, 1)
    assert fake_fetcher.calls == []
    assert crawler.scheduler.is_paused

    await crawler.start()
    await future
    assert fake_fetcher.calls == ["http://p/"]


@pytest.mark.asyncio
async def test_raising_concurrency_admits_more(make_crawler, fake_fetcher, wait_for_queue):
    fake_fetcher.latency = 0.01
    crawler = make_crawler(concurrency=1, auto_start=False)
    futures = [crawler.add({"url": f"http://k/{i}"}) for i in range(4)]
    await wait_for_queue(crawler, 4)

    await crawler.start()
    await crawler.set_concurrency(4)
    await asyncio.gather(*futures)

    assert fake_fetcher.max_active > 1
