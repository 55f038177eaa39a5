"""
调度器与队列模块

职责：
- 管理待抓取任务的优先队列
- 在并发上限内出队并执行任务生命周期：before -> 抓取 -> after / on_error -> 完成
- 维护任务ID到完成 Future 的映射（同ID重复提交共享同一个 Future）
- 发出 empty / idle / active 事件（边沿触发：每次进入该状态只触发一次）

说明：
- 出队与占用并发名额在同一把 asyncio.Lock 内完成，锁不跨越抓取与钩子执行
- 没有固定数量的 worker：每个执行循环在任务完成后继续尝试出队，直到队列为空或达到并发上限
- 重试不由调度器负责，交给 attempt 插件
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import Counter
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .plugin import call_hook
from .pqueue import PriorityQueue
from .task import Task, TaskLike, normalize_task, spawn_task

if TYPE_CHECKING:
    from .crawler import Crawler

logger = logging.getLogger(__name__)

EVENTS = ("empty", "idle", "active")


class Scheduler:
    def __init__(self, crawler: "Crawler", *, auto_start: bool = True, queue: Optional[PriorityQueue] = None) -> None:
        self.crawler = crawler
        self._queue: PriorityQueue[Task] = queue or PriorityQueue()
        self._lock = asyncio.Lock()
        self._paused = not auto_start
        self._pending = 0
        # 已调用 add() 但尚未写入队列的任务数
        self._enqueuing = 0
        # 每个任务ID在队列中（或即将入队）的副本数
        self._scheduled: Counter[str] = Counter()
        self._futures: Dict[str, asyncio.Future] = {}
        self._listeners: Dict[str, List[Callable[..., Any]]] = {e: [] for e in EVENTS}
        self._waiters: Dict[str, List[asyncio.Future]] = {e: [] for e in EVENTS}
        self._empty_signalled = True
        self._idle_signalled = True
        self._background: set = set()

    @property
    def concurrency(self) -> int:
        return self.crawler.config.concurrency

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def is_idle(self) -> bool:
        return self._pending == 0 and self._enqueuing == 0 and not self._scheduled_total()

    def is_pending(self, task_id: str) -> bool:
        return task_id in self._futures

    async def size(self) -> int:
        return await self._queue.size()

    # ---- 提交 ----

    def add(self, task: TaskLike, meta: Optional[Dict[str, Any]] = None) -> asyncio.Future:
        """
        提交任务，返回该任务ID对应的 Future（完成时结果为最终的 Task）。
        普通函数：可在钩子中调用而不必 await。
        """
        new_task = normalize_task(task, meta)
        future = self._futures.get(new_task.id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._futures[new_task.id] = future
        self._scheduled[new_task.id] += 1
        self._enqueuing += 1
        self._empty_signalled = False
        self._idle_signalled = False
        self._spawn(self._enqueue(new_task))
        return future

    async def _enqueue(self, task: Task) -> None:
        try:
            await self._queue.enqueue(task)
        finally:
            self._enqueuing -= 1
        await self._drain()

    # ---- 运行控制 ----

    def pause(self) -> None:
        self._paused = True

    async def start(self) -> "Scheduler":
        if self._paused:
            self._paused = False
            await self.kick()
        return self

    async def kick(self) -> None:
        """按空余并发名额启动执行循环（并发上限调大或恢复运行时使用）。"""
        slots = min(self.concurrency - self._pending, await self._queue.size())
        for _ in range(max(0, slots)):
            self._spawn(self._drain())

    async def join(self) -> None:
        """等待所有已提交任务执行完毕；已空闲时立即返回。"""
        if self.is_idle and not await self._queue.size():
            return
        await self.on_idle()

    async def close(self) -> None:
        for t in list(self._background):
            t.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def _spawn(self, coro: Any) -> None:
        t = asyncio.ensure_future(coro)
        self._background.add(t)
        t.add_done_callback(self._background.discard)

    # ---- 出队与执行 ----

    async def _admit(self) -> Optional[Task]:
        if self._paused or self._pending >= self.concurrency:
            return None
        task = await self._queue.dequeue()
        if task is None:
            return None
        self._pending += 1
        self._scheduled[task.id] -= 1
        if self._scheduled[task.id] <= 0:
            del self._scheduled[task.id]
        return task

    async def _drain(self) -> None:
        while True:
            async with self._lock:
                task = await self._admit()
            if task is None:
                return
            logger.debug("Start %s (pending=%d)", task.url, self._pending)
            await self._emit("active", task)
            try:
                await self.worker(task)
            except Exception as e:
                logger.exception("Task failed on %s: %s", task.url, e)
                self.reject(e, task)
            finally:
                self._pending -= 1
            await self._check_signals()

    async def worker(self, raw: Task) -> Task:
        crawler = self.crawler
        task = raw
        if raw.spawned:
            task = spawn_task(raw, crawler.spawners)
            if task is None:
                # 无 Spawner 匹配：不抓取，直接完成
                logger.debug("No spawner for %s", raw.url)
                self.resolve(raw)
                return raw

        await crawler.handle_task(task, "before")

        if not task.cancelled:
            try:
                task.response = await crawler.fetcher.fetch(task.url, task.options)
            except Exception as e:
                task.error = e
                partial = getattr(e, "response", None)
                if partial is not None:
                    task.response = partial
                await crawler.handle_error(task, e)
                self._resolve_unhandled(task, e)
                return task

        await crawler.handle_task(task, "after")

        if task.callback is not None and not task.cancelled:
            await call_hook(task.callback, task, crawler)
        self.resolve(task)
        return task

    def _resolve_unhandled(self, task: Task, error: BaseException) -> None:
        # on_error 链既未重新入队也未完成任务：按失败结果完成，避免 Future 永远挂起
        if task.id in self._futures and not self._scheduled.get(task.id):
            logger.warning("Unhandled error on %s: %s", task.url, error)
            self.resolve(task)

    # ---- 完成 ----

    def resolve(self, task: Task) -> None:
        future = self._futures.pop(task.id, None)
        if future is None:
            logger.debug("Task %s already resolved", task.id)
            return
        if not future.done():
            future.set_result(task)

    def reject(self, error: BaseException, task: Task) -> None:
        future = self._futures.pop(task.id, None)
        if future is None:
            logger.debug("Task %s already resolved", task.id)
            return
        if not future.done():
            future.set_exception(error)

    # ---- 事件 ----

    def on(self, event: str, listener: Callable[..., Any]) -> None:
        self._listeners[self._check_event(event)].append(listener)

    def on_empty(self) -> asyncio.Future:
        return self._wait_for("empty")

    def on_idle(self) -> asyncio.Future:
        return self._wait_for("idle")

    def _wait_for(self, event: str) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._waiters[event].append(future)
        return future

    def _check_event(self, event: str) -> str:
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        return event

    async def _check_signals(self) -> None:
        if self._enqueuing or await self._queue.size():
            return
        if not self._empty_signalled:
            self._empty_signalled = True
            await self._emit("empty")
        if self._pending == 0 and not self._idle_signalled:
            self._idle_signalled = True
            logger.debug("Scheduler idle")
            await self._emit("idle")

    async def _emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners[event]):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("Listener for %s failed: %s", event, e)
        waiters, self._waiters[event] = self._waiters[event], []
        for w in waiters:
            if not w.done():
                w.set_result(None)

    def _scheduled_total(self) -> int:
        return sum(self._scheduled.values())
