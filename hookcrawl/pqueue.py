"""
优先队列模块

职责：
- 基于二叉堆（heapq）的任务存储，比较函数可插拔
- 默认比较：priority 越大越先出队；相同优先级按入队顺序
- values() 迭代的是内部存储的副本，不会消耗真实队列

说明：
- 所有接口都是协程，便于以后替换为分布式存储；当前实现为进程内、单事件循环。
"""

from __future__ import annotations

import heapq
import itertools
from typing import Any, AsyncIterator, Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")

CompareFn = Callable[[Any, Any], int]


def priority_compare(a: Any, b: Any) -> int:
    """a 应排在 b 之前时返回负数。"""
    pa = getattr(a, "priority", 0) or 0
    pb = getattr(b, "priority", 0) or 0
    if pa > pb:
        return -1
    if pa < pb:
        return 1
    return 0


class _Entry:
    __slots__ = ("item", "seq", "compare")

    def __init__(self, item: Any, seq: int, compare: CompareFn) -> None:
        self.item = item
        self.seq = seq
        self.compare = compare

    def __lt__(self, other: "_Entry") -> bool:
        c = self.compare(self.item, other.item)
        if c != 0:
            return c < 0
        # 相同优先级：先入先出
        return self.seq < other.seq


class PriorityQueue(Generic[T]):
    def __init__(self, compare: CompareFn = priority_compare) -> None:
        self.compare = compare
        self._heap: List[_Entry] = []
        self._counter = itertools.count()

    async def enqueue(self, item: T) -> None:
        heapq.heappush(self._heap, _Entry(item, next(self._counter), self.compare))

    async def enqueue_all(self, *items: T) -> None:
        for item in items:
            await self.enqueue(item)

    async def dequeue(self) -> Optional[T]:
        """弹出优先级最高的元素；队列为空时返回 None。"""
        if not self._heap:
            return None
        return heapq.heappop(self._heap).item

    async def peek(self) -> Optional[T]:
        return self._heap[0].item if self._heap else None

    async def size(self) -> int:
        return len(self._heap)

    async def clear(self) -> None:
        self._heap = []

    async def clone(self) -> "PriorityQueue[T]":
        other: PriorityQueue[T] = PriorityQueue(self.compare)
        other._heap = list(self._heap)
        other._counter = itertools.count(next(self._counter))
        return other

    async def values(self) -> AsyncIterator[T]:
        # 复制一份再逐个弹出，保证迭代不影响原队列
        snapshot = await self.clone()
        while await snapshot.size():
            yield await snapshot.dequeue()

    def __aiter__(self) -> AsyncIterator[T]:
        return self.values()
