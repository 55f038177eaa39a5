"""Tests for the heap-backed priority queue."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from hookcrawl.pqueue import PriorityQueue


def item(name, priority=0):
    return SimpleNamespace(name=name, priority=priority)


@pytest.mark.asyncio
async def test_dequeue_highest_priority_first_and_fifo_on_ties():
    q = PriorityQueue()
    await q.enqueue_all(item("a", 1), item("b", 5), item("c", 1), item("d", 5), item("e"))
    order = []
    while await q.size():
        order.append((await q.dequeue()).name)
    assert order == ["b", "d", "a", "c", "e"]


@pytest.mark.asyncio
async def test_empty_queue_returns_none():
    q = PriorityQueue()
    assert await q.dequeue() is None
    assert await q.peek() is None


@pytest.mark.asyncio
async def test_values_does_not_consume_queue():
    q = PriorityQueue()
    await q.enqueue_all(item("low", 1), item("high", 9))
    names = [i.name async for i in q.values()]
    assert names == ["high", "low"]
    assert await q.size() == 2
    assert (await q.peek()).name == "high"


@pytest.mark.asyncio
async def test_custom_comparator_and_clear():
    q = PriorityQueue(compare=lambda a, b: a - b)
    await q.enqueue_all(3, 1, 2)
    assert await q.dequeue() == 1
    await q.clear()
    assert await q.size() == 0
