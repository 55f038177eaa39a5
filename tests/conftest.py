"""Shared fixtures: an in-memory transport standing in for the HTTP layer."""

from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from hookcrawl.crawler import Crawler
from hookcrawl.errors import HttpStatusError, TransportError
from hookcrawl.fetcher import Response


class FakeFetcher:
    def __init__(
        self,
        pages: Optional[Dict[str, Tuple[int, str]]] = None,
        failing: Iterable[str] = (),
        latency: float = 0.0,
    ) -> None:
        self.pages = dict(pages or {})
        self.failing = set(failing)
        self.latency = latency
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url: str, options=None) -> Response:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.latency)
            if url in self.failing:
                raise TransportError("connection refused", url=url)
            status, html = self.pages.get(url, (200, "<html><body></body></html>"))
            response = Response(
                url=url,
                status_code=status,
                headers={"content-type": "text/html; charset=utf-8"},
                body=html.encode("utf-8"),
            )
            if not response.ok:
                raise HttpStatusError(status, url=url, response=response)
            return response
        finally:
            self.active -= 1

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def make_crawler(fake_fetcher):
    """Build crawlers inside the running test loop, all sharing ``fake_fetcher``."""

    def factory(**config) -> Crawler:
        return Crawler(config, fetcher=fake_fetcher)

    return factory


@pytest.fixture
def wait_for_queue():
    """Wait until background enqueues have landed in a paused scheduler."""

    async def wait(crawler: Crawler, size: int) -> None:
        while await crawler.scheduler.size() < size:
            await asyncio.sleep(0)

    return wait
