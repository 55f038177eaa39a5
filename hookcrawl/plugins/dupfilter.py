"""
去重插件（dupFilter）

- start：在 crawler.store.seen_urls 上初始化已见集合（已存在则复用）
- before：规范化 URL，已见则取消任务（不抓取、正常完成），否则记录
- on_error：从已见集合中移除该 URL，失败的 URL 之后仍可重新提交或重试

说明：
- on_error 优先级高于 attempt 插件，保证重试入队前 URL 已被移除
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..plugin import Plugin
from ..utils import normalize_url

logger = logging.getLogger(__name__)


class DupFilterPlugin(Plugin):
    name = "dupFilter"
    priority = 95
    priorities = {"before": 95, "on_error": 110}

    def __init__(self, normalizer: Optional[Callable[[str], str]] = None, **normalize_options: Any) -> None:
        super().__init__()
        self.normalize_options = normalize_options
        self.normalizer = normalizer

    def normalize(self, url: str) -> str:
        if self.normalizer is not None:
            return self.normalizer(url)
        return normalize_url(url, **self.normalize_options)

    def start(self, crawler: Any) -> None:
        if crawler.store.seen_urls is None:
            crawler.store.seen_urls = set()
        else:
            logger.info("dupFilter set already exists: %d", len(crawler.store.seen_urls))

    def before(self, task: Any, crawler: Any) -> None:
        normalized = self.normalize(task.url)
        seen = crawler.store.seen_urls
        # 检查与写入之间没有 await，对其他任务而言是原子的
        if normalized in seen:
            logger.debug("Duplicate %s", task.url)
            task.cancel()
        else:
            seen.add(normalized)

    def on_error(self, error: BaseException, task: Any, crawler: Any) -> None:
        crawler.store.seen_urls.discard(self.normalize(task.url))
