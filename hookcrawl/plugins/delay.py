"""
延迟插件（delay）

- before 阶段按 task.delay_ms（优先）或全局默认延迟休眠，再放行抓取
- 可选抖动：在 ±jitter 比例内随机
- 延迟为 0 或未设置时不做任何事
"""

from __future__ import annotations

import asyncio
from typing import Any

from ..plugin import Plugin
from ..utils import jitter_delay_ms


class DelayPlugin(Plugin):
    name = "delay"
    priority = 90

    def __init__(self, default_ms: float = 0, jitter: float = 0.0) -> None:
        super().__init__()
        self.default_ms = default_ms or 0
        self.jitter = jitter

    def delay_for(self, task: Any) -> float:
        base = task.delay_ms if task.delay_ms is not None else self.default_ms
        return jitter_delay_ms(base or 0, self.jitter)

    async def before(self, task: Any, crawler: Any) -> None:
        ms = self.delay_for(task)
        if ms > 0:
            await asyncio.sleep(ms / 1000.0)
