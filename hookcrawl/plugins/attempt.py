"""
重试插件（attempt）

行为：
- before：清除上一次的错误
- on_error：retries + 1，计算是否重试：
    状态码不在 2xx/3xx 且不在 allowed_statuses 中（或根本没有响应），并且 retries <= max_retries
  - 重试：重新 add（spawned 任务只带 url + meta，重新走 Spawner 匹配）
  - 放弃：以当前状态完成任务（resolve，而非 reject）
- 任务级 attempts 覆盖全局策略；策略中的 callback 可接管决策，
  返回真值时再执行默认逻辑
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..plugin import Plugin, call_hook
from ..task import AttemptPolicy, Task

logger = logging.getLogger(__name__)


def should_retry_status(response: Any, allowed_statuses: Iterable[int]) -> bool:
    status = getattr(response, "status_code", None) if response is not None else None
    if not status:
        return True
    return not (200 <= status < 400 or status in tuple(allowed_statuses))


@dataclass
class AttemptContext:
    """传给自定义 callback 的决策上下文。"""

    error: BaseException
    should_retry: bool
    max_retries: int
    task: Task
    crawler: Any


def default_decision(ctx: AttemptContext) -> None:
    task, crawler = ctx.task, ctx.crawler
    if ctx.should_retry:
        logger.warning("retry(%s/%s) %s: %s", task.meta["retries"], ctx.max_retries, task.url, ctx.error)
        if task.spawned:
            crawler.add(task.url, task.meta)
        else:
            crawler.add(task)
    else:
        logger.warning("Drop %s: %s", task.url, ctx.error)
        crawler.resolve(task)


class AttemptPlugin(Plugin):
    name = "attempt"
    priority = 100

    def __init__(self, policy: Optional[AttemptPolicy] = None) -> None:
        super().__init__()
        self.policy = AttemptPolicy.coerce(policy)

    def policy_for(self, task: Task) -> AttemptPolicy:
        if task.attempts is None:
            return self.policy
        return AttemptPolicy.coerce(task.attempts, self.policy)

    def before(self, task: Task, crawler: Any) -> None:
        task.error = None

    async def on_error(self, error: BaseException, task: Task, crawler: Any) -> None:
        policy = self.policy_for(task)
        task.meta["retries"] = task.meta.get("retries", 0) + 1
        ctx = AttemptContext(
            error=error,
            should_retry=should_retry_status(task.response, policy.allowed_statuses)
            and task.meta["retries"] <= policy.max_retries,
            max_retries=policy.max_retries,
            task=task,
            crawler=crawler,
        )
        if policy.callback is None:
            default_decision(ctx)
            return
        if await call_hook(policy.callback, ctx):
            default_decision(ctx)
