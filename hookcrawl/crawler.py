"""
爬虫入口模块

职责：
- 组装抓取器、插件注册表与调度器
- 注册默认插件（delay / attempt / parse / follow，可选 dupFilter）
- 对外暴露 add / use / register_spawner / create 等接口
- 按位置依次执行插件钩子；空闲时执行 finish 钩子与 drain 回调

用法：

    async with Crawler({"concurrency": 4}) as crawler:
        task = await crawler.add({"url": "https://example.com", "rule": {"title": "title"}})
        print(task.extracted)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from .config import CrawlerConfig, merge_config
from .errors import ConfigurationError
from .fetcher import Fetcher
from .filters import FilterRegistry
from .plugin import Plugin, PluginRegistry, call_hook
from .plugins import attempt, delay, dupfilter, follow, parse
from .scheduler import Scheduler
from .task import Spawner, Task, TaskLike

logger = logging.getLogger(__name__)


@dataclass
class CrawlStore:
    """
    插件共享的上下文存储：
    - seen_urls：dupFilter 插件拥有，start 时初始化
    - data：留给自定义插件使用
    """

    seen_urls: Optional[Set[str]] = None
    data: Dict[str, Any] = field(default_factory=dict)


class Crawler:
    def __init__(
        self,
        config: Union[CrawlerConfig, Mapping[str, Any], None] = None,
        *,
        fetcher: Optional[Any] = None,
    ) -> None:
        if config is None:
            config = CrawlerConfig()
        elif isinstance(config, Mapping):
            config = merge_config(CrawlerConfig(), config)
        self.config: CrawlerConfig = config.validate()

        self.store = CrawlStore()
        self.spawners: List[Spawner] = []
        self.filters = FilterRegistry(self.config.filters)
        self.fetcher = fetcher or Fetcher(self.config.transport)
        self._owns_fetcher = fetcher is None

        self.registry = PluginRegistry()
        self._init_plugins()

        self.scheduler = Scheduler(self, auto_start=self.config.auto_start)
        self.scheduler.on("idle", self._on_idle)

    def _init_plugins(self) -> None:
        defaults: List[Plugin] = [
            delay.DelayPlugin(self.config.delay_ms, jitter=self.config.delay_jitter),
            attempt.AttemptPlugin(self.config.attempts),
            parse.ParsePlugin(),
            follow.FollowPlugin(),
        ]
        if self.config.dup_filter:
            defaults.append(dupfilter.DupFilterPlugin())
        for plugin in defaults:
            self.registry.register(plugin)
            # 内置插件的 start 均为同步函数
            start = plugin.hook("start")
            if start is not None:
                start(self)

    # ---- 插件 ----

    @property
    def plugins(self) -> Dict[str, Plugin]:
        return self.registry.plugins

    async def use(self, plugin: Plugin) -> Plugin:
        """注册插件；重名抛出 DuplicatePluginError。start 钩子立即执行一次，失败直接抛出。"""
        self.registry.register(plugin)
        start = plugin.hook("start")
        if start is not None:
            await call_hook(start, self)
        return plugin

    async def handle_task(self, task: Task, position: str) -> None:
        for entry in self.registry.hooks(position):
            if task.cancelled:
                return
            await call_hook(entry.fn, task, self)

    async def handle_error(self, task: Task, error: BaseException) -> None:
        for entry in self.registry.hooks("on_error"):
            if task.cancelled:
                return
            await call_hook(entry.fn, error, task, self)

    async def _on_idle(self) -> None:
        for entry in self.registry.hooks("finish"):
            await call_hook(entry.fn, self)
        if self.config.drain is not None:
            await call_hook(self.config.drain, self)

    # ---- 任务 ----

    def add(self, task: TaskLike, meta: Optional[Dict[str, Any]] = None):
        return self.scheduler.add(task, meta)

    def register_spawner(self, spawner: Union[Spawner, Mapping[str, Any]]) -> Spawner:
        if isinstance(spawner, Mapping):
            spawner = Spawner(**spawner)
        if not callable(spawner.spawn):
            raise ConfigurationError("Spawner.spawn must be callable")
        self.spawners.append(spawner)
        return spawner

    def resolve(self, task: Task) -> None:
        self.scheduler.resolve(task)

    def reject(self, error: BaseException, task: Task) -> None:
        self.scheduler.reject(error, task)

    def create(self, **overrides: Any) -> "Crawler":
        """
        以当前配置为基础深度合并 overrides，返回新实例。
        新实例不共享插件、队列与存储；外部注入的抓取器会被共享。
        """
        fetcher = None if self._owns_fetcher else self.fetcher
        return Crawler(merge_config(self.config, overrides), fetcher=fetcher)

    # ---- 快捷方式 ----

    async def fetch_response(self, task: TaskLike, meta: Optional[Dict[str, Any]] = None) -> Any:
        return (await self.add(task, meta)).response

    async def fetch_body(self, task: TaskLike, meta: Optional[Dict[str, Any]] = None) -> Any:
        response = await self.fetch_response(task, meta)
        return response.body if response is not None else None

    async def extract(self, task: TaskLike, meta: Optional[Dict[str, Any]] = None) -> Any:
        return (await self.add(task, meta)).extracted

    # ---- 运行控制 ----

    @property
    def concurrency(self) -> int:
        return self.config.concurrency

    async def set_concurrency(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(f"concurrency 必须是 >=1 的整数: {value!r}")
        self.config.concurrency = value
        await self.scheduler.kick()

    async def start(self) -> None:
        await self.scheduler.start()

    def pause(self) -> None:
        self.scheduler.pause()

    async def join(self) -> None:
        await self.scheduler.join()

    async def close(self) -> None:
        await self.scheduler.close()
        if self._owns_fetcher:
            await self.fetcher.close()

    async def __aenter__(self) -> "Crawler":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
