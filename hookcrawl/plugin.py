"""
插件模块

职责：
- 定义插件结构：名字、优先级、四个生命周期钩子（before/after/finish/on_error）与 start
- 插件注册表：按位置维护已排序的钩子列表

钩子签名：
- before(task, crawler) / after(task, crawler)
- on_error(error, task, crawler)
- finish(crawler) / start(crawler)
均可为普通函数或协程函数。

说明：
- 同一位置按优先级从高到低执行，优先级相同时保持注册顺序（稳定排序）
- priorities 可按位置单独指定优先级，例如 {"before": 100, "on_error": 40}
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional

from .errors import ConfigurationError, DuplicatePluginError

logger = logging.getLogger(__name__)

POSITIONS = ("before", "after", "finish", "on_error")


class Plugin:
    """
    插件基类。子类实现所需的钩子方法即可；也可以直接传入函数：

        Plugin("stats", after=lambda task, crawler: ..., priority=10)
    """

    name: str = ""
    priority: float = 0
    priorities: Mapping[str, float] = {}

    def __init__(
        self,
        name: Optional[str] = None,
        *,
        priority: Optional[float] = None,
        priorities: Optional[Mapping[str, float]] = None,
        **hooks: Callable[..., Any],
    ) -> None:
        if name is not None:
            self.name = name
        if priority is not None:
            self.priority = priority
        if priorities is not None:
            self.priorities = dict(priorities)
        for key, fn in hooks.items():
            if key not in POSITIONS and key != "start":
                raise ConfigurationError(f"Unknown hook '{key}' for plugin {self.name!r}")
            setattr(self, key, fn)

    def priority_for(self, position: str) -> float:
        return self.priorities.get(position, self.priority) or 0

    def hook(self, position: str) -> Optional[Callable[..., Any]]:
        fn = getattr(self, position, None)
        return fn if callable(fn) else None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


class HookEntry(NamedTuple):
    priority: float
    plugin: Plugin
    fn: Callable[..., Any]


async def call_hook(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class PluginRegistry:
    def __init__(self) -> None:
        self.plugins: Dict[str, Plugin] = {}
        self._hooks: Dict[str, List[HookEntry]] = {pos: [] for pos in POSITIONS}

    def register(self, plugin: Plugin) -> Plugin:
        if not plugin.name:
            raise ConfigurationError(f"Plugin without a name: {plugin!r}")
        if plugin.name in self.plugins:
            raise DuplicatePluginError(plugin.name)
        self.plugins[plugin.name] = plugin
        for pos in POSITIONS:
            fn = plugin.hook(pos)
            if fn is None:
                continue
            entries = self._hooks[pos]
            entries.append(HookEntry(plugin.priority_for(pos), plugin, fn))
            # sorted() 是稳定的：同优先级保持注册顺序
            self._hooks[pos] = sorted(entries, key=lambda e: -e.priority)
        logger.debug("Registered plugin %s", plugin.name)
        return plugin

    def hooks(self, position: str) -> List[HookEntry]:
        return self._hooks[position]

    def get(self, name: str) -> Optional[Plugin]:
        return self.plugins.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.plugins

    def __len__(self) -> int:
        return len(self.plugins)
