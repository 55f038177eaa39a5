"""
任务模块

职责：
- 定义任务（Task）及其附属结构：重试策略（AttemptPolicy）、跟进规则（FollowRule）、派生器（Spawner）
- 把 add() 收到的各种输入（Task / dict / URL 字符串）规范化为 Task

说明：
- 任务身份由 meta["id"] 决定，缺省时自动生成
- 以字符串 URL 提交的任务标记为 spawned，真正执行前由 Spawner 生成任务体
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from .errors import ConfigurationError
from .utils import gen_id


@dataclass
class AttemptPolicy:
    """
    重试策略：
    - max_retries: 最大重试次数
    - allowed_statuses: 额外视为成功、不再重试的状态码
    - callback: 自定义决策回调，返回真值时继续执行默认逻辑
    """

    max_retries: int = 0
    allowed_statuses: Tuple[int, ...] = ()
    callback: Optional[Callable[..., Any]] = None

    @classmethod
    def coerce(cls, value: Any, base: Optional["AttemptPolicy"] = None) -> "AttemptPolicy":
        """
        接受以下形式并与 base 合并：
        - AttemptPolicy
        - int：只覆盖 max_retries
        - (max_retries, allowed_statuses[, callback])
        - {"max_retries": ..., "allowed_statuses": [...]}
        """
        base = base or cls()
        if value is None:
            return base
        if isinstance(value, AttemptPolicy):
            return value
        if isinstance(value, bool):
            raise ConfigurationError(f"Invalid attempt policy: {value!r}")
        if isinstance(value, int):
            return dataclasses.replace(base, max_retries=value)
        if isinstance(value, (list, tuple)):
            if not value:
                return base
            max_retries = value[0]
            allowed = tuple(value[1]) if len(value) > 1 and value[1] is not None else base.allowed_statuses
            callback = value[2] if len(value) > 2 and value[2] is not None else base.callback
            return cls(max_retries=max_retries, allowed_statuses=allowed, callback=callback)
        if isinstance(value, Mapping):
            merged = {
                "max_retries": value.get("max_retries", base.max_retries),
                "allowed_statuses": tuple(value.get("allowed_statuses", base.allowed_statuses)),
                "callback": value.get("callback", base.callback),
            }
            return cls(**merged)
        raise ConfigurationError(f"Invalid attempt policy: {value!r}")

    def validate(self) -> None:
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigurationError(f"max_retries 必须是非负整数: {self.max_retries!r}")


@dataclass
class FollowRule:
    """
    跟进规则：selector 求值结果（总是列表）-> filter(列表) -> factory(每个值) -> 新任务。
    factory 可返回 URL 字符串、dict/Task、(url, meta) 元组或 None（跳过）。
    """

    selector: Any
    factory: Optional[Callable[[Any], Any]] = None
    filter: Optional[Callable[[List[Any]], List[Any]]] = None

    @classmethod
    def coerce(cls, value: Any) -> "FollowRule":
        if isinstance(value, FollowRule):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, (list, tuple)) and value:
            selector = value[0]
            factory = value[1] if len(value) > 1 else None
            filter_fn = value[2] if len(value) > 2 else None
            return cls(selector, factory, filter_fn)
        if isinstance(value, Mapping) and "selector" in value:
            return cls(value["selector"], value.get("factory"), value.get("filter"))
        raise ConfigurationError(f"Invalid follow rule: {value!r}")


@dataclass
class Task:
    url: str
    priority: float = 0
    meta: Dict[str, Any] = field(default_factory=dict)
    rule: Any = None
    follow_rules: List[FollowRule] = field(default_factory=list)
    attempts: Optional[AttemptPolicy] = None
    delay_ms: Optional[float] = None
    # 透传给抓取层的参数：method/headers/params/data/json/timeout/render...
    options: Dict[str, Any] = field(default_factory=dict)
    callback: Optional[Callable[..., Any]] = None
    parse_check: Optional[Callable[[Any], bool]] = None
    spawned: bool = False
    cancelled: bool = False
    response: Any = None
    error: Optional[BaseException] = None
    extracted: Any = None

    @property
    def id(self) -> str:
        return self.meta["id"]

    def cancel(self) -> None:
        self.cancelled = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        if "url" not in data:
            raise ConfigurationError(f"Task needs a url: {data!r}")
        data = dict(data)
        follows = []
        if data.get("follow") is not None:
            follows.append(data.pop("follow"))
        data.pop("follow", None)
        follows.extend(data.pop("follow_rules", None) or [])
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        options = dict(kwargs.pop("options", None) or {})
        options.update({k: v for k, v in data.items() if k not in known})
        task = cls(**kwargs, options=options)
        task.follow_rules = [FollowRule.coerce(f) for f in follows]
        if task.attempts is not None:
            task.attempts = AttemptPolicy.coerce(task.attempts)
        task.meta = dict(task.meta or {})
        return task


TaskLike = Union[Task, Mapping[str, Any], str]


def normalize_task(task: TaskLike, meta: Optional[Mapping[str, Any]] = None) -> Task:
    """
    add() 入口的规范化：
    - 字符串：spawned 任务，等待 Spawner 生成任务体
    - dict：转成 Task
    - Task：浅拷贝，合并 meta
    均保证 meta["id"] 存在。
    """
    if isinstance(task, str):
        result = Task(url=task, spawned=True, meta=dict(meta or {}))
    elif isinstance(task, Task):
        result = dataclasses.replace(task, meta={**task.meta, **(meta or {})})
    elif isinstance(task, Mapping):
        result = Task.from_dict(task)
        result.meta.update(meta or {})
    else:
        raise ConfigurationError(f"Cannot build a task from {type(task).__name__}")
    if not result.meta.get("id"):
        result.meta["id"] = gen_id()
    return result


@dataclass
class Spawner:
    """URL 匹配（正则或谓词）-> 任务体工厂。"""

    spawn: Callable[[str, Dict[str, Any]], Any]
    regex: Optional[Union[str, Pattern[str]]] = None
    validator: Optional[Callable[[str, Dict[str, Any]], bool]] = None

    def __post_init__(self) -> None:
        if isinstance(self.regex, str):
            self.regex = re.compile(self.regex)
        if self.regex is None and self.validator is None:
            raise ConfigurationError("Spawner needs a regex or a validator")

    def matches(self, url: str, meta: Dict[str, Any]) -> bool:
        if self.regex is not None and self.regex.search(url):
            return True
        return bool(self.validator and self.validator(url, meta))


def spawn_task(task: Task, spawners: Sequence[Spawner]) -> Optional[Task]:
    """用第一个匹配的 Spawner 生成任务体；无匹配返回 None。"""
    for spawner in spawners:
        if not spawner.matches(task.url, task.meta):
            continue
        body = spawner.spawn(task.url, task.meta) or {}
        if isinstance(body, Task):
            body = {f.name: getattr(body, f.name) for f in dataclasses.fields(body) if f.name != "meta"}
        spawned = Task.from_dict({"url": task.url, **body})
        return dataclasses.replace(
            spawned,
            meta={**task.meta, **spawned.meta},
            priority=body.get("priority", task.priority),
            spawned=True,
        )
    return None
