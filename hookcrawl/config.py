"""
配置模块

职责：
- 定义配置数据结构（使用 Python 标准库 dataclasses）
- 从 JSON 文件加载配置，并进行基本校验与默认值填充
- 深度合并配置（Crawler.create 派生新实例时使用）

说明：
- 使用 JSON 以减少外部依赖（不使用 YAML）
- 回调类配置（drain、filters、attempts.callback）只能在代码中传入
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .errors import ConfigurationError
from .task import AttemptPolicy


@dataclass
class TransportConfig:
    user_agents: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0
    # 使用HTTP/2（如站点不支持，httpx会回退）
    http2: bool = True
    follow_redirects: bool = True
    # 非2xx 状态码抛出 HttpStatusError，交给 on_error 链处理
    raise_for_status: bool = True


@dataclass
class CrawlerConfig:
    concurrency: int = 2
    attempts: AttemptPolicy = field(default_factory=lambda: AttemptPolicy(max_retries=1))
    delay_ms: float = 0
    # delay 插件的抖动比例（0~1）
    delay_jitter: float = 0.0
    transport: TransportConfig = field(default_factory=TransportConfig)
    filters: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    auto_start: bool = True
    # 为真时默认注册 dupFilter 插件
    dup_filter: bool = False
    drain: Optional[Callable[..., Any]] = None
    # 以下字段仅供 CLI 使用
    seeds: List[str] = field(default_factory=list)
    rule: Any = None
    follow: List[Any] = field(default_factory=list)
    output: str = ""

    def validate(self) -> "CrawlerConfig":
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int) or self.concurrency < 1:
            raise ConfigurationError(f"concurrency 必须是 >=1 的整数: {self.concurrency!r}")
        if not isinstance(self.attempts, AttemptPolicy):
            self.attempts = AttemptPolicy.coerce(self.attempts)
        self.attempts.validate()
        if self.delay_ms is None or self.delay_ms < 0:
            raise ConfigurationError(f"delay_ms 不能为负数: {self.delay_ms!r}")
        if not 0 <= self.delay_jitter <= 1:
            raise ConfigurationError(f"delay_jitter 必须在 0~1 之间: {self.delay_jitter!r}")
        return self


def merge_config(base: Any, overrides: Mapping[str, Any]) -> Any:
    """
    深度合并：
    - 嵌套 dataclass 逐字段合并
    - dict 按键合并
    - attempts 支持 int / 元组 / dict 简写
    - 其他值直接替换
    返回新对象，不修改 base。
    """
    if not dataclasses.is_dataclass(base):
        raise ConfigurationError(f"Cannot merge into {type(base).__name__}")
    names = {f.name for f in dataclasses.fields(base)}
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in names:
            raise ConfigurationError(f"Unknown config option: {key}")
        current = getattr(base, key)
        if isinstance(current, AttemptPolicy):
            changes[key] = AttemptPolicy.coerce(value, current)
        elif dataclasses.is_dataclass(current) and isinstance(value, Mapping):
            changes[key] = merge_config(current, value)
        elif isinstance(current, dict) and isinstance(value, Mapping):
            changes[key] = {**current, **value}
        else:
            changes[key] = value
    return dataclasses.replace(base, **changes)


def load_config(path: str) -> CrawlerConfig:
    """
    从 JSON 文件加载配置，返回 CrawlerConfig 对象。

    - 填充默认值（dataclass 默认）
    - 反序列化嵌套结构（transport、attempts）
    - 校验并发、重试与延迟参数
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"配置文件不存在: {path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise ConfigurationError(f"配置文件顶层必须是对象: {path}")

    return merge_config(CrawlerConfig(), raw).validate()
