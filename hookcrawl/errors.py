"""
异常模块

职责：
- 定义爬虫核心的异常层级
  - 抓取类：TransportError（网络/超时）、HttpStatusError（非2xx状态码）
  - 解析类：UnknownFilterError、MalformedQueryError
  - 配置类：DuplicatePluginError、ConfigurationError

说明：
- FetchError 可携带部分响应（例如 404 依然有 headers/body），调度器会把它挂到 task.response 上。
"""

from __future__ import annotations

from typing import Any, Optional


class CrawlError(Exception):
    """所有爬虫异常的基类。"""


class FetchError(CrawlError):
    def __init__(self, message: str, url: str = "", response: Optional[Any] = None) -> None:
        super().__init__(message)
        self.url = url
        self.response = response


class TransportError(FetchError):
    """网络错误、超时等，可由 attempt 插件重试。"""


class HttpStatusError(FetchError):
    """最终响应状态码不在 2xx 范围内。"""

    def __init__(self, status_code: int, url: str = "", response: Optional[Any] = None) -> None:
        super().__init__(f"HTTP {status_code} for {url}", url=url, response=response)
        self.status_code = status_code


class QueryError(CrawlError):
    """抽取规则执行失败。"""


class UnknownFilterError(QueryError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Filter '{name}' not found")
        self.name = name


class MalformedQueryError(QueryError):
    pass


class DuplicatePluginError(CrawlError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Duplicate plugin name: {name}")
        self.name = name


class ConfigurationError(CrawlError, ValueError):
    pass
