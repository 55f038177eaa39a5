"""
解析插件（parse）

- after 阶段：任务带 rule 且响应可解析为文档时，按抽取规则求值，结果写入 task.extracted
- 任务可提供 parse_check(response)，返回假值时跳过解析
- 爬虫级自定义过滤器覆盖同名内置过滤器
"""

from __future__ import annotations

from typing import Any

from ..plugin import Plugin
from ..query import evaluate


class ParsePlugin(Plugin):
    name = "parse"
    priority = 80

    def after(self, task: Any, crawler: Any) -> None:
        if task.rule is None or task.response is None:
            return
        if task.parse_check is not None and not task.parse_check(task.response):
            return
        document = getattr(task.response, "document", None)
        if document is None:
            return
        task.extracted = evaluate(task.rule, document, crawler.filters)
