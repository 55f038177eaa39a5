"""
跟进插件（follow）

- after 阶段：任务带 follow_rules 且响应有文档时，对每条规则：
  1. 用抽取规则求值 selector（强制为列表形式）
  2. 字符串结果按响应 URL 补全为绝对地址
  3. filter(列表) 过滤，默认丢弃空值
  4. factory(值) 生成新任务，默认原样返回（即以 URL 字符串提交）
  5. 结果为元组/列表时按 add(url, meta) 提交，否则按 add(task) 提交
"""

from __future__ import annotations

import logging
from typing import Any, List
from urllib.parse import urljoin

from ..plugin import Plugin
from ..query import compile_rule, evaluate, force_all
from ..task import FollowRule

logger = logging.getLogger(__name__)


def _compact(values: List[Any]) -> List[Any]:
    return [v for v in values if v]


class FollowPlugin(Plugin):
    name = "follow"
    priority = 0

    def after(self, task: Any, crawler: Any) -> None:
        if not task.follow_rules or task.response is None:
            return
        document = getattr(task.response, "document", None)
        if document is None:
            return
        base_url = getattr(task.response, "url", None) or task.url
        for rule in task.follow_rules:
            for item in self.follow(rule, document, base_url, crawler):
                if isinstance(item, (tuple, list)):
                    crawler.add(*item)
                else:
                    crawler.add(item)

    def follow(self, rule: FollowRule, document: Any, base_url: str, crawler: Any) -> List[Any]:
        values = evaluate(force_all(compile_rule(rule.selector)), document, crawler.filters)
        if not isinstance(values, list):
            values = [values]
        values = [urljoin(base_url, v.strip()) if isinstance(v, str) and v.strip() else v for v in values]
        values = (rule.filter or _compact)(values)
        factory = rule.factory or (lambda v: v)
        items = [item for item in (factory(v) for v in values) if item]
        logger.debug("Follow %d link(s) from %s", len(items), base_url)
        return items
