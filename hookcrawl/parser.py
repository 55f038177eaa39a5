"""
解析模块

职责：
- 提供基础HTML解析（BeautifulSoup）
- 暴露抽取规则所需的文档接口：select / attribute / text / extract

说明：
- 选择器原样交给 BeautifulSoup 的 CSS 引擎（soupsieve），本模块不做语法校验
- 每个节点（Tag）都可以再次 select，用于嵌套规则的局部查询
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag

Node = Union[BeautifulSoup, Tag]

DEFAULT_FEATURES = "html.parser"


def parse_document(markup: Union[str, bytes], features: str = DEFAULT_FEATURES) -> BeautifulSoup:
    return BeautifulSoup(markup, features)


def select(scope: Node, selector: str) -> List[Tag]:
    """按文档顺序返回 scope 下所有匹配节点；空选择器表示 scope 本身。"""
    if not selector:
        return [scope]
    return list(scope.select(selector))


def attribute(node: Node, name: str) -> Optional[str]:
    value = node.get(name) if isinstance(node, Tag) else None
    if value is None:
        return None
    # class/rel 等多值属性以空格拼接
    if isinstance(value, list):
        return " ".join(value)
    return value


def text(node: Node) -> str:
    return node.get_text()


def own_text(node: Node) -> str:
    """只取节点自身的文本子节点，不含子元素文本。"""
    return "".join(str(child) for child in node.children if isinstance(child, NavigableString))


def extract(node: Node, attr: Optional[str] = None) -> Any:
    """
    从节点取值：
    - None / "text"：文本内容
    - "html"：内部HTML
    - "outerHtml"：包含自身标签的HTML
    - "string"：自身文本节点
    - 其他：对应属性值（不存在时为 None）
    """
    if attr is None or attr == "text":
        return text(node)
    if attr == "html":
        return node.decode_contents()
    if attr == "outerHtml":
        return str(node)
    if attr == "string":
        return own_text(node)
    return attribute(node, attr)
