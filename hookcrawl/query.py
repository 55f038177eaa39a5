"""
抽取规则模块

职责：
- 把规则字符串解析为执行计划（QueryPlan）：
    "[selector]@attr | filter:arg1,arg2 | filter2"
- 把任意形状的规则（字符串/列表/字典/函数）编译成带标签的规则树
- 对文档（或某个节点的局部范围）递归求值

规则形状：
- "sel"                      -> Selector：取第一个匹配；"[sel]" 取全部匹配
- {"key": rule, ...}         -> ObjectOf：同形状字典
- ["[scope]", rule, fn...]   -> ArrayOf：对每个 scope 节点在其局部范围内求值 rule
- [rule, fn, fn...]          -> Piped：对 rule 的结果依次调用函数
- fn                         -> Call：直接调用

说明：
- 未匹配不会抛错：单值返回 None，"[...]" 返回空列表
- 过滤器名字在求值时才查找，未知过滤器抛 UnknownFilterError
"""

from __future__ import annotations

import dataclasses
import functools
import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple, Union

from .errors import MalformedQueryError, QueryError
from .filters import FilterRegistry
from .parser import Node, extract, parse_document, select


_FILTER_SPLIT = re.compile(r"\s*\|(?!=)\s*")
_SELECTOR_RE = re.compile(r"^([^@]*)(?:@\s*([\w\-:]+))?$")
_ARG_RE = re.compile(r"\"([^\"]*)\"|'([^']*)'|([^\s,]+)")
_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?\d*\.\d+$")
_LITERALS = {"true": True, "false": False, "null": None, "none": None}


@dataclass(frozen=True)
class FilterCall:
    name: str
    args: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class QueryPlan:
    selector: str
    attribute: Optional[str] = None
    get_all: bool = False
    filters: Tuple[FilterCall, ...] = ()


def parse_query(query: str) -> QueryPlan:
    """
    解析规则字符串，例如：

        parse_query("[.item]@href | trim | slice:0,10")
        -> QueryPlan(selector=".item", attribute="href", get_all=True,
                     filters=(FilterCall("trim"), FilterCall("slice", (0, 10))))
    """
    if not isinstance(query, str):
        raise MalformedQueryError(f"Query should be a string: {query!r}")
    return _parse_query(query)


@functools.lru_cache(maxsize=2048)
def _parse_query(query: str) -> QueryPlan:
    text = query.strip()
    get_all = False

    if text.startswith("["):
        close = _matching_bracket(text)
        if close < 0:
            raise MalformedQueryError(f"Unbalanced '[' in query: {query!r}")
        get_all = True
        text = text[1:close].strip() + text[close + 1:]

    parts = _FILTER_SPLIT.split(text)
    head = parts[0]
    match = _SELECTOR_RE.match(head.strip())
    if not match:
        raise MalformedQueryError(f"Cannot parse selector in query: {query!r}")
    selector = match.group(1).strip()
    attribute = match.group(2)

    filters = tuple(_parse_filter(call, query) for call in parts[1:])
    return QueryPlan(selector=selector, attribute=attribute, get_all=get_all, filters=filters)


def _matching_bracket(text: str) -> int:
    depth = 0
    for i, ch in enumerate(text):
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _parse_filter(call: str, query: str) -> FilterCall:
    name, _, raw_args = call.partition(":")
    name = name.strip()
    if not name:
        raise MalformedQueryError(f"Empty filter name in query: {query!r}")
    return FilterCall(name=name, args=_parse_args(raw_args))


def _parse_args(raw: str) -> Tuple[Any, ...]:
    args = []
    for m in _ARG_RE.finditer(raw):
        double, single, bare = m.groups()
        if double is not None:
            args.append(double)
        elif single is not None:
            args.append(single)
        elif _INT_RE.match(bare):
            args.append(int(bare))
        elif _FLOAT_RE.match(bare):
            args.append(float(bare))
        elif bare.lower() in _LITERALS:
            args.append(_LITERALS[bare.lower()])
        else:
            args.append(bare)
    return tuple(args)


# ---- 规则树 ----


@dataclass(frozen=True)
class Selector:
    plan: QueryPlan


@dataclass(frozen=True)
class ArrayOf:
    scope: QueryPlan
    inner: "Rule"


@dataclass(frozen=True)
class ObjectOf:
    fields: Tuple[Tuple[str, "Rule"], ...]


@dataclass(frozen=True)
class Piped:
    base: "Rule"
    transforms: Tuple[Callable[[Any], Any], ...]


@dataclass(frozen=True)
class Call:
    fn: Callable[[], Any]


Rule = Union[Selector, ArrayOf, ObjectOf, Piped, Call]
_RULE_TYPES = (Selector, ArrayOf, ObjectOf, Piped, Call)


def compile_rule(rule: Any) -> Rule:
    if isinstance(rule, _RULE_TYPES):
        return rule
    if isinstance(rule, str):
        return Selector(parse_query(rule))
    if isinstance(rule, Mapping):
        return ObjectOf(tuple((key, compile_rule(sub)) for key, sub in rule.items()))
    if isinstance(rule, (list, tuple)):
        return _compile_sequence(list(rule))
    if callable(rule):
        return Call(rule)
    raise MalformedQueryError(f"Unsupported rule type: {type(rule).__name__}")


def _compile_sequence(rule: list) -> Rule:
    if not rule:
        raise MalformedQueryError("Empty rule list")
    if len(rule) == 1:
        return compile_rule(rule[0])
    if not callable(rule[1]):
        scope, rest = rule[0], rule[1:]
        if not isinstance(scope, str):
            raise MalformedQueryError(f"Scope selector should be a string: {scope!r}")
        inner = compile_rule(rest[0]) if len(rest) == 1 else _compile_sequence(rest)
        return ArrayOf(parse_query(scope), inner)
    transforms = rule[1:]
    for fn in transforms:
        if not callable(fn):
            raise MalformedQueryError(f"Transform should be callable: {fn!r}")
    return Piped(compile_rule(rule[0]), tuple(transforms))


def force_all(rule: Rule) -> Rule:
    """把顶层选择器改成取全部匹配（follow 插件用）。"""
    if isinstance(rule, Selector):
        return Selector(dataclasses.replace(rule.plan, get_all=True))
    if isinstance(rule, ArrayOf):
        return ArrayOf(dataclasses.replace(rule.scope, get_all=True), rule.inner)
    return rule


# ---- 求值 ----

_DEFAULT_FILTERS = FilterRegistry()

FiltersArg = Union[FilterRegistry, Mapping[str, Callable[..., Any]], None]


def evaluate(rule: Any, scope: Union[Node, str, bytes], filters: FiltersArg = None) -> Any:
    """对文档或节点求值规则；scope 为字符串/字节时先按HTML解析。"""
    if isinstance(scope, (str, bytes)):
        scope = parse_document(scope)
    return _evaluate(compile_rule(rule), scope, _as_registry(filters))


def _as_registry(filters: FiltersArg) -> FilterRegistry:
    if filters is None:
        return _DEFAULT_FILTERS
    if isinstance(filters, FilterRegistry):
        return filters
    return FilterRegistry(filters)


@functools.singledispatch
def _evaluate(rule: Any, scope: Node, filters: FilterRegistry) -> Any:
    raise MalformedQueryError(f"Unsupported rule node: {rule!r}")


@_evaluate.register
def _(rule: Selector, scope: Node, filters: FilterRegistry) -> Any:
    plan = rule.plan
    values = [extract(node, plan.attribute) for node in select(scope, plan.selector)]
    value: Any = values if plan.get_all else (values[0] if values else None)
    for call in plan.filters:
        fn = filters.get(call.name)
        try:
            value = fn(value, *call.args)
        except QueryError:
            raise
        except Exception as e:
            raise MalformedQueryError(f"Error applying filter '{call.name}' in {plan.selector!r}: {e}") from e
    return value


@_evaluate.register
def _(rule: ArrayOf, scope: Node, filters: FilterRegistry) -> Any:
    nodes = select(scope, rule.scope.selector)
    if rule.scope.get_all:
        return [_evaluate(rule.inner, node, filters) for node in nodes]
    if not nodes:
        return None
    return _evaluate(rule.inner, nodes[0], filters)


@_evaluate.register
def _(rule: ObjectOf, scope: Node, filters: FilterRegistry) -> Any:
    return {key: _evaluate(sub, scope, filters) for key, sub in rule.fields}


@_evaluate.register
def _(rule: Piped, scope: Node, filters: FilterRegistry) -> Any:
    value = _evaluate(rule.base, scope, filters)
    for fn in rule.transforms:
        value = fn(value)
    return value


@_evaluate.register
def _(rule: Call, scope: Node, filters: FilterRegistry) -> Any:
    return rule.fn()
