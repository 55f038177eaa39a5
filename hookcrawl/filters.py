"""
过滤器模块

职责：
- 提供抽取规则中 `| name:arg1,arg2` 形式的内置过滤器
- 维护过滤器注册表，允许爬虫级别注册自定义过滤器

说明：
- 过滤器是纯函数 (value, *args) -> value
- 字符串类过滤器（trim/upper/int/date...）遇到列表时逐个元素处理；
  列表类过滤器（count/slice/first/join...）作用于整个值
"""

from __future__ import annotations

import functools
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from dateutil import parser as dateparser

from .errors import UnknownFilterError

FilterFn = Callable[..., Any]


def elementwise(fn: FilterFn) -> FilterFn:
    @functools.wraps(fn)
    def wrapper(value: Any, *args: Any) -> Any:
        if isinstance(value, list):
            return [fn(v, *args) for v in value]
        return fn(value, *args)

    return wrapper


def count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (list, tuple, str, dict)):
        return len(value)
    return 1


def slice_(value: Any, start: int = 0, end: Optional[int] = None) -> Any:
    if isinstance(value, (list, str)):
        return value[start:end]
    return value


@elementwise
def trim(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


@elementwise
def upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


@elementwise
def lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


@elementwise
def split(value: Any, separator: Optional[str] = None) -> Any:
    return value.split(separator) if isinstance(value, str) else value


def join(value: Any, separator: str = ",") -> Any:
    if isinstance(value, list):
        return separator.join("" if v is None else str(v) for v in value)
    return value


@elementwise
def replace(value: Any, pattern: str, replacement: str = "") -> Any:
    if isinstance(value, str):
        return re.sub(pattern, str(replacement), value)
    return value


@elementwise
def to_int(value: Any, default: Any = None) -> Any:
    match = re.search(r"-?\d+", str(value)) if value is not None else None
    if match:
        return int(match.group(0))
    return default


@elementwise
def to_float(value: Any, default: Any = None) -> Any:
    match = re.search(r"[+-]?(\d*\.)?\d+", str(value)) if value is not None else None
    if match:
        return float(match.group(0))
    return default


def to_bool(value: Any) -> bool:
    return bool(value)


def _comparison(op: Callable[[Any, Any], bool]) -> FilterFn:
    @elementwise
    def compare(value: Any, other: Any) -> bool:
        if value is None:
            return False
        if isinstance(other, (int, float)) and not isinstance(value, (int, float)):
            value = to_float(value)
            if value is None:
                return False
        try:
            return op(value, other)
        except TypeError:
            return False

    return compare


gt = _comparison(lambda a, b: a > b)
gte = _comparison(lambda a, b: a >= b)
lt = _comparison(lambda a, b: a < b)
lte = _comparison(lambda a, b: a <= b)
eq = _comparison(lambda a, b: a == b)
ne = _comparison(lambda a, b: a != b)


def empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def not_empty(value: Any) -> bool:
    return not empty(value)


@elementwise
def to_date(value: Any, append: Optional[str] = None) -> Optional[datetime]:
    """解析日期文本；失败时尝试从文本中找 YYYY?MM?DD[ HH:MM[:SS]]，仍失败返回 None。"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    raw = str(value).strip()
    if append:
        raw = f"{raw} {append}"
    try:
        return dateparser.parse(raw)
    except (ValueError, OverflowError):
        pass
    m = re.search(r"(\d{4})\D*(\d{1,2})\D*(\d{1,2})\D*(\d{2}:\d{2}(?::\d{2})?)?", raw)
    if not m:
        return None
    year, month, day, clock = m.groups()
    try:
        return dateparser.parse(f"{year}-{int(month):02d}-{int(day):02d} {clock or ''}".strip())
    except (ValueError, OverflowError):
        return None


def first(value: Any) -> Any:
    if isinstance(value, (list, str)):
        return value[0] if value else None
    return value


def last(value: Any) -> Any:
    if isinstance(value, (list, str)):
        return value[-1] if value else None
    return value


def reverse(value: Any) -> Any:
    if isinstance(value, (list, str)):
        return value[::-1]
    return value


def unique(value: Any) -> Any:
    if isinstance(value, list):
        seen = []
        for v in value:
            if v not in seen:
                seen.append(v)
        return seen
    return value


def sort(value: Any) -> Any:
    if isinstance(value, list):
        return sorted(value, key=lambda v: (v is None, v))
    return value


def compact(value: Any) -> Any:
    if isinstance(value, list):
        return [v for v in value if v]
    return value


def default(value: Any, fallback: Any = None) -> Any:
    return fallback if empty(value) else value


def numbers(value: Any) -> Any:
    if isinstance(value, str):
        return [int(n) for n in re.findall(r"\d+", value)]
    return []


def urls(value: Any) -> Any:
    if isinstance(value, str):
        return re.findall(r"https?://[^\s\"'<>]+", value)
    return []


_SIZE_UNITS = [
    (("b", "bit", "bits"), 1 / 8),
    (("B", "Byte", "Bytes", "bytes"), 1),
    (("Kb",), 128),
    (("k", "K", "kb", "KB", "KiB", "Ki", "ki"), 1024),
    (("Mb",), 131072),
    (("m", "M", "mb", "MB", "MiB", "Mi", "mi"), 1024 ** 2),
    (("Gb",), 1.342e8),
    (("g", "G", "gb", "GB", "GiB", "Gi", "gi"), 1024 ** 3),
    (("Tb",), 1.374e11),
    (("t", "T", "tb", "TB", "TiB", "Ti", "ti"), 1024 ** 4),
]


@elementwise
def size(value: Any) -> Any:
    """'1.5 MB' -> 1572864；无法识别时原样返回。"""
    if not isinstance(value, str):
        return value
    m = re.search(r"([0-9.,]+)\s*([A-Za-z]*)", value)
    if not m:
        return value
    try:
        amount = float(m.group(1).replace(",", "."))
    except ValueError:
        return value
    unit = m.group(2)
    if not unit:
        return round(amount)
    for names, multiplier in _SIZE_UNITS:
        if unit in names:
            return round(amount * multiplier)
    return value


BUILTIN_FILTERS: Dict[str, FilterFn] = {
    "count": count,
    "length": count,
    "slice": slice_,
    "trim": trim,
    "upper": upper,
    "lower": lower,
    "split": split,
    "join": join,
    "replace": replace,
    "int": to_int,
    "float": to_float,
    "bool": to_bool,
    "gt": gt,
    "gte": gte,
    "lt": lt,
    "lte": lte,
    "eq": eq,
    "ne": ne,
    "empty": empty,
    "not_empty": not_empty,
    "date": to_date,
    "first": first,
    "last": last,
    "reverse": reverse,
    "unique": unique,
    "sort": sort,
    "compact": compact,
    "default": default,
    "numbers": numbers,
    "urls": urls,
    "size": size,
}


class FilterRegistry:
    """内置过滤器 + 自定义过滤器；自定义同名过滤器覆盖内置。"""

    def __init__(self, custom: Optional[Mapping[str, FilterFn]] = None) -> None:
        self._filters: Dict[str, FilterFn] = dict(BUILTIN_FILTERS)
        if custom:
            self._filters.update(custom)

    def register(self, name: str, fn: FilterFn) -> None:
        self._filters[name] = fn

    def get(self, name: str) -> FilterFn:
        try:
            return self._filters[name]
        except KeyError:
            raise UnknownFilterError(name) from None

    def names(self) -> Iterable[str]:
        return self._filters.keys()

    def __contains__(self, name: str) -> bool:
        return name in self._filters
