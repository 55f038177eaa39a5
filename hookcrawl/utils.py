"""
工具函数模块

职责：
- 随机UA/请求头生成
- 抖动延迟计算（用于 delay 插件）
- URL 规范化（用于去重插件）
- 任务ID生成
"""

from __future__ import annotations

import random
import re
import urllib.parse
import uuid
from typing import Dict, List, Optional, Pattern, Sequence


DEFAULT_UA_POOL = [
    # 简单内置UA池；可在配置中覆盖
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.0 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/118.0 Safari/537.36",
]

DEFAULT_PORTS = {"http": "80", "https": "443"}


def pick_user_agent(pool: List[str] | None) -> str:
    """从给定UA池或默认池随机选取一个UA。"""
    candidates = pool if pool else DEFAULT_UA_POOL
    return random.choice(candidates)


def build_default_headers(ua_pool: List[str] | None, extra: Dict[str, str] | None = None) -> Dict[str, str]:
    """构造默认请求头：随机UA + 通用头，extra 中的同名头优先。"""
    headers = {
        "User-Agent": pick_user_agent(ua_pool),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }
    if extra:
        headers.update(extra)
    return headers


def jitter_delay_ms(base_ms: float, rate: float = 0.3) -> float:
    """
    计算带抖动的延迟时间（毫秒）。
    - base_ms: 基础延迟
    - rate: 抖动比例（0~1），默认0.3表示在 ±30% 范围随机。
    """
    if base_ms <= 0:
        return 0
    if rate <= 0:
        return base_ms
    delta = base_ms * rate
    return base_ms + random.uniform(-delta, delta)


def gen_id() -> str:
    return uuid.uuid4().hex


def normalize_url(
    url: str,
    *,
    default_protocol: str = "http",
    strip_www: bool = True,
    strip_authentication: bool = True,
    strip_hash: bool = True,
    remove_query_parameters: Sequence[Pattern[str] | str] = (re.compile(r"^utm_\w+", re.I),),
    sort_query_parameters: bool = True,
    remove_trailing_slash: bool = True,
) -> str:
    """
    规范化URL，用于判重：
    - 补全缺省协议（//host 或 host/path 形式）
    - scheme/host 小写，去掉默认端口
    - 可选：去掉 www.、认证信息、片段（#hash）
    - 删除匹配的查询参数（默认 utm_*），按键排序
    - 去掉路径末尾的 /
    """
    url = url.strip()
    if url.startswith("//"):
        url = f"{default_protocol}:{url}"
    elif not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", url):
        url = f"{default_protocol}://{url}"

    parsed = urllib.parse.urlsplit(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if strip_www and host.startswith("www."):
        host = host[4:]
    netloc = host
    port = _safe_port(parsed)
    if port and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{netloc}:{port}"
    if not strip_authentication and parsed.username:
        auth = parsed.username
        if parsed.password:
            auth = f"{auth}:{parsed.password}"
        netloc = f"{auth}@{netloc}"

    path = re.sub(r"/{2,}", "/", parsed.path)
    if remove_trailing_slash:
        path = path.rstrip("/")

    pairs = urllib.parse.parse_qsl(parsed.query, keep_blank_values=True)
    pairs = [(k, v) for k, v in pairs if not _matches_any(k, remove_query_parameters)]
    if sort_query_parameters:
        pairs.sort()
    query = urllib.parse.urlencode(pairs)

    fragment = "" if strip_hash else parsed.fragment
    return urllib.parse.urlunsplit((scheme, netloc, path, query, fragment))


def _safe_port(parsed: urllib.parse.SplitResult) -> Optional[str]:
    try:
        port = parsed.port
    except ValueError:
        return None
    return str(port) if port is not None else None


def _matches_any(key: str, patterns: Sequence[Pattern[str] | str]) -> bool:
    for pattern in patterns:
        if isinstance(pattern, str):
            if key == pattern:
                return True
        elif pattern.search(key):
            return True
    return False
