"""
抓取器模块

职责：
- 执行HTTP请求（httpx.AsyncClient，HTTP/2 + 超时 + 跟随重定向）
- 每次请求随机UA与通用请求头
- 将结果封装为 Response（状态码、响应头、正文、可查询文档）
- 将失败映射为 TransportError / HttpStatusError，并附带部分响应
- 可选：Playwright 渲染（如用户安装），用于处理JS重度页面

说明：
- 本模块不做重试、限速与去重，这些策略都由插件完成。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Dict, Mapping, Optional

import httpx
from bs4 import BeautifulSoup

from .config import TransportConfig
from .errors import HttpStatusError, TransportError
from .parser import parse_document
from .utils import build_default_headers

logger = logging.getLogger(__name__)

_DOCUMENT_TYPES = ("html", "xml")
_REQUEST_OPTIONS = ("params", "data", "json", "content", "files", "cookies")


@dataclass
class Response:
    url: str
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    encoding: Optional[str] = None

    @property
    def text(self) -> str:
        return self.body.decode(self.encoding or "utf-8", errors="replace")

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value.lower()
        return ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @cached_property
    def document(self) -> Optional[BeautifulSoup]:
        """HTML/XML 响应解析后的文档；其他类型返回 None。"""
        ctype = self.content_type
        if ctype and not any(t in ctype for t in _DOCUMENT_TYPES):
            return None
        if not self.body:
            return None
        return parse_document(self.text)

    @classmethod
    def from_httpx(cls, r: httpx.Response) -> "Response":
        return cls(
            url=str(r.url),
            status_code=r.status_code,
            headers=dict(r.headers),
            body=r.content,
            encoding=r.encoding,
        )


class Fetcher:
    """
    通用抓取器，支持异步HTTP抓取与可选JS渲染。
    """

    def __init__(self, config: Optional[TransportConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config or TransportConfig()
        self.client = httpx.AsyncClient(
            http2=self.config.http2,
            timeout=httpx.Timeout(self.config.timeout),
            follow_redirects=self.config.follow_redirects,
            transport=transport,
        )

        # Playwright 仅在用户安装时启用
        try:
            from playwright.async_api import async_playwright  # type: ignore
            self._playwright_factory = async_playwright
        except ImportError:
            self._playwright_factory = None

    async def close(self) -> None:
        await self.client.aclose()

    async def fetch(self, url: str, options: Optional[Mapping[str, Any]] = None) -> Response:
        """
        进行抓取，返回 Response。
        - options 支持 method/headers/params/data/json/timeout/render/raise_for_status
        - 网络错误 -> TransportError
        - 非2xx -> HttpStatusError（raise_for_status 为真时），其 response 为完整响应
        """
        options = dict(options or {})
        if options.pop("render", False):
            return await self.render_js(url)

        method = str(options.pop("method", "GET")).upper()
        headers = build_default_headers(self.config.user_agents, {**self.config.headers, **(options.pop("headers", None) or {})})
        raise_for_status = options.pop("raise_for_status", self.config.raise_for_status)
        kwargs: Dict[str, Any] = {k: options[k] for k in _REQUEST_OPTIONS if k in options}
        if "timeout" in options:
            kwargs["timeout"] = httpx.Timeout(options["timeout"])

        try:
            r = await self.client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Timeout on %s: %s", url, e)
            raise TransportError(f"Timeout: {e}", url=url) from e
        except httpx.RequestError as e:
            logger.warning("Network error on %s: %s", url, e)
            raise TransportError(f"Network error: {e}", url=url) from e

        response = Response.from_httpx(r)
        logger.debug("%s %s -> %s", method, response.url, response.status_code)
        if raise_for_status and not response.ok:
            raise HttpStatusError(response.status_code, url=url, response=response)
        return response

    async def render_js(self, url: str) -> Response:
        """
        使用 Playwright 进行JS渲染（如可用）。
        - 若 Playwright 未安装，抛出 TransportError
        - 该方法仅在任务显式要求 render 时调用，避免不必要的资源开销
        """
        if not self._playwright_factory:
            raise TransportError("Playwright not available", url=url)

        try:
            async with self._playwright_factory() as p:
                browser = await p.chromium.launch(headless=True)
                try:
                    page = await browser.new_page()
                    resp = await page.goto(url, wait_until="networkidle")
                    content = await page.content()
                finally:
                    await browser.close()
        except Exception as e:
            logger.error("Playwright error on %s: %s", url, e)
            raise TransportError(f"Playwright error: {e}", url=url) from e

        status = resp.status if resp is not None else 200
        response = Response(
            url=url,
            status_code=status,
            headers={"content-type": "text/html; charset=utf-8"},
            body=content.encode("utf-8"),
            encoding="utf-8",
        )
        if self.config.raise_for_status and not response.ok:
            raise HttpStatusError(status, url=url, response=response)
        return response
