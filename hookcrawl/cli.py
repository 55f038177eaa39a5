"""
CLI 入口模块

用法：
    先在 config.json 中配置好参数，再运行：
    python -m hookcrawl.cli --config config.json

配置示例：
    {
      "seeds": ["https://quotes.toscrape.com/"],
      "concurrency": 4,
      "rule": {"quotes": ["[.quote]", {"text": ".text", "author": ".author"}]},
      "follow": ["[li.next a]@href"],
      "dup_filter": true,
      "output": "quotes.jsonl"
    }

说明：
- 读取配置，初始化爬虫，提交 seeds 并等待全部任务结束。
- 每个任务的抽取结果以 JSON Lines 写入 output（未配置时输出到标准输出）。
- follow 产生的新任务沿用同样的 rule 与 follow。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import IO, Any, Dict, List

from .config import CrawlerConfig, load_config
from .crawler import Crawler
from .plugin import Plugin
from .task import FollowRule, Task


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


class JsonLinesExport(Plugin):
    """把每个任务的抽取结果写成一行 JSON。"""

    name = "jsonlExport"
    priority = -10

    def __init__(self, out: IO[str]) -> None:
        super().__init__()
        self.out = out
        self.count = 0

    def after(self, task: Task, crawler: Crawler) -> None:
        if task.extracted is None:
            return
        record = {"url": task.url, "data": task.extracted}
        self.out.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        self.count += 1

    def finish(self, crawler: Crawler) -> None:
        self.out.flush()
        logging.info("已导出 %d 条记录", self.count)


def build_task(url: str, cfg: CrawlerConfig) -> Dict[str, Any]:
    follows: List[FollowRule] = []
    for raw in cfg.follow:
        follows.append(FollowRule(FollowRule.coerce(raw).selector, factory=lambda u: build_task(u, cfg)))
    return {"url": url, "rule": cfg.rule, "follow_rules": follows}


async def main(config_path: str) -> None:
    cfg = load_config(config_path)

    if not cfg.seeds:
        logging.info("未提供 seeds，退出爬虫。")
        return

    out = open(cfg.output, "w", encoding="utf-8") if cfg.output else sys.stdout
    try:
        async with Crawler(cfg) as crawler:
            await crawler.use(JsonLinesExport(out))
            futures = [crawler.add(build_task(url, cfg)) for url in cfg.seeds]
            results = await asyncio.gather(*futures, return_exceptions=True)
            for url, result in zip(cfg.seeds, results):
                if isinstance(result, BaseException):
                    logging.error("任务失败 %s: %s", url, result)
            await crawler.join()
    finally:
        if out is not sys.stdout:
            out.close()


def _parse_args() -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="插件化异步爬虫CLI")
    ap.add_argument("--config", required=True, help="配置文件路径（JSON）")
    return ap.parse_args()


def run() -> None:
    args = _parse_args()
    asyncio.run(main(args.config))


if __name__ == "__main__":
    run()
