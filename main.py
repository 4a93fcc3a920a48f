#!/usr/bin/env python3
"""缓存预热命令行工具。

从校园旧系统抓取学生、通讯录、课程、贴图与学程资料，写入本地 SQLite 缓存。

支持的模块：
    - students:  学生资料（学年 × 系代码）
    - contacts:  校园通讯录（行政 / 学术单位）
    - courses:   本学年与上学年的全部课程
    - stickers:  头像贴图
    - programs:  学程清单

用法示例：
    # 按配置（WARMUP_MODULES）预热
    python main.py

    # 清空后只预热学生与课程
    python main.py --modules=students,courses --reset

    # 指定并发数与超时
    python main.py --workers=5 --timeout=600

退出码：所有模块成功为 0，任一模块失败（或超时）为 1。
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

# 将项目根目录添加到 Python 路径，以便直接运行本脚本
sys.path.insert(0, str(Path(__file__).parent))

from apps.warmup import WarmupRunner, WarmupSummary, parse_modules
from common.errors import InvalidInputError
from common.http import close_client, get_client
from common.logger import setup_logging
from core.database import close_db, init_db
from core.store import get_store
from settings import settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CampusCache 缓存预热工具",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--modules",
        default=None,
        help="逗号分隔的预热模块（默认取 WARMUP_MODULES）",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="预热前清空所有缓存表",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="并发 worker 数（默认取 SCRAPER_WORKERS）",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="整体超时秒数（默认取 WARMUP_TIMEOUT）",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="日志级别（默认取 LOG_LEVEL）",
    )
    return parser


async def run_warmup(
    modules: List[str],
    reset: bool = False,
    workers: Optional[int] = None,
    timeout: Optional[float] = None,
) -> WarmupSummary:
    """Create tables, run the warmup and release shared resources."""
    try:
        await init_db()
        runner = WarmupRunner.from_settings(
            get_client(), get_store(), workers=workers, timeout=timeout
        )
        return await runner.run(modules, reset=reset)
    finally:
        # 事件循环关闭前释放连接池
        await close_client()
        await close_db()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI 主入口函数。

    返回：
        int: 退出码，0 表示成功，1 表示有模块失败
    """
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level or settings.log_level)

    try:
        modules = parse_modules(args.modules if args.modules is not None else settings.warmup_modules)
        if args.workers is not None and args.workers < 1:
            raise InvalidInputError(f"--workers must be >= 1, got {args.workers}")
    except InvalidInputError as e:
        logger.error(f"Invalid arguments: {e}")
        return 2
    if not modules:
        logger.warning("No warmup modules selected, nothing to do")
        return 0

    try:
        summary = asyncio.run(
            run_warmup(modules, reset=args.reset, workers=args.workers, timeout=args.timeout)
        )
    except Exception as e:
        logger.exception(f"Warmup failed: {e}")
        return 1

    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
