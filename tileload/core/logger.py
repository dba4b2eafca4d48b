"""
日志配置 - 基于 loguru

tileload 作为库使用，导入时不改动宿主程序的 loguru sink：
本包的日志默认关闭（logger.disable("tileload")），
宿主程序调用 setup_logging() 或 logger.enable("tileload") 后才会输出。

级别约定:
- DEBUG: 传输方式选择、队列排队/出队、解码细节
- INFO:  客户端池创建与关闭等生命周期事件
- WARNING: 请求失败、回调异常以外的降级处理
- ERROR: 需要关注的故障

环境变量（仅 setup_logging 读取）:
- LOG_LEVEL: 控制台日志级别（开发环境默认 DEBUG，容器内默认 INFO）
- LOG_DIR: 设置后额外写入 <LOG_DIR>/tileload.log

使用方式:
    from tileload.core.logger import logger

    logger.debug("消息")
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from loguru import logger

PACKAGE_NAME = "tileload"

IS_DOCKER = (
    os.path.exists("/.dockerenv")
    or os.environ.get("DOCKER_CONTAINER", "false").lower() == "true"
)

CONSOLE_FORMAT_DEV = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | "
    "<level>{message}</level>"
)

CONSOLE_FORMAT_PROD = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}"

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

logger.disable(PACKAGE_NAME)


def _only_package(record: dict) -> bool:
    return record["name"].startswith(PACKAGE_NAME)


def setup_logging(
    level: str | None = None,
    log_dir: str | Path | None = None,
    console: bool = True,
) -> list[int]:
    """
    启用 tileload 日志并添加 sink

    只添加过滤到本包的 sink，不移除宿主已有的 sink。

    Args:
        level: 控制台日志级别，默认读取 LOG_LEVEL
        log_dir: 文件日志目录，默认读取 LOG_DIR；都为空时不写文件
        console: 是否输出到 stderr

    Returns:
        新增 sink 的 id 列表，可传给 logger.remove() 撤销
    """
    level = (level or os.getenv("LOG_LEVEL") or ("INFO" if IS_DOCKER else "DEBUG")).upper()
    log_dir = log_dir or os.getenv("LOG_DIR")

    handler_ids: list[int] = []
    if console:
        handler_ids.append(
            logger.add(
                sys.stderr,
                format=CONSOLE_FORMAT_PROD if IS_DOCKER else CONSOLE_FORMAT_DEV,
                level=level,
                filter=_only_package,
                colorize=not IS_DOCKER,
                backtrace=not IS_DOCKER,
                diagnose=not IS_DOCKER,
            )
        )

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        # enqueue=False: 同步写入，避免 multiprocessing 信号量泄漏
        handler_ids.append(
            logger.add(
                path / "tileload.log",
                format=FILE_FORMAT,
                level="DEBUG",
                filter=_only_package,
                rotation="50 MB",
                retention="14 days",
                compression="gz",
                enqueue=False,
                encoding="utf-8",
                catch=True,
            )
        )

    # 第三方库日志降噪
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("PIL").setLevel(logging.WARNING)

    logger.enable(PACKAGE_NAME)
    return handler_ids


__all__ = ["logger", "setup_logging"]
