#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
日志配置

- 控制台：按级别着色
- 文件：轮转写入 autoglm_agent.log，ERROR 以上另写 error.log
- 第三方库（httpx/openai/PIL）只输出 WARNING 以上
- 模型请求的网络日志辅助函数

步骤循环跑在 task-worker-N 线程里，日志格式带上线程名，方便区分新旧任务。
"""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s [%(threadName)s] %(levelname)-8s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(threadName)s] %(levelname)s %(name)s (%(filename)s:%(lineno)d): %(message)s"

QUIET_LOGGERS = ("httpx", "httpcore", "openai", "PIL")


class ColoredFormatter(logging.Formatter):
    """控制台着色，只改显示用的级别名"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # record 由多个 handler 共享，着色只作用于副本
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


def _rotating_handler(
    path: Path,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: str = "logs",
    log_file: str = "autoglm_agent.log",
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    配置根 logger，重复调用会替换之前的 handler

    Args:
        log_level: 控制台日志级别名称，无法识别时按 INFO 处理
        log_dir: 日志目录，不存在时自动创建
        log_file: 主日志文件名
        enable_console: 输出到控制台
        enable_file: 输出到轮转文件
        max_bytes: 单个文件上限
        backup_count: 轮转保留份数
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = []
    if enable_console:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        handlers.append(console)

    if enable_file:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        # 文件记录全部级别
        handlers.append(_rotating_handler(directory / log_file, logging.DEBUG, max_bytes, backup_count))
        handlers.append(_rotating_handler(directory / "error.log", logging.ERROR, max_bytes, backup_count))

    root.setLevel(logging.DEBUG if enable_file else level)
    for handler in handlers:
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        f"Logging initialized: level={log_level}, dir={log_dir}, file={enable_file}"
    )


def log_network_request(logger: logging.Logger, method: str, url: str, message_count: int) -> None:
    """记录模型请求开始"""
    logger.info(f"[REQ] {method} {url} ({message_count} messages)")


def log_network_response(
    logger: logging.Logger,
    url: str,
    status_code: int,
    duration_ms: int,
    content_length: int,
    ttft_ms: Optional[int] = None,
) -> None:
    ttft = f"{ttft_ms}ms" if ttft_ms is not None else "-"
    logger.info(
        f"[RESP] {url} - {status_code} - {content_length} chars - TTFT {ttft} - total {duration_ms}ms"
    )


def log_network_error(logger: logging.Logger, url: str, error: Exception, duration_ms: int) -> None:
    logger.error(f"[X] {url} - {type(error).__name__} after {duration_ms}ms: {error}")
