"""
Daily Rhythm 日志配置模块。

配置日志策略：
- logs/system.log: 常规操作日志 (INFO+)，包括每次状态变更
- logs/error.log: 异常堆栈 (ERROR/CRITICAL)
- console: 仅用户有用的提示 (WARNING+)

Tick 只在 DEBUG 级别记录，避免 250ms 一次的刷屏。
使用 RotatingFileHandler 防止日志文件过大。
"""
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from core.paths import get_logs_dir

ROOT_LOGGER_NAME = "daily_rhythm"

# 日志配置常量 (经验值，可根据需要调整)
MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3  # 保留 3 个备份


def setup_logging(
    log_level: int = logging.INFO,
    console_level: int = logging.WARNING,
    logs_dir: Optional[Path] = None,
) -> logging.Logger:
    """
    初始化日志系统。

    Args:
        log_level: 文件日志级别 (默认 INFO)
        console_level: 控制台日志级别 (默认 WARNING)
        logs_dir: 日志目录，默认取 DAILY_RHYTHM_LOG_DIR 或 <data>/logs

    Returns:
        配置好的 root logger
    """
    target = Path(logs_dir) if logs_dir else get_logs_dir()
    target.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # 捕获所有级别，由 handler 过滤

    # 清除现有 handlers (避免重复添加)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    file_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_format = logging.Formatter("[%(levelname)s] %(message)s")

    # 1. 系统日志 (INFO+)
    system_handler = RotatingFileHandler(
        target / "system.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    system_handler.setLevel(log_level)
    system_handler.setFormatter(file_format)
    logger.addHandler(system_handler)

    # 2. 错误日志 (ERROR+)
    error_handler = RotatingFileHandler(
        target / "error.log",
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8"
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_format)
    logger.addHandler(error_handler)

    # 3. 控制台输出 (WARNING+)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    获取模块专用的 logger。

    Args:
        name: 模块名称，如 "engine", "storage"

    Returns:
        配置好的 logger 实例
    """
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)


def log_corruption(path: Union[str, Path], error_msg: str, backup_path: Optional[Path] = None) -> None:
    """
    记录无法解析的持久化文件到专用日志。

    Args:
        path: 损坏文件路径
        error_msg: 错误描述
        backup_path: 已保留的备份文件路径
    """
    logs_dir = get_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    with open(logs_dir / "corruption_dump.log", "a", encoding="utf-8") as f:
        f.write(f"[{datetime.now().isoformat()}] {path}: {error_msg}\n")
        if backup_path:
            f.write(f"  Backup: {backup_path}\n")
        f.write("-" * 50 + "\n")

    get_logger("storage").warning("数据损坏 (%s): %s", path, error_msg)
