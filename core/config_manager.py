"""
Configuration Manager for Daily Rhythm.

集中管理系统常量和配置参数。
所有经验值必须显式声明并可通过 config/runtime.yaml 覆盖。

使用方式:
    from core.config_manager import config
    step = config.ESTIMATE_STEP_MINUTES
"""
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from core.exceptions import ConfigError
from core.logger import get_logger

CONFIG_DIR = Path(__file__).parent.parent / "config"
RUNTIME_CONFIG_PATH = CONFIG_DIR / "runtime.yaml"

MODES = ("working", "break", "lunch", "gym", "dinner", "personal", "sleep")
WEBHOOK_TYPES = ("generic", "slack", "discord")

logger = get_logger("config")


@dataclass
class SystemConfig:
    """
    系统运行时常量配置。

    所有值均为经验值，可根据用户实际情况调整。
    """

    # === 估时 ===

    # 每次 +/- 调整的步长 (分钟)
    # 经验值依据：与规划器的 15 分钟格子对齐
    ESTIMATE_STEP_MINUTES: int = 15

    # 估时下限 (分钟)，不允许为负
    MIN_ESTIMATE_MINUTES: int = 0

    # 新建条目的默认估时 (小时)
    DEFAULT_ESTIMATE_HOURS: float = 1.0

    # === 撤销 ===

    # 撤销栈容量，超出时丢弃最旧的记录
    UNDO_CAPACITY: int = 10

    # === 时钟 ===

    # 后台 tick 间隔 (毫秒)
    TICK_INTERVAL_MS: int = 250

    # 后台自动保存间隔 (秒)
    AUTOSAVE_SECONDS: int = 30

    # 连续计时多久后询问 "还在工作吗" (分钟)，0 表示关闭
    # 调整建议：深度工作者可增至 60
    IDLE_CHECK_MINUTES: int = 30

    # === 规划器 ===

    PLANNER_SLOT_MINUTES: int = 15
    PLANNER_WINDOW_START: str = "09:00"
    PLANNER_WINDOW_END: str = "24:00"
    # 第一个条目的起始锚点
    PLANNER_DAY_START: str = "09:00"

    # === 模式与日切 ===

    DEFAULT_MODE: str = "working"

    # 启动补报告时最多回溯的天数
    REPORT_BACKFILL_DAYS: int = 14

    # === 通知 ===

    NOTIFY_DESKTOP: bool = True
    WEBHOOK_URL: str = ""
    WEBHOOK_TYPE: str = "generic"


def clock_minutes(value: str) -> int:
    """把 "HH:MM" 转为从零点起的分钟数，允许 "24:00"。"""
    try:
        hours, minutes = str(value).strip().split(":")
        total = int(hours) * 60 + int(minutes)
    except ValueError:
        raise ConfigError(f"Invalid clock value: {value!r} (expected HH:MM)")
    if not 0 <= int(minutes) < 60 or not 0 <= total <= 24 * 60:
        raise ConfigError(f"Clock value out of range: {value!r}")
    return total


def _load_runtime_config(path: Path) -> dict:
    """加载运行时配置覆盖（如果存在）。"""
    if not path.exists():
        return {}

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        raise ConfigError("runtime.yaml must contain a mapping", str(path))
    return data


def validate_config(cfg: SystemConfig, source: Optional[str] = None) -> SystemConfig:
    """检查取值范围，非法时抛出 ConfigError。"""
    for name in ("ESTIMATE_STEP_MINUTES", "UNDO_CAPACITY", "TICK_INTERVAL_MS", "PLANNER_SLOT_MINUTES"):
        if int(getattr(cfg, name)) <= 0:
            raise ConfigError(f"{name} must be positive", source)
    for name in ("MIN_ESTIMATE_MINUTES", "IDLE_CHECK_MINUTES", "AUTOSAVE_SECONDS", "REPORT_BACKFILL_DAYS"):
        if int(getattr(cfg, name)) < 0:
            raise ConfigError(f"{name} must not be negative", source)
    if float(cfg.DEFAULT_ESTIMATE_HOURS) < 0:
        raise ConfigError("DEFAULT_ESTIMATE_HOURS must not be negative", source)

    start = clock_minutes(cfg.PLANNER_WINDOW_START)
    end = clock_minutes(cfg.PLANNER_WINDOW_END)
    anchor = clock_minutes(cfg.PLANNER_DAY_START)
    if start >= end:
        raise ConfigError("PLANNER_WINDOW_START must be before PLANNER_WINDOW_END", source)
    if not start <= anchor <= end:
        raise ConfigError("PLANNER_DAY_START must lie inside the planner window", source)

    if str(cfg.DEFAULT_MODE).lower() not in MODES:
        raise ConfigError(f"DEFAULT_MODE must be one of {', '.join(MODES)}", source)
    if cfg.WEBHOOK_TYPE not in WEBHOOK_TYPES:
        raise ConfigError(f"WEBHOOK_TYPE must be one of {', '.join(WEBHOOK_TYPES)}", source)
    return cfg


def get_config(path: Optional[Path] = None) -> SystemConfig:
    """
    获取系统配置实例。

    优先级：runtime.yaml > 默认值
    """
    source = Path(path) if path else RUNTIME_CONFIG_PATH
    base = SystemConfig()
    overrides = _load_runtime_config(source)
    known = {f.name for f in fields(SystemConfig)}

    for key, value in overrides.items():
        if key in known:
            setattr(base, key, value)
        else:
            logger.warning("Unknown config key %s in %s", key, source)

    return validate_config(base, str(source))


# 全局配置实例（单例模式）
config = get_config()
