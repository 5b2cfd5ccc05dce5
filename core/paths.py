"""
Centralized filesystem paths for runtime data.
"""
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent


def get_data_dir() -> Path:
    """
    Return runtime data directory.

    Priority:
    1. DAILY_RHYTHM_DATA_DIR env var
    2. <project_root>/data
    """
    raw = os.getenv("DAILY_RHYTHM_DATA_DIR", "").strip()
    if raw:
        return Path(raw).expanduser()
    return PROJECT_ROOT / "data"


def get_logs_dir() -> Path:
    """
    Return log directory.

    Priority:
    1. DAILY_RHYTHM_LOG_DIR env var
    2. <data_dir>/logs
    """
    raw = os.getenv("DAILY_RHYTHM_LOG_DIR", "").strip()
    if raw:
        return Path(raw).expanduser()
    return get_data_dir() / "logs"


DATA_DIR = get_data_dir()
DAYS_DIR = DATA_DIR / "days"
REPORTS_DIR = DATA_DIR / "reports"
META_PATH = DATA_DIR / "meta.json"
