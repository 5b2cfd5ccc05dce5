"""
Storage for Daily Rhythm.

One JSON document per calendar date (days/YYYY-MM-DD.json), meta.json for
the mode state and undo.json for the undo stack of the current day. Writes
are atomic (temp file + os.replace). A file that cannot be parsed is backed
up next to itself, logged to the corruption log and reported as
PersistenceError.
"""
import json
import os
import shutil
import tempfile
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from core.exceptions import NotFound, PersistenceError
from core.logger import get_logger, log_corruption
from core.models import (
    ContextMode,
    DaySnapshot,
    Entity,
    EntityStatus,
    Meta,
    ModeState,
    Section,
    StateEvent,
    zero_mode_time,
)
from core.paths import DATA_DIR
from core.undo import UndoAction, UndoRecord

SCHEMA_VERSION = 1
DATE_FORMAT = "%Y-%m-%d"

T = TypeVar("T")

logger = get_logger("storage")


# === 编码 ===

def _seconds(value: Optional[timedelta]) -> Optional[float]:
    return None if value is None else value.total_seconds()


def _delta(value: Optional[float]) -> Optional[timedelta]:
    return None if value is None else timedelta(seconds=float(value))


def _stamp(value: Optional[datetime]) -> Optional[str]:
    return None if value is None else value.isoformat()


def _parse_stamp(value: Optional[str]) -> Optional[datetime]:
    return None if value is None else datetime.fromisoformat(value)


def entity_to_dict(entity: Entity) -> Dict[str, Any]:
    return {
        "id": entity.id,
        "title": entity.title,
        "notes": entity.notes,
        "tags": list(entity.tags),
        "estimate_seconds": _seconds(entity.estimate),
        "elapsed_seconds": _seconds(entity.elapsed),
        "status": entity.status.value,
        "created_at": _stamp(entity.created_at),
        "completed_at": _stamp(entity.completed_at),
        "signalled_estimate_seconds": _seconds(entity.signalled_estimate),
        "state_history": [
            {
                "timestamp": _stamp(event.timestamp),
                "from": event.from_status.value if event.from_status else None,
                "to": event.to_status.value,
            }
            for event in entity.state_history
        ],
        "subtasks": [entity_to_dict(sub) for sub in entity.subtasks],
    }


def entity_from_dict(data: Dict[str, Any]) -> Entity:
    return Entity(
        id=data["id"],
        title=data["title"],
        notes=data.get("notes", ""),
        # 标签顺序原样保留，不重新规整
        tags=list(data.get("tags", [])),
        estimate=_delta(data.get("estimate_seconds", 0)),
        elapsed=_delta(data.get("elapsed_seconds", 0)),
        status=EntityStatus(data["status"]),
        created_at=_parse_stamp(data.get("created_at")),
        completed_at=_parse_stamp(data.get("completed_at")),
        signalled_estimate=_delta(data.get("signalled_estimate_seconds")),
        state_history=[
            StateEvent(
                timestamp=_parse_stamp(event["timestamp"]),
                from_status=EntityStatus(event["from"]) if event.get("from") else None,
                to_status=EntityStatus(event["to"]),
            )
            for event in data.get("state_history", [])
        ],
        subtasks=[entity_from_dict(sub) for sub in data.get("subtasks", [])],
    )


def snapshot_to_dict(snapshot: DaySnapshot) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "date": snapshot.date.strftime(DATE_FORMAT),
    }
    for section in Section:
        doc[section.value] = [entity_to_dict(e) for e in snapshot.section(section)]
    return doc


def snapshot_from_dict(doc: Dict[str, Any]) -> DaySnapshot:
    snapshot = DaySnapshot(date=datetime.strptime(doc["date"], DATE_FORMAT).date())
    for section in Section:
        snapshot.section(section).extend(entity_from_dict(e) for e in doc.get(section.value, []))
    return snapshot


def meta_to_dict(meta: Meta) -> Dict[str, Any]:
    state = meta.mode_state
    return {
        "schema_version": SCHEMA_VERSION,
        "mode": state.mode.value,
        "mode_time": {mode.value: _seconds(value) for mode, value in state.mode_time.items()},
        "auto_paused": list(state.auto_paused),
        "last_date": meta.last_date.strftime(DATE_FORMAT) if meta.last_date else None,
        "saved_at": _stamp(meta.saved_at),
        "idle_anchor": _stamp(meta.idle_anchor),
        "idle_prompted_at": _stamp(meta.idle_prompted_at),
    }


def meta_from_dict(doc: Dict[str, Any]) -> Meta:
    mode_time = zero_mode_time()
    for raw_mode, seconds in (doc.get("mode_time") or {}).items():
        mode_time[ContextMode(raw_mode)] = _delta(seconds)
    last_date = doc.get("last_date")
    return Meta(
        mode_state=ModeState(
            mode=ContextMode(doc.get("mode", ContextMode.WORKING.value)),
            mode_time=mode_time,
            auto_paused=list(doc.get("auto_paused", [])),
        ),
        last_date=datetime.strptime(last_date, DATE_FORMAT).date() if last_date else None,
        saved_at=_parse_stamp(doc.get("saved_at")),
        idle_anchor=_parse_stamp(doc.get("idle_anchor")),
        idle_prompted_at=_parse_stamp(doc.get("idle_prompted_at")),
    )


def undo_to_dict(day: date, records: List[UndoRecord]) -> Dict[str, Any]:
    return {
        "schema_version": SCHEMA_VERSION,
        "date": day.strftime(DATE_FORMAT),
        "records": [
            {
                "action": record.action.value,
                "entity": entity_to_dict(record.entity),
                "section": record.section.value,
                "index": record.index,
                "parent_id": record.parent_id,
                "created_at": _stamp(record.created_at),
            }
            for record in records
        ],
    }


def undo_from_dict(doc: Dict[str, Any]) -> Tuple[date, List[UndoRecord]]:
    records = [
        UndoRecord(
            action=UndoAction(item["action"]),
            entity=entity_from_dict(item["entity"]),
            section=Section(item["section"]),
            index=int(item["index"]),
            parent_id=item.get("parent_id"),
            created_at=_parse_stamp(item["created_at"]),
        )
        for item in doc.get("records", [])
    ]
    return datetime.strptime(doc["date"], DATE_FORMAT).date(), records


# === 文件操作 ===

def atomic_write_text(path: Path, text: str) -> None:
    """写入临时文件后 os.replace，避免写到一半的文件。"""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except OSError as e:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise PersistenceError(f"Failed to write {path.name}: {e}", str(path))


def atomic_write(path: Path, payload: Dict[str, Any]) -> None:
    atomic_write_text(path, json.dumps(payload, ensure_ascii=False, indent=2))


def backup_file(path: Path) -> Optional[Path]:
    """复制一份 <name>.bak.<timestamp>，返回备份路径。"""
    if not path.exists():
        return None
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    backup = path.with_name(f"{path.name}.bak.{timestamp}")
    shutil.copy2(path, backup)
    return backup


class Storage:
    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir else DATA_DIR
        self.days_dir = self.data_dir / "days"
        self.meta_path = self.data_dir / "meta.json"
        self.undo_path = self.data_dir / "undo.json"
        self.journal_dir = self.data_dir / "journal"

    def day_path(self, day: date) -> Path:
        return self.days_dir / f"{day.strftime(DATE_FORMAT)}.json"

    def exists(self, day: date) -> bool:
        return self.day_path(day).exists()

    def list_dates(self) -> List[date]:
        if not self.days_dir.exists():
            return []
        dates = []
        for path in self.days_dir.glob("*.json"):
            try:
                dates.append(datetime.strptime(path.stem, DATE_FORMAT).date())
            except ValueError:
                continue
        return sorted(dates)

    def latest_before(self, day: date) -> Optional[date]:
        earlier = [d for d in self.list_dates() if d < day]
        return earlier[-1] if earlier else None

    def load(self, day: date) -> DaySnapshot:
        path = self.day_path(day)
        if not path.exists():
            raise NotFound(f"snapshot {day.strftime(DATE_FORMAT)}")
        snapshot = self._read(path, snapshot_from_dict)
        logger.debug("Loaded %s", path.name)
        return snapshot

    def save(self, snapshot: DaySnapshot) -> Path:
        path = self.day_path(snapshot.date)
        atomic_write(path, snapshot_to_dict(snapshot))
        logger.debug("Saved %s", path.name)
        return path

    def load_meta(self) -> Meta:
        if not self.meta_path.exists():
            return Meta()
        return self._read(self.meta_path, meta_from_dict)

    def save_meta(self, meta: Meta) -> None:
        atomic_write(self.meta_path, meta_to_dict(meta))

    def load_undo(self, day: date) -> List[UndoRecord]:
        """撤销记录（从新到旧）。只有属于 day 的记录有效，其他日期的视为空。"""
        if not self.undo_path.exists():
            return []
        stored_day, records = self._read(self.undo_path, undo_from_dict)
        return records if stored_day == day else []

    def save_undo(self, day: date, records: List[UndoRecord]) -> None:
        atomic_write(self.undo_path, undo_to_dict(day, records))

    def journal_path(self, day: date) -> Path:
        return self.journal_dir / f"{day.strftime(DATE_FORMAT)}.md"

    def load_journal(self, day: date) -> str:
        """当天的日志正文，没有时为空字符串。"""
        path = self.journal_path(day)
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to read {path.name}: {e}", str(path))

    def save_journal(self, day: date, text: str) -> Path:
        path = self.journal_path(day)
        atomic_write_text(path, text)
        logger.debug("Saved journal %s", path.name)
        return path

    def _read(self, path: Path, decode: Callable[[Dict[str, Any]], T]) -> T:
        try:
            with open(path, "r", encoding="utf-8") as f:
                doc = json.load(f)
            if not isinstance(doc, dict):
                raise ValueError("top-level JSON value is not an object")
            if doc.get("schema_version", SCHEMA_VERSION) > SCHEMA_VERSION:
                raise ValueError(f"unsupported schema_version {doc['schema_version']}")
            return decode(doc)
        except OSError as e:
            raise PersistenceError(f"Failed to read {path.name}: {e}", str(path))
        except (ValueError, KeyError, TypeError) as e:
            backup = backup_file(path)
            log_corruption(path, str(e), backup)
            raise PersistenceError(f"Cannot parse {path.name}: {e}", str(path))
