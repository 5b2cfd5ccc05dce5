"""
Undo stack for destructive actions (done / archive / delete).

A fixed-capacity ring of entity snapshots. Each record holds a deep copy of
the entity as it was before the action plus where it lived.
"""
import copy
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, Iterable, List, Optional

from core.exceptions import NothingToUndo
from core.models import Entity, Location, Section


class UndoAction(str, Enum):
    DONE = "done"
    ARCHIVE = "archive"
    DELETE = "delete"


@dataclass
class UndoRecord:
    action: UndoAction
    entity: Entity
    section: Section
    index: int
    parent_id: Optional[str]
    created_at: datetime

    @classmethod
    def capture(cls, action: UndoAction, location: Location, now: datetime) -> "UndoRecord":
        return cls(
            action=action,
            entity=copy.deepcopy(location.entity),
            section=location.section,
            index=location.index,
            parent_id=location.parent.id if location.parent else None,
            created_at=now,
        )


class UndoStack:
    """最新的记录在栈顶；超出容量时丢弃最旧的。"""

    def __init__(self, capacity: int = 10):
        self.capacity = capacity
        self._records: Deque[UndoRecord] = deque(maxlen=capacity)

    def push(self, record: UndoRecord) -> None:
        self._records.append(record)

    def pop(self) -> UndoRecord:
        if not self._records:
            raise NothingToUndo()
        return self._records.pop()

    def peek(self) -> Optional[UndoRecord]:
        return self._records[-1] if self._records else None

    def clear(self) -> None:
        self._records.clear()

    def restore(self, records: Iterable[UndoRecord]) -> None:
        """按 records() 的顺序（从新到旧）恢复；超出容量的旧记录被丢弃。"""
        self._records.clear()
        self._records.extend(reversed(list(records)))

    def records(self) -> List[UndoRecord]:
        """从新到旧。"""
        return list(reversed(self._records))

    def __len__(self) -> int:
        return len(self._records)
