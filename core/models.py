"""
Core Data Models for Daily Rhythm.
Defines entities (tasks / subtasks), their state machine, the day snapshot,
the mode state and the signals a tick can raise.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional
from uuid import uuid4

from core.exceptions import EntityTerminal


class EntityStatus(str, Enum):
    IDLE = "idle"        # 未开始
    RUNNING = "running"  # 计时中
    PAUSED = "paused"    # 已暂停
    DONE = "done"        # 已完成（终态）


class ContextMode(str, Enum):
    """当天的生活情境，只有 WORKING 允许计时。"""
    WORKING = "working"
    BREAK = "break"
    LUNCH = "lunch"
    GYM = "gym"
    DINNER = "dinner"
    PERSONAL = "personal"
    SLEEP = "sleep"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, raw: str) -> "ContextMode":
        return cls(str(raw).strip().lower())


class Section(str, Enum):
    ACTIVE = "active"
    DONE = "done"
    ARCHIVED = "archived"
    POSTPONED = "postponed"


# 允许的迁移: from -> {to}
ALLOWED_TRANSITIONS = {
    EntityStatus.IDLE: {EntityStatus.RUNNING, EntityStatus.DONE},
    EntityStatus.RUNNING: {EntityStatus.PAUSED, EntityStatus.DONE},
    EntityStatus.PAUSED: {EntityStatus.RUNNING, EntityStatus.DONE},
    EntityStatus.DONE: set(),
}


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """去掉 '#' 前缀和空白，按首次出现顺序去重。"""
    seen: List[str] = []
    for raw in tags or []:
        tag = str(raw).strip().lstrip("#").strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


@dataclass
class StateEvent:
    """状态历史中的一条记录（只追加）。"""
    timestamp: datetime
    from_status: Optional[EntityStatus]
    to_status: EntityStatus


@dataclass
class Entity:
    """任务或子任务。子任务只存在于父任务的 subtasks 中，不持有父引用。"""
    title: str
    id: str = field(default_factory=lambda: uuid4().hex)
    notes: str = ""
    tags: List[str] = field(default_factory=list)
    estimate: timedelta = timedelta(0)
    elapsed: timedelta = timedelta(0)
    status: EntityStatus = EntityStatus.IDLE
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    state_history: List[StateEvent] = field(default_factory=list)
    subtasks: List["Entity"] = field(default_factory=list)
    # 已提示过 "估时到达" 时的估时值；估时被调高后才会再次提示
    signalled_estimate: Optional[timedelta] = None

    @classmethod
    def create(
        cls,
        title: str,
        now: datetime,
        estimate: timedelta = timedelta(0),
        notes: str = "",
        tags: Optional[Iterable[str]] = None,
    ) -> "Entity":
        entity = cls(
            title=title,
            notes=notes,
            tags=normalize_tags(tags),
            estimate=estimate,
            created_at=now,
        )
        entity.state_history.append(StateEvent(now, None, EntityStatus.IDLE))
        return entity

    @property
    def is_done(self) -> bool:
        return self.status == EntityStatus.DONE

    @property
    def is_running(self) -> bool:
        return self.status == EntityStatus.RUNNING

    @property
    def estimate_hours(self) -> float:
        return self.estimate.total_seconds() / 3600

    @property
    def elapsed_hours(self) -> float:
        return self.elapsed.total_seconds() / 3600

    def transition(self, to_status: EntityStatus, at: datetime) -> StateEvent:
        """
        唯一修改 status 的入口，每次迁移追加一条历史。

        Raises:
            EntityTerminal: 当前已是 DONE
            ValueError: 状态机不允许的迁移
        """
        if self.is_done:
            raise EntityTerminal(self.id)
        if to_status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"Illegal transition {self.status.value} -> {to_status.value}")

        # 历史时间戳单调不减
        if self.state_history and at < self.state_history[-1].timestamp:
            at = self.state_history[-1].timestamp

        event = StateEvent(at, self.status, to_status)
        self.state_history.append(event)
        self.status = to_status
        if to_status == EntityStatus.DONE:
            self.completed_at = at
        return event

    def walk(self) -> Iterator["Entity"]:
        """自身及其子任务。"""
        yield self
        yield from self.subtasks

    def leaves(self) -> List["Entity"]:
        """没有子任务时是自身，否则是子任务。"""
        return list(self.subtasks) if self.subtasks else [self]


class Location(NamedTuple):
    section: Section
    index: int
    parent: Optional[Entity]
    entity: Entity


@dataclass
class DaySnapshot:
    """某一天的完整状态。ARCHIVED 跨天保留，POSTPONED 在下一天并入 ACTIVE。"""
    date: date
    active: List[Entity] = field(default_factory=list)
    done: List[Entity] = field(default_factory=list)
    archived: List[Entity] = field(default_factory=list)
    postponed: List[Entity] = field(default_factory=list)

    def section(self, section: Section) -> List[Entity]:
        return getattr(self, section.value)

    def locate(self, entity_id: str) -> Optional[Location]:
        for section in Section:
            for index, entity in enumerate(self.section(section)):
                if entity.id == entity_id:
                    return Location(section, index, None, entity)
                for sub_index, sub in enumerate(entity.subtasks):
                    if sub.id == entity_id:
                        return Location(section, sub_index, entity, sub)
        return None

    def iter_active(self) -> Iterator[Entity]:
        """ACTIVE 中的所有条目，包括子任务。"""
        for task in self.active:
            yield from task.walk()

    def running(self) -> List[Entity]:
        return [e for e in self.iter_active() if e.is_running]


def zero_mode_time() -> Dict[ContextMode, timedelta]:
    return {mode: timedelta(0) for mode in ContextMode}


@dataclass
class ModeState:
    mode: ContextMode = ContextMode.WORKING
    mode_time: Dict[ContextMode, timedelta] = field(default_factory=zero_mode_time)
    # 因模式切换而自动暂停的条目
    auto_paused: List[str] = field(default_factory=list)


@dataclass
class Meta:
    """meta.json 的内容。"""
    mode_state: ModeState = field(default_factory=ModeState)
    last_date: Optional[date] = None
    # 空闲检查窗口，跨进程延续
    idle_anchor: Optional[datetime] = None
    idle_prompted_at: Optional[datetime] = None
    saved_at: Optional[datetime] = None


@dataclass
class ClosedDay:
    """一天结束时的定格状态（深拷贝），交给持久化与报告。"""
    snapshot: DaySnapshot
    mode_state: ModeState
    closed_at: Optional[datetime] = None


# === Tick 信号 ===

@dataclass
class EstimateReached:
    entity_id: str
    title: str
    elapsed: timedelta
    estimate: timedelta


@dataclass
class IdleCheckDue:
    at: datetime
    running_ids: List[str]


@dataclass
class IdleAutoPaused:
    at: datetime
    paused_ids: List[str]


@dataclass
class DayRolled:
    previous_date: date
    new_date: date
    migrated: int


@dataclass
class TickResult:
    events: List[object] = field(default_factory=list)

    def of_type(self, kind: type) -> List[object]:
        return [e for e in self.events if isinstance(e, kind)]
