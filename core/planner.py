"""
Planner layout for Daily Rhythm.

Projects the active entities onto a fixed grid of time slots. Pure: it is
recomputed on every call and never touches the entities it is given.
"""
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from core.config_manager import SystemConfig, clock_minutes, config
from core.models import Entity, EntityStatus

LABEL_SEPARATOR = " › "


@dataclass
class PlannedBlock:
    entity_id: str
    label: str
    status: EntityStatus
    start: datetime
    end: datetime
    slot_count: int
    # 超出窗口末端的部分被裁掉
    overflow: bool = False
    parent_id: Optional[str] = None


@dataclass
class Slot:
    start: datetime
    end: datetime
    blocks: List[PlannedBlock] = field(default_factory=list)
    is_current: bool = False

    @property
    def is_overlapping(self) -> bool:
        return len(self.blocks) > 1


@dataclass
class PlannerLayout:
    day: date
    slots: List[Slot]
    blocks: List[PlannedBlock]

    @property
    def current_slot(self) -> Optional[Slot]:
        for slot in self.slots:
            if slot.is_current:
                return slot
        return None


def clock_label(moment: datetime, day: date) -> str:
    """"HH:MM"，窗口末端的次日零点显示为 "24:00"。"""
    if moment.date() > day and moment.time() == datetime.min.time():
        return "24:00"
    return moment.strftime("%H:%M")


def _leaves(tasks: Sequence[Entity]):
    for task in tasks:
        if task.subtasks:
            for sub in task.subtasks:
                yield sub, f"{task.title}{LABEL_SEPARATOR}{sub.title}", task.id
        else:
            yield task, task.title, None


def build_layout(
    tasks: Sequence[Entity],
    now: datetime,
    cfg: Optional[SystemConfig] = None,
    day: Optional[date] = None,
) -> PlannerLayout:
    """
    按列表顺序依次排布叶子条目。

    每个条目从 max(上一个条目结束, 锚点) 开始，占用 ceil(估时 / 格宽) 个连续格子，
    起点所在的格子为第一个。两个条目落在同一格子时并排显示，不调整各自的起止。
    已完成或估时为 0 的条目不参与排布。
    """
    cfg = cfg or config
    day = day or now.date()
    midnight = datetime.combine(day, datetime.min.time())
    slot_len = timedelta(minutes=int(cfg.PLANNER_SLOT_MINUTES))
    window_start = midnight + timedelta(minutes=clock_minutes(cfg.PLANNER_WINDOW_START))
    window_end = midnight + timedelta(minutes=clock_minutes(cfg.PLANNER_WINDOW_END))
    anchor = midnight + timedelta(minutes=clock_minutes(cfg.PLANNER_DAY_START))

    slots: List[Slot] = []
    cursor = window_start
    while cursor < window_end:
        slot_end = min(cursor + slot_len, window_end)
        slots.append(Slot(cursor, slot_end, is_current=cursor <= now < slot_end))
        cursor = slot_end

    blocks: List[PlannedBlock] = []
    previous_end: Optional[datetime] = None
    for entity, label, parent_id in _leaves(tasks):
        if entity.status == EntityStatus.DONE or entity.estimate <= timedelta(0):
            continue
        start = anchor if previous_end is None else max(previous_end, anchor)
        end = start + entity.estimate
        slot_count = math.ceil(entity.estimate / slot_len)
        block = PlannedBlock(
            entity_id=entity.id,
            label=label,
            status=entity.status,
            start=start,
            end=end,
            slot_count=slot_count,
            parent_id=parent_id,
        )
        blocks.append(block)
        previous_end = end

        first = int((start - window_start) // slot_len)
        for offset in range(slot_count):
            index = first + offset
            if index >= len(slots):
                block.overflow = True
                break
            slots[index].blocks.append(block)

    return PlannerLayout(day=day, slots=slots, blocks=blocks)


def render_text(layout: PlannerLayout) -> List[str]:
    """纯文本时间轴，供 CLI 使用。"""
    lines = []
    for slot in layout.slots:
        marker = ">" if slot.is_current else " "
        labels = " | ".join(block.label for block in slot.blocks)
        lines.append(f"{marker} {clock_label(slot.start, layout.day)}  {labels}".rstrip())
    for block in layout.blocks:
        if block.overflow:
            lines.append(f"  ! {block.label} runs past {clock_label(layout.slots[-1].end, layout.day)}")
    return lines
