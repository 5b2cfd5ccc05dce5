"""
Mode controller for Daily Rhythm.

The only writer of the current mode. Leaving WORKING pauses every running
entity and remembers it; returning to WORKING resumes exactly those.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from core.exceptions import ModeLocked
from core.logger import get_logger
from core.models import ContextMode, DaySnapshot, EntityStatus, ModeState, Section, zero_mode_time

logger = get_logger("mode")


@dataclass
class ModeChange:
    previous: ContextMode
    current: ContextMode
    paused: List[str] = field(default_factory=list)
    resumed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous != self.current


class ModeController:
    def __init__(self, state: ModeState):
        self.state = state

    @property
    def mode(self) -> ContextMode:
        return self.state.mode

    @property
    def is_working(self) -> bool:
        return self.state.mode == ContextMode.WORKING

    def require_working(self) -> None:
        if not self.is_working:
            raise ModeLocked(self.state.mode.value)

    def set_mode(self, new_mode: ContextMode, snapshot: DaySnapshot, now: datetime) -> ModeChange:
        previous = self.state.mode
        change = ModeChange(previous, new_mode)
        if new_mode == previous:
            return change

        if previous == ContextMode.WORKING:
            for entity in snapshot.running():
                entity.transition(EntityStatus.PAUSED, now)
                change.paused.append(entity.id)
            self.state.auto_paused = list(change.paused)
        elif new_mode == ContextMode.WORKING:
            for entity_id in self.state.auto_paused:
                location = snapshot.locate(entity_id)
                # 期间被完成、删除或移出 ACTIVE 的条目不再恢复
                if location is None or location.entity.status != EntityStatus.PAUSED:
                    continue
                if location.section != Section.ACTIVE:
                    continue
                location.entity.transition(EntityStatus.RUNNING, now)
                change.resumed.append(entity_id)
            self.state.auto_paused = []

        self.state.mode = new_mode
        logger.info(
            "Mode %s -> %s (paused=%d, resumed=%d)",
            previous.value, new_mode.value, len(change.paused), len(change.resumed),
        )
        return change

    def remember_auto_paused(self, entity_id: str) -> None:
        if entity_id not in self.state.auto_paused:
            self.state.auto_paused.append(entity_id)

    def forget(self, entity_id: str) -> None:
        if entity_id in self.state.auto_paused:
            self.state.auto_paused.remove(entity_id)

    def reset_day(self) -> None:
        """日切：累计时间清零，当前模式与自动暂停记录保留。"""
        self.state.mode_time = zero_mode_time()
