"""
Rhythm Engine: the single mutation surface of Daily Rhythm.

Every user-visible change goes through here. Each operation validates first
and mutates afterwards, so a raised RhythmError always leaves the state as it
was. Time is always passed in explicitly (``now``) which keeps replays
deterministic.
"""
import copy
from datetime import datetime, timedelta
from typing import Iterable, List, NamedTuple, Optional, Tuple

from core.config_manager import SystemConfig, config
from core.exceptions import EntityTerminal, IndexOutOfRange, InvalidInput, NotFound
from core.logger import get_logger
from core.mode_controller import ModeChange, ModeController
from core.models import (
    ContextMode,
    DaySnapshot,
    Entity,
    EntityStatus,
    IdleAutoPaused,
    IdleCheckDue,
    Location,
    ModeState,
    Section,
    TickResult,
    normalize_tags,
)
from core.time_tracking import (
    accrue,
    accrue_mode,
    adjusted_estimate,
    check_estimate,
    hours_to_delta,
)
from core.undo import UndoAction, UndoRecord, UndoStack

logger = get_logger("engine")


class EngineCheckpoint(NamedTuple):
    """操作前的完整状态，保存失败时用于回滚。"""
    snapshot: DaySnapshot
    mode_state: ModeState
    undo_records: List[UndoRecord]
    idle_anchor: Optional[datetime]
    idle_prompted_at: Optional[datetime]


class RhythmEngine:
    """
    持有当天快照、模式状态与撤销栈。

    使用方式:
        engine = RhythmEngine(DaySnapshot(date.today()))
        task = engine.create_task("Write report", now, estimate_hours=1.0)
        engine.start(task.id, now)
        engine.tick(timedelta(seconds=1), now + timedelta(seconds=1))
    """

    def __init__(
        self,
        snapshot: DaySnapshot,
        mode_state: Optional[ModeState] = None,
        cfg: Optional[SystemConfig] = None,
    ):
        self.cfg = cfg or config
        self.snapshot = snapshot
        self.mode_state = mode_state or ModeState(mode=ContextMode.parse(self.cfg.DEFAULT_MODE))
        self.modes = ModeController(self.mode_state)
        self.undo_stack = UndoStack(self.cfg.UNDO_CAPACITY)
        # 空闲检查：连续计时的起点与已发出询问的时间
        self.idle_anchor: Optional[datetime] = None
        self.idle_prompted_at: Optional[datetime] = None

    # === 查询 ===

    @property
    def mode(self) -> ContextMode:
        return self.modes.mode

    def find(self, entity_id: str) -> Location:
        location = self.snapshot.locate(entity_id)
        if location is None:
            raise NotFound(f"entity {entity_id}")
        return location

    def flat_view(self) -> List[Tuple[Entity, Optional[Entity]]]:
        """ACTIVE 的展开视图：(条目, 父任务或 None)，任务后紧跟其子任务。"""
        rows: List[Tuple[Entity, Optional[Entity]]] = []
        for task in self.snapshot.active:
            rows.append((task, None))
            rows.extend((sub, task) for sub in task.subtasks)
        return rows

    def select(self, flat_index: int) -> Entity:
        rows = self.flat_view()
        if not 0 <= flat_index < len(rows):
            raise IndexOutOfRange(f"Selection {flat_index} outside 0..{len(rows) - 1}")
        return rows[flat_index][0]

    # === 创建与编辑 ===

    def create_task(
        self,
        title: str,
        now: datetime,
        estimate_hours: Optional[float] = None,
        notes: str = "",
        tags: Optional[Iterable[str]] = None,
    ) -> Entity:
        entity = self._new_entity(title, now, estimate_hours, notes, tags)
        self.snapshot.active.append(entity)
        logger.info("Created task %s '%s'", entity.id, entity.title)
        return entity

    def create_subtask(
        self,
        parent_id: str,
        title: str,
        now: datetime,
        estimate_hours: Optional[float] = None,
        notes: str = "",
        tags: Optional[Iterable[str]] = None,
    ) -> Entity:
        parent = self._active_task(parent_id)
        if parent.is_done:
            raise EntityTerminal(parent.id)
        entity = self._new_entity(title, now, estimate_hours, notes, tags)
        parent.subtasks.append(entity)
        logger.info("Created subtask %s '%s' under %s", entity.id, entity.title, parent.id)
        return entity

    def edit(
        self,
        entity_id: str,
        title: Optional[str] = None,
        notes: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Entity:
        entity = self._live(entity_id)
        clean_title = self._clean_title(title) if title is not None else None
        if clean_title is not None:
            entity.title = clean_title
        if notes is not None:
            entity.notes = notes
        if tags is not None:
            entity.tags = normalize_tags(tags)
        logger.info("Edited %s", entity.id)
        return entity

    def adjust_estimate(self, entity_id: str, steps: int) -> Entity:
        """按 ESTIMATE_STEP_MINUTES 步长增减估时。"""
        entity = self._live(entity_id)
        entity.estimate = adjusted_estimate(
            entity.estimate,
            steps,
            step_minutes=int(self.cfg.ESTIMATE_STEP_MINUTES),
            min_minutes=int(self.cfg.MIN_ESTIMATE_MINUTES),
        )
        logger.info("Estimate of %s -> %s", entity.id, entity.estimate)
        return entity

    def extend_estimate(self, entity_id: str, minutes: float) -> Entity:
        if minutes <= 0:
            raise InvalidInput("Extension must be a positive number of minutes")
        entity = self._live(entity_id)
        entity.estimate += timedelta(minutes=minutes)
        logger.info("Extended %s by %sm", entity.id, minutes)
        return entity

    def set_estimate(self, entity_id: str, hours: float) -> Entity:
        if hours < 0:
            raise InvalidInput("Estimate must not be negative")
        entity = self._live(entity_id)
        floor = timedelta(minutes=max(0, int(self.cfg.MIN_ESTIMATE_MINUTES)))
        entity.estimate = max(hours_to_delta(hours), floor)
        logger.info("Estimate of %s set to %s", entity.id, entity.estimate)
        return entity

    def correct_elapsed(self, entity_id: str, hours: float) -> Entity:
        """显式更正已用时间；唯一允许 elapsed 变小的入口。"""
        if hours < 0:
            raise InvalidInput("Elapsed time must not be negative")
        entity = self._live(entity_id)
        entity.elapsed = hours_to_delta(hours)
        logger.info("Elapsed of %s corrected to %s", entity.id, entity.elapsed)
        return entity

    # === 计时控制 ===

    def start(self, entity_id: str, now: datetime) -> bool:
        """开始或恢复计时。已在计时时为 no-op，返回 False。"""
        location = self.find(entity_id)
        entity = location.entity
        if entity.is_done:
            raise EntityTerminal(entity.id)
        if entity.is_running:
            return False
        if location.section != Section.ACTIVE:
            raise InvalidInput("Only active entities can run")
        self.modes.require_working()

        entity.transition(EntityStatus.RUNNING, now)
        if self.idle_anchor is None:
            self.idle_anchor = now
        logger.info("Started %s", entity.id)
        return True

    def pause(self, entity_id: str, now: datetime) -> bool:
        """暂停计时。未在计时时为 no-op，返回 False。"""
        entity = self.find(entity_id).entity
        if entity.is_done:
            raise EntityTerminal(entity.id)
        if not entity.is_running:
            return False
        entity.transition(EntityStatus.PAUSED, now)
        logger.info("Paused %s", entity.id)
        return True

    def toggle(self, entity_id: str, now: datetime) -> bool:
        if self.find(entity_id).entity.is_running:
            return self.pause(entity_id, now)
        return self.start(entity_id, now)

    def set_mode(self, mode: ContextMode, now: datetime) -> ModeChange:
        change = self.modes.set_mode(mode, self.snapshot, now)
        if change.changed:
            self._reset_idle()
        return change

    def confirm_working(self, now: datetime) -> None:
        """回应空闲询问，重新开始计时窗口。"""
        self.idle_anchor = now if self.snapshot.running() else None
        self.idle_prompted_at = None
        logger.info("Idle check confirmed")

    # === 排序 ===

    def swap(self, i: int, j: int, parent_id: Optional[str] = None) -> None:
        """交换相邻的两个兄弟条目。parent_id 为空时在 ACTIVE 任务列表中交换。"""
        items = self.snapshot.active if parent_id is None else self._active_task(parent_id).subtasks
        if not (0 <= i < len(items) and 0 <= j < len(items)):
            raise IndexOutOfRange(f"Swap {i}<->{j} outside 0..{len(items) - 1}")
        if abs(i - j) != 1:
            raise IndexOutOfRange(f"Swap {i}<->{j} is not between adjacent siblings")
        items[i], items[j] = items[j], items[i]
        logger.info("Swapped %d <-> %d (parent=%s)", i, j, parent_id)

    def move_up(self, entity_id: str) -> None:
        self._move(entity_id, -1)

    def move_down(self, entity_id: str) -> None:
        self._move(entity_id, 1)

    # === 破坏性操作（可撤销） ===

    def mark_done(self, entity_id: str, now: datetime) -> Entity:
        location = self.find(entity_id)
        entity = location.entity
        if entity.is_done:
            raise EntityTerminal(entity.id)
        if location.section not in (Section.ACTIVE, Section.POSTPONED):
            raise InvalidInput("Only active or postponed entities can be completed")

        record = UndoRecord.capture(UndoAction.DONE, location, now)
        # 完成任务时，其未完成的子任务一并完成
        for sub in entity.subtasks:
            if not sub.is_done:
                sub.transition(EntityStatus.DONE, now)
        entity.transition(EntityStatus.DONE, now)
        self._detach(location)
        self.snapshot.done.append(entity)
        self.undo_stack.push(record)
        logger.info("Done %s '%s'", entity.id, entity.title)
        return entity

    def archive(self, entity_id: str, now: datetime) -> Entity:
        location = self.find(entity_id)
        if location.section == Section.ARCHIVED:
            raise InvalidInput("Entity is already archived")

        record = UndoRecord.capture(UndoAction.ARCHIVE, location, now)
        self._pause_tree(location.entity, now)
        self._detach(location)
        self.snapshot.archived.append(location.entity)
        self.undo_stack.push(record)
        logger.info("Archived %s", location.entity.id)
        return location.entity

    def delete(self, entity_id: str, now: datetime) -> Entity:
        location = self.find(entity_id)
        record = UndoRecord.capture(UndoAction.DELETE, location, now)
        self._detach(location)
        self.undo_stack.push(record)
        logger.info("Deleted %s '%s'", location.entity.id, location.entity.title)
        return location.entity

    def postpone(self, entity_id: str, now: datetime) -> Entity:
        """移到明天的 ACTIVE。计时中的条目先暂停，其余字段不变。"""
        location = self.find(entity_id)
        entity = location.entity
        if entity.is_done:
            raise EntityTerminal(entity.id)
        if location.parent is not None:
            raise InvalidInput("Only top-level tasks can be postponed")
        if location.section != Section.ACTIVE:
            raise InvalidInput("Only active tasks can be postponed")

        self._pause_tree(entity, now)
        self._detach(location)
        self.snapshot.postponed.append(entity)
        logger.info("Postponed %s", entity.id)
        return entity

    def undo(self, now: datetime) -> UndoRecord:
        """撤销最近一次完成/归档/删除，把条目放回原来的分区和位置。"""
        record = self.undo_stack.pop()
        entity = record.entity

        current = self.snapshot.locate(entity.id)
        if current is not None:
            self._detach(current)

        target = self.snapshot.section(record.section)
        if record.parent_id is not None:
            parent = self.snapshot.locate(record.parent_id)
            if parent is not None and parent.parent is None:
                target = parent.entity.subtasks
            else:
                # 父任务已不存在时作为独立任务放回 ACTIVE
                target = self.snapshot.active
        target.insert(min(record.index, len(target)), entity)

        if not self.modes.is_working:
            for item in entity.walk():
                if item.is_running:
                    item.transition(EntityStatus.PAUSED, now)
                    self.modes.remember_auto_paused(item.id)

        logger.info("Undid %s of %s", record.action.value, entity.id)
        return record

    # === 时钟 ===

    def tick(self, delta: timedelta, now: datetime) -> TickResult:
        """
        推进 delta：先计入条目与模式时间，再检查估时与空闲。
        日切检查由 DayTransition 在其后执行。
        """
        result = TickResult()
        active = list(self.snapshot.iter_active())
        touched = accrue(active, self.mode, delta)
        accrue_mode(self.mode_state, delta)

        for entity in active:
            signal = check_estimate(entity)
            if signal is not None:
                logger.info("Estimate reached for %s (%s)", entity.id, entity.estimate)
                result.events.append(signal)

        self._check_idle(now, result)
        logger.debug("Tick %s: accrued %d entities", delta, len(touched))
        return result

    def install_day(self, snapshot: DaySnapshot) -> None:
        """日切：换入新的快照，清零模式时间并清空撤销栈。"""
        self.snapshot = snapshot
        self.modes.reset_day()
        self.undo_stack.clear()
        self._reset_idle()

    # === 回滚 ===

    def checkpoint(self) -> EngineCheckpoint:
        return EngineCheckpoint(
            snapshot=copy.deepcopy(self.snapshot),
            mode_state=copy.deepcopy(self.mode_state),
            undo_records=copy.deepcopy(self.undo_stack.records()),
            idle_anchor=self.idle_anchor,
            idle_prompted_at=self.idle_prompted_at,
        )

    def rollback(self, checkpoint: EngineCheckpoint) -> None:
        """恢复到 checkpoint() 时的状态。"""
        self.snapshot = checkpoint.snapshot
        self.mode_state = checkpoint.mode_state
        self.modes.state = checkpoint.mode_state
        self.undo_stack.restore(checkpoint.undo_records)
        self.idle_anchor = checkpoint.idle_anchor
        self.idle_prompted_at = checkpoint.idle_prompted_at
        logger.warning("Rolled back to checkpoint of %s", checkpoint.snapshot.date)

    # === 内部 ===

    def _new_entity(self, title, now, estimate_hours, notes, tags) -> Entity:
        clean_title = self._clean_title(title)
        hours = self.cfg.DEFAULT_ESTIMATE_HOURS if estimate_hours is None else estimate_hours
        if hours < 0:
            raise InvalidInput("Estimate must not be negative")
        return Entity.create(clean_title, now, hours_to_delta(hours), notes or "", tags)

    @staticmethod
    def _clean_title(title: Optional[str]) -> str:
        clean = (title or "").strip()
        if not clean:
            raise InvalidInput("Title must not be empty")
        return clean

    def _live(self, entity_id: str) -> Entity:
        entity = self.find(entity_id).entity
        if entity.is_done:
            raise EntityTerminal(entity.id)
        return entity

    def _active_task(self, task_id: str) -> Entity:
        location = self.find(task_id)
        if location.parent is not None:
            raise InvalidInput("Subtasks cannot have subtasks")
        if location.section not in (Section.ACTIVE, Section.POSTPONED):
            raise InvalidInput("Only active tasks can hold new subtasks")
        return location.entity

    def _move(self, entity_id: str, offset: int) -> None:
        location = self.find(entity_id)
        if location.section != Section.ACTIVE:
            raise InvalidInput("Only active entities can be reordered")
        parent_id = location.parent.id if location.parent else None
        self.swap(location.index, location.index + offset, parent_id)

    def _detach(self, location: Location) -> None:
        items = location.parent.subtasks if location.parent else self.snapshot.section(location.section)
        del items[location.index]
        for item in location.entity.walk():
            self.modes.forget(item.id)

    @staticmethod
    def _pause_tree(entity: Entity, now: datetime) -> None:
        for item in entity.walk():
            if item.is_running:
                item.transition(EntityStatus.PAUSED, now)

    def _reset_idle(self) -> None:
        self.idle_anchor = None
        self.idle_prompted_at = None

    def _check_idle(self, now: datetime, result: TickResult) -> None:
        interval_minutes = int(self.cfg.IDLE_CHECK_MINUTES)
        if interval_minutes <= 0:
            return
        running = self.snapshot.running() if self.modes.is_working else []
        if not running:
            self._reset_idle()
            return

        interval = timedelta(minutes=interval_minutes)
        if self.idle_anchor is None:
            self.idle_anchor = now
        if self.idle_prompted_at is None:
            if now - self.idle_anchor >= interval:
                self.idle_prompted_at = now
                result.events.append(IdleCheckDue(now, [e.id for e in running]))
                logger.info("Idle check due (%d running)", len(running))
        elif now - self.idle_prompted_at >= interval:
            for entity in running:
                entity.transition(EntityStatus.PAUSED, now)
            result.events.append(IdleAutoPaused(now, [e.id for e in running]))
            logger.warning("No answer to idle check, paused %d entities", len(running))
            self._reset_idle()
