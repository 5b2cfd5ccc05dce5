"""
Rhythm Session: the single logical actor of Daily Rhythm.

Ticks (from the background Ticker) and user operations (CLI, HTTP) are
funnelled through one lock, so they are strictly ordered and never
interleave mid-operation. The session also owns startup catch-up,
persistence and notification fan-out.
"""
import threading
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, TypeVar

from core.config_manager import SystemConfig, config
from core.engine import RhythmEngine
from core.exceptions import InvalidInput, NotFound, PersistenceError
from core.logger import get_logger
from core.models import ClosedDay, ContextMode, DaySnapshot, EntityStatus, Meta, ModeState, TickResult
from core.planner import PlannerLayout, build_layout
from core.report_generator import ReportGenerator
from core.storage import Storage
from core.undo import UndoRecord
from interface.notifiers import NotificationCenter
from scheduler.daily_tick import DayTransition, backfill_reports

logger = get_logger("session")

T = TypeVar("T")


class RhythmSession:
    def __init__(
        self,
        engine: RhythmEngine,
        storage: Storage,
        reporter: Optional[ReportGenerator] = None,
        notifications: Optional[NotificationCenter] = None,
        last_tick: Optional[datetime] = None,
        cfg: Optional[SystemConfig] = None,
    ):
        self.cfg = cfg or config
        self.engine = engine
        self.storage = storage
        self.reporter = reporter or ReportGenerator(storage.data_dir / "reports")
        self.notifications = notifications or NotificationCenter()
        self.transition = DayTransition([self._persist_closed_day, self._report_closed_day])
        self.warnings: List[str] = []
        self._last_tick = last_tick or datetime.now()
        self._lock = threading.RLock()

    # === 启动 ===

    @classmethod
    def open(
        cls,
        storage: Optional[Storage] = None,
        reporter: Optional[ReportGenerator] = None,
        notifications: Optional[NotificationCenter] = None,
        now: Optional[datetime] = None,
        cfg: Optional[SystemConfig] = None,
    ) -> "RhythmSession":
        """
        载入今天的状态。

        - 今天已有存档：载入并把上次保存以来的时间作为一次 tick 补上
        - 否则从最近一天迁移：为前一天写报告，补写更早缺失的报告
        - 今天的存档损坏时从空快照开始，不迁移前一天
        - 持久化错误只记录警告，以空快照继续
        """
        cfg = cfg or config
        now = now or datetime.now()
        storage = storage or Storage()
        today = now.date()
        warnings: List[str] = []

        try:
            meta = storage.load_meta()
        except PersistenceError as e:
            warnings.append(e.get_user_message())
            logger.error("Meta unreadable, using defaults: %s", e)
            meta = Meta(mode_state=ModeState(mode=ContextMode.parse(cfg.DEFAULT_MODE)))

        snapshot_path = storage.day_path(today)
        snapshot = _load_or_none(storage, today, warnings)
        if snapshot is None and snapshot_path.exists():
            # 今天的存档已损坏（已备份）：从空快照开始，不再从前一天迁移
            engine = RhythmEngine(DaySnapshot(date=today), meta.mode_state, cfg)
            if meta.last_date != today:
                engine.modes.reset_day()
            session = cls(engine, storage, reporter, notifications, now, cfg)
            session.warnings = warnings
            session.save(now)
            return session

        if snapshot is not None:
            last_tick = now
            if meta.saved_at is not None and meta.saved_at.date() == today and meta.saved_at <= now:
                last_tick = meta.saved_at
            engine = RhythmEngine(snapshot, meta.mode_state, cfg)
            engine.undo_stack.restore(_load_undo(storage, today, warnings))
            if meta.last_date != today:
                engine.modes.reset_day()
            else:
                engine.idle_anchor = meta.idle_anchor
                engine.idle_prompted_at = meta.idle_prompted_at
            session = cls(engine, storage, reporter, notifications, last_tick, cfg)
            session.warnings = warnings
            # 补上进程不在时的计时
            session.tick(now)
            return session

        previous_date = meta.last_date if meta.last_date and meta.last_date < today else None
        previous_date = previous_date or storage.latest_before(today)
        previous = _load_or_none(storage, previous_date, warnings) if previous_date else None

        engine = RhythmEngine(previous or DaySnapshot(date=today), meta.mode_state, cfg)
        session = cls(engine, storage, reporter, notifications, now, cfg)
        session.warnings = warnings
        if previous is not None:
            logger.info("Catching up from %s to %s", previous.date, today)
            session.transition.roll(engine, today, now)
            backfill_reports(storage, session.reporter, today, int(cfg.REPORT_BACKFILL_DAYS))
        else:
            engine.modes.reset_day()
        session.save(now)
        return session

    # === 时钟与操作 ===

    @property
    def today(self) -> date:
        return self.engine.snapshot.date

    def tick(self, now: Optional[datetime] = None) -> TickResult:
        """把上一次 tick 以来的时间计入，再检查日切。通知在释放锁之后发出。"""
        now = now or datetime.now()
        result = self._advance(now)
        self._publish(result.events)
        return result

    def perform(self, action: Callable[[RhythmEngine, datetime], T], now: Optional[datetime] = None) -> T:
        """
        执行一次用户操作：先 tick 到 now，再调用 action(engine, now)，最后保存。

        action 抛出的 RhythmError 原样向上传递，此时状态未被修改。
        保存失败时回滚到 action 之前的状态，再抛出 PersistenceError。
        """
        now = now or datetime.now()
        events: List[object] = []
        try:
            with self._lock:
                events = self._advance(now).events
                checkpoint = self.engine.checkpoint()
                try:
                    value = action(self.engine, now)
                    self.save(now)
                except PersistenceError:
                    self.engine.rollback(checkpoint)
                    raise
                return value
        finally:
            self._publish(events)

    def read(self, view: Callable[[RhythmEngine], T]) -> T:
        with self._lock:
            return view(self.engine)

    def save(self, now: Optional[datetime] = None) -> None:
        now = now or datetime.now()
        with self._lock:
            engine = self.engine
            self.storage.save(engine.snapshot)
            self.storage.save_undo(engine.snapshot.date, engine.undo_stack.records())
            self.storage.save_meta(Meta(
                mode_state=engine.mode_state,
                last_date=engine.snapshot.date,
                idle_anchor=engine.idle_anchor,
                idle_prompted_at=engine.idle_prompted_at,
                saved_at=now,
            ))

    def close(self, now: Optional[datetime] = None) -> None:
        """退出时暂停所有计时，避免无人值守时继续计时。"""
        now = now or datetime.now()
        with self._lock:
            events = self._advance(now).events
            for entity in self.engine.snapshot.running():
                entity.transition(EntityStatus.PAUSED, now)
            self.save(now)
        self._publish(events)
        logger.info("Session closed")

    def _advance(self, now: datetime) -> TickResult:
        with self._lock:
            delta = max(now - self._last_tick, timedelta(0))
            self._last_tick = max(now, self._last_tick)
            result = self.engine.tick(delta, now)
            rolled = self.transition.check(self.engine, now)
            if rolled is not None:
                result.events.append(rolled)
                self.save(now)
            return result

    def _publish(self, events: List[object]) -> None:
        if events:
            self.notifications.publish(events)

    # === 视图 ===

    def planner(self, now: Optional[datetime] = None) -> PlannerLayout:
        now = now or datetime.now()
        with self._lock:
            return build_layout(self.engine.snapshot.active, now, self.cfg, day=self.today)

    def write_report(self, day: Optional[date] = None, now: Optional[datetime] = None):
        """为指定日期写报告；今天使用内存中的当前状态，计到 now。"""
        with self._lock:
            if day is None or day == self.today:
                closed = ClosedDay(self.engine.snapshot, self.engine.mode_state, closed_at=now or datetime.now())
                return self.reporter.generate(closed)
            return self.reporter.generate(ClosedDay(self.storage.load(day), ModeState()))

    # === 日志 ===

    def read_journal(self, day: Optional[date] = None) -> str:
        return self.storage.load_journal(day or self.today)

    def write_journal(self, text: str, day: Optional[date] = None) -> None:
        """覆盖写入某天的日志。只允许今天及以前。"""
        with self._lock:
            day = day or self.today
            if day > self.today:
                raise InvalidInput("Journal entries cannot be written for future days")
            self.storage.save_journal(day, text)
        logger.info("Journal saved for %s", day)

    # === 日切钩子 ===

    def _persist_closed_day(self, closed: ClosedDay) -> None:
        self.storage.save(closed.snapshot)

    def _report_closed_day(self, closed: ClosedDay) -> None:
        self.reporter.generate(closed)


def _load_or_none(storage: Storage, day: date, warnings: List[str]) -> Optional[DaySnapshot]:
    try:
        return storage.load(day)
    except NotFound:
        return None
    except PersistenceError as e:
        warnings.append(e.get_user_message())
        logger.error("Snapshot for %s unreadable, starting empty: %s", day, e)
        return None


def _load_undo(storage: Storage, day: date, warnings: List[str]) -> List[UndoRecord]:
    try:
        return storage.load_undo(day)
    except PersistenceError as e:
        warnings.append(e.get_user_message())
        logger.error("Undo history unreadable, starting without it: %s", e)
        return []


# === 进程级单例 ===

_session: Optional[RhythmSession] = None
_session_lock = threading.Lock()


def get_session() -> RhythmSession:
    global _session
    with _session_lock:
        if _session is None:
            _session = RhythmSession.open(notifications=NotificationCenter.from_config())
        return _session


def set_session(session: Optional[RhythmSession]) -> None:
    global _session
    with _session_lock:
        _session = session
