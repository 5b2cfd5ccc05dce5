"""
Daily Tick Scheduler for Daily Rhythm.

Handles the day boundary: when the local date moves past the snapshot's
date, the ending day is frozen and handed to the day-closed hooks (persist,
report), then a migrated snapshot for the new day is installed.

事件类型:
- DayRolled: 日期变更，未完成条目已迁移

因果链:
    触发条件: now.date() != snapshot.date
    成立条件: now.date() > snapshot.date
    失效条件: 今日快照已安装
"""
import copy
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional

from core.exceptions import PersistenceError
from core.logger import get_logger
from core.models import ClosedDay, DayRolled, DaySnapshot, ModeState

logger = get_logger("daily_tick")

DayClosedHook = Callable[[ClosedDay], None]


def migrate_snapshot(previous: DaySnapshot, new_date: date) -> DaySnapshot:
    """
    生成新一天的快照。

    ACTIVE = 前一天 ACTIVE 中未完成的任务（原样保留）+ 延期到今天的任务。
    DONE 清空，ARCHIVED 原样带入。
    """
    active = [task for task in previous.active if not task.is_done]
    active.extend(previous.postponed)
    return DaySnapshot(
        date=new_date,
        active=active,
        done=[],
        archived=list(previous.archived),
        postponed=[],
    )


class DayTransition:
    """每个 tick 的最后一步：检查并执行日切。"""

    def __init__(self, hooks: Optional[Iterable[DayClosedHook]] = None):
        self.hooks: List[DayClosedHook] = list(hooks or [])

    def add_hook(self, hook: DayClosedHook) -> None:
        self.hooks.append(hook)

    def check(self, engine, now: datetime) -> Optional[DayRolled]:
        current = engine.snapshot.date
        today = now.date()
        if today == current:
            return None
        if today < current:
            logger.warning("Clock is behind the snapshot date (%s < %s), not rolling back", today, current)
            return None
        return self.roll(engine, today, now)

    def roll(self, engine, new_date: date, now: datetime) -> DayRolled:
        previous_date = engine.snapshot.date
        closed = ClosedDay(
            snapshot=copy.deepcopy(engine.snapshot),
            mode_state=copy.deepcopy(engine.mode_state),
            closed_at=now,
        )

        # 报告或持久化失败不阻塞新一天
        for hook in self.hooks:
            try:
                hook(closed)
            except Exception:
                logger.exception("Day-closed hook %r failed for %s", hook, previous_date)

        migrated = migrate_snapshot(engine.snapshot, new_date)
        engine.install_day(migrated)
        logger.info(
            "Rolled %s -> %s, migrated %d tasks",
            previous_date, new_date, len(migrated.active),
        )
        return DayRolled(previous_date, new_date, len(migrated.active))


def dates_between(start: date, end: date) -> List[date]:
    """[start, end) 内的每一天。"""
    days = []
    cursor = start
    while cursor < end:
        days.append(cursor)
        cursor += timedelta(days=1)
    return days


def backfill_reports(storage, reporter, today: date, days: int) -> List[date]:
    """
    为今天之前 days 天内有存档但没有报告的日期补写报告。

    Returns:
        补写成功的日期
    """
    stored = set(storage.list_dates())
    candidates = [d for d in dates_between(today - timedelta(days=days), today) if d in stored]
    written = []
    for day in candidates:
        if reporter.exists(day):
            continue
        try:
            snapshot = storage.load(day)
            reporter.generate(ClosedDay(snapshot=snapshot, mode_state=ModeState()))
            written.append(day)
        except (PersistenceError, OSError) as e:
            logger.warning("Report backfill for %s failed: %s", day, e)
    return written
