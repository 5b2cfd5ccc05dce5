from datetime import date, datetime, timedelta

from core.config_manager import SystemConfig
from core.engine import RhythmEngine
from core.models import ContextMode, DaySnapshot, EntityStatus
from scheduler.daily_tick import DayTransition, dates_between, migrate_snapshot

DAY = date(2026, 3, 2)
T0 = datetime(2026, 3, 2, 9, 0)
MIDNIGHT = datetime(2026, 3, 3, 0, 0, 1)


def _engine() -> RhythmEngine:
    return RhythmEngine(DaySnapshot(DAY), cfg=SystemConfig(IDLE_CHECK_MINUTES=0))


def test_migrate_keeps_unfinished_and_postponed():
    engine = _engine()
    a = engine.create_task("A", T0, estimate_hours=1)
    b = engine.create_task("B", T0)
    c = engine.create_task("C", T0)
    d = engine.create_task("D", T0)
    engine.start(a.id, T0)
    engine.tick(timedelta(minutes=20), T0 + timedelta(minutes=20))
    engine.mark_done(b.id, T0)
    engine.archive(c.id, T0)
    engine.postpone(d.id, T0)

    migrated = migrate_snapshot(engine.snapshot, DAY + timedelta(days=1))

    assert [e.title for e in migrated.active] == ["A", "D"]
    assert migrated.active[0].elapsed == timedelta(minutes=20)
    assert migrated.active[0].status == EntityStatus.RUNNING
    assert migrated.done == []
    assert migrated.postponed == []
    assert [e.title for e in migrated.archived] == ["C"]


def test_roll_installs_new_day_and_resets_day_state():
    engine = _engine()
    a = engine.create_task("A", T0)
    b = engine.create_task("B", T0)
    engine.mark_done(b.id, T0)
    engine.tick(timedelta(minutes=5), T0 + timedelta(minutes=5))
    closed = []

    event = DayTransition([closed.append]).check(engine, MIDNIGHT)

    assert event.previous_date == DAY
    assert event.new_date == MIDNIGHT.date()
    assert event.migrated == 1
    assert engine.snapshot.date == MIDNIGHT.date()
    assert [e.id for e in engine.snapshot.active] == [a.id]
    assert len(engine.undo_stack) == 0
    assert all(v == timedelta(0) for v in engine.mode_state.mode_time.values())

    # the frozen day is a copy, untouched by the new day
    assert closed[0].snapshot.date == DAY
    assert [e.title for e in closed[0].snapshot.done] == ["B"]
    assert closed[0].mode_state.mode_time[ContextMode.WORKING] == timedelta(minutes=5)


def test_failing_hook_does_not_block_the_new_day():
    engine = _engine()
    engine.create_task("A", T0)
    seen = []

    def broken(closed):
        raise OSError("disk full")

    event = DayTransition([broken, seen.append]).check(engine, MIDNIGHT)

    assert event is not None
    assert engine.snapshot.date == MIDNIGHT.date()
    assert len(seen) == 1


def test_same_day_and_clock_going_backwards_do_nothing():
    engine = _engine()
    transition = DayTransition()
    assert transition.check(engine, T0 + timedelta(hours=10)) is None
    assert transition.check(engine, T0 - timedelta(days=1)) is None
    assert engine.snapshot.date == DAY


def test_mode_and_auto_paused_carry_over():
    engine = _engine()
    a = engine.create_task("A", T0)
    engine.start(a.id, T0)
    engine.set_mode(ContextMode.SLEEP, T0 + timedelta(hours=14))

    DayTransition().check(engine, MIDNIGHT)
    assert engine.mode == ContextMode.SLEEP

    engine.set_mode(ContextMode.WORKING, MIDNIGHT + timedelta(hours=9))
    assert engine.find(a.id).entity.status == EntityStatus.RUNNING


def test_dates_between_is_half_open():
    assert dates_between(DAY, DAY) == []
    assert dates_between(DAY, DAY + timedelta(days=3)) == [
        DAY, DAY + timedelta(days=1), DAY + timedelta(days=2),
    ]
