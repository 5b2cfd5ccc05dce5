from datetime import datetime, timedelta

import pytest

from core.config_manager import SystemConfig
from core.engine import RhythmEngine
from core.exceptions import (
    EntityTerminal,
    IndexOutOfRange,
    InvalidInput,
    NotFound,
    NothingToUndo,
)
from core.models import (
    ContextMode,
    DaySnapshot,
    EntityStatus,
    EstimateReached,
    IdleAutoPaused,
    IdleCheckDue,
    Section,
)

T0 = datetime(2026, 3, 2, 9, 0)
MINUTE = timedelta(minutes=1)


def _engine(**overrides) -> RhythmEngine:
    overrides.setdefault("IDLE_CHECK_MINUTES", 0)
    return RhythmEngine(DaySnapshot(T0.date()), cfg=SystemConfig(**overrides))


def _titles(entities):
    return [e.title for e in entities]


def test_estimate_reached_then_lunch_then_resume():
    engine = _engine()
    task = engine.create_task("Report", T0, estimate_hours=1.0)
    engine.start(task.id, T0)

    signals = []
    for minute in range(1, 46):
        signals += engine.tick(MINUTE, T0 + minute * MINUTE).of_type(EstimateReached)
    assert task.elapsed == timedelta(minutes=45)
    assert signals == []

    for minute in range(46, 62):
        signals += engine.tick(MINUTE, T0 + minute * MINUTE).of_type(EstimateReached)
    assert len(signals) == 1
    assert task.status == EntityStatus.RUNNING

    engine.set_mode(ContextMode.LUNCH, T0 + 61 * MINUTE)
    assert task.status == EntityStatus.PAUSED
    assert task.elapsed_hours == pytest.approx(1.017, abs=0.001)

    for minute in range(62, 92):
        engine.tick(MINUTE, T0 + minute * MINUTE)
    assert task.elapsed == timedelta(minutes=61)
    assert engine.mode_state.mode_time[ContextMode.LUNCH] == timedelta(minutes=30)

    engine.set_mode(ContextMode.WORKING, T0 + 92 * MINUTE)
    engine.tick(MINUTE, T0 + 93 * MINUTE)
    assert task.status == EntityStatus.RUNNING
    assert task.elapsed == timedelta(minutes=62)


def test_tick_accrues_exactly_the_running_set():
    engine = _engine()
    a = engine.create_task("A", T0)
    b = engine.create_task("B", T0)
    sub = engine.create_subtask(b.id, "B1", T0)
    engine.start(a.id, T0)
    engine.start(sub.id, T0)

    engine.tick(timedelta(seconds=10), T0 + timedelta(seconds=10))

    assert a.elapsed == timedelta(seconds=10)
    assert sub.elapsed == timedelta(seconds=10)
    assert b.elapsed == timedelta(0)
    assert engine.mode_state.mode_time[ContextMode.WORKING] == timedelta(seconds=10)


def test_start_and_pause_no_ops_leave_history_alone():
    engine = _engine()
    a = engine.create_task("A", T0)
    assert engine.pause(a.id, T0) is False
    assert engine.start(a.id, T0) is True
    assert engine.start(a.id, T0) is False
    assert len(a.state_history) == 2


def test_mutations_on_done_raise_entity_terminal():
    engine = _engine()
    a = engine.create_task("A", T0)
    engine.mark_done(a.id, T0)

    for call in (
        lambda: engine.start(a.id, T0),
        lambda: engine.pause(a.id, T0),
        lambda: engine.mark_done(a.id, T0),
        lambda: engine.edit(a.id, title="B"),
        lambda: engine.adjust_estimate(a.id, 1),
        lambda: engine.postpone(a.id, T0),
    ):
        with pytest.raises(EntityTerminal):
            call()
    assert a.title == "A"


def test_create_rejects_empty_title_and_unknown_parent():
    engine = _engine()
    with pytest.raises(InvalidInput):
        engine.create_task("   ", T0)
    with pytest.raises(NotFound):
        engine.create_subtask("missing", "Sub", T0)
    assert engine.snapshot.active == []


def test_subtasks_are_depth_one():
    engine = _engine()
    a = engine.create_task("A", T0)
    sub = engine.create_subtask(a.id, "A1", T0)
    with pytest.raises(InvalidInput):
        engine.create_subtask(sub.id, "A1a", T0)


def test_edit_normalizes_tags_and_keeps_order():
    engine = _engine()
    a = engine.create_task("A", T0, tags=["x"])
    engine.edit(a.id, title=" New ", notes="n", tags=["#b", "a", "b"])
    assert a.title == "New"
    assert a.notes == "n"
    assert a.tags == ["b", "a"]


def test_adjust_estimate_clamps_and_leaves_status_alone():
    engine = _engine()
    a = engine.create_task("A", T0, estimate_hours=0.25)
    engine.start(a.id, T0)
    engine.tick(MINUTE, T0 + MINUTE)

    engine.adjust_estimate(a.id, -5)
    assert a.estimate == timedelta(0)
    engine.adjust_estimate(a.id, 2)
    assert a.estimate == timedelta(minutes=30)
    assert a.status == EntityStatus.RUNNING
    assert a.elapsed == MINUTE


def test_extend_estimate_rearms_signal():
    engine = _engine()
    a = engine.create_task("A", T0, estimate_hours=0.25)
    engine.start(a.id, T0)
    first = engine.tick(timedelta(minutes=15), T0 + timedelta(minutes=15)).of_type(EstimateReached)
    assert len(first) == 1

    engine.extend_estimate(a.id, 15)
    assert engine.tick(timedelta(minutes=5), T0 + timedelta(minutes=20)).of_type(EstimateReached) == []
    again = engine.tick(timedelta(minutes=10), T0 + timedelta(minutes=30)).of_type(EstimateReached)
    assert len(again) == 1

    with pytest.raises(InvalidInput):
        engine.extend_estimate(a.id, 0)


def test_swap_validates_range_and_adjacency_without_mutating():
    engine = _engine()
    for title in ("A", "B", "C"):
        engine.create_task(title, T0)

    with pytest.raises(IndexOutOfRange):
        engine.swap(1, 3)
    with pytest.raises(IndexOutOfRange):
        engine.swap(0, 2)
    assert _titles(engine.snapshot.active) == ["A", "B", "C"]

    engine.swap(1, 2)
    assert _titles(engine.snapshot.active) == ["A", "C", "B"]


def test_move_subtask_is_scoped_to_its_parent():
    engine = _engine()
    parent = engine.create_task("P", T0)
    engine.create_task("Q", T0)
    s1 = engine.create_subtask(parent.id, "S1", T0)
    engine.create_subtask(parent.id, "S2", T0)

    engine.move_down(s1.id)
    assert _titles(parent.subtasks) == ["S2", "S1"]
    with pytest.raises(IndexOutOfRange):
        engine.move_down(s1.id)
    with pytest.raises(IndexOutOfRange):
        engine.move_up(parent.id)


def test_select_uses_flat_view():
    engine = _engine()
    a = engine.create_task("A", T0)
    a1 = engine.create_subtask(a.id, "A1", T0)
    b = engine.create_task("B", T0)

    assert engine.select(0) is a
    assert engine.select(1) is a1
    assert engine.select(2) is b
    with pytest.raises(IndexOutOfRange):
        engine.select(3)


@pytest.mark.parametrize("action, section", [
    ("mark_done", Section.DONE),
    ("archive", Section.ARCHIVED),
    ("delete", None),
])
def test_destructive_action_then_undo_is_inverse(action, section):
    engine = _engine()
    for title in ("A", "B", "C"):
        engine.create_task(title, T0)
    b = engine.snapshot.active[1]
    engine.start(b.id, T0)
    history_len = len(b.state_history)

    getattr(engine, action)(b.id, T0 + MINUTE)
    assert _titles(engine.snapshot.active) == ["A", "C"]
    if section is not None:
        assert engine.find(b.id).section == section

    record = engine.undo(T0 + 2 * MINUTE)

    restored = engine.find(b.id)
    assert record.section == Section.ACTIVE
    assert restored.section == Section.ACTIVE
    assert restored.index == 1
    assert restored.entity.status == EntityStatus.RUNNING
    assert len(restored.entity.state_history) == history_len
    assert restored.entity.completed_at is None
    assert _titles(engine.snapshot.active) == ["A", "B", "C"]


def test_subtask_done_moves_out_and_undo_puts_it_back():
    engine = _engine()
    parent = engine.create_task("P", T0)
    s1 = engine.create_subtask(parent.id, "S1", T0)
    engine.create_subtask(parent.id, "S2", T0)

    engine.mark_done(s1.id, T0)
    assert _titles(parent.subtasks) == ["S2"]
    assert engine.snapshot.done[0].id == s1.id

    engine.undo(T0)
    assert _titles(parent.subtasks) == ["S1", "S2"]
    assert engine.snapshot.done == []
    assert parent.subtasks[0].status == EntityStatus.IDLE


def test_task_done_completes_its_subtasks():
    engine = _engine()
    parent = engine.create_task("P", T0)
    sub = engine.create_subtask(parent.id, "S", T0)
    engine.start(sub.id, T0)

    engine.mark_done(parent.id, T0 + MINUTE)

    assert sub.status == EntityStatus.DONE
    assert engine.snapshot.running() == []


def test_undo_capacity_keeps_only_the_latest_ten():
    engine = _engine()
    tasks = [engine.create_task(f"T{i}", T0) for i in range(11)]
    for task in tasks:
        engine.mark_done(task.id, T0)

    for _ in range(10):
        engine.undo(T0)
    with pytest.raises(NothingToUndo):
        engine.undo(T0)

    assert engine.find(tasks[0].id).section == Section.DONE
    assert all(engine.find(t.id).section == Section.ACTIVE for t in tasks[1:])


def test_undo_on_empty_stack():
    with pytest.raises(NothingToUndo):
        _engine().undo(T0)


def test_undo_of_running_entity_outside_working_keeps_mode_invariant():
    engine = _engine()
    a = engine.create_task("A", T0)
    engine.start(a.id, T0)
    engine.archive(a.id, T0 + MINUTE)
    assert a.status == EntityStatus.PAUSED

    engine.set_mode(ContextMode.BREAK, T0 + 2 * MINUTE)
    engine.undo(T0 + 3 * MINUTE)
    restored = engine.find(a.id).entity
    assert restored.status == EntityStatus.PAUSED

    engine.set_mode(ContextMode.WORKING, T0 + 4 * MINUTE)
    assert restored.status == EntityStatus.RUNNING


def test_postpone_pauses_and_moves_out_of_active():
    engine = _engine()
    a = engine.create_task("A", T0, estimate_hours=2)
    engine.start(a.id, T0)
    engine.tick(MINUTE, T0 + MINUTE)

    engine.postpone(a.id, T0 + MINUTE)

    assert engine.snapshot.active == []
    assert engine.snapshot.postponed == [a]
    assert a.status == EntityStatus.PAUSED
    assert a.elapsed == MINUTE
    assert a.estimate == timedelta(hours=2)
    assert len(engine.undo_stack) == 0


def test_idle_check_prompts_then_pauses():
    engine = _engine(IDLE_CHECK_MINUTES=30)
    a = engine.create_task("A", T0)
    engine.start(a.id, T0)

    assert engine.tick(29 * MINUTE, T0 + 29 * MINUTE).events == []
    due = engine.tick(MINUTE, T0 + 30 * MINUTE).of_type(IdleCheckDue)
    assert due and due[0].running_ids == [a.id]

    paused = engine.tick(30 * MINUTE, T0 + 60 * MINUTE).of_type(IdleAutoPaused)
    assert paused and paused[0].paused_ids == [a.id]
    assert a.status == EntityStatus.PAUSED


def test_confirm_working_resets_idle_window():
    engine = _engine(IDLE_CHECK_MINUTES=30)
    a = engine.create_task("A", T0)
    engine.start(a.id, T0)
    engine.tick(30 * MINUTE, T0 + 30 * MINUTE)

    engine.confirm_working(T0 + 31 * MINUTE)

    result = engine.tick(29 * MINUTE, T0 + 60 * MINUTE)
    assert result.of_type(IdleAutoPaused) == []
    assert a.status == EntityStatus.RUNNING
