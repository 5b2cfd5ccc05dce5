from datetime import date, datetime, timedelta

from core.config_manager import SystemConfig
from core.engine import RhythmEngine
from core.models import ClosedDay, ContextMode, DaySnapshot, Entity
from core.report_generator import ReportGenerator, render_report
from core.stats import accuracy, compute_totals, estimation_stats, summarize_day

DAY = date(2026, 3, 2)
T0 = datetime(2026, 3, 2, 9, 0)


def _closed_day() -> ClosedDay:
    engine = RhythmEngine(DaySnapshot(DAY), cfg=SystemConfig(IDLE_CHECK_MINUTES=0))
    a = engine.create_task("Write", T0, estimate_hours=0.5, tags=["deep"])
    b = engine.create_task("Mail", T0, estimate_hours=1.0, tags=["admin"])
    engine.start(a.id, T0)
    engine.tick(timedelta(minutes=30), T0 + timedelta(minutes=30))
    engine.mark_done(a.id, T0 + timedelta(minutes=30))
    engine.start(b.id, T0 + timedelta(minutes=30))
    engine.tick(timedelta(minutes=10), T0 + timedelta(minutes=40))
    engine.set_mode(ContextMode.LUNCH, T0 + timedelta(minutes=40))
    engine.tick(timedelta(minutes=45), T0 + timedelta(minutes=85))
    return ClosedDay(engine.snapshot, engine.mode_state, closed_at=T0 + timedelta(minutes=85))


def test_summary_numbers():
    day = _closed_day()
    stats = summarize_day(day.snapshot, day.mode_state)

    assert stats.completed == 1
    assert stats.open == 1
    assert stats.completion_rate == 0.5
    assert stats.total_elapsed == timedelta(minutes=40)
    assert stats.mode_time[ContextMode.LUNCH] == timedelta(minutes=45)
    assert stats.tags["deep"].elapsed == timedelta(minutes=30)
    assert stats.remaining == timedelta(minutes=50)


def test_estimation_stats_counts_on_target():
    day = _closed_day()
    estimation = estimation_stats(day.snapshot.done)
    assert estimation.measured == 1
    assert estimation.on_target == 1
    assert estimation.mean_ratio == 1.0


def test_totals_use_leaves_only():
    day = _closed_day()
    mail = day.snapshot.active[0]
    mail.subtasks = [
        Entity.create("Inbox", T0, estimate=timedelta(minutes=15)),
        Entity.create("Replies", T0, estimate=timedelta(minutes=30)),
    ]
    estimate, elapsed = compute_totals(day.snapshot.active)
    assert estimate == timedelta(minutes=45)
    assert elapsed == timedelta(0)


def test_report_has_every_section():
    text = render_report(_closed_day())

    for heading in (
        "# Daily Report 2026-03-02",
        "## Summary",
        "## Context Modes",
        "## Time & Productivity",
        "## Estimation Accuracy",
        "## Task Completion",
        "## Tag Analysis",
        "## Tasks Breakdown",
        "### Done",
        "### Open",
        "### Archived",
    ):
        assert heading in text
    assert "| Lunch | 45m |" in text
    assert "### #deep" in text
    assert "- Tasks: 1 (1 done, 0 open)" in text


def test_generate_overwrites_the_same_file(tmp_path):
    reporter = ReportGenerator(tmp_path / "reports")
    day = _closed_day()

    first = reporter.generate(day)
    content = first.read_text(encoding="utf-8")
    second = reporter.generate(day)

    assert first == second == tmp_path / "reports" / "2026-03-02.md"
    assert second.read_text(encoding="utf-8") == content
    assert reporter.exists(DAY)


def test_state_times_follow_history_until_close():
    day = _closed_day()
    stats = summarize_day(day.snapshot, day.mode_state, until=day.closed_at)

    # Mail waited 30m before starting, ran 10m, then sat paused through lunch
    assert stats.running_time == timedelta(minutes=40)
    assert stats.paused_time == timedelta(minutes=45)
    assert stats.idle_time == timedelta(minutes=30)
    assert stats.efficiency == 40 / 115
    assert stats.sessions == 2
    assert stats.avg_session == timedelta(minutes=20)
    assert stats.longest_session == timedelta(minutes=30)
    assert stats.interruptions == 1


def test_completion_and_tag_stats():
    day = _closed_day()
    stats = summarize_day(day.snapshot, day.mode_state, until=day.closed_at)

    assert stats.completion.fastest == ("Write", timedelta(minutes=30))
    assert stats.completion.longest == ("Write", timedelta(minutes=30))
    assert stats.completion.avg_completion == timedelta(minutes=30)

    deep = stats.tags["deep"]
    assert (deep.tasks, deep.done, deep.active) == (1, 1, 0)
    assert deep.accuracy == 100.0
    assert deep.avg_session == timedelta(minutes=30)

    admin = stats.tags["admin"]
    assert (admin.tasks, admin.done, admin.active) == (1, 0, 1)
    assert admin.accuracy is None
    assert admin.running == timedelta(minutes=10)


def test_accuracy_penalises_both_directions():
    assert accuracy(timedelta(hours=1), timedelta(hours=2)) == 50.0
    assert accuracy(timedelta(hours=2), timedelta(hours=1)) == 50.0
    assert accuracy(timedelta(0), timedelta(hours=1)) is None


def test_report_lists_productivity_and_archived_tasks():
    day = _closed_day()
    day.snapshot.archived.append(Entity.create("Old idea", T0))
    text = render_report(day)

    assert "- Running: 40m (35%)" in text
    assert "- Idle: 30m (26%)" in text
    assert "- Remaining: 50m" in text
    assert "- Longest session: 30m" in text
    assert "- Fastest: Write (30m)" in text
    assert "- Average accuracy: 100%" in text
    archived = text.split("### Archived", 1)[1]
    assert "**Old idea**" in archived
