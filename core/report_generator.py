"""
Daily report generator.

Writes a markdown summary of a finished day to reports/YYYY-MM-DD.md.
Writing overwrites, so generating the same date twice yields one report.
"""
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional

from core.logger import get_logger
from core.models import ClosedDay, ContextMode, Entity
from core.paths import DATA_DIR
from core.stats import DayStats, interruption_count, session_count, summarize_day
from core.storage import DATE_FORMAT
from core.time_tracking import format_duration

logger = get_logger("report")


def _percent(value: Optional[float]) -> str:
    if value is None:
        return "n/a"
    return f"{value * 100:.0f}%"


def _share(part: timedelta, whole: timedelta) -> str:
    return _percent(part / whole if whole else None)


def _entity_line(entity: Entity, indent: str = "") -> str:
    tags = " ".join(f"#{t}" for t in entity.tags)
    line = (
        f"{indent}- **{entity.title}** ({entity.status.value}) "
        f"{format_duration(entity.elapsed)} / {format_duration(entity.estimate)}"
    )
    if session_count(entity):
        line += f", {session_count(entity)} sessions, {interruption_count(entity)} interruptions"
    if tags:
        line += f" {tags}"
    return line


def _entity_block(entities: List[Entity]) -> List[str]:
    lines = []
    for entity in entities:
        lines.append(_entity_line(entity))
        lines.extend(_entity_line(sub, "  ") for sub in entity.subtasks)
    return lines or ["_None_"]


def _tag_section(stats: DayStats) -> List[str]:
    if not stats.tags:
        return ["_No tags_"]
    lines = []
    ranked = sorted(stats.tags.items(), key=lambda item: item[1].elapsed, reverse=True)
    for tag, tag_stats in ranked:
        tag_accuracy = tag_stats.accuracy
        lines += [
            f"### #{tag}",
            "",
            f"- Tasks: {tag_stats.tasks} ({tag_stats.done} done, {tag_stats.active} open)",
            f"- Time: {format_duration(tag_stats.elapsed)} / {format_duration(tag_stats.estimate)}",
            "- Estimation accuracy: " + (f"{tag_accuracy:.0f}%" if tag_accuracy is not None else "n/a"),
            f"- Average session: {format_duration(tag_stats.avg_session)}",
            "",
        ]
    return lines[:-1]


def render_report(day: ClosedDay) -> str:
    snapshot = day.snapshot
    stats: DayStats = summarize_day(snapshot, day.mode_state, until=day.closed_at)
    date_str = snapshot.date.strftime(DATE_FORMAT)

    lines = [f"# Daily Report {date_str}", ""]

    lines += [
        "## Summary",
        "",
        f"- Tasks worked on: {stats.total}",
        f"- Completed: {stats.completed} ({_percent(stats.completion_rate)})",
        f"- Still open: {stats.open}",
        f"- Archived: {stats.archived}",
        f"- Time tracked: {format_duration(stats.total_elapsed)}"
        f" of {format_duration(stats.total_estimate)} estimated"
        f" ({_share(stats.total_elapsed, stats.total_estimate)})",
        f"- Efficiency: {_percent(stats.efficiency)}",
        "",
    ]

    lines += ["## Context Modes", "", "| Mode | Time |", "| --- | --- |"]
    for mode in ContextMode:
        lines.append(f"| {mode.label} | {format_duration(stats.mode_time.get(mode, timedelta(0)))} |")
    lines.append("")

    tracked = stats.tracked_time
    lines += [
        "## Time & Productivity",
        "",
        f"- Running: {format_duration(stats.running_time)} ({_share(stats.running_time, tracked)})",
        f"- Paused: {format_duration(stats.paused_time)} ({_share(stats.paused_time, tracked)})",
        f"- Idle: {format_duration(stats.idle_time)} ({_share(stats.idle_time, tracked)})",
        f"- Estimated: {format_duration(stats.total_estimate)}",
        f"- Elapsed: {format_duration(stats.total_elapsed)}",
        f"- Remaining: {format_duration(stats.remaining)}",
        f"- Sessions: {stats.sessions}",
        f"- Average session: {format_duration(stats.avg_session)}",
        f"- Longest session: {format_duration(stats.longest_session)}",
        f"- Interruptions: {stats.interruptions}",
        "",
    ]

    estimation = stats.estimation
    lines += ["## Estimation Accuracy", ""]
    if estimation.measured:
        lines += [
            f"- Measured tasks: {estimation.measured}",
            f"- On target: {estimation.on_target}",
            f"- Over estimate: {estimation.over} (+{format_duration(estimation.over_time)})",
            f"- Under estimate: {estimation.under} (-{format_duration(estimation.under_time)})",
            f"- Mean elapsed/estimate: {estimation.mean_ratio:.2f}",
            f"- Average accuracy: {estimation.mean_accuracy:.0f}%",
        ]
    else:
        lines.append("_No completed tasks with an estimate_")
    lines.append("")

    completion = stats.completion
    lines += [
        "## Task Completion",
        "",
        f"- Done: {stats.completed}",
        f"- Open: {stats.open}",
        f"- Archived: {stats.archived}",
    ]
    if completion.fastest:
        lines += [
            f"- Average completion time: {format_duration(completion.avg_completion)}",
            f"- Fastest: {completion.fastest[0]} ({format_duration(completion.fastest[1])})",
            f"- Longest: {completion.longest[0]} ({format_duration(completion.longest[1])})",
        ]
    lines.append("")

    lines += ["## Tag Analysis", ""]
    lines += _tag_section(stats)
    lines.append("")

    lines += ["## Tasks Breakdown", "", "### Done", ""]
    lines += _entity_block(snapshot.done)
    lines += ["", "### Open", ""]
    lines += _entity_block(snapshot.active + snapshot.postponed)
    lines += ["", "### Archived", ""]
    lines += _entity_block(snapshot.archived)
    lines.append("")
    return "\n".join(lines)


class ReportGenerator:
    def __init__(self, reports_dir: Optional[Path] = None):
        self.reports_dir = Path(reports_dir) if reports_dir else DATA_DIR / "reports"

    def report_path(self, day: date) -> Path:
        return self.reports_dir / f"{day.strftime(DATE_FORMAT)}.md"

    def exists(self, day: date) -> bool:
        return self.report_path(day).exists()

    def generate(self, day: ClosedDay) -> Path:
        path = self.report_path(day.snapshot.date)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_report(day), encoding="utf-8")
        logger.info("Report written: %s", path)
        return path
