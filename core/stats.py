"""
Statistics derived from entities and their state history.
Used by the daily report and the status views.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from core.models import ContextMode, DaySnapshot, Entity, EntityStatus, ModeState
from core.time_tracking import remaining


def time_in_each_state(entity: Entity, until: Optional[datetime] = None) -> Dict[EntityStatus, timedelta]:
    """按状态历史统计在每个状态停留的时长。最后一个状态计到 until（默认完成时间）。"""
    totals = {status: timedelta(0) for status in EntityStatus}
    history = entity.state_history
    for current, following in zip(history, history[1:]):
        totals[current.to_status] += following.timestamp - current.timestamp
    if history:
        last = history[-1]
        end = until or entity.completed_at
        if end is not None and end > last.timestamp and last.to_status != EntityStatus.DONE:
            totals[last.to_status] += end - last.timestamp
    return totals


def session_durations(entity: Entity, until: Optional[datetime] = None) -> List[timedelta]:
    """每一段 RUNNING 的时长。仍在运行的最后一段计到 until。"""
    durations = []
    history = entity.state_history
    for index, event in enumerate(history):
        if event.to_status != EntityStatus.RUNNING:
            continue
        if index + 1 < len(history):
            end = history[index + 1].timestamp
        else:
            end = until or entity.completed_at
        if end is not None and end > event.timestamp:
            durations.append(end - event.timestamp)
    return durations


def session_count(entity: Entity) -> int:
    """进入 RUNNING 的次数。"""
    return sum(1 for event in entity.state_history if event.to_status == EntityStatus.RUNNING)


def interruption_count(entity: Entity) -> int:
    """RUNNING -> PAUSED 的次数。"""
    return sum(
        1 for event in entity.state_history
        if event.from_status == EntityStatus.RUNNING and event.to_status == EntityStatus.PAUSED
    )


def leaves(entities: Iterable[Entity]) -> List[Entity]:
    out: List[Entity] = []
    for entity in entities:
        out.extend(entity.leaves())
    return out


def compute_totals(entities: Iterable[Entity]) -> Tuple[timedelta, timedelta]:
    """叶子条目的 (估时合计, 已用合计)。父任务自身的估时不重复计入。"""
    estimate = timedelta(0)
    elapsed = timedelta(0)
    for leaf in leaves(entities):
        estimate += leaf.estimate
        elapsed += leaf.elapsed
    return estimate, elapsed


def remaining_time(entities: Iterable[Entity]) -> timedelta:
    total = timedelta(0)
    for leaf in leaves(entities):
        if not leaf.is_done:
            total += remaining(leaf)
    return total


def accuracy(estimate: timedelta, elapsed: timedelta) -> Optional[float]:
    """估时准确度（百分比）。超时和提前都会低于 100。"""
    if estimate <= timedelta(0):
        return None
    ratio = elapsed / estimate
    return 100 / ratio if ratio > 1 else ratio * 100


@dataclass
class EstimationStats:
    measured: int = 0
    over: int = 0
    under: int = 0
    on_target: int = 0
    over_time: timedelta = timedelta(0)
    under_time: timedelta = timedelta(0)
    # elapsed / estimate 的平均值，1.0 表示完全准确
    mean_ratio: Optional[float] = None
    mean_accuracy: Optional[float] = None


@dataclass
class CompletionStats:
    avg_completion: timedelta = timedelta(0)
    fastest: Optional[Tuple[str, timedelta]] = None
    longest: Optional[Tuple[str, timedelta]] = None


@dataclass
class TagStats:
    tasks: int = 0
    done: int = 0
    active: int = 0
    estimate: timedelta = timedelta(0)
    elapsed: timedelta = timedelta(0)
    running: timedelta = timedelta(0)
    sessions: int = 0
    accuracies: List[float] = field(default_factory=list)

    @property
    def accuracy(self) -> Optional[float]:
        if not self.accuracies:
            return None
        return sum(self.accuracies) / len(self.accuracies)

    @property
    def avg_session(self) -> timedelta:
        return self.running / self.sessions if self.sessions else timedelta(0)


@dataclass
class DayStats:
    total: int = 0
    completed: int = 0
    open: int = 0
    archived: int = 0
    total_estimate: timedelta = timedelta(0)
    total_elapsed: timedelta = timedelta(0)
    remaining: timedelta = timedelta(0)
    running_time: timedelta = timedelta(0)
    paused_time: timedelta = timedelta(0)
    idle_time: timedelta = timedelta(0)
    sessions: int = 0
    longest_session: timedelta = timedelta(0)
    interruptions: int = 0
    estimation: EstimationStats = field(default_factory=EstimationStats)
    completion: CompletionStats = field(default_factory=CompletionStats)
    tags: Dict[str, TagStats] = field(default_factory=OrderedDict)
    mode_time: Dict[ContextMode, timedelta] = field(default_factory=dict)

    @property
    def completion_rate(self) -> float:
        return self.completed / self.total if self.total else 0.0

    @property
    def tracked_time(self) -> timedelta:
        return self.running_time + self.paused_time + self.idle_time

    @property
    def efficiency(self) -> Optional[float]:
        """运行时间占全部记录时间的比例。"""
        tracked = self.tracked_time
        return self.running_time / tracked if tracked else None

    @property
    def avg_session(self) -> timedelta:
        return self.running_time / self.sessions if self.sessions else timedelta(0)


# 估时误差在 ±10% 内视为准确
ON_TARGET_TOLERANCE = 0.1


def estimation_stats(done: Iterable[Entity]) -> EstimationStats:
    stats = EstimationStats()
    ratios = []
    accuracies = []
    for entity in done:
        if entity.estimate <= timedelta(0):
            continue
        ratio = entity.elapsed / entity.estimate
        ratios.append(ratio)
        if ratio > 1 + ON_TARGET_TOLERANCE:
            stats.over += 1
            stats.over_time += entity.elapsed - entity.estimate
        elif ratio < 1 - ON_TARGET_TOLERANCE:
            stats.under += 1
            stats.under_time += entity.estimate - entity.elapsed
        else:
            stats.on_target += 1
        score = accuracy(entity.estimate, entity.elapsed)
        if score is not None:
            accuracies.append(score)
    stats.measured = len(ratios)
    if ratios:
        stats.mean_ratio = sum(ratios) / len(ratios)
    if accuracies:
        stats.mean_accuracy = sum(accuracies) / len(accuracies)
    return stats


def completion_stats(done: Iterable[Entity]) -> CompletionStats:
    stats = CompletionStats()
    finished = [entity for entity in done if entity.elapsed > timedelta(0)]
    if not finished:
        return stats
    stats.avg_completion = sum((e.elapsed for e in finished), timedelta(0)) / len(finished)
    fastest = min(finished, key=lambda e: e.elapsed)
    longest = max(finished, key=lambda e: e.elapsed)
    stats.fastest = (fastest.title, fastest.elapsed)
    stats.longest = (longest.title, longest.elapsed)
    return stats


def summarize_day(snapshot: DaySnapshot, mode_state: ModeState,
                  until: Optional[datetime] = None) -> DayStats:
    open_leaves = leaves(snapshot.active) + leaves(snapshot.postponed)
    done_leaves = leaves(snapshot.done)
    worked = open_leaves + done_leaves

    stats = DayStats(
        total=len(worked),
        completed=len(done_leaves),
        open=len(open_leaves),
        archived=len(snapshot.archived),
        mode_time=dict(mode_state.mode_time),
    )
    stats.total_estimate, stats.total_elapsed = compute_totals(snapshot.active + snapshot.postponed + snapshot.done)
    stats.remaining = remaining_time(snapshot.active + snapshot.postponed)
    stats.estimation = estimation_stats(done_leaves)
    stats.completion = completion_stats(done_leaves)

    for entity in worked:
        in_state = time_in_each_state(entity, until)
        stats.running_time += in_state[EntityStatus.RUNNING]
        stats.paused_time += in_state[EntityStatus.PAUSED]
        stats.idle_time += in_state[EntityStatus.IDLE]
        sessions = session_count(entity)
        stats.sessions += sessions
        stats.interruptions += interruption_count(entity)
        for duration in session_durations(entity, until):
            stats.longest_session = max(stats.longest_session, duration)

        for tag in entity.tags:
            tag_stats = stats.tags.setdefault(tag, TagStats())
            tag_stats.tasks += 1
            if entity.is_done:
                tag_stats.done += 1
            else:
                tag_stats.active += 1
            tag_stats.estimate += entity.estimate
            tag_stats.elapsed += entity.elapsed
            tag_stats.running += in_state[EntityStatus.RUNNING]
            tag_stats.sessions += sessions
            score = accuracy(entity.estimate, entity.elapsed)
            if entity.is_done and score is not None:
                tag_stats.accuracies.append(score)
    return stats
