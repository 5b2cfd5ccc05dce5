"""
Time tracking for Daily Rhythm.

Elapsed accrual, mode time, estimate adjustment and the one-shot
"estimate reached" check.
"""
from datetime import timedelta
from typing import Iterable, List, Optional

from core.models import ContextMode, Entity, EstimateReached, ModeState


def accrue(entities: Iterable[Entity], mode: ContextMode, delta: timedelta) -> List[str]:
    """
    把 delta 计入所有 RUNNING 条目（仅 WORKING 模式）。

    Returns:
        被计时的条目 id
    """
    if mode != ContextMode.WORKING or delta <= timedelta(0):
        return []
    touched = []
    for entity in entities:
        if entity.is_running:
            entity.elapsed += delta
            touched.append(entity.id)
    return touched


def accrue_mode(state: ModeState, delta: timedelta) -> None:
    """当前模式的累计时间无条件增加。"""
    if delta <= timedelta(0):
        return
    state.mode_time[state.mode] = state.mode_time.get(state.mode, timedelta(0)) + delta


def adjusted_estimate(
    current: timedelta,
    steps: int,
    step_minutes: int = 15,
    min_minutes: int = 0,
) -> timedelta:
    """按步长增减估时，下限为 min_minutes 且永不为负。"""
    floor = timedelta(minutes=max(0, min_minutes))
    value = current + timedelta(minutes=step_minutes * steps)
    return max(value, floor)


def check_estimate(entity: Entity) -> Optional[EstimateReached]:
    """
    elapsed 达到估时时返回一次性信号。

    提示后记录当时的估时；只有估时被调高到更大的值并再次达到时才会重新提示。
    """
    if not entity.is_running or entity.estimate <= timedelta(0):
        return None
    if entity.elapsed < entity.estimate:
        return None
    if entity.signalled_estimate is not None and entity.estimate <= entity.signalled_estimate:
        return None
    entity.signalled_estimate = entity.estimate
    return EstimateReached(entity.id, entity.title, entity.elapsed, entity.estimate)


def remaining(entity: Entity) -> timedelta:
    return max(entity.estimate - entity.elapsed, timedelta(0))


def hours_to_delta(hours: float) -> timedelta:
    return timedelta(seconds=round(float(hours) * 3600))


def format_duration(value: timedelta) -> str:
    """格式化为 "1h 30m" / "45m"。"""
    total_minutes = int(value.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
