"""
JSON views of engine state for the HTTP API.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException

from core.engine import RhythmEngine
from core.exceptions import (
    ConfigError,
    EntityTerminal,
    IndexOutOfRange,
    InvalidInput,
    ModeLocked,
    NothingToUndo,
    NotFound,
    PersistenceError,
    RhythmError,
)
from core.models import Entity
from core.planner import PlannerLayout, clock_label
from core.stats import compute_totals, remaining_time
from core.time_tracking import format_duration, remaining

STATUS_BY_ERROR = {
    ModeLocked: 409,
    EntityTerminal: 409,
    NothingToUndo: 409,
    NotFound: 404,
    IndexOutOfRange: 400,
    InvalidInput: 400,
    PersistenceError: 503,
    ConfigError: 500,
}


def http_error(error: RhythmError) -> HTTPException:
    status = STATUS_BY_ERROR.get(type(error), 400)
    return HTTPException(
        status_code=status,
        detail={"kind": error.kind, "message": error.message, "hint": error.hint},
    )


def entity_view(entity: Entity, parent_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": entity.id,
        "title": entity.title,
        "notes": entity.notes,
        "tags": list(entity.tags),
        "status": entity.status.value,
        "estimate_hours": round(entity.estimate_hours, 4),
        "elapsed_hours": round(entity.elapsed_hours, 4),
        "elapsed_display": format_duration(entity.elapsed),
        "remaining_hours": round(remaining(entity).total_seconds() / 3600, 4),
        "created_at": entity.created_at.isoformat() if entity.created_at else None,
        "completed_at": entity.completed_at.isoformat() if entity.completed_at else None,
        "parent_id": parent_id,
        "history": [
            {
                "timestamp": event.timestamp.isoformat(),
                "from": event.from_status.value if event.from_status else None,
                "to": event.to_status.value,
            }
            for event in entity.state_history
        ],
        "subtasks": [entity_view(sub, entity.id) for sub in entity.subtasks],
    }


def state_view(engine: RhythmEngine) -> Dict[str, Any]:
    snapshot = engine.snapshot
    estimate, elapsed = compute_totals(snapshot.active)
    return {
        "date": snapshot.date.isoformat(),
        "mode": engine.mode.value,
        "mode_time": {
            mode.value: round(value.total_seconds()) for mode, value in engine.mode_state.mode_time.items()
        },
        "active": [entity_view(e) for e in snapshot.active],
        "done": [entity_view(e) for e in snapshot.done],
        "archived": [entity_view(e) for e in snapshot.archived],
        "postponed": [entity_view(e) for e in snapshot.postponed],
        "totals": {
            "estimate_hours": round(estimate.total_seconds() / 3600, 4),
            "elapsed_hours": round(elapsed.total_seconds() / 3600, 4),
            "remaining_hours": round(remaining_time(snapshot.active).total_seconds() / 3600, 4),
        },
        "undo_available": len(engine.undo_stack),
    }


def layout_view(layout: PlannerLayout) -> Dict[str, Any]:
    return {
        "date": layout.day.isoformat(),
        "slots": [
            {
                "start": clock_label(slot.start, layout.day),
                "end": clock_label(slot.end, layout.day),
                "is_current": slot.is_current,
                "entity_ids": [block.entity_id for block in slot.blocks],
            }
            for slot in layout.slots
        ],
        "blocks": [
            {
                "entity_id": block.entity_id,
                "label": block.label,
                "status": block.status.value,
                "start": clock_label(block.start, layout.day),
                "end": clock_label(block.end, layout.day),
                "slot_count": block.slot_count,
                "overflow": block.overflow,
                "parent_id": block.parent_id,
            }
            for block in layout.blocks
        ],
    }
