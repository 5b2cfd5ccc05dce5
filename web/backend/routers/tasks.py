from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from core.exceptions import RhythmError
from core.session import get_session
from web.backend.views import entity_view, http_error

router = APIRouter()


class CreateRequest(BaseModel):
    title: str
    estimate_hours: Optional[float] = Field(default=None, ge=0)
    notes: str = ""
    tags: List[str] = Field(default_factory=list)


class EditRequest(BaseModel):
    title: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None


class EstimateRequest(BaseModel):
    steps: Optional[int] = None
    extend_minutes: Optional[float] = None
    hours: Optional[float] = None


class ElapsedRequest(BaseModel):
    hours: float


class MoveRequest(BaseModel):
    direction: str  # up, down


class SwapRequest(BaseModel):
    i: int
    j: int
    parent_id: Optional[str] = None


def _perform(action):
    try:
        return get_session().perform(action)
    except RhythmError as e:
        raise http_error(e)


@router.post("")
def create_task(request: CreateRequest):
    entity = _perform(lambda engine, now: engine.create_task(
        request.title, now, request.estimate_hours, request.notes, request.tags,
    ))
    return entity_view(entity)


@router.post("/swap")
def swap(request: SwapRequest):
    _perform(lambda engine, now: engine.swap(request.i, request.j, request.parent_id))
    return {"status": "ok"}


@router.get("/select/{flat_index}")
def select(flat_index: int):
    try:
        entity = get_session().read(lambda engine: engine.select(flat_index))
    except RhythmError as e:
        raise http_error(e)
    return entity_view(entity)


@router.post("/{entity_id}/subtasks")
def create_subtask(entity_id: str, request: CreateRequest):
    entity = _perform(lambda engine, now: engine.create_subtask(
        entity_id, request.title, now, request.estimate_hours, request.notes, request.tags,
    ))
    return entity_view(entity, entity_id)


@router.get("/{entity_id}")
def get_task(entity_id: str):
    try:
        location = get_session().read(lambda engine: engine.find(entity_id))
    except RhythmError as e:
        raise http_error(e)
    view = entity_view(location.entity, location.parent.id if location.parent else None)
    view["section"] = location.section.value
    return view


@router.patch("/{entity_id}")
def edit_task(entity_id: str, request: EditRequest):
    entity = _perform(lambda engine, now: engine.edit(
        entity_id, title=request.title, notes=request.notes, tags=request.tags,
    ))
    return entity_view(entity)


@router.delete("/{entity_id}")
def delete_task(entity_id: str):
    entity = _perform(lambda engine, now: engine.delete(entity_id, now))
    return {"status": "deleted", "id": entity.id}


@router.post("/{entity_id}/estimate")
def change_estimate(entity_id: str, request: EstimateRequest):
    given = [v for v in (request.steps, request.extend_minutes, request.hours) if v is not None]
    if len(given) != 1:
        raise HTTPException(status_code=400, detail="Provide exactly one of steps | extend_minutes | hours")

    if request.steps is not None:
        entity = _perform(lambda engine, now: engine.adjust_estimate(entity_id, request.steps))
    elif request.extend_minutes is not None:
        entity = _perform(lambda engine, now: engine.extend_estimate(entity_id, request.extend_minutes))
    else:
        entity = _perform(lambda engine, now: engine.set_estimate(entity_id, request.hours))
    return entity_view(entity)


@router.post("/{entity_id}/elapsed")
def correct_elapsed(entity_id: str, request: ElapsedRequest):
    entity = _perform(lambda engine, now: engine.correct_elapsed(entity_id, request.hours))
    return entity_view(entity)


@router.post("/{entity_id}/move")
def move(entity_id: str, request: MoveRequest):
    direction = request.direction.strip().lower()
    if direction not in ("up", "down"):
        raise HTTPException(status_code=400, detail="direction must be up | down")
    if direction == "up":
        _perform(lambda engine, now: engine.move_up(entity_id))
    else:
        _perform(lambda engine, now: engine.move_down(entity_id))
    return {"status": "ok"}


@router.post("/{entity_id}/{action}")
def act(entity_id: str, action: str):
    """start | pause | toggle | done | archive | postpone"""
    handlers = {
        "start": lambda engine, now: engine.start(entity_id, now),
        "pause": lambda engine, now: engine.pause(entity_id, now),
        "toggle": lambda engine, now: engine.toggle(entity_id, now),
        "done": lambda engine, now: engine.mark_done(entity_id, now),
        "archive": lambda engine, now: engine.archive(entity_id, now),
        "postpone": lambda engine, now: engine.postpone(entity_id, now),
    }
    handler = handlers.get(action)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")

    _perform(handler)
    try:
        location = get_session().read(lambda engine: engine.find(entity_id))
    except RhythmError as e:
        raise http_error(e)
    view = entity_view(location.entity, location.parent.id if location.parent else None)
    view["section"] = location.section.value
    return view
