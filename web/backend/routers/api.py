from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from core.exceptions import RhythmError
from core.models import ContextMode
from core.session import get_session
from web.backend.views import http_error, state_view

router = APIRouter()


class ModeRequest(BaseModel):
    mode: str


def _perform(action):
    try:
        return get_session().perform(action)
    except RhythmError as e:
        raise http_error(e)


@router.get("/state")
def get_state():
    session = get_session()
    session.tick()
    return session.read(state_view)


@router.post("/mode")
def set_mode(request: ModeRequest):
    try:
        mode = ContextMode.parse(request.mode)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"mode must be one of {' | '.join(m.value for m in ContextMode)}",
        )

    change = _perform(lambda engine, now: engine.set_mode(mode, now))
    return {
        "previous": change.previous.value,
        "mode": change.current.value,
        "paused": change.paused,
        "resumed": change.resumed,
    }


@router.post("/undo")
def undo():
    record = _perform(lambda engine, now: engine.undo(now))
    return {
        "action": record.action.value,
        "entity_id": record.entity.id,
        "section": record.section.value,
        "index": record.index,
    }


@router.post("/confirm")
def confirm_working():
    _perform(lambda engine, now: engine.confirm_working(now))
    return {"status": "confirmed"}


@router.get("/reports/{day}", response_class=PlainTextResponse)
def get_report(day: date, regenerate: Optional[bool] = False):
    session = get_session()
    path = session.reporter.report_path(day)
    if regenerate or not path.exists():
        try:
            path = session.write_report(day)
        except RhythmError as e:
            raise http_error(e)
    return path.read_text(encoding="utf-8")


class JournalRequest(BaseModel):
    text: str


@router.get("/journal/{day}")
def get_journal(day: date):
    try:
        text = get_session().read_journal(day)
    except RhythmError as e:
        raise http_error(e)
    return {"date": day.isoformat(), "text": text}


@router.put("/journal/{day}")
def put_journal(day: date, request: JournalRequest):
    try:
        get_session().write_journal(request.text, day)
    except RhythmError as e:
        raise http_error(e)
    return {"date": day.isoformat(), "text": request.text}
