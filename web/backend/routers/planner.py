from fastapi import APIRouter

from core.session import get_session
from web.backend.views import layout_view

router = APIRouter()


@router.get("")
def get_planner():
    session = get_session()
    session.tick()
    return layout_view(session.planner())
