import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.logger import get_logger
from core.session import get_session
from scheduler.ticker import Ticker
from web.backend.routers import api, planner, tasks

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    session = get_session()
    ticker = Ticker(session)
    ticker.start()
    for warning in session.warnings:
        logger.warning("Startup: %s", warning)
    try:
        yield
    finally:
        ticker.stop()
        session.close()


def create_app() -> FastAPI:
    app = FastAPI(title="Daily Rhythm API", version="1.0", lifespan=lifespan)

    raw_origins = os.getenv("DAILY_RHYTHM_ALLOWED_ORIGINS", "*")
    allow_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    allow_credentials = "*" not in allow_origins

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": "Daily Rhythm"}

    app.include_router(api.router, prefix="/api/v1", tags=["api"])
    app.include_router(tasks.router, prefix="/api/v1/tasks", tags=["tasks"])
    app.include_router(planner.router, prefix="/api/v1/planner", tags=["planner"])

    return app


app = create_app()
