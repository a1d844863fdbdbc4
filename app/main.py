import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.config import ensure_dev_database_schema, settings
from app.db import session as db_session
from app.db.bootstrap import init_db
from app.modules.media.router import router as media_router
from app.modules.playthrough.router import router as playthrough_router
from app.modules.story.router import router as story_router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    configure_logging(settings.log_level)
    if settings.db_auto_create:
        init_db()
    elif settings.env == "dev":
        ensure_dev_database_schema(str(db_session.engine.url))
    logger.info("%s started env=%s", settings.app_name, settings.env)
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Story Studio", lifespan=_lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(story_router)
    app.include_router(playthrough_router)
    app.include_router(media_router)
    return app


app = create_app()
