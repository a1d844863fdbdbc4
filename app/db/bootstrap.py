from app.db import session as db_session
from app.db.base import Base
from app.db.models import MediaAsset, Playthrough, StoryRecord  # noqa: F401


def init_db() -> None:
    Base.metadata.create_all(bind=db_session.engine)
