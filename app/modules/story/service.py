from __future__ import annotations

import logging
import threading
import uuid
from collections import OrderedDict

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.db.models import StoryRecord
from app.modules.graph.authoring import AuthoringSession
from app.modules.graph.errors import StoryNotFoundError
from app.modules.graph.models import StoryGraph

logger = logging.getLogger(__name__)


class AuthoringSessionLimitError(RuntimeError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"authoring session limit reached ({limit}); save or close an open session")
        self.code = "AUTHORING_SESSION_LIMIT"
        self.message = str(self)
        self.retryable = True


class AuthoringRegistry:
    """Process-local map of editor session id -> ``AuthoringSession``.

    When full, the least recently used session without unsaved edits is
    evicted; if every session is dirty, new sessions are refused.
    """

    def __init__(self, limit: int) -> None:
        self._limit = max(1, int(limit))
        self._lock = threading.Lock()
        self._sessions: OrderedDict[str, AuthoringSession] = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def open(self, session: AuthoringSession) -> str:
        session_id = uuid.uuid4().hex
        with self._lock:
            if len(self._sessions) >= self._limit:
                self._evict_one_clean()
            self._sessions[session_id] = session
        logger.info("authoring session opened session_id=%s story_id=%s", session_id, session.story_id)
        return session_id

    def get(self, session_id: str) -> AuthoringSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def close(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            logger.info("authoring session closed session_id=%s", session_id)
        return removed is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def _evict_one_clean(self) -> None:
        for candidate_id, candidate in self._sessions.items():
            if not candidate.is_dirty and not candidate.is_saving:
                del self._sessions[candidate_id]
                logger.info("authoring session evicted session_id=%s", candidate_id)
                return
        raise AuthoringSessionLimitError(self._limit)


registry = AuthoringRegistry(settings.authoring_session_limit)


def new_authoring_session(graph: StoryGraph | None = None, *, story_id: str | None = None) -> AuthoringSession:
    return AuthoringSession(
        graph,
        story_id=story_id,
        default_scene_title=settings.default_scene_title,
        default_option_text=settings.default_option_text,
    )


def list_stories(db: Session) -> list[StoryRecord]:
    stmt = select(StoryRecord).order_by(StoryRecord.updated_at.desc(), StoryRecord.story_id.asc())
    return list(db.execute(stmt).scalars().all())


def get_story(db: Session, story_id: str) -> StoryRecord:
    record = db.execute(select(StoryRecord).where(StoryRecord.story_id == story_id)).scalar_one_or_none()
    if record is None:
        raise StoryNotFoundError(story_id)
    return record


def story_summary_out(record: StoryRecord) -> dict:
    return {
        "story_id": record.story_id,
        "title": record.title,
        "revision": record.revision,
        "checksum": record.checksum,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
    }
