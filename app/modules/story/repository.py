from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import Callable

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import session as db_session
from app.db.models import StoryRecord, utcnow
from app.modules.graph.errors import StoryNotFoundError, StoryPersistenceError, StorySnapshotInvalidError
from app.modules.story.schemas import StoryGraphSnapshot

logger = logging.getLogger(__name__)

STORY_ID_PREFIX = "story_"


def snapshot_checksum(payload: dict) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_snapshot(snapshot: dict) -> dict:
    try:
        return StoryGraphSnapshot.model_validate(snapshot).model_dump()
    except ValidationError as exc:
        raise StorySnapshotInvalidError(detail=f"{exc.error_count()} validation error(s)") from exc


def _default_session_factory() -> Session:
    return db_session.SessionLocal()


class SqlStoryRepository:
    """Stores story snapshots as JSON rows.

    Blocking SQLAlchemy work runs on a worker thread so the authoring
    session's ``await repository.save(...)`` never stalls the event loop.
    Saving an unchanged snapshot keeps the stored revision.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or _default_session_factory

    async def save(self, snapshot: dict, *, story_id: str | None = None) -> str:
        payload = validate_snapshot(snapshot)
        return await asyncio.to_thread(self._save_sync, payload, story_id)

    async def load(self, story_id: str) -> dict:
        payload = await asyncio.to_thread(self._load_sync, story_id)
        return validate_snapshot(payload)

    def _save_sync(self, payload: dict, story_id: str | None) -> str:
        checksum = snapshot_checksum(payload)
        title = str(payload.get("meta", {}).get("title") or "")
        try:
            with self._session_factory() as db:
                record = None
                if story_id:
                    record = db.execute(select(StoryRecord).where(StoryRecord.story_id == story_id)).scalar_one_or_none()
                if record is None:
                    record = StoryRecord(
                        story_id=story_id or f"{STORY_ID_PREFIX}{uuid.uuid4().hex[:12]}",
                        title=title,
                        revision=1,
                        checksum=checksum,
                        graph_json=payload,
                    )
                    db.add(record)
                elif record.checksum != checksum:
                    record.title = title
                    record.revision = int(record.revision) + 1
                    record.checksum = checksum
                    record.graph_json = payload
                    record.updated_at = utcnow()
                db.commit()
                saved_id, revision = record.story_id, record.revision
        except SQLAlchemyError as exc:
            raise StoryPersistenceError(
                code="STORY_STORE_FAILED",
                message=f"could not store story: {exc.__class__.__name__}",
                retryable=True,
            ) from exc
        logger.info("story stored story_id=%s revision=%d checksum=%s", saved_id, revision, checksum[:12])
        return saved_id

    def _load_sync(self, story_id: str) -> dict:
        try:
            with self._session_factory() as db:
                record = db.execute(select(StoryRecord).where(StoryRecord.story_id == story_id)).scalar_one_or_none()
                payload = dict(record.graph_json or {}) if record is not None else None
        except SQLAlchemyError as exc:
            raise StoryPersistenceError(
                code="STORY_LOAD_FAILED",
                message=f"could not load story: {exc.__class__.__name__}",
                retryable=True,
            ) from exc
        if payload is None:
            raise StoryNotFoundError(story_id)
        logger.info("story loaded story_id=%s", story_id)
        return payload
