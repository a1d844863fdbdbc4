from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.db import session as db_session
from app.db.session import get_db
from app.modules.graph.authoring import AuthoringSession, StoryRepository
from app.modules.graph.errors import StoryNotFoundError, StoryPersistenceError
from app.modules.graph.models import StoryGraph
from app.modules.graph.reorder import PointerOffset
from app.modules.playthrough import service as playthrough_service
from app.modules.playthrough.schemas import PlaythroughOut
from app.modules.story import service as story_service
from app.modules.story.mapping import graph_from_snapshot, lint_out, persistence_error_out, session_out
from app.modules.story.repository import SqlStoryRepository
from app.modules.story.schemas import (
    AuthoringSessionOut,
    CreateAuthoringSessionRequest,
    DragDropRequest,
    DragMoveRequest,
    DragStartRequest,
    LintResponse,
    MetaUpdateRequest,
    MutationResponse,
    OptionUpdateRequest,
    PointerPayload,
    PreviewRequest,
    ReorderRequest,
    SaveResponse,
    SceneUpdateRequest,
    StoryDetail,
    StoryListResponse,
)

router = APIRouter(prefix="", tags=["authoring"])


def get_story_repository() -> StoryRepository:
    return SqlStoryRepository()


def _persistence_http_error(exc: StoryPersistenceError) -> HTTPException:
    if isinstance(exc, StoryNotFoundError):
        status_code = 404
    elif exc.retryable:
        status_code = 503
    else:
        status_code = 422
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": exc.message})


def _session_or_404(session_id: str) -> AuthoringSession:
    session = story_service.registry.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "AUTHORING_SESSION_NOT_FOUND", "message": f"authoring session `{session_id}` not found"},
        )
    return session


def _pointer(payload: PointerPayload) -> PointerOffset:
    return PointerOffset(y=payload.y, height=payload.height)


def _mutation(session_id: str, session: AuthoringSession, changed: bool, created_id: str | None = None) -> dict:
    return {"changed": bool(changed), "created_id": created_id, "session": session_out(session_id, session)}


# Authoring routes are async: AuthoringSession mutations run one at a time on the event loop.


@router.post("/authoring/sessions", response_model=AuthoringSessionOut)
async def open_authoring_session(
    payload: CreateAuthoringSessionRequest | None = None,
    repository: StoryRepository = Depends(get_story_repository),
):
    payload = payload or CreateAuthoringSessionRequest()
    if payload.story_id is not None:
        try:
            session = await AuthoringSession.load(
                repository,
                payload.story_id,
                default_scene_title=settings.default_scene_title,
                default_option_text=settings.default_option_text,
            )
        except StoryPersistenceError as exc:
            raise _persistence_http_error(exc) from exc
    else:
        graph = graph_from_snapshot(payload.graph) if payload.graph is not None else None
        session = story_service.new_authoring_session(graph)
    try:
        session_id = story_service.registry.open(session)
    except story_service.AuthoringSessionLimitError as exc:
        raise HTTPException(status_code=429, detail={"code": exc.code, "message": exc.message}) from exc
    return session_out(session_id, session)


@router.get("/authoring/sessions/{session_id}", response_model=AuthoringSessionOut)
async def get_authoring_session(session_id: str):
    return session_out(session_id, _session_or_404(session_id))


@router.delete("/authoring/sessions/{session_id}")
async def close_authoring_session(session_id: str):
    _session_or_404(session_id)
    story_service.registry.close(session_id)
    return {"closed": True}


@router.patch("/authoring/sessions/{session_id}/meta", response_model=MutationResponse)
async def update_meta(session_id: str, payload: MetaUpdateRequest):
    session = _session_or_404(session_id)
    changed = session.update_meta(payload.model_dump(exclude_unset=True))
    return _mutation(session_id, session, changed)


@router.post("/authoring/sessions/{session_id}/scenes", response_model=MutationResponse)
async def add_scene(session_id: str):
    session = _session_or_404(session_id)
    scene = session.add_scene()
    return _mutation(session_id, session, True, scene.id)


@router.patch("/authoring/sessions/{session_id}/scenes/{scene_id}", response_model=MutationResponse)
async def update_scene(session_id: str, scene_id: str, payload: SceneUpdateRequest):
    session = _session_or_404(session_id)
    changed = session.update_scene(scene_id, payload.model_dump(exclude_unset=True))
    return _mutation(session_id, session, changed)


@router.delete("/authoring/sessions/{session_id}/scenes/{scene_id}", response_model=MutationResponse)
async def delete_scene(session_id: str, scene_id: str):
    session = _session_or_404(session_id)
    return _mutation(session_id, session, session.delete_scene(scene_id))


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/select", response_model=MutationResponse)
async def select_scene(session_id: str, scene_id: str):
    session = _session_or_404(session_id)
    before = session.selected_scene_id
    session.select_scene(scene_id)
    return _mutation(session_id, session, session.selected_scene_id != before)


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/options", response_model=MutationResponse)
async def add_option(session_id: str, scene_id: str):
    session = _session_or_404(session_id)
    option = session.add_option(scene_id)
    return _mutation(session_id, session, option is not None, option.id if option else None)


@router.patch(
    "/authoring/sessions/{session_id}/scenes/{scene_id}/options/{option_id}",
    response_model=MutationResponse,
)
async def update_option(session_id: str, scene_id: str, option_id: str, payload: OptionUpdateRequest):
    session = _session_or_404(session_id)
    changed = session.update_option(scene_id, option_id, payload.model_dump(exclude_unset=True))
    return _mutation(session_id, session, changed)


@router.delete(
    "/authoring/sessions/{session_id}/scenes/{scene_id}/options/{option_id}",
    response_model=MutationResponse,
)
async def delete_option(session_id: str, scene_id: str, option_id: str):
    session = _session_or_404(session_id)
    return _mutation(session_id, session, session.delete_option(scene_id, option_id))


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/options/renumber", response_model=MutationResponse)
async def renumber_options(session_id: str, scene_id: str):
    session = _session_or_404(session_id)
    return _mutation(session_id, session, session.renumber_options(scene_id))


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/options/reorder", response_model=MutationResponse)
async def reorder_options(session_id: str, scene_id: str, payload: ReorderRequest):
    session = _session_or_404(session_id)
    changed = session.move_option(scene_id, payload.drag_index, payload.hover_index, _pointer(payload.pointer))
    return _mutation(session_id, session, changed)


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/drag/start", response_model=MutationResponse)
async def drag_start(session_id: str, scene_id: str, payload: DragStartRequest):
    session = _session_or_404(session_id)
    return _mutation(session_id, session, session.begin_drag(scene_id, payload.option_id))


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/drag/move", response_model=MutationResponse)
async def drag_move(session_id: str, scene_id: str, payload: DragMoveRequest):
    session = _session_or_404(session_id)
    if session.drag_scene_id != scene_id:
        return _mutation(session_id, session, False)
    changed = session.drag_over(payload.hover_index, _pointer(payload.pointer))
    return _mutation(session_id, session, changed)


@router.post("/authoring/sessions/{session_id}/scenes/{scene_id}/drag/drop", response_model=MutationResponse)
async def drag_drop(session_id: str, scene_id: str, payload: DragDropRequest | None = None):
    session = _session_or_404(session_id)
    if session.drag_scene_id != scene_id:
        return _mutation(session_id, session, False)
    changed = session.end_drag(to_end=bool(payload and payload.to_end))
    return _mutation(session_id, session, changed)


@router.post("/authoring/sessions/{session_id}/drag/cancel", response_model=MutationResponse)
async def drag_cancel(session_id: str):
    session = _session_or_404(session_id)
    had_drag = session.drag is not None
    session.cancel_drag()
    return _mutation(session_id, session, had_drag)


@router.get("/authoring/sessions/{session_id}/lint", response_model=LintResponse)
async def lint_session(session_id: str):
    return lint_out(_session_or_404(session_id).lint())


@router.post("/authoring/sessions/{session_id}/save", response_model=SaveResponse)
async def save_session(session_id: str, repository: StoryRepository = Depends(get_story_repository)):
    session = _session_or_404(session_id)
    outcome = await session.save(repository)
    return {
        "ok": outcome.ok,
        "story_id": outcome.story_id,
        "revision": outcome.revision,
        "error": persistence_error_out(outcome.error),
        "session": session_out(session_id, session),
    }


@router.post("/authoring/sessions/{session_id}/preview", response_model=PlaythroughOut)
async def preview_session(session_id: str, payload: PreviewRequest | None = None):
    session = _session_or_404(session_id)
    graph: StoryGraph = session.graph.copy()
    start_scene_id = payload.start_scene_id if payload else None

    def _create() -> dict:
        with db_session.SessionLocal() as db:
            return playthrough_service.create_playthrough(
                db,
                graph,
                story_id=session.story_id,
                start_scene_id=start_scene_id,
            )

    return await asyncio.to_thread(_create)


@router.get("/stories", response_model=StoryListResponse)
def list_stories(db: Session = Depends(get_db)):
    return {"stories": [story_service.story_summary_out(record) for record in story_service.list_stories(db)]}


@router.get("/stories/{story_id}", response_model=StoryDetail)
def get_story(story_id: str, db: Session = Depends(get_db)):
    try:
        record = story_service.get_story(db, story_id)
    except StoryNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": exc.code, "message": exc.message}) from exc
    return {**story_service.story_summary_out(record), "graph": record.graph_json}
