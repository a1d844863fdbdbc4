from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.modules.graph.errors import StoryNotFoundError
from app.modules.graph.models import StoryGraph
from app.modules.graph.playthrough import ChoiceResult
from app.modules.playthrough import service as playthrough_service
from app.modules.playthrough.schemas import ChoiceOut, ChooseRequest, CreatePlaythroughRequest, PlaythroughOut
from app.modules.story import service as story_service
from app.modules.story.mapping import graph_from_snapshot

router = APIRouter(prefix="/playthroughs", tags=["playthroughs"])


def _not_found(exc: playthrough_service.PlaythroughNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail={"code": exc.code, "message": exc.message})


def _choice_response(result: ChoiceResult, out: dict) -> dict:
    if not result.accepted:
        raise HTTPException(
            status_code=409,
            detail={
                "code": "CHOICE_REJECTED",
                "reason": result.reason.value if result.reason else None,
                "option_id": result.option_id,
                "unmet": [
                    {"stat": check.stat, "required": check.required, "actual": check.actual}
                    for check in result.unmet
                ],
            },
        )
    return {"accepted": True, "option_id": result.option_id, "playthrough": out}


@router.post("", response_model=PlaythroughOut)
def create_playthrough(payload: CreatePlaythroughRequest, db: Session = Depends(get_db)):
    if payload.story_id is not None:
        try:
            record = story_service.get_story(db, payload.story_id)
        except StoryNotFoundError as exc:
            raise HTTPException(status_code=404, detail={"code": exc.code, "message": exc.message}) from exc
        graph = StoryGraph.from_dict(record.graph_json)
        story_id = record.story_id
    else:
        graph = graph_from_snapshot(payload.graph)
        story_id = None
    return playthrough_service.create_playthrough(
        db,
        graph,
        story_id=story_id,
        start_scene_id=payload.start_scene_id,
    )


@router.get("/{playthrough_id}", response_model=PlaythroughOut)
def get_playthrough(playthrough_id: str, db: Session = Depends(get_db)):
    try:
        return playthrough_service.get_playthrough(db, playthrough_id)
    except playthrough_service.PlaythroughNotFoundError as exc:
        raise _not_found(exc) from exc


@router.post("/{playthrough_id}/choose", response_model=ChoiceOut)
def choose(playthrough_id: str, payload: ChooseRequest, db: Session = Depends(get_db)):
    try:
        result, out = playthrough_service.choose_option(db, playthrough_id, payload.option_id)
    except playthrough_service.PlaythroughNotFoundError as exc:
        raise _not_found(exc) from exc
    return _choice_response(result, out)


@router.post("/{playthrough_id}/timeout", response_model=ChoiceOut)
def timeout(playthrough_id: str, db: Session = Depends(get_db)):
    try:
        result, out = playthrough_service.resolve_timeout(db, playthrough_id)
    except playthrough_service.PlaythroughNotFoundError as exc:
        raise _not_found(exc) from exc
    return _choice_response(result, out)


@router.post("/{playthrough_id}/restart", response_model=PlaythroughOut)
def restart(playthrough_id: str, db: Session = Depends(get_db)):
    try:
        return playthrough_service.restart_playthrough(db, playthrough_id)
    except playthrough_service.PlaythroughNotFoundError as exc:
        raise _not_found(exc) from exc
