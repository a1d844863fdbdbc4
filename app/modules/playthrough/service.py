from __future__ import annotations

import logging
import uuid
from dataclasses import asdict

from sqlalchemy.orm import Session

from app.db.models import Playthrough, utcnow
from app.modules.graph.models import StoryGraph
from app.modules.graph.playthrough import (
    ChoiceResult,
    PlaythroughSimulator,
    PlaythroughState,
    PlaythroughView,
)

logger = logging.getLogger(__name__)


class PlaythroughNotFoundError(RuntimeError):
    def __init__(self, playthrough_id: str) -> None:
        super().__init__(f"playthrough `{playthrough_id}` not found")
        self.code = "PLAYTHROUGH_NOT_FOUND"
        self.message = str(self)
        self.playthrough_id = str(playthrough_id)


def _parse_id(playthrough_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(playthrough_id))
    except ValueError as exc:
        raise PlaythroughNotFoundError(playthrough_id) from exc


def _load_row(db: Session, playthrough_id: str) -> Playthrough:
    row = db.get(Playthrough, _parse_id(playthrough_id))
    if row is None:
        raise PlaythroughNotFoundError(playthrough_id)
    return row


def _state_of(row: Playthrough) -> PlaythroughState:
    return PlaythroughState.from_dict(
        {
            "start_scene_id": row.start_scene_id,
            "current_scene_id": row.current_scene_id,
            "stats": row.stats,
            "status": row.status,
            "end_reason": row.end_reason,
            "steps": row.steps,
        }
    )


def _simulator_for(row: Playthrough) -> PlaythroughSimulator:
    return PlaythroughSimulator.restore(StoryGraph.from_dict(row.graph_json), _state_of(row))


def _write_state(row: Playthrough, simulator: PlaythroughSimulator) -> None:
    state = simulator.state.to_dict()
    row.start_scene_id = state["start_scene_id"]
    row.current_scene_id = state["current_scene_id"]
    row.stats = state["stats"]
    row.status = state["status"]
    row.end_reason = state["end_reason"]
    row.steps = state["steps"]
    row.updated_at = utcnow()


def view_out(row: Playthrough, view: PlaythroughView) -> dict:
    scene = view.current_scene
    scene_out = None
    if scene is not None:
        scene_out = {
            "id": scene.id,
            "title": scene.title,
            "content": scene.content,
            "image_url": scene.image_url,
            "background_music": scene.background_music,
            "sound_effects": list(scene.sound_effects),
            "is_ending": scene.is_ending,
            "ending_type": scene.ending_type,
        }
    return {
        "playthrough_id": str(row.id),
        "story_id": row.story_id,
        "status": view.status.value,
        "end_reason": view.end_reason.value if view.end_reason else None,
        "start_scene_id": row.start_scene_id,
        "stats": dict(view.stats),
        "steps": view.steps,
        "scene": scene_out,
        "options": [
            {
                "id": option.id,
                "text": option.text,
                "order_index": option.order_index,
                "selectable": option.selectable,
                "is_default": option.is_default,
                "unmet": [asdict(check) for check in option.unmet],
            }
            for option in sorted(view.options, key=lambda item: item.order_index)
        ],
    }


def create_playthrough(
    db: Session,
    graph: StoryGraph,
    *,
    story_id: str | None = None,
    start_scene_id: str | None = None,
) -> dict:
    simulator = PlaythroughSimulator(graph, start_scene_id=start_scene_id)
    view = simulator.start()
    row = Playthrough(id=uuid.uuid4(), story_id=story_id, graph_json=simulator.graph.to_dict())
    _write_state(row, simulator)
    db.add(row)
    db.commit()
    logger.info("playthrough started id=%s story_id=%s start=%s", row.id, story_id, row.start_scene_id)
    return view_out(row, view)


def get_playthrough(db: Session, playthrough_id: str) -> dict:
    row = _load_row(db, playthrough_id)
    simulator = _simulator_for(row)
    # restoring onto a scene that has since gone missing ends the run
    if simulator.state.to_dict() != _state_of(row).to_dict():
        _write_state(row, simulator)
        db.commit()
    return view_out(row, simulator.view())


def _apply(db: Session, row: Playthrough, simulator: PlaythroughSimulator, result: ChoiceResult) -> tuple[ChoiceResult, dict]:
    if result.accepted:
        _write_state(row, simulator)
        db.commit()
    return result, view_out(row, result.view)


def choose_option(db: Session, playthrough_id: str, option_id: str) -> tuple[ChoiceResult, dict]:
    row = _load_row(db, playthrough_id)
    simulator = _simulator_for(row)
    result = simulator.choose(option_id)
    if not result.accepted:
        logger.debug("choice rejected id=%s option=%s reason=%s", row.id, option_id, result.reason)
    return _apply(db, row, simulator, result)


def resolve_timeout(db: Session, playthrough_id: str) -> tuple[ChoiceResult, dict]:
    row = _load_row(db, playthrough_id)
    simulator = _simulator_for(row)
    return _apply(db, row, simulator, simulator.choose_default())


def restart_playthrough(db: Session, playthrough_id: str) -> dict:
    row = _load_row(db, playthrough_id)
    simulator = _simulator_for(row)
    view = simulator.restart()
    _write_state(row, simulator)
    db.commit()
    logger.info("playthrough restarted id=%s", row.id)
    return view_out(row, view)
