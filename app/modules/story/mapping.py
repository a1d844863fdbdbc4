from __future__ import annotations

from app.modules.graph.analysis import LintReport
from app.modules.graph.authoring import AuthoringSession
from app.modules.graph.errors import StoryPersistenceError
from app.modules.graph.models import StoryGraph
from app.modules.story.schemas import StoryGraphSnapshot


def graph_from_snapshot(snapshot: StoryGraphSnapshot) -> StoryGraph:
    return StoryGraph.from_dict(snapshot.model_dump())


def persistence_error_out(error: StoryPersistenceError | None) -> dict | None:
    if error is None:
        return None
    return {"code": error.code, "message": error.message, "retryable": error.retryable}


def session_out(session_id: str, session: AuthoringSession) -> dict:
    drag = session.drag
    drag_out = None
    if drag is not None and session.drag_scene_id is not None:
        drag_out = {
            "scene_id": session.drag_scene_id,
            "option_id": drag.option_id,
            "index": drag.index,
            "committed_moves": drag.committed_moves,
        }
    return {
        "session_id": session_id,
        "story_id": session.story_id,
        "graph": session.snapshot(),
        "selected_scene_id": session.selected_scene_id,
        "revision": session.revision,
        "saved_revision": session.saved_revision,
        "is_dirty": session.is_dirty,
        "is_saving": session.is_saving,
        "last_save_error": persistence_error_out(session.last_save_error),
        "drag": drag_out,
    }


def lint_out(report: LintReport) -> dict:
    return {
        "ok": report.ok,
        "errors": [issue.to_dict() for issue in report.errors],
        "warnings": [issue.to_dict() for issue in report.warnings],
        "reachable_scene_ids": list(report.reachable_scene_ids),
    }
