from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict

from app.modules.graph.authoring import AuthoringSession
from app.modules.graph.errors import StoryNotFoundError, StoryPersistenceError
from app.modules.graph.playthrough import PlaythroughStatus
from app.modules.graph.reorder import PointerOffset, has_contiguous_order
from tests.support.story_seed import help_finish_graph


class _MemoryRepository:
    def __init__(self) -> None:
        self.saved: dict[str, dict] = {}
        self.fail_with: StoryPersistenceError | None = None
        self.calls = 0

    async def save(self, snapshot: dict, *, story_id: str | None = None) -> str:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        key = story_id or f"story_{len(self.saved) + 1}"
        self.saved[key] = snapshot
        return key

    async def load(self, story_id: str) -> dict:
        if story_id not in self.saved:
            raise StoryNotFoundError(story_id)
        return self.saved[story_id]


def _counter_ids():
    counters = defaultdict(lambda: itertools.count(1))
    return lambda prefix: f"{prefix}{next(counters[prefix])}"


def _session(**kwargs) -> AuthoringSession:
    return AuthoringSession(id_factory=_counter_ids(), **kwargs)


def test_add_scene_selects_it_and_uses_defaults() -> None:
    session = _session(default_scene_title="Untitled")
    scene = session.add_scene()
    assert scene.id == "scene_1"
    assert scene.title == "Untitled"
    assert session.selected_scene_id == "scene_1"
    assert session.revision == 1
    assert session.is_dirty


def test_add_option_appends_with_next_order_index() -> None:
    session = _session()
    scene = session.add_scene()
    first = session.add_option(scene.id)
    second = session.add_option(scene.id)
    assert first is not None and second is not None
    assert [first.order_index, second.order_index] == [0, 1]
    assert first.next_scene_id is None
    assert first.consequences == {} and first.requirements == {}


def test_mutations_on_missing_ids_are_silent_no_ops() -> None:
    session = _session()
    scene = session.add_scene()
    revision = session.revision
    assert session.add_option("ghost") is None
    assert session.update_scene("ghost", {"title": "x"}) is False
    assert session.update_option(scene.id, "ghost", {"text": "x"}) is False
    assert session.delete_option(scene.id, "ghost") is False
    assert session.delete_scene("ghost") is False
    assert session.renumber_options("ghost") is False
    assert session.set_consequence("ghost", "ghost", "gold", 1) is False
    assert session.revision == revision


def test_update_scene_ignores_unknown_and_invalid_fields() -> None:
    session = _session()
    scene = session.add_scene()
    changed = session.update_scene(
        scene.id,
        {"title": "Forest", "id": "hijack", "options": [], "ending_type": "bogus", "is_ending": True},
    )
    assert changed is True
    assert scene.id == "scene_1"
    assert scene.title == "Forest"
    assert scene.is_ending is True
    assert scene.ending_type is None


def test_update_with_identical_values_does_not_bump_revision() -> None:
    session = _session()
    scene = session.add_scene()
    session.update_scene(scene.id, {"title": "Forest"})
    revision = session.revision
    assert session.update_scene(scene.id, {"title": "Forest"}) is False
    assert session.revision == revision


def test_update_option_normalizes_destination_and_stat_maps() -> None:
    session = _session()
    scene = session.add_scene()
    option = session.add_option(scene.id)
    session.update_option(
        scene.id,
        option.id,
        {"next_scene_id": "  ", "consequences": {"gold": "5", "": 3, "bad": "x"}},
    )
    assert option.next_scene_id is None
    assert option.consequences == {"gold": 5}


def test_consequence_and_requirement_helpers() -> None:
    session = _session()
    scene = session.add_scene()
    option = session.add_option(scene.id)
    assert session.set_consequence(scene.id, option.id, "gold", 5)
    assert session.set_requirement(scene.id, option.id, "trust", 2)
    assert option.consequences == {"gold": 5}
    assert option.requirements == {"trust": 2}
    assert session.remove_consequence(scene.id, option.id, "gold")
    assert session.remove_consequence(scene.id, option.id, "gold") is False
    assert option.consequences == {}


def test_delete_scene_clears_selection_and_leaves_dangling_links() -> None:
    session = _session()
    first = session.add_scene()
    second = session.add_scene()
    option = session.add_option(first.id)
    session.update_option(first.id, option.id, {"next_scene_id": second.id})
    assert session.selected_scene_id == second.id

    assert session.delete_scene(second.id) is True
    assert session.selected_scene_id is None
    assert option.next_scene_id == second.id


def test_delete_other_scene_keeps_selection() -> None:
    session = _session()
    first = session.add_scene()
    session.add_scene()
    session.select_scene(first.id)
    session.delete_scene("scene_2")
    assert session.selected_scene_id == first.id


def test_select_unknown_scene_is_refused() -> None:
    session = _session()
    session.add_scene()
    assert session.select_scene("ghost") is False
    assert session.selected_scene_id == "scene_1"
    assert session.select_scene(None) is True
    assert session.selected_scene() is None


def test_delete_option_leaves_gap_until_renumber() -> None:
    session = _session()
    scene = session.add_scene()
    for _ in range(3):
        session.add_option(scene.id)
    session.delete_option(scene.id, "option_1")
    assert [option.order_index for option in scene.options] == [1, 2]
    assert session.renumber_options(scene.id) is True
    scene = session.graph.find_scene("scene_1")
    assert [option.order_index for option in scene.options] == [0, 1]
    assert session.renumber_options(scene.id) is False


def test_move_option_clamps_and_renumbers() -> None:
    session = _session()
    scene = session.add_scene()
    for _ in range(3):
        session.add_option(scene.id)
    assert session.move_option(scene.id, 0, 99, PointerOffset(y=30, height=40)) is True
    scene = session.graph.find_scene(scene.id)
    assert [option.id for option in scene.options] == ["option_2", "option_3", "option_1"]
    assert has_contiguous_order(scene.options)
    assert session.move_option(scene.id, 1, 1, PointerOffset(y=30, height=40)) is False


def test_drag_gesture_through_session() -> None:
    session = _session()
    scene = session.add_scene()
    for _ in range(3):
        session.add_option(scene.id)
    assert session.begin_drag(scene.id, "option_1")
    assert session.drag_over(1, PointerOffset(y=5, height=40)) is False
    assert session.drag_over(1, PointerOffset(y=35, height=40)) is True
    assert session.drag_over(2, PointerOffset(y=35, height=40)) is True
    session.end_drag()
    assert session.drag is None
    ids = [option.id for option in session.graph.find_scene(scene.id).options]
    assert ids == ["option_2", "option_3", "option_1"]


def test_deleting_dragged_scene_cancels_drag() -> None:
    session = _session()
    scene = session.add_scene()
    session.add_option(scene.id)
    session.begin_drag(scene.id, "option_1")
    session.delete_scene(scene.id)
    assert session.drag is None
    assert session.end_drag() is False


def test_update_meta_validates_values() -> None:
    session = _session()
    assert session.update_meta({"title": "Quest", "category": "sci-fi", "tags": ["a", " a ", "b", ""]})
    meta = session.graph.meta
    assert meta.title == "Quest"
    assert meta.category == "sci-fi"
    assert meta.tags == ["a", "b"]
    assert session.update_meta({"category": "cooking", "estimated_duration": 0, "price": -3}) is True
    assert meta.category == "sci-fi"
    assert meta.estimated_duration == 15
    assert meta.price == 0.0


def test_preview_runs_against_a_copy() -> None:
    session = AuthoringSession(help_finish_graph())
    simulator = session.preview()
    assert simulator.status == PlaythroughStatus.PLAYING
    session.update_option("A", "help", {"next_scene_id": "END"})
    simulator.choose("help")
    assert simulator.current_scene_id == "B"


def test_snapshot_contains_meta_and_scenes() -> None:
    session = AuthoringSession(help_finish_graph())
    snapshot = session.snapshot()
    assert snapshot["meta"]["title"] == "Help and Finish"
    assert [scene["id"] for scene in snapshot["scenes"]] == ["A", "B"]


def test_save_success_marks_clean() -> None:
    repo = _MemoryRepository()
    session = _session()
    session.add_scene()
    outcome = asyncio.run(session.save(repo))
    assert outcome.ok is True
    assert outcome.story_id == "story_1"
    assert session.story_id == "story_1"
    assert session.is_dirty is False
    assert session.is_saving is False


def test_save_failure_keeps_graph_and_reports_error() -> None:
    repo = _MemoryRepository()
    repo.fail_with = StoryPersistenceError(code="STORY_STORE_FAILED", message="disk full")
    session = _session()
    session.add_scene()
    before = session.snapshot()

    outcome = asyncio.run(session.save(repo))
    assert outcome.ok is False
    assert outcome.error is repo.fail_with
    assert session.last_save_error is repo.fail_with
    assert session.snapshot() == before
    assert session.is_dirty is True
    assert session.story_id is None


def test_edits_during_save_stay_dirty() -> None:
    session = _session()
    session.add_scene()

    class _SlowRepository(_MemoryRepository):
        async def save(self, snapshot: dict, *, story_id: str | None = None) -> str:
            session.add_scene()
            return await super().save(snapshot, story_id=story_id)

    repo = _SlowRepository()
    outcome = asyncio.run(session.save(repo))
    assert outcome.ok is True
    assert len(repo.saved["story_1"]["scenes"]) == 1
    assert session.is_dirty is True


def test_load_round_trips_through_repository() -> None:
    repo = _MemoryRepository()
    source = AuthoringSession(help_finish_graph())
    outcome = asyncio.run(source.save(repo))
    loaded = asyncio.run(AuthoringSession.load(repo, outcome.story_id))
    assert loaded.story_id == outcome.story_id
    assert loaded.snapshot() == source.snapshot()
    assert loaded.is_dirty is False
