from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from app.modules.graph.analysis import LintReport, lint_story_graph
from app.modules.graph.constants import (
    DEFAULT_OPTION_TEXT,
    DEFAULT_SCENE_TITLE,
    ENDING_TYPES,
    META_EDITABLE_FIELDS,
    OPTION_EDITABLE_FIELDS,
    OPTION_ID_PREFIX,
    SCENE_EDITABLE_FIELDS,
    SCENE_ID_PREFIX,
    STORY_CATEGORIES,
    STORY_DIFFICULTIES,
)
from app.modules.graph.errors import StoryPersistenceError
from app.modules.graph.models import (
    Option,
    Scene,
    StoryGraph,
    normalize_next_scene_id,
    normalize_stat_map,
)
from app.modules.graph.playthrough import PlaythroughSimulator
from app.modules.graph.reorder import DragSession, PointerOffset, clamp_index, reorder, renumber

logger = logging.getLogger(__name__)

IdFactory = Callable[[str], str]

_MISSING = object()


class StoryRepository(Protocol):
    async def save(self, snapshot: dict, *, story_id: str | None = None) -> str: ...

    async def load(self, story_id: str) -> dict: ...


@dataclass(frozen=True, slots=True)
class SaveOutcome:
    ok: bool
    story_id: str | None
    revision: int
    error: StoryPersistenceError | None = None


def default_id_factory(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_int(value: Any) -> Any:
    if isinstance(value, bool):
        return _MISSING
    try:
        return int(value)
    except (TypeError, ValueError):
        return _MISSING


def _coerce_scene_field(name: str, value: Any) -> Any:
    if name in {"title", "content"}:
        return str(value or "")
    if name in {"image_url", "background_music"}:
        return _optional_text(value)
    if name == "sound_effects":
        if not isinstance(value, list):
            return _MISSING
        return [str(item) for item in value if item]
    if name == "is_ending":
        return bool(value)
    if name == "ending_type":
        text = _optional_text(value)
        if text is not None and text not in ENDING_TYPES:
            return _MISSING
        return text
    if name == "order_index":
        return _coerce_int(value)
    return _MISSING


def _coerce_option_field(name: str, value: Any) -> Any:
    if name == "text":
        return str(value or "")
    if name == "next_scene_id":
        return normalize_next_scene_id(value)
    if name in {"consequences", "requirements"}:
        if not isinstance(value, Mapping):
            return _MISSING
        return normalize_stat_map(dict(value))
    if name == "order_index":
        return _coerce_int(value)
    if name == "is_default":
        return bool(value)
    return _MISSING


def _coerce_meta_field(name: str, value: Any) -> Any:
    if name in {"title", "description"}:
        return str(value or "")
    if name == "category":
        text = str(value or "").strip()
        return text if text in STORY_CATEGORIES else _MISSING
    if name == "difficulty":
        text = str(value or "").strip()
        return text if text in STORY_DIFFICULTIES else _MISSING
    if name == "estimated_duration":
        minutes = _coerce_int(value)
        if minutes is _MISSING or minutes < 1:
            return _MISSING
        return minutes
    if name == "tags":
        if not isinstance(value, list):
            return _MISSING
        out: list[str] = []
        for item in value:
            text = str(item or "").strip()
            if text and text not in out:
                out.append(text)
        return out
    if name == "is_premium":
        return bool(value)
    if name == "price":
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return _MISSING
        return max(0.0, float(value))
    return _MISSING


def _merge_fields(
    target: object,
    fields: Mapping[str, Any],
    *,
    allowed: frozenset[str],
    coerce: Callable[[str, Any], Any],
    label: str,
) -> bool:
    changed = False
    for name, raw in fields.items():
        if name not in allowed:
            logger.debug("ignoring non-editable %s field %r", label, name)
            continue
        value = coerce(name, raw)
        if value is _MISSING:
            logger.debug("ignoring invalid %s value for %r", label, name)
            continue
        if getattr(target, name) != value:
            setattr(target, name, value)
            changed = True
    return changed


class AuthoringSession:
    """In-memory editor state over one story graph.

    Mutations targeting ids that no longer exist are silent no-ops: the editor
    may race a deletion against an in-flight edit. Option deletion leaves order
    indices untouched until ``renumber_options`` runs.
    """

    def __init__(
        self,
        graph: StoryGraph | None = None,
        *,
        story_id: str | None = None,
        id_factory: IdFactory | None = None,
        default_scene_title: str = DEFAULT_SCENE_TITLE,
        default_option_text: str = DEFAULT_OPTION_TEXT,
    ) -> None:
        self._graph = graph if graph is not None else StoryGraph()
        self._story_id = story_id
        self._id_factory = id_factory or default_id_factory
        self._default_scene_title = default_scene_title
        self._default_option_text = default_option_text
        self._selected_scene_id: str | None = None
        self._revision = 0
        self._saved_revision = 0
        self._pending_saves = 0
        self._last_save_error: StoryPersistenceError | None = None
        self._drag: DragSession | None = None
        self._drag_scene_id: str | None = None

    @property
    def graph(self) -> StoryGraph:
        return self._graph

    @property
    def story_id(self) -> str | None:
        return self._story_id

    @property
    def selected_scene_id(self) -> str | None:
        return self._selected_scene_id

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def saved_revision(self) -> int:
        return self._saved_revision

    @property
    def is_dirty(self) -> bool:
        return self._revision != self._saved_revision

    @property
    def is_saving(self) -> bool:
        return self._pending_saves > 0

    @property
    def last_save_error(self) -> StoryPersistenceError | None:
        return self._last_save_error

    @property
    def drag(self) -> DragSession | None:
        return self._drag

    @property
    def drag_scene_id(self) -> str | None:
        return self._drag_scene_id

    def _touch(self) -> None:
        self._revision += 1

    def _fresh_id(self, prefix: str, taken: set[str]) -> str:
        while True:
            candidate = self._id_factory(prefix)
            if candidate not in taken:
                return candidate

    def _all_option_ids(self) -> set[str]:
        return {option.id for scene in self._graph.scenes for option in scene.options}

    # scenes

    def add_scene(self) -> Scene:
        scene = Scene(
            id=self._fresh_id(SCENE_ID_PREFIX, self._graph.scene_ids()),
            title=self._default_scene_title,
            order_index=len(self._graph.scenes),
        )
        self._graph.scenes.append(scene)
        self._selected_scene_id = scene.id
        self._touch()
        return scene

    def update_scene(self, scene_id: str, fields: Mapping[str, Any]) -> bool:
        scene = self._graph.find_scene(scene_id)
        if scene is None:
            logger.debug("update_scene ignored; scene %r not found", scene_id)
            return False
        changed = _merge_fields(scene, fields, allowed=SCENE_EDITABLE_FIELDS, coerce=_coerce_scene_field, label="scene")
        if changed:
            self._touch()
        return changed

    def delete_scene(self, scene_id: str) -> bool:
        before = len(self._graph.scenes)
        self._graph.scenes = [scene for scene in self._graph.scenes if scene.id != scene_id]
        if len(self._graph.scenes) == before:
            logger.debug("delete_scene ignored; scene %r not found", scene_id)
            return False
        if self._selected_scene_id == scene_id:
            self._selected_scene_id = None
        if self._drag_scene_id == scene_id:
            self.cancel_drag()
        self._touch()
        return True

    def select_scene(self, scene_id: str | None) -> bool:
        if scene_id is not None and self._graph.find_scene(scene_id) is None:
            return False
        self._selected_scene_id = scene_id
        return True

    def selected_scene(self) -> Scene | None:
        return self._graph.find_scene(self._selected_scene_id)

    # options

    def add_option(self, scene_id: str) -> Option | None:
        scene = self._graph.find_scene(scene_id)
        if scene is None:
            logger.debug("add_option ignored; scene %r not found", scene_id)
            return None
        option = Option(
            id=self._fresh_id(OPTION_ID_PREFIX, self._all_option_ids()),
            text=self._default_option_text,
            order_index=len(scene.options),
        )
        scene.options.append(option)
        self._touch()
        return option

    def update_option(self, scene_id: str, option_id: str, fields: Mapping[str, Any]) -> bool:
        scene = self._graph.find_scene(scene_id)
        option = scene.find_option(option_id) if scene is not None else None
        if option is None:
            logger.debug("update_option ignored; %r/%r not found", scene_id, option_id)
            return False
        changed = _merge_fields(
            option,
            fields,
            allowed=OPTION_EDITABLE_FIELDS,
            coerce=_coerce_option_field,
            label="option",
        )
        if changed:
            self._touch()
        return changed

    def delete_option(self, scene_id: str, option_id: str) -> bool:
        scene = self._graph.find_scene(scene_id)
        if scene is None:
            return False
        before = len(scene.options)
        scene.options = [option for option in scene.options if option.id != option_id]
        if len(scene.options) == before:
            logger.debug("delete_option ignored; %r/%r not found", scene_id, option_id)
            return False
        self._touch()
        return True

    def renumber_options(self, scene_id: str) -> bool:
        scene = self._graph.find_scene(scene_id)
        if scene is None:
            return False
        renumbered = renumber(scene.options)
        if [option.order_index for option in renumbered] == [option.order_index for option in scene.options]:
            return False
        scene.options = renumbered
        self._touch()
        return True

    def _set_stat_entry(self, scene_id: str, option_id: str, field_name: str, stat: str, value: int | None) -> bool:
        scene = self._graph.find_scene(scene_id)
        option = scene.find_option(option_id) if scene is not None else None
        name = str(stat or "").strip()
        if option is None or not name:
            return False
        current = dict(getattr(option, field_name))
        if value is None:
            if name not in current:
                return False
            current.pop(name)
        else:
            current[name] = int(value)
        return self.update_option(scene_id, option_id, {field_name: current})

    def set_consequence(self, scene_id: str, option_id: str, stat: str, delta: int) -> bool:
        return self._set_stat_entry(scene_id, option_id, "consequences", stat, delta)

    def remove_consequence(self, scene_id: str, option_id: str, stat: str) -> bool:
        return self._set_stat_entry(scene_id, option_id, "consequences", stat, None)

    def set_requirement(self, scene_id: str, option_id: str, stat: str, threshold: int) -> bool:
        return self._set_stat_entry(scene_id, option_id, "requirements", stat, threshold)

    def remove_requirement(self, scene_id: str, option_id: str, stat: str) -> bool:
        return self._set_stat_entry(scene_id, option_id, "requirements", stat, None)

    # reordering

    def move_option(self, scene_id: str, drag_index: int, hover_index: int, pointer: PointerOffset) -> bool:
        scene = self._graph.find_scene(scene_id)
        if scene is None or not scene.options:
            return False
        size = len(scene.options)
        updated = reorder(scene.options, clamp_index(drag_index, size), clamp_index(hover_index, size), pointer)
        if [option.id for option in updated] == [option.id for option in scene.options]:
            return False
        scene.options = updated
        self._touch()
        return True

    def begin_drag(self, scene_id: str, option_id: str) -> bool:
        scene = self._graph.find_scene(scene_id)
        drag = DragSession.start(scene.options, option_id) if scene is not None else None
        if drag is None:
            return False
        self._drag = drag
        self._drag_scene_id = scene_id
        return True

    def drag_over(self, hover_index: int, pointer: PointerOffset) -> bool:
        scene = self._graph.find_scene(self._drag_scene_id)
        if self._drag is None or scene is None:
            return False
        before = self._drag.committed_moves
        scene.options = self._drag.hover(scene.options, hover_index, pointer)
        if self._drag.committed_moves == before:
            return False
        self._touch()
        return True

    def end_drag(self, *, to_end: bool = False) -> bool:
        scene = self._graph.find_scene(self._drag_scene_id)
        drag = self._drag
        self.cancel_drag()
        if drag is None or scene is None:
            return False
        before_ids = [option.id for option in scene.options]
        before_indices = [option.order_index for option in scene.options]
        scene.options = drag.drop(scene.options, to_end=to_end)
        changed = (
            [option.id for option in scene.options] != before_ids
            or [option.order_index for option in scene.options] != before_indices
        )
        if changed:
            self._touch()
        return changed

    def cancel_drag(self) -> None:
        self._drag = None
        self._drag_scene_id = None

    # metadata

    def update_meta(self, fields: Mapping[str, Any]) -> bool:
        changed = _merge_fields(
            self._graph.meta,
            fields,
            allowed=META_EDITABLE_FIELDS,
            coerce=_coerce_meta_field,
            label="meta",
        )
        if changed:
            self._touch()
        return changed

    # projections

    def snapshot(self) -> dict:
        return self._graph.to_dict()

    def preview(self, start_scene_id: str | None = None) -> PlaythroughSimulator:
        simulator = PlaythroughSimulator(self._graph, start_scene_id=start_scene_id)
        simulator.start()
        return simulator

    def lint(self) -> LintReport:
        return lint_story_graph(self._graph)

    # persistence

    async def save(self, repository: StoryRepository) -> SaveOutcome:
        snapshot = self.snapshot()
        revision = self._revision
        self._pending_saves += 1
        try:
            story_id = await repository.save(snapshot, story_id=self._story_id)
        except StoryPersistenceError as exc:
            logger.warning("story save failed code=%s story_id=%s: %s", exc.code, self._story_id, exc.message)
            self._last_save_error = exc
            return SaveOutcome(ok=False, story_id=self._story_id, revision=revision, error=exc)
        finally:
            self._pending_saves -= 1
        self._story_id = story_id
        self._saved_revision = max(self._saved_revision, revision)
        self._last_save_error = None
        logger.info("story saved story_id=%s revision=%d", story_id, revision)
        return SaveOutcome(ok=True, story_id=story_id, revision=revision)

    @classmethod
    async def load(
        cls,
        repository: StoryRepository,
        story_id: str,
        *,
        id_factory: IdFactory | None = None,
        default_scene_title: str = DEFAULT_SCENE_TITLE,
        default_option_text: str = DEFAULT_OPTION_TEXT,
    ) -> AuthoringSession:
        snapshot = await repository.load(story_id)
        return cls(
            StoryGraph.from_dict(snapshot),
            story_id=story_id,
            id_factory=id_factory,
            default_scene_title=default_scene_title,
            default_option_text=default_option_text,
        )
