from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.modules.graph.constants import (
    DEFAULT_ESTIMATED_DURATION,
    DEFAULT_OPTION_TEXT,
    DEFAULT_SCENE_TITLE,
    STORY_CATEGORIES,
    STORY_DIFFICULTIES,
)

EndingTypeName = Literal["happy", "neutral", "tragic", "mysterious"]


class OptionSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    text: str = DEFAULT_OPTION_TEXT
    next_scene_id: str | None = None
    consequences: dict[str, int] = Field(default_factory=dict)
    requirements: dict[str, int] = Field(default_factory=dict)
    order_index: int = 0
    is_default: bool = False


class SceneSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    title: str = DEFAULT_SCENE_TITLE
    content: str = ""
    image_url: str | None = None
    background_music: str | None = None
    sound_effects: list[str] = Field(default_factory=list)
    options: list[OptionSnapshot] = Field(default_factory=list)
    order_index: int = 0
    is_ending: bool = False
    ending_type: EndingTypeName | None = None

    @model_validator(mode="after")
    def _unique_option_ids(self):
        seen: set[str] = set()
        for option in self.options:
            if option.id in seen:
                raise ValueError(f"duplicate option id `{option.id}` in scene `{self.id}`")
            seen.add(option.id)
        return self


class StoryMetaSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = ""
    description: str = ""
    category: str = "adventure"
    difficulty: str = "medium"
    estimated_duration: int = Field(default=DEFAULT_ESTIMATED_DURATION, ge=1)
    tags: list[str] = Field(default_factory=list)
    is_premium: bool = False
    price: float | None = Field(default=None, ge=0)

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        if value not in STORY_CATEGORIES:
            raise ValueError(f"unknown category `{value}`")
        return value

    @field_validator("difficulty")
    @classmethod
    def _known_difficulty(cls, value: str) -> str:
        if value not in STORY_DIFFICULTIES:
            raise ValueError(f"unknown difficulty `{value}`")
        return value

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: list[str]) -> list[str]:
        out: list[str] = []
        for tag in value:
            text = tag.strip()
            if text and text not in out:
                out.append(text)
        return out


class StoryGraphSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid")

    meta: StoryMetaSnapshot = Field(default_factory=StoryMetaSnapshot)
    scenes: list[SceneSnapshot] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_scene_ids(self):
        seen: set[str] = set()
        for scene in self.scenes:
            if scene.id in seen:
                raise ValueError(f"duplicate scene id `{scene.id}`")
            seen.add(scene.id)
        return self


# authoring requests


class CreateAuthoringSessionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    story_id: str | None = None
    graph: StoryGraphSnapshot | None = None


class SceneUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    content: str | None = None
    image_url: str | None = None
    background_music: str | None = None
    sound_effects: list[str] | None = None
    is_ending: bool | None = None
    ending_type: EndingTypeName | None = None
    order_index: int | None = None


class OptionUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str | None = None
    next_scene_id: str | None = None
    consequences: dict[str, int] | None = None
    requirements: dict[str, int] | None = None
    order_index: int | None = None
    is_default: bool | None = None


class MetaUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    category: str | None = None
    difficulty: str | None = None
    estimated_duration: int | None = None
    tags: list[str] | None = None
    is_premium: bool | None = None
    price: float | None = None


class PointerPayload(BaseModel):
    """Pointer Y relative to the hovered option's top edge, plus that option's height."""

    model_config = ConfigDict(extra="forbid")

    y: float
    height: float = Field(ge=0)


class ReorderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    drag_index: int
    hover_index: int
    pointer: PointerPayload


class DragStartRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    option_id: str = Field(min_length=1)


class DragMoveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hover_index: int
    pointer: PointerPayload


class DragDropRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    to_end: bool = False


class PreviewRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    start_scene_id: str | None = None


# authoring responses


class PersistenceErrorOut(BaseModel):
    code: str
    message: str
    retryable: bool


class DragStateOut(BaseModel):
    scene_id: str
    option_id: str
    index: int
    committed_moves: int


class AuthoringSessionOut(BaseModel):
    session_id: str
    story_id: str | None
    graph: StoryGraphSnapshot
    selected_scene_id: str | None
    revision: int
    saved_revision: int
    is_dirty: bool
    is_saving: bool
    last_save_error: PersistenceErrorOut | None = None
    drag: DragStateOut | None = None


class MutationResponse(BaseModel):
    changed: bool
    created_id: str | None = None
    session: AuthoringSessionOut


class LintIssueOut(BaseModel):
    code: str
    severity: Literal["error", "warning"]
    path: str
    message: str
    suggestion: str | None = None


class LintResponse(BaseModel):
    ok: bool
    errors: list[LintIssueOut] = Field(default_factory=list)
    warnings: list[LintIssueOut] = Field(default_factory=list)
    reachable_scene_ids: list[str] = Field(default_factory=list)


class SaveResponse(BaseModel):
    ok: bool
    story_id: str | None
    revision: int
    error: PersistenceErrorOut | None = None
    session: AuthoringSessionOut


# stories


class StorySummary(BaseModel):
    story_id: str
    title: str
    revision: int
    checksum: str
    created_at: datetime
    updated_at: datetime


class StoryListResponse(BaseModel):
    stories: list[StorySummary]


class StoryDetail(StorySummary):
    graph: StoryGraphSnapshot

