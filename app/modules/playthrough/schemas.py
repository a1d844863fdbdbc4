from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.modules.story.schemas import StoryGraphSnapshot


class CreatePlaythroughRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    story_id: str | None = None
    graph: StoryGraphSnapshot | None = None
    start_scene_id: str | None = None

    @model_validator(mode="after")
    def _exactly_one_source(self):
        if (self.story_id is None) == (self.graph is None):
            raise ValueError("provide exactly one of story_id or graph")
        return self


class ChooseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    option_id: str = Field(min_length=1)


class RequirementCheckOut(BaseModel):
    stat: str
    required: int
    actual: int


class OptionViewOut(BaseModel):
    id: str
    text: str
    order_index: int
    selectable: bool
    is_default: bool = False
    unmet: list[RequirementCheckOut] = Field(default_factory=list)


class SceneViewOut(BaseModel):
    id: str
    title: str
    content: str
    image_url: str | None = None
    background_music: str | None = None
    sound_effects: list[str] = Field(default_factory=list)
    is_ending: bool = False
    ending_type: str | None = None


class PlaythroughOut(BaseModel):
    playthrough_id: str
    story_id: str | None = None
    status: Literal["ready", "playing", "ended"]
    end_reason: str | None = None
    start_scene_id: str | None = None
    stats: dict[str, int] = Field(default_factory=dict)
    steps: int = 0
    scene: SceneViewOut | None = None
    options: list[OptionViewOut] = Field(default_factory=list)


class ChoiceOut(BaseModel):
    accepted: bool
    option_id: str
    playthrough: PlaythroughOut
