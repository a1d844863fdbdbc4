from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Literal

from app.modules.graph.constants import (
    DEFAULT_ESTIMATED_DURATION,
    DEFAULT_OPTION_TEXT,
    DEFAULT_SCENE_TITLE,
    END_SCENE_ID,
)

DestinationKind = Literal["scene", "end", "unset"]


def _to_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def normalize_stat_map(raw: Any) -> dict[str, int]:
    """Coerce a stat map to ``{name: int}``, dropping blank names and non-numeric values."""
    if not isinstance(raw, dict):
        return {}
    out: dict[str, int] = {}
    for raw_key, raw_value in raw.items():
        key = str(raw_key or "").strip()
        if not key:
            continue
        if raw_value is None or isinstance(raw_value, bool):
            continue
        if isinstance(raw_value, (int, float)):
            out[key] = int(raw_value)
            continue
        try:
            out[key] = int(str(raw_value).strip())
        except ValueError:
            continue
    return out


def normalize_next_scene_id(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def destination_kind(next_scene_id: str | None) -> DestinationKind:
    if next_scene_id is None:
        return "unset"
    if next_scene_id == END_SCENE_ID:
        return "end"
    return "scene"


def _unique_tags(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for item in values:
        text = str(item or "").strip()
        if not text or text in seen:
            continue
        seen.add(text)
        out.append(text)
    return out


@dataclass(slots=True)
class Option:
    id: str
    text: str = DEFAULT_OPTION_TEXT
    next_scene_id: str | None = None
    consequences: dict[str, int] = field(default_factory=dict)
    requirements: dict[str, int] = field(default_factory=dict)
    order_index: int = 0
    is_default: bool = False

    @property
    def destination(self) -> DestinationKind:
        return destination_kind(self.next_scene_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "next_scene_id": self.next_scene_id,
            "consequences": dict(self.consequences),
            "requirements": dict(self.requirements),
            "order_index": int(self.order_index),
            "is_default": bool(self.is_default),
        }

    @classmethod
    def from_dict(cls, raw: dict, *, fallback_index: int = 0) -> Option:
        return cls(
            id=str(raw.get("id") or "").strip(),
            text=str(raw.get("text") if raw.get("text") is not None else DEFAULT_OPTION_TEXT),
            next_scene_id=normalize_next_scene_id(raw.get("next_scene_id")),
            consequences=normalize_stat_map(raw.get("consequences")),
            requirements=normalize_stat_map(raw.get("requirements")),
            order_index=_to_int(raw.get("order_index"), fallback_index),
            is_default=bool(raw.get("is_default", False)),
        )


@dataclass(slots=True)
class Scene:
    id: str
    title: str = DEFAULT_SCENE_TITLE
    content: str = ""
    image_url: str | None = None
    background_music: str | None = None
    sound_effects: list[str] = field(default_factory=list)
    options: list[Option] = field(default_factory=list)
    order_index: int = 0
    is_ending: bool = False
    ending_type: str | None = None

    def find_option(self, option_id: str) -> Option | None:
        for option in self.options:
            if option.id == option_id:
                return option
        return None

    def option_position(self, option_id: str) -> int | None:
        for idx, option in enumerate(self.options):
            if option.id == option_id:
                return idx
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "image_url": self.image_url,
            "background_music": self.background_music,
            "sound_effects": list(self.sound_effects),
            "options": [option.to_dict() for option in self.options],
            "order_index": int(self.order_index),
            "is_ending": bool(self.is_ending),
            "ending_type": self.ending_type,
        }

    @classmethod
    def from_dict(cls, raw: dict, *, fallback_index: int = 0) -> Scene:
        raw_options = raw.get("options") if isinstance(raw.get("options"), list) else []
        options = [
            Option.from_dict(item, fallback_index=idx)
            for idx, item in enumerate(raw_options)
            if isinstance(item, dict)
        ]
        sound_effects = raw.get("sound_effects") if isinstance(raw.get("sound_effects"), list) else []
        return cls(
            id=str(raw.get("id") or "").strip(),
            title=str(raw.get("title") if raw.get("title") is not None else DEFAULT_SCENE_TITLE),
            content=str(raw.get("content") or ""),
            image_url=raw.get("image_url") or None,
            background_music=raw.get("background_music") or None,
            sound_effects=[str(item) for item in sound_effects if item],
            options=options,
            order_index=_to_int(raw.get("order_index"), fallback_index),
            is_ending=bool(raw.get("is_ending", False)),
            ending_type=raw.get("ending_type") or None,
        )


@dataclass(slots=True)
class StoryMeta:
    title: str = ""
    description: str = ""
    category: str = "adventure"
    difficulty: str = "medium"
    estimated_duration: int = DEFAULT_ESTIMATED_DURATION
    tags: list[str] = field(default_factory=list)
    is_premium: bool = False
    price: float | None = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "difficulty": self.difficulty,
            "estimated_duration": int(self.estimated_duration),
            "tags": list(self.tags),
            "is_premium": bool(self.is_premium),
            "price": self.price,
        }

    @classmethod
    def from_dict(cls, raw: dict | None) -> StoryMeta:
        data = raw if isinstance(raw, dict) else {}
        price = data.get("price")
        return cls(
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            category=str(data.get("category") or "adventure"),
            difficulty=str(data.get("difficulty") or "medium"),
            estimated_duration=_to_int(data.get("estimated_duration"), DEFAULT_ESTIMATED_DURATION),
            tags=_unique_tags(data.get("tags")),
            is_premium=bool(data.get("is_premium", False)),
            price=float(price) if isinstance(price, (int, float)) and not isinstance(price, bool) else None,
        )


@dataclass(slots=True)
class StoryGraph:
    scenes: list[Scene] = field(default_factory=list)
    meta: StoryMeta = field(default_factory=StoryMeta)

    def find_scene(self, scene_id: str | None) -> Scene | None:
        if scene_id is None:
            return None
        for scene in self.scenes:
            if scene.id == scene_id:
                return scene
        return None

    def scene_ids(self) -> set[str]:
        return {scene.id for scene in self.scenes}

    def first_scene(self) -> Scene | None:
        if not self.scenes:
            return None
        ranked = sorted(enumerate(self.scenes), key=lambda pair: (pair[1].order_index, pair[0]))
        return ranked[0][1]

    def copy(self) -> StoryGraph:
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "meta": self.meta.to_dict(),
            "scenes": [scene.to_dict() for scene in self.scenes],
        }

    @classmethod
    def from_dict(cls, raw: dict | None) -> StoryGraph:
        data = raw if isinstance(raw, dict) else {}
        raw_scenes = data.get("scenes") if isinstance(data.get("scenes"), list) else []
        return cls(
            scenes=[
                Scene.from_dict(item, fallback_index=idx)
                for idx, item in enumerate(raw_scenes)
                if isinstance(item, dict)
            ],
            meta=StoryMeta.from_dict(data.get("meta")),
        )
