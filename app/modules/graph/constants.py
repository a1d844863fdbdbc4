from __future__ import annotations

from typing import Literal

END_SCENE_ID = "END"

DEFAULT_SCENE_TITLE = "New scene"
DEFAULT_OPTION_TEXT = "New option"
DEFAULT_ESTIMATED_DURATION = 15

SCENE_ID_PREFIX = "scene_"
OPTION_ID_PREFIX = "option_"

EndingType = Literal["happy", "neutral", "tragic", "mysterious"]
ENDING_TYPES: tuple[str, ...] = ("happy", "neutral", "tragic", "mysterious")

STORY_CATEGORIES: tuple[str, ...] = (
    "adventure",
    "mystery",
    "romance",
    "horror",
    "fantasy",
    "sci-fi",
    "drama",
    "comedy",
    "thriller",
    "historical",
)
STORY_DIFFICULTIES: tuple[str, ...] = ("easy", "medium", "hard", "expert")

SCENE_EDITABLE_FIELDS = frozenset(
    {
        "title",
        "content",
        "image_url",
        "background_music",
        "sound_effects",
        "is_ending",
        "ending_type",
        "order_index",
    }
)
OPTION_EDITABLE_FIELDS = frozenset(
    {
        "text",
        "next_scene_id",
        "consequences",
        "requirements",
        "order_index",
        "is_default",
    }
)
META_EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "category",
        "difficulty",
        "estimated_duration",
        "tags",
        "is_premium",
        "price",
    }
)
