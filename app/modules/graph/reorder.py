"""Drag-and-drop reordering of a scene's options.

Everything here is pure list arithmetic: no UI binding and no exceptions.
Callers pass the pointer position relative to the hovered item's bounding box
and get back a new, renumbered list (or the input unchanged when the gesture
does not cross the hovered item's midpoint).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

from app.modules.graph.models import Option

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class PointerOffset:
    """Pointer Y measured from the top edge of the hovered item."""

    y: float
    height: float

    @classmethod
    def from_client(cls, *, client_y: float, rect_top: float, rect_bottom: float) -> PointerOffset:
        return cls(y=float(client_y) - float(rect_top), height=float(rect_bottom) - float(rect_top))

    @property
    def midpoint(self) -> float:
        return self.height / 2


def clamp_index(index: int, length: int) -> int:
    if length <= 0:
        return 0
    return max(0, min(int(index), length - 1))


def should_commit_move(drag_index: int, hover_index: int, pointer: PointerOffset) -> bool:
    if drag_index == hover_index:
        return False
    if drag_index < hover_index and pointer.y < pointer.midpoint:
        return False
    if drag_index > hover_index and pointer.y > pointer.midpoint:
        return False
    return True


def move_item(items: Sequence[T], drag_index: int, hover_index: int) -> list[T]:
    out = list(items)
    if drag_index == hover_index or not out:
        return out
    moved = out.pop(drag_index)
    out.insert(hover_index, moved)
    return out


def renumber(options: Sequence[Option]) -> list[Option]:
    return [dataclasses.replace(option, order_index=position) for position, option in enumerate(options)]


def reorder(
    options: Sequence[Option],
    drag_index: int,
    hover_index: int,
    pointer: PointerOffset,
) -> list[Option]:
    if not should_commit_move(drag_index, hover_index, pointer):
        return list(options)
    return renumber(move_item(options, drag_index, hover_index))


def has_contiguous_order(options: Sequence[Option]) -> bool:
    return sorted(option.order_index for option in options) == list(range(len(options)))


@dataclass(slots=True)
class DragSession:
    """Tracks one drag gesture from drag-start to drop.

    The tracked index follows the dragged option after every committed move,
    so a long downward drag commits one neighbour at a time.
    """

    option_id: str
    index: int
    committed_moves: int = 0
    cancelled: bool = False

    @classmethod
    def start(cls, options: Sequence[Option], option_id: str) -> DragSession | None:
        for idx, option in enumerate(options):
            if option.id == option_id:
                return cls(option_id=option_id, index=idx)
        return None

    def _resync(self, options: Sequence[Option]) -> bool:
        for idx, option in enumerate(options):
            if option.id == self.option_id:
                self.index = idx
                return True
        self.cancelled = True
        return False

    def hover(self, options: Sequence[Option], hover_index: int, pointer: PointerOffset) -> list[Option]:
        if self.cancelled or not self._resync(options):
            return list(options)
        target = clamp_index(hover_index, len(options))
        if not should_commit_move(self.index, target, pointer):
            return list(options)
        updated = renumber(move_item(options, self.index, target))
        self.index = target
        self.committed_moves += 1
        return updated

    def drop(self, options: Sequence[Option], *, to_end: bool = False) -> list[Option]:
        if self.cancelled or not self._resync(options):
            return list(options)
        if not to_end:
            return renumber(options)
        target = clamp_index(len(options), len(options))
        updated = renumber(move_item(options, self.index, target))
        if target != self.index:
            self.committed_moves += 1
        self.index = target
        return updated
