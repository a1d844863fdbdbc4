from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from app.modules.graph.models import Option, Scene, StoryGraph, normalize_stat_map

logger = logging.getLogger(__name__)


class PlaythroughStatus(str, Enum):
    READY = "ready"
    PLAYING = "playing"
    ENDED = "ended"


class EndReason(str, Enum):
    END = "END"
    UNSET_DESTINATION = "UNSET_DESTINATION"
    DANGLING_REFERENCE = "DANGLING_REFERENCE"
    NO_SCENES = "NO_SCENES"


class RejectionReason(str, Enum):
    OPTION_NOT_FOUND = "OPTION_NOT_FOUND"
    REQUIREMENTS_NOT_MET = "REQUIREMENTS_NOT_MET"
    PLAYTHROUGH_NOT_ACTIVE = "PLAYTHROUGH_NOT_ACTIVE"
    ENDING_SCENE = "ENDING_SCENE"


@dataclass(frozen=True, slots=True)
class RequirementCheck:
    stat: str
    required: int
    actual: int


@dataclass(frozen=True, slots=True)
class Selectability:
    allowed: bool
    unmet: tuple[RequirementCheck, ...] = ()


def stat_value(stats: Mapping[str, int], name: str) -> int:
    return int(stats.get(name, 0))


def evaluate_requirements(requirements: Mapping[str, int] | None, stats: Mapping[str, int]) -> Selectability:
    if not requirements:
        return Selectability(allowed=True)
    unmet: list[RequirementCheck] = []
    for stat, threshold in requirements.items():
        actual = stat_value(stats, stat)
        if actual < int(threshold):
            unmet.append(RequirementCheck(stat=stat, required=int(threshold), actual=actual))
    return Selectability(allowed=not unmet, unmet=tuple(unmet))


def apply_consequences(stats: Mapping[str, int], consequences: Mapping[str, int] | None) -> dict[str, int]:
    out = dict(stats)
    for stat, delta in (consequences or {}).items():
        out[stat] = stat_value(out, stat) + int(delta)
    return out


@dataclass(frozen=True, slots=True)
class OptionView:
    id: str
    text: str
    order_index: int
    selectable: bool
    is_default: bool = False
    unmet: tuple[RequirementCheck, ...] = ()


@dataclass(frozen=True, slots=True)
class PlaythroughView:
    status: PlaythroughStatus
    current_scene: Scene | None
    options: tuple[OptionView, ...]
    stats: dict[str, int]
    end_reason: EndReason | None = None
    steps: int = 0

    @property
    def selectable_option_ids(self) -> list[str]:
        return [option.id for option in self.options if option.selectable]


@dataclass(frozen=True, slots=True)
class ChoiceResult:
    accepted: bool
    option_id: str
    view: PlaythroughView
    reason: RejectionReason | None = None
    unmet: tuple[RequirementCheck, ...] = ()


@dataclass(slots=True)
class PlaythroughState:
    start_scene_id: str | None
    current_scene_id: str | None = None
    stats: dict[str, int] = field(default_factory=dict)
    status: PlaythroughStatus = PlaythroughStatus.READY
    end_reason: EndReason | None = None
    steps: int = 0

    def to_dict(self) -> dict:
        return {
            "start_scene_id": self.start_scene_id,
            "current_scene_id": self.current_scene_id,
            "stats": dict(self.stats),
            "status": self.status.value,
            "end_reason": self.end_reason.value if self.end_reason else None,
            "steps": int(self.steps),
        }

    @classmethod
    def from_dict(cls, raw: Mapping) -> PlaythroughState:
        end_reason = raw.get("end_reason")
        return cls(
            start_scene_id=raw.get("start_scene_id"),
            current_scene_id=raw.get("current_scene_id"),
            stats=normalize_stat_map(raw.get("stats")),
            status=PlaythroughStatus(str(raw.get("status") or PlaythroughStatus.READY.value)),
            end_reason=EndReason(str(end_reason)) if end_reason else None,
            steps=int(raw.get("steps") or 0),
        )


class PlaythroughSimulator:
    """Replays a story graph as a sequence of player-visible states.

    The graph is deep-copied on construction, so later authoring edits never
    leak into a running preview. Cycles are legal: a loop with no reachable
    ``END`` simply keeps the session going.
    """

    def __init__(self, graph: StoryGraph, *, start_scene_id: str | None = None) -> None:
        self._graph = graph.copy()
        if start_scene_id is None:
            first = self._graph.first_scene()
            start_scene_id = first.id if first else None
        self._state = PlaythroughState(start_scene_id=start_scene_id)

    @classmethod
    def restore(cls, graph: StoryGraph, state: PlaythroughState) -> PlaythroughSimulator:
        simulator = cls(graph, start_scene_id=state.start_scene_id)
        simulator._state = PlaythroughState(
            start_scene_id=state.start_scene_id,
            current_scene_id=state.current_scene_id,
            stats=dict(state.stats),
            status=state.status,
            end_reason=state.end_reason,
            steps=int(state.steps),
        )
        if simulator._state.status == PlaythroughStatus.PLAYING:
            simulator._render()
        return simulator

    @property
    def graph(self) -> StoryGraph:
        return self._graph

    @property
    def state(self) -> PlaythroughState:
        return self._state

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._state.stats)

    @property
    def status(self) -> PlaythroughStatus:
        return self._state.status

    @property
    def current_scene_id(self) -> str | None:
        return self._state.current_scene_id

    @property
    def is_ended(self) -> bool:
        return self._state.status == PlaythroughStatus.ENDED

    def start(self) -> PlaythroughView:
        self._state = PlaythroughState(
            start_scene_id=self._state.start_scene_id,
            current_scene_id=self._state.start_scene_id,
            status=PlaythroughStatus.PLAYING,
        )
        if self._state.start_scene_id is None:
            self._end(EndReason.NO_SCENES)
            return self.view()
        self._render()
        return self.view()

    def restart(self) -> PlaythroughView:
        return self.start()

    def current_scene(self) -> Scene | None:
        if self._state.status != PlaythroughStatus.PLAYING:
            return None
        return self._graph.find_scene(self._state.current_scene_id)

    def selectability(self, option: Option) -> Selectability:
        return evaluate_requirements(option.requirements, self._state.stats)

    def is_selectable(self, option: Option) -> bool:
        return self.selectability(option).allowed

    def view(self) -> PlaythroughView:
        scene = self.current_scene()
        options: list[OptionView] = []
        if scene is not None:
            for option in scene.options:
                check = self.selectability(option)
                options.append(
                    OptionView(
                        id=option.id,
                        text=option.text,
                        order_index=option.order_index,
                        selectable=check.allowed,
                        is_default=option.is_default,
                        unmet=check.unmet,
                    )
                )
        return PlaythroughView(
            status=self._state.status,
            current_scene=scene,
            options=tuple(options),
            stats=dict(self._state.stats),
            end_reason=self._state.end_reason,
            steps=self._state.steps,
        )

    def choose(self, option_id: str, *, trust_caller: bool = False) -> ChoiceResult:
        if self._state.status != PlaythroughStatus.PLAYING:
            return self._reject(option_id, RejectionReason.PLAYTHROUGH_NOT_ACTIVE)
        scene = self.current_scene()
        option = scene.find_option(option_id) if scene is not None else None
        if option is None:
            return self._reject(option_id, RejectionReason.OPTION_NOT_FOUND)

        check = self.selectability(option)
        if not check.allowed and not trust_caller:
            return self._reject(option_id, RejectionReason.REQUIREMENTS_NOT_MET, unmet=check.unmet)

        self._state.stats = apply_consequences(self._state.stats, option.consequences)
        self._state.steps += 1
        destination = option.destination
        if destination == "end":
            self._end(EndReason.END)
        elif destination == "unset":
            self._end(EndReason.UNSET_DESTINATION)
        else:
            self._state.current_scene_id = option.next_scene_id
            self._render()
        return ChoiceResult(accepted=True, option_id=option_id, view=self.view())

    def choose_default(self) -> ChoiceResult:
        """Resolve an expired decision timer.

        Picks the scene's default option when it is selectable, otherwise the
        first selectable option in presentation order.

        An ending scene waits for an explicit choice.
        """
        scene = self.current_scene()
        if scene is None or not scene.options:
            return self.choose("")
        if scene.is_ending:
            return self._reject("", RejectionReason.ENDING_SCENE)
        ordered = sorted(scene.options, key=lambda item: item.order_index)
        candidates = [option for option in ordered if option.is_default] + ordered
        for option in candidates:
            if self.is_selectable(option):
                return self.choose(option.id)
        return self.choose(candidates[0].id)

    def _render(self) -> None:
        if self._graph.find_scene(self._state.current_scene_id) is None:
            logger.warning(
                "playthrough reached missing scene %r; treating as end",
                self._state.current_scene_id,
            )
            self._end(EndReason.DANGLING_REFERENCE)

    def _end(self, reason: EndReason) -> None:
        self._state.status = PlaythroughStatus.ENDED
        self._state.end_reason = reason
        self._state.current_scene_id = None
        logger.info("playthrough ended reason=%s steps=%d stats=%s", reason.value, self._state.steps, self._state.stats)

    def _reject(
        self,
        option_id: str,
        reason: RejectionReason,
        *,
        unmet: tuple[RequirementCheck, ...] = (),
    ) -> ChoiceResult:
        return ChoiceResult(accepted=False, option_id=option_id, view=self.view(), reason=reason, unmet=unmet)
