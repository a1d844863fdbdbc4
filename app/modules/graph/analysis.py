from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Literal

from app.modules.graph.models import StoryGraph
from app.modules.graph.reorder import has_contiguous_order

Severity = Literal["error", "warning"]

_TERMINAL = "__terminal__"


@dataclass(frozen=True, slots=True)
class LintIssue:
    code: str
    severity: Severity
    path: str
    message: str
    suggestion: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class LintReport:
    issues: tuple[LintIssue, ...]
    reachable_scene_ids: tuple[str, ...]

    @property
    def errors(self) -> list[LintIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[LintIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]

    @property
    def ok(self) -> bool:
        return not self.errors


def _issue(
    *,
    code: str,
    severity: Severity,
    path: str,
    message: str,
    suggestion: str | None = None,
) -> LintIssue:
    return LintIssue(code=code, severity=severity, path=path, message=message, suggestion=suggestion)


def build_adjacency(graph: StoryGraph) -> dict[str, list[str]]:
    """Scene id -> successor ids; END, unset and dangling destinations collapse to one terminal marker."""
    scene_ids = graph.scene_ids()
    adjacency: dict[str, list[str]] = {}
    for scene in graph.scenes:
        edges: list[str] = []
        seen: set[str] = set()
        for option in scene.options:
            nxt = option.next_scene_id if option.next_scene_id in scene_ids else _TERMINAL
            if nxt not in seen:
                seen.add(nxt)
                edges.append(nxt)
        adjacency[scene.id] = edges
    return adjacency


def reachable_scenes(graph: StoryGraph, start_scene_id: str | None = None) -> set[str]:
    if start_scene_id is None:
        first = graph.first_scene()
        start_scene_id = first.id if first else None
    if start_scene_id is None or graph.find_scene(start_scene_id) is None:
        return set()
    adjacency = build_adjacency(graph)
    visited: set[str] = set()
    stack = [start_scene_id]
    while stack:
        scene_id = stack.pop()
        if scene_id in visited or scene_id == _TERMINAL:
            continue
        visited.add(scene_id)
        for nxt in adjacency.get(scene_id, []):
            if nxt not in visited:
                stack.append(nxt)
    return visited


def strongly_connected_components(nodes: list[str], adjacency: dict[str, list[str]]) -> list[set[str]]:
    # Tarjan with an explicit work stack; long linear stories exceed the recursion limit.
    index = 0
    stack: list[str] = []
    on_stack: set[str] = set()
    indices: dict[str, int] = {}
    low: dict[str, int] = {}
    out: list[set[str]] = []

    for root in nodes:
        if root in indices:
            continue
        work: list[tuple[str, int]] = [(root, 0)]
        while work:
            node, pos = work.pop()
            if pos == 0:
                indices[node] = index
                low[node] = index
                index += 1
                stack.append(node)
                on_stack.add(node)
            edges = adjacency.get(node, [])
            descended = False
            while pos < len(edges):
                nxt = edges[pos]
                pos += 1
                if nxt not in adjacency:
                    continue
                if nxt not in indices:
                    work.append((node, pos))
                    work.append((nxt, 0))
                    descended = True
                    break
                if nxt in on_stack:
                    low[node] = min(low[node], indices[nxt])
            if descended:
                continue

            if low[node] == indices[node]:
                component: set[str] = set()
                while True:
                    w = stack.pop()
                    on_stack.remove(w)
                    component.add(w)
                    if w == node:
                        break
                out.append(component)
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
    return out


def _can_terminate(adjacency: dict[str, list[str]]) -> set[str]:
    reverse: dict[str, set[str]] = {}
    for node, edges in adjacency.items():
        for nxt in edges:
            reverse.setdefault(nxt, set()).add(node)
    out: set[str] = set()
    stack = list(reverse.get(_TERMINAL, set()))
    while stack:
        node = stack.pop()
        if node in out:
            continue
        out.add(node)
        stack.extend(reverse.get(node, set()) - out)
    return out


def lint_story_graph(graph: StoryGraph, *, start_scene_id: str | None = None) -> LintReport:
    """Non-blocking authoring diagnostics. Playthrough behavior never depends on this report."""
    issues: list[LintIssue] = []
    if not graph.scenes:
        issues.append(
            _issue(
                code="NO_SCENES",
                severity="error",
                path="scenes",
                message="Story has no scenes.",
                suggestion="Add a first scene before previewing.",
            )
        )
        return LintReport(issues=tuple(issues), reachable_scene_ids=())

    scene_ids = graph.scene_ids()
    adjacency = build_adjacency(graph)
    reachable = reachable_scenes(graph, start_scene_id)
    terminating = _can_terminate(adjacency)
    produced_stats = {
        stat
        for scene in graph.scenes
        for option in scene.options
        for stat, delta in option.consequences.items()
        if delta > 0
    }

    for scene in graph.scenes:
        path = f"scenes[{scene.id}]"
        if scene.id not in reachable:
            issues.append(
                _issue(
                    code="UNREACHABLE_SCENE",
                    severity="warning",
                    path=path,
                    message=f"Scene `{scene.id}` is unreachable from the start scene.",
                    suggestion="Link an option from a reachable scene or remove this scene.",
                )
            )
        if not scene.options:
            issues.append(
                _issue(
                    code="SCENE_WITHOUT_OPTIONS",
                    severity="warning",
                    path=path,
                    message=f"Scene `{scene.id}` has no options; players cannot leave it.",
                    suggestion="Add an option pointing to END or another scene.",
                )
            )
        if not has_contiguous_order(scene.options):
            issues.append(
                _issue(
                    code="ORDER_INDEX_NOT_CONTIGUOUS",
                    severity="warning",
                    path=f"{path}.options",
                    message=f"Option order indices in `{scene.id}` are not 0..{len(scene.options) - 1}.",
                    suggestion="Renumber the scene's options.",
                )
            )
        if sum(1 for option in scene.options if option.is_default) > 1:
            issues.append(
                _issue(
                    code="MULTIPLE_DEFAULT_OPTIONS",
                    severity="warning",
                    path=f"{path}.options",
                    message=f"Scene `{scene.id}` marks more than one option as default.",
                    suggestion="Keep a single default option per scene.",
                )
            )

        seen_option_ids: set[str] = set()
        for option in scene.options:
            option_path = f"{path}.options[{option.id}]"
            if option.id in seen_option_ids:
                issues.append(
                    _issue(
                        code="DUPLICATE_OPTION_ID",
                        severity="error",
                        path=option_path,
                        message=f"Option id `{option.id}` appears more than once in `{scene.id}`.",
                    )
                )
            seen_option_ids.add(option.id)
            if not option.text.strip():
                issues.append(
                    _issue(
                        code="EMPTY_OPTION_TEXT",
                        severity="warning",
                        path=f"{option_path}.text",
                        message="Option text is empty.",
                        suggestion="Provide a player-facing label.",
                    )
                )
            kind = option.destination
            if kind == "unset":
                issues.append(
                    _issue(
                        code="UNSET_DESTINATION",
                        severity="warning",
                        path=f"{option_path}.next_scene_id",
                        message="Option has no destination and will end the story.",
                        suggestion="Pick a scene or END explicitly.",
                    )
                )
            elif kind == "scene" and option.next_scene_id not in scene_ids:
                issues.append(
                    _issue(
                        code="DANGLING_DESTINATION",
                        severity="warning",
                        path=f"{option_path}.next_scene_id",
                        message=f"Destination `{option.next_scene_id}` does not exist and will end the story.",
                        suggestion="Create the scene or retarget the option.",
                    )
                )
            for stat, threshold in option.requirements.items():
                if threshold > 0 and stat not in produced_stats:
                    issues.append(
                        _issue(
                            code="UNSATISFIABLE_REQUIREMENT",
                            severity="warning",
                            path=f"{option_path}.requirements.{stat}",
                            message=f"No option ever increases `{stat}`, so `{stat} >= {threshold}` cannot hold.",
                            suggestion="Add a consequence that raises this stat or lower the threshold.",
                        )
                    )

    if reachable and not (reachable & terminating):
        issues.append(
            _issue(
                code="NO_REACHABLE_END",
                severity="error",
                path="scenes",
                message="No reachable scene leads to an ending.",
                suggestion="Point at least one option to END.",
            )
        )

    nodes = [scene.id for scene in graph.scenes if scene.id in reachable]
    for component in strongly_connected_components(nodes, adjacency):
        if len(component) == 1:
            only = next(iter(component))
            if only not in adjacency.get(only, []):
                continue
        if component & terminating:
            continue
        members = ", ".join(sorted(component))
        issues.append(
            _issue(
                code="CYCLE_WITHOUT_EXIT",
                severity="warning",
                path="scenes",
                message=f"Scenes {members} form a loop with no path to an ending.",
                suggestion="Give one of these scenes an option that leaves the loop.",
            )
        )

    return LintReport(
        issues=tuple(issues),
        reachable_scene_ids=tuple(scene.id for scene in graph.scenes if scene.id in reachable),
    )
