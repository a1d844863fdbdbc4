from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app
from app.modules.graph.analysis import build_adjacency, lint_story_graph, reachable_scenes
from app.modules.graph.models import Option, Scene, StoryGraph
from tests.support.story_seed import gold_graph, help_finish_graph


def _codes(report) -> set[str]:
    return {issue.code for issue in report.issues}


def test_well_formed_graph_is_ok() -> None:
    report = lint_story_graph(help_finish_graph())
    assert report.ok is True
    assert report.issues == ()
    assert report.reachable_scene_ids == ("A", "B")


def test_empty_graph_reports_no_scenes() -> None:
    report = lint_story_graph(StoryGraph())
    assert report.ok is False
    assert _codes(report) == {"NO_SCENES"}


def test_unreachable_scene_and_scene_without_options() -> None:
    graph = help_finish_graph()
    graph.scenes.append(Scene(id="orphan", order_index=5))
    report = lint_story_graph(graph)
    assert {"UNREACHABLE_SCENE", "SCENE_WITHOUT_OPTIONS"} <= _codes(report)
    assert report.ok is True
    assert "orphan" not in report.reachable_scene_ids


def test_dangling_and_unset_destinations_are_warnings() -> None:
    graph = StoryGraph(
        scenes=[
            Scene(
                id="start",
                options=[
                    Option(id="a", text="Into the void", next_scene_id="deleted", order_index=0),
                    Option(id="b", text="Nowhere", order_index=1),
                ],
            )
        ]
    )
    report = lint_story_graph(graph)
    paths = {issue.code: issue.path for issue in report.warnings}
    assert paths["DANGLING_DESTINATION"] == "scenes[start].options[a].next_scene_id"
    assert paths["UNSET_DESTINATION"] == "scenes[start].options[b].next_scene_id"
    assert report.ok is True


def test_closed_loop_without_end_is_flagged() -> None:
    graph = StoryGraph(
        scenes=[
            Scene(id="a", order_index=0, options=[Option(id="to_b", text="On", next_scene_id="b")]),
            Scene(id="b", order_index=1, options=[Option(id="to_a", text="Back", next_scene_id="a")]),
        ]
    )
    report = lint_story_graph(graph)
    assert "NO_REACHABLE_END" in _codes(report)
    assert "CYCLE_WITHOUT_EXIT" in _codes(report)
    assert report.ok is False


def test_loop_with_exit_is_not_flagged() -> None:
    report = lint_story_graph(gold_graph())
    assert "CYCLE_WITHOUT_EXIT" not in _codes(report)
    assert "NO_REACHABLE_END" not in _codes(report)


def test_unsatisfiable_requirement_and_order_warnings() -> None:
    graph = StoryGraph(
        scenes=[
            Scene(
                id="s",
                options=[
                    Option(id="x", text="Open", requirements={"key": 1}, next_scene_id="END", order_index=0, is_default=True),
                    Option(id="y", text=" ", next_scene_id="END", order_index=3, is_default=True),
                ],
            )
        ]
    )
    codes = _codes(lint_story_graph(graph))
    assert {
        "UNSATISFIABLE_REQUIREMENT",
        "ORDER_INDEX_NOT_CONTIGUOUS",
        "MULTIPLE_DEFAULT_OPTIONS",
        "EMPTY_OPTION_TEXT",
    } <= codes


def test_duplicate_option_ids_are_errors() -> None:
    graph = StoryGraph(
        scenes=[
            Scene(
                id="s",
                options=[
                    Option(id="same", text="One", next_scene_id="END", order_index=0),
                    Option(id="same", text="Two", next_scene_id="END", order_index=1),
                ],
            )
        ]
    )
    report = lint_story_graph(graph)
    assert [issue.code for issue in report.errors] == ["DUPLICATE_OPTION_ID"]


def test_adjacency_collapses_terminal_destinations() -> None:
    graph = StoryGraph(
        scenes=[
            Scene(
                id="s",
                options=[
                    Option(id="a", next_scene_id="END"),
                    Option(id="b"),
                    Option(id="c", next_scene_id="ghost"),
                    Option(id="d", next_scene_id="s"),
                ],
            )
        ]
    )
    edges = build_adjacency(graph)["s"]
    assert len(edges) == 2
    assert "s" in edges
    assert reachable_scenes(graph) == {"s"}


def test_lint_does_not_modify_graph() -> None:
    graph = gold_graph()
    before = graph.to_dict()
    lint_story_graph(graph)
    assert graph.to_dict() == before


def _chain(length: int) -> StoryGraph:
    scenes = []
    for i in range(length):
        next_id = f"s{i + 1}" if i + 1 < length else "END"
        scenes.append(
            Scene(id=f"s{i}", order_index=i, options=[Option(id=f"o{i}", text="Onward", next_scene_id=next_id)])
        )
    return StoryGraph(scenes=scenes)


def test_long_linear_story_lints_without_recursion() -> None:
    report = lint_story_graph(_chain(5000))
    assert report.ok is True
    assert report.issues == ()
    assert len(report.reachable_scene_ids) == 5000


def test_long_loop_is_one_component() -> None:
    graph = _chain(3000)
    graph.scenes[-1].options[0].next_scene_id = "s0"
    report = lint_story_graph(graph)
    assert "CYCLE_WITHOUT_EXIT" in _codes(report)


def test_lint_route_handles_long_story() -> None:
    client = TestClient(app)
    sid = client.post("/authoring/sessions", json={"graph": _chain(2000).to_dict()}).json()["session_id"]
    resp = client.get(f"/authoring/sessions/{sid}/lint")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True
