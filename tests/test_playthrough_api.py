from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from app.db import session as db_session
from app.db.models import Playthrough
from app.main import app
from tests.support.story_seed import gold_graph, help_finish_graph, seed_story


def _start(client: TestClient, **payload) -> dict:
    resp = client.post("/playthroughs", json=payload)
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_end_to_end_help_then_finish_over_http() -> None:
    client = TestClient(app)
    story_id = seed_story(help_finish_graph(), "help_finish")
    started = _start(client, story_id=story_id)
    pid = started["playthrough_id"]
    assert started["scene"]["id"] == "A"
    assert [option["id"] for option in started["options"]] == ["help"]

    direct = client.post(f"/playthroughs/{pid}/choose", json={"option_id": "finish"})
    assert direct.status_code == 409
    assert direct.json()["detail"]["code"] == "CHOICE_REJECTED"
    assert direct.json()["detail"]["reason"] == "OPTION_NOT_FOUND"

    helped = client.post(f"/playthroughs/{pid}/choose", json={"option_id": "help"}).json()
    assert helped["playthrough"]["scene"]["id"] == "B"
    assert helped["playthrough"]["stats"] == {"trust": 1}

    finished = client.post(f"/playthroughs/{pid}/choose", json={"option_id": "finish"}).json()
    assert finished["playthrough"]["status"] == "ended"
    assert finished["playthrough"]["end_reason"] == "END"
    assert finished["playthrough"]["stats"] == {"trust": 1}
    assert finished["playthrough"]["scene"] is None

    again = client.get(f"/playthroughs/{pid}").json()
    assert again["status"] == "ended"
    assert again["steps"] == 2


def test_inline_graph_and_requirement_rejection() -> None:
    client = TestClient(app)
    started = _start(client, graph=gold_graph().to_dict(), start_scene_id="gate")
    pid = started["playthrough_id"]
    pay = next(option for option in started["options"] if option["id"] == "pay")
    assert pay["selectable"] is False
    assert pay["unmet"] == [{"stat": "gold", "required": 10, "actual": 0}]

    rejected = client.post(f"/playthroughs/{pid}/choose", json={"option_id": "pay"})
    assert rejected.status_code == 409
    detail = rejected.json()["detail"]
    assert detail["reason"] == "REQUIREMENTS_NOT_MET"
    assert detail["unmet"] == [{"stat": "gold", "required": 10, "actual": 0}]
    assert client.get(f"/playthroughs/{pid}").json()["steps"] == 0


def test_timeout_picks_default_option() -> None:
    client = TestClient(app)
    pid = _start(client, graph=gold_graph().to_dict(), start_scene_id="gate")["playthrough_id"]
    body = client.post(f"/playthroughs/{pid}/timeout").json()
    assert body["option_id"] == "leave"
    assert body["playthrough"]["status"] == "ended"


def test_restart_resets_stats_and_scene() -> None:
    client = TestClient(app)
    pid = _start(client, graph=help_finish_graph().to_dict())["playthrough_id"]
    client.post(f"/playthroughs/{pid}/choose", json={"option_id": "help"})
    client.post(f"/playthroughs/{pid}/choose", json={"option_id": "finish"})

    restarted = client.post(f"/playthroughs/{pid}/restart").json()
    assert restarted["status"] == "playing"
    assert restarted["stats"] == {}
    assert restarted["scene"]["id"] == "A"
    assert restarted["steps"] == 0


def test_choose_after_end_is_rejected() -> None:
    client = TestClient(app)
    pid = _start(client, graph=help_finish_graph().to_dict())["playthrough_id"]
    client.post(f"/playthroughs/{pid}/choose", json={"option_id": "help"})
    client.post(f"/playthroughs/{pid}/choose", json={"option_id": "finish"})
    resp = client.post(f"/playthroughs/{pid}/choose", json={"option_id": "finish"})
    assert resp.status_code == 409
    assert resp.json()["detail"]["reason"] == "PLAYTHROUGH_NOT_ACTIVE"


def test_stored_dangling_reference_ends_on_next_read() -> None:
    client = TestClient(app)
    pid = _start(client, graph=help_finish_graph().to_dict())["playthrough_id"]
    client.post(f"/playthroughs/{pid}/choose", json={"option_id": "help"})

    with db_session.SessionLocal() as db:
        row = db.get(Playthrough, uuid.UUID(pid))
        graph = dict(row.graph_json)
        graph["scenes"] = [scene for scene in graph["scenes"] if scene["id"] != "B"]
        row.graph_json = graph
        db.commit()

    body = client.get(f"/playthroughs/{pid}").json()
    assert body["status"] == "ended"
    assert body["end_reason"] == "DANGLING_REFERENCE"


def test_exactly_one_source_required() -> None:
    client = TestClient(app)
    assert client.post("/playthroughs", json={}).status_code == 422
    both = {"story_id": "x", "graph": help_finish_graph().to_dict()}
    assert client.post("/playthroughs", json=both).status_code == 422


def test_unknown_ids_return_404() -> None:
    client = TestClient(app)
    resp = client.post("/playthroughs", json={"story_id": "missing"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "STORY_NOT_FOUND"

    resp = client.get("/playthroughs/not-a-uuid")
    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "PLAYTHROUGH_NOT_FOUND"
    resp = client.post("/playthroughs/00000000-0000-0000-0000-000000000000/restart")
    assert resp.status_code == 404


def _duplicate_option_graph() -> dict:
    return {
        "scenes": [
            {
                "id": "hall",
                "options": [
                    {"id": "x", "text": "first", "next_scene_id": "END", "order_index": 0},
                    {"id": "x", "text": "second", "next_scene_id": "END", "order_index": 1},
                ],
            }
        ]
    }


def test_duplicate_option_ids_are_rejected_at_the_boundary() -> None:
    client = TestClient(app)
    resp = client.post("/playthroughs", json={"graph": _duplicate_option_graph()})
    assert resp.status_code == 422
    resp = client.post("/authoring/sessions", json={"graph": _duplicate_option_graph()})
    assert resp.status_code == 422


def test_timeout_on_ending_scene_is_rejected() -> None:
    client = TestClient(app)
    graph = {
        "scenes": [
            {
                "id": "finale",
                "is_ending": True,
                "ending_type": "happy",
                "options": [
                    {"id": "again", "text": "Again", "next_scene_id": "finale", "consequences": {"n": 1}, "is_default": True}
                ],
            }
        ]
    }
    pid = _start(client, graph=graph)["playthrough_id"]
    resp = client.post(f"/playthroughs/{pid}/timeout")
    assert resp.status_code == 409
    assert resp.json()["detail"]["reason"] == "ENDING_SCENE"
    body = client.get(f"/playthroughs/{pid}").json()
    assert body["stats"] == {}
    assert body["scene"]["id"] == "finale"
