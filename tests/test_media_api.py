from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from app.config import settings
from app.main import app


def test_upload_and_download_media() -> None:
    client = TestClient(app)
    payload = b"\x89PNG fake image bytes"
    resp = client.post(
        "/media",
        params={"kind": "image", "filename": "../../gate.png"},
        content=payload,
        headers={"content-type": "image/png"},
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["ref"] == f"media://{body['id']}"
    assert body["filename"] == "gate.png"
    assert body["size_bytes"] == len(payload)
    assert len(body["sha256"]) == 64

    stored = list(Path(settings.media_dir).rglob("*.png"))
    assert len(stored) == 1
    assert stored[0].parent.name == "image"

    download = client.get(f"/media/{body['id']}")
    assert download.status_code == 200
    assert download.content == payload
    assert download.headers["content-type"].startswith("image/png")


def test_media_reference_can_be_attached_to_a_scene() -> None:
    client = TestClient(app)
    ref = client.post("/media", params={"kind": "music"}, content=b"OggS").json()["ref"]
    sid = client.post("/authoring/sessions", json={}).json()["session_id"]
    scene_id = client.post(f"/authoring/sessions/{sid}/scenes").json()["created_id"]
    body = client.patch(f"/authoring/sessions/{sid}/scenes/{scene_id}", json={"background_music": ref}).json()
    assert body["session"]["graph"]["scenes"][0]["background_music"] == ref


def test_upload_rejects_empty_unknown_kind_and_oversized(monkeypatch) -> None:
    client = TestClient(app)
    empty = client.post("/media", params={"kind": "image"}, content=b"")
    assert empty.status_code == 422
    assert empty.json()["detail"]["code"] == "MEDIA_EMPTY"

    bad_kind = client.post("/media", params={"kind": "video"}, content=b"x")
    assert bad_kind.status_code == 422
    assert bad_kind.json()["detail"]["code"] == "MEDIA_KIND_INVALID"

    monkeypatch.setattr(settings, "media_max_bytes", 4)
    big = client.post("/media", params={"kind": "sound"}, content=b"12345")
    assert big.status_code == 413
    assert big.json()["detail"]["code"] == "MEDIA_TOO_LARGE"


def test_download_unknown_media_returns_404() -> None:
    client = TestClient(app)
    assert client.get("/media/not-a-uuid").json()["detail"]["code"] == "MEDIA_NOT_FOUND"
    assert client.get("/media/00000000-0000-0000-0000-000000000000").status_code == 404
