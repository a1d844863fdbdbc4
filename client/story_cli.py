from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import httpx
import typer

app = typer.Typer(help="Story studio CLI")
stories_app = typer.Typer(help="Stored story commands")
play_app = typer.Typer(help="Playthrough commands")
app.add_typer(stories_app, name="stories")
app.add_typer(play_app, name="play")

DEFAULT_BACKEND_URL = "http://127.0.0.1:8000"
STATE_PATH = Path(__file__).resolve().parent / ".state.json"


def load_state(path: Path = STATE_PATH) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError):
        return {}


def save_state(data: dict[str, Any], path: Path = STATE_PATH) -> None:
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2))


def backend_url() -> str:
    return os.getenv("BACKEND_URL", DEFAULT_BACKEND_URL).rstrip("/")


def request(
    method: str,
    endpoint: str,
    *,
    json_body: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
) -> httpx.Response:
    url = f"{backend_url()}{endpoint}"
    with httpx.Client(timeout=20.0) as client:
        return client.request(method, url, json=json_body, params=params)


def response_detail(resp: httpx.Response) -> dict[str, Any]:
    try:
        payload = resp.json()
    except ValueError:
        return {}
    detail = payload.get("detail") if isinstance(payload, dict) else None
    return detail if isinstance(detail, dict) else {}


def is_choice_rejected_response(resp: httpx.Response) -> bool:
    return int(resp.status_code) == 409 and response_detail(resp).get("code") == "CHOICE_REJECTED"


def format_option_line(option: dict[str, Any]) -> str:
    line = f"  - {option.get('id')}: {option.get('text')}"
    if option.get("is_default"):
        line += " [default]"
    if not option.get("selectable", True):
        needs = ", ".join(
            f"{item.get('stat')} {item.get('actual')}/{item.get('required')}" for item in option.get("unmet") or []
        )
        line += f" (locked: {needs})" if needs else " (locked)"
    return line


def _resolve_playthrough_id(playthrough_id: str | None) -> str:
    if playthrough_id:
        return playthrough_id
    pid = load_state().get("playthrough_id")
    if not pid:
        raise typer.BadParameter("No playthrough_id provided and no saved playthrough in client/.state.json")
    return str(pid)


def _handle_response(resp: httpx.Response, action: str) -> dict[str, Any] | None:
    if resp.status_code == 404:
        typer.echo(f"{action}: not found ({response_detail(resp).get('code') or resp.status_code}).")
        return None
    if resp.status_code >= 400:
        typer.echo(f"{action} failed ({resp.status_code}): {resp.text}")
        raise typer.Exit(code=1)
    try:
        return resp.json()
    except ValueError:
        typer.echo(resp.text)
        return None


def _print_playthrough(body: dict[str, Any]) -> None:
    typer.echo(f"playthrough_id: {body.get('playthrough_id')}")
    typer.echo(f"status: {body.get('status')}")
    stats = body.get("stats") or {}
    if stats:
        typer.echo("stats: " + ", ".join(f"{name}={value}" for name, value in sorted(stats.items())))
    scene = body.get("scene")
    if scene:
        typer.echo(f"[{scene.get('id')}] {scene.get('title')}")
        if scene.get("content"):
            typer.echo(scene["content"])
        options = body.get("options") or []
        if options:
            typer.echo("options:")
            for option in options:
                typer.echo(format_option_line(option))
    elif body.get("status") == "ended":
        typer.echo(f"ended: {body.get('end_reason')} after {body.get('steps')} step(s)")


@app.command()
def ping() -> None:
    resp = request("GET", "/health")
    body = _handle_response(resp, "ping")
    if body is not None:
        typer.echo(f"ok: {body}")


@stories_app.command("list")
def stories_list() -> None:
    body = _handle_response(request("GET", "/stories"), "stories list")
    if body is None:
        return
    for story in body.get("stories", []):
        typer.echo(f"{story.get('story_id')}  r{story.get('revision')}  {story.get('title')}")


@stories_app.command("lint")
def stories_lint(story_id: str = typer.Argument(...)) -> None:
    opened = _handle_response(request("POST", "/authoring/sessions", json_body={"story_id": story_id}), "open")
    if opened is None:
        return
    sid = opened["session_id"]
    try:
        body = _handle_response(request("GET", f"/authoring/sessions/{sid}/lint"), "lint")
    finally:
        request("DELETE", f"/authoring/sessions/{sid}")
    if body is None:
        return
    for issue in body.get("errors", []) + body.get("warnings", []):
        typer.echo(f"{issue.get('severity'):7} {issue.get('code')} {issue.get('path')}: {issue.get('message')}")
    typer.echo("ok" if body.get("ok") else "errors found")


@play_app.command("start")
def play_start(
    story_id: str = typer.Option(..., "--story-id", help="Stored story id"),
    start_scene_id: str | None = typer.Option(None, "--start-scene", help="Optional start scene id"),
) -> None:
    payload: dict[str, Any] = {"story_id": story_id}
    if start_scene_id:
        payload["start_scene_id"] = start_scene_id
    body = _handle_response(request("POST", "/playthroughs", json_body=payload), "play start")
    if body is None:
        return
    state = load_state()
    state["playthrough_id"] = body.get("playthrough_id")
    save_state(state)
    _print_playthrough(body)


@play_app.command("show")
def play_show(playthrough_id: str | None = typer.Argument(default=None)) -> None:
    pid = _resolve_playthrough_id(playthrough_id)
    body = _handle_response(request("GET", f"/playthroughs/{pid}"), "play show")
    if body is not None:
        _print_playthrough(body)


@play_app.command("choose")
def play_choose(
    option_id: str = typer.Argument(...),
    playthrough_id: str | None = typer.Option(default=None),
) -> None:
    pid = _resolve_playthrough_id(playthrough_id)
    resp = request("POST", f"/playthroughs/{pid}/choose", json_body={"option_id": option_id})
    if is_choice_rejected_response(resp):
        typer.echo(f"choice rejected: {response_detail(resp).get('reason')}")
        raise typer.Exit(code=2)
    body = _handle_response(resp, "play choose")
    if body is not None:
        _print_playthrough(body.get("playthrough") or {})


@play_app.command("timeout")
def play_timeout(playthrough_id: str | None = typer.Option(default=None)) -> None:
    pid = _resolve_playthrough_id(playthrough_id)
    resp = request("POST", f"/playthroughs/{pid}/timeout")
    if is_choice_rejected_response(resp):
        typer.echo(f"timeout rejected: {response_detail(resp).get('reason')}")
        raise typer.Exit(code=2)
    body = _handle_response(resp, "play timeout")
    if body is not None:
        typer.echo(f"auto-chose: {body.get('option_id')}")
        _print_playthrough(body.get("playthrough") or {})


@play_app.command("restart")
def play_restart(playthrough_id: str | None = typer.Option(default=None)) -> None:
    pid = _resolve_playthrough_id(playthrough_id)
    body = _handle_response(request("POST", f"/playthroughs/{pid}/restart"), "play restart")
    if body is not None:
        _print_playthrough(body)


if __name__ == "__main__":
    app()
