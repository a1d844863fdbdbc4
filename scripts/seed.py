#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from sqlalchemy import select

from app.db.models import StoryRecord
from app.db.session import SessionLocal
from app.modules.graph.analysis import lint_story_graph
from app.modules.graph.models import StoryGraph
from app.modules.story.repository import SqlStoryRepository, validate_snapshot

DEFAULT_STORY_FILE = ROOT_DIR / "stories" / "kindness_trial.json"
DEFAULT_STORY_ID = "kindness_trial"


def _load_graph_json(path: Path) -> dict:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"story file must contain a JSON object: {path}")
    return payload


def seed_story(*, story_file: Path, story_id: str) -> dict:
    if not story_file.exists():
        raise FileNotFoundError(f"story file not found: {story_file}")

    payload = validate_snapshot(_load_graph_json(story_file))
    report = lint_story_graph(StoryGraph.from_dict(payload))
    if not report.ok:
        joined = "; ".join(f"{issue.code} at {issue.path}" for issue in report.errors)
        raise ValueError(f"story lint failed for {story_file}: {joined}")

    saved_id = asyncio.run(SqlStoryRepository().save(payload, story_id=story_id))
    with SessionLocal() as db:
        revision = db.execute(select(StoryRecord.revision).where(StoryRecord.story_id == saved_id)).scalar_one()

    return {
        "story_id": saved_id,
        "revision": int(revision),
        "warnings": len(report.warnings),
        "source_path": str(story_file),
    }


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed or update a story graph into the database.")
    parser.add_argument(
        "--story-file",
        default=str(DEFAULT_STORY_FILE),
        help="Path to story graph JSON file.",
    )
    parser.add_argument(
        "--story-id",
        default=DEFAULT_STORY_ID,
        help="Story id to store the graph under.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    result = seed_story(story_file=Path(args.story_file), story_id=str(args.story_id))
    print(
        "seeded story "
        f"story_id={result['story_id']} revision={result['revision']} "
        f"warnings={result['warnings']} source={result['source_path']}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
