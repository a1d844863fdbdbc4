from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

from app.db import session as db_session
from app.db.base import Base
from app.db.models import MediaAsset, Playthrough, StoryRecord  # noqa: F401

ROOT = Path(__file__).resolve().parents[2]


def use_sqlite_file_db(tmp_path: Path, filename: str) -> str:
    runtime_url = f"sqlite+pysqlite:///{tmp_path / filename}"
    db_session.rebind_engine(runtime_url)
    Base.metadata.create_all(bind=db_session.engine)
    return runtime_url


def prepare_sqlite_db(tmp_path: Path, filename: str) -> str:
    db_path = tmp_path / filename
    env = os.environ.copy()
    env["DATABASE_URL"] = f"sqlite:///{db_path}"
    proc = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        cwd=ROOT,
        env=env,
        capture_output=True,
        text=True,
    )
    assert proc.returncode == 0, proc.stderr
    runtime_url = f"sqlite+pysqlite:///{db_path}"
    db_session.rebind_engine(runtime_url)
    return runtime_url
