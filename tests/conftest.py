from __future__ import annotations

from pathlib import Path

import pytest

from app.config import settings
from app.db import session as db_session
from app.db.base import Base
from app.modules.story.service import registry
from tests.support.db_runtime import use_sqlite_file_db


@pytest.fixture(autouse=True)
def _reset_db_and_defaults(tmp_path: Path, monkeypatch) -> None:
    use_sqlite_file_db(tmp_path, "runtime.db")
    monkeypatch.setattr(settings, "media_dir", str(tmp_path / "media"))
    monkeypatch.setattr(settings, "media_max_bytes", 10 * 1024 * 1024)
    registry.clear()
    yield
    registry.clear()
    Base.metadata.drop_all(bind=db_session.engine)
