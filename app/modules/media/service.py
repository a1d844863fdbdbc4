from __future__ import annotations

import hashlib
import logging
import uuid
from pathlib import Path

from sqlalchemy.orm import Session

from app.config import settings
from app.db.models import MediaAsset

logger = logging.getLogger(__name__)

MEDIA_KINDS: tuple[str, ...] = ("image", "music", "sound")
MEDIA_REF_PREFIX = "media://"


class MediaError(RuntimeError):
    def __init__(self, *, code: str, message: str, status_code: int = 422) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def media_ref(asset_id: uuid.UUID | str) -> str:
    return f"{MEDIA_REF_PREFIX}{asset_id}"


def _safe_filename(filename: str | None) -> str:
    name = Path(str(filename or "").strip()).name
    return name or "upload.bin"


def store_media(
    db: Session,
    data: bytes,
    *,
    filename: str | None,
    content_type: str | None,
    kind: str,
) -> MediaAsset:
    """Write the payload under ``settings.media_dir`` and record it.

    The stored bytes are opaque; the returned row's ``media_ref`` is what a
    scene keeps in ``image_url`` / ``background_music`` / ``sound_effects``.
    """
    if kind not in MEDIA_KINDS:
        raise MediaError(code="MEDIA_KIND_INVALID", message=f"kind must be one of: {', '.join(MEDIA_KINDS)}")
    if not data:
        raise MediaError(code="MEDIA_EMPTY", message="media payload is empty")
    if len(data) > settings.media_max_bytes:
        raise MediaError(
            code="MEDIA_TOO_LARGE",
            message=f"media payload exceeds {settings.media_max_bytes} bytes",
            status_code=413,
        )

    asset_id = uuid.uuid4()
    name = _safe_filename(filename)
    target_dir = Path(settings.media_dir) / kind
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f"{asset_id.hex}{Path(name).suffix}"
    target.write_bytes(data)

    asset = MediaAsset(
        id=asset_id,
        kind=kind,
        filename=name,
        content_type=str(content_type or "application/octet-stream"),
        size_bytes=len(data),
        sha256=hashlib.sha256(data).hexdigest(),
        storage_path=str(target),
    )
    db.add(asset)
    db.commit()
    logger.info("media stored id=%s kind=%s bytes=%d", asset_id, kind, len(data))
    return asset


def get_media(db: Session, asset_id: str) -> MediaAsset:
    try:
        key = uuid.UUID(str(asset_id))
    except ValueError as exc:
        raise MediaError(code="MEDIA_NOT_FOUND", message=f"media `{asset_id}` not found", status_code=404) from exc
    asset = db.get(MediaAsset, key)
    if asset is None or not Path(asset.storage_path).is_file():
        raise MediaError(code="MEDIA_NOT_FOUND", message=f"media `{asset_id}` not found", status_code=404)
    return asset
