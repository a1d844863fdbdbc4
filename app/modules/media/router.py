from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.modules.media import service as media_service

router = APIRouter(prefix="/media", tags=["media"])


class MediaOut(BaseModel):
    id: str
    ref: str
    kind: str
    filename: str
    content_type: str
    size_bytes: int
    sha256: str


@router.post("", response_model=MediaOut)
async def upload_media(
    request: Request,
    kind: str = Query(...),
    filename: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    data = await request.body()
    try:
        asset = media_service.store_media(
            db,
            data,
            filename=filename,
            content_type=request.headers.get("content-type"),
            kind=kind,
        )
    except media_service.MediaError as exc:
        raise HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message}) from exc
    return {
        "id": str(asset.id),
        "ref": media_service.media_ref(asset.id),
        "kind": asset.kind,
        "filename": asset.filename,
        "content_type": asset.content_type,
        "size_bytes": asset.size_bytes,
        "sha256": asset.sha256,
    }


@router.get("/{asset_id}")
def download_media(asset_id: str, db: Session = Depends(get_db)):
    try:
        asset = media_service.get_media(db, asset_id)
    except media_service.MediaError as exc:
        raise HTTPException(status_code=exc.status_code, detail={"code": exc.code, "message": exc.message}) from exc
    return FileResponse(asset.storage_path, media_type=asset.content_type, filename=asset.filename)
