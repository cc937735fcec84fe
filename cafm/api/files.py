from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile, status
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from cafm.api.deps import get_current_user, require_manager, commit
from cafm.database import get_db
from cafm.mappers import file_to_response
from cafm.models import User
from cafm.services.storage import StorageService, read_upload
from cafm.utils.rate_limiter import limiter, RateLimits

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/upload", status_code=status.HTTP_201_CREATED)
@limiter.limit(RateLimits.UPLOAD)
async def upload_file(
    request: Request,
    entity_type: str = Form(...),
    entity_id: UUID = Form(...),
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Upload an attachment (photo, PDF, spreadsheet) for a report, work order, asset, school or user."""
    content = await read_upload(file)
    upload = StorageService(db).upload_file(
        entity_type, entity_id, file.filename or "upload", content, file.content_type, current_user.id
    )
    commit(db, "record file upload")
    return file_to_response(upload)


@router.get("/usage")
async def storage_usage(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    used = StorageService(db).get_usage_bytes()
    return {"used_bytes": used, "used_mb": round(used / (1024 * 1024), 2)}


@router.get("/entity/{entity_type}/{entity_id}")
async def list_files(
    entity_type: str,
    entity_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [file_to_response(f) for f in StorageService(db).list_files(entity_type, entity_id)]


@router.get("/{file_id}/download-url")
async def download_url(
    file_id: UUID,
    minutes: int = Query(60, ge=1, le=1440),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"url": StorageService(db).get_download_url(file_id, minutes), "expires_in_minutes": minutes}


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: UUID,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    StorageService(db).delete_file(file_id, current_user.id)
    commit(db, "delete file")
