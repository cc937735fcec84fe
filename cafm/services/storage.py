"""
Attachments stored in S3-compatible object storage (MinIO in development).

Objects are keyed ``company/{company_id}/{entity_type}/{uuid}{ext}`` so one
tenant's files never share a prefix with another's.
"""
import logging
import os
import time
import uuid
from typing import Optional, List, Dict, Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError
from sqlalchemy.orm import Session

from cafm.config import settings
from cafm.exceptions import StorageException, ValidationException, ResourceNotFoundException
from cafm.models import FileUpload
from cafm.repositories.files import FileUploadRepository
from cafm.tenant.context import TenantContext

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    "image/jpeg", "image/png", "image/webp", "image/heic",
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain", "text/csv",
}

ENTITY_TYPES = {"report", "work_order", "asset", "school", "user"}

UPLOAD_CHUNK_SIZE = 1024 * 1024


def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.storage_endpoint_url,
        aws_access_key_id=settings.storage_access_key,
        aws_secret_access_key=settings.storage_secret_key,
        region_name=settings.storage_region,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def build_object_key(company_id, entity_type: str, filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    return f"company/{company_id}/{entity_type}/{uuid.uuid4()}{ext}"


def _too_large() -> ValidationException:
    return ValidationException(f"File exceeds the {settings.max_upload_size_mb} MB limit")


async def read_upload(file, chunk_size: int = UPLOAD_CHUNK_SIZE) -> bytes:
    """Read an uploaded file in chunks, stopping as soon as it passes the size limit."""
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    declared = getattr(file, "size", None)
    if declared is not None and declared > max_bytes:
        raise _too_large()

    chunks = []
    total = 0
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise _too_large()
        chunks.append(chunk)
    return b"".join(chunks)


def check_storage_health() -> Dict[str, Any]:
    if not settings.storage_configured:
        return {"status": "UNKNOWN", "detail": "not configured"}
    started = time.perf_counter()
    try:
        get_s3_client().head_bucket(Bucket=settings.storage_bucket)
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Object storage health check failed: {e}")
        return {"status": "DOWN", "bucket": settings.storage_bucket, "error": str(e)}
    return {
        "status": "UP",
        "bucket": settings.storage_bucket,
        "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
    }


class StorageService:

    def __init__(self, db: Session, client=None):
        self.db = db
        self.repository = FileUploadRepository(db)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not settings.storage_configured:
                raise StorageException("Object storage is not configured")
            self._client = get_s3_client()
        return self._client

    def _validate(self, entity_type: str, content: bytes, content_type: Optional[str]):
        if entity_type not in ENTITY_TYPES:
            raise ValidationException(f"Unsupported entity type: {entity_type}")
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationException(f"File type not allowed: {content_type}")
        if len(content) > settings.max_upload_size_mb * 1024 * 1024:
            raise _too_large()
        if not content:
            raise ValidationException("File is empty")

    def upload_file(self, entity_type: str, entity_id, filename: str, content: bytes,
                    content_type: Optional[str], uploaded_by=None) -> FileUpload:
        company_id = TenantContext.require_current_company_id()
        self._validate(entity_type, content, content_type)
        key = build_object_key(company_id, entity_type, filename)
        try:
            self.client.put_object(Bucket=settings.storage_bucket, Key=key, Body=content, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Upload of {key} failed: {e}")
            raise StorageException(f"Error uploading file: {e}")

        upload = FileUpload(
            company_id=company_id,
            entity_type=entity_type,
            entity_id=entity_id,
            original_name=filename,
            object_key=key,
            content_type=content_type,
            size_bytes=len(content),
            uploaded_by=uploaded_by,
            created_by=uploaded_by,
        )
        self.repository.add(upload)
        logger.info(f"Stored {filename} ({len(content)} bytes) as {key}")
        return upload

    def list_files(self, entity_type: str, entity_id) -> List[FileUpload]:
        return self.repository.find_by_entity(TenantContext.require_current_company_id(), entity_type, entity_id)

    def get_file(self, file_id) -> FileUpload:
        upload = self.repository.find_by_id_and_company_id(file_id, TenantContext.require_current_company_id())
        if upload is None:
            raise ResourceNotFoundException("File", file_id)
        return upload

    def get_download_url(self, file_id, minutes: int = 60) -> str:
        upload = self.get_file(file_id)
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": settings.storage_bucket, "Key": upload.object_key},
                ExpiresIn=minutes * 60,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error generating pre-signed URL for {upload.object_key}: {e}")
            raise StorageException("Could not generate download URL")

    def delete_file(self, file_id, deleted_by=None):
        upload = self.get_file(file_id)
        try:
            self.client.delete_object(Bucket=settings.storage_bucket, Key=upload.object_key)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting {upload.object_key}: {e}")
            raise StorageException("Could not delete file")
        upload.soft_delete(deleted_by, "file deleted")

    def get_usage_bytes(self) -> int:
        return self.repository.total_size(TenantContext.require_current_company_id())
