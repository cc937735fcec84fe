import asyncio
import uuid

import pytest

from cafm.config import settings
from cafm.enums import AuditEventType
from cafm.exceptions import StorageException, ValidationException
from cafm.services.cache import CacheService
from cafm.services.storage import StorageService, build_object_key, read_upload
from cafm.utils.rate_limiter import limiter

from tests.conftest import PASSWORD, auth_headers


class FakeS3:
    def __init__(self):
        self.objects = {}

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = Body

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://storage.local/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)


# ============ Storage ============

def test_object_keys_are_namespaced_by_company():
    company_id = uuid.uuid4()
    key = build_object_key(company_id, "report", "Leak Photo.JPG")
    assert key.startswith(f"company/{company_id}/report/")
    assert key.endswith(".jpg")


def test_upload_list_and_delete(db, tenant, admin):
    s3 = FakeS3()
    service = StorageService(db, client=s3)
    report_id = uuid.uuid4()
    upload = service.upload_file("report", report_id, "leak.png", b"\x89PNG data", "image/png", admin.id)
    assert upload.object_key in s3.objects
    assert upload.size_bytes == 9
    assert [f.id for f in service.list_files("report", report_id)] == [upload.id]
    assert service.get_usage_bytes() == 9
    assert "expires=600" in service.get_download_url(upload.id, minutes=10)

    service.delete_file(upload.id, admin.id)
    db.flush()
    assert s3.objects == {}
    assert service.list_files("report", report_id) == []


def test_upload_validation(db, tenant):
    service = StorageService(db, client=FakeS3())
    with pytest.raises(ValidationException):
        service.upload_file("invoice", uuid.uuid4(), "a.pdf", b"%PDF", "application/pdf")
    with pytest.raises(ValidationException):
        service.upload_file("report", uuid.uuid4(), "a.exe", b"MZ", "application/x-msdownload")
    with pytest.raises(ValidationException):
        service.upload_file("report", uuid.uuid4(), "empty.txt", b"", "text/plain")


def test_unconfigured_storage_fails_cleanly(db, tenant):
    with pytest.raises(StorageException):
        StorageService(db).upload_file("report", uuid.uuid4(), "a.txt", b"hello", "text/plain")


def test_upload_endpoint_without_storage_is_bad_gateway(client, admin):
    response = client.post(
        "/api/files/upload",
        headers=auth_headers(admin),
        data={"entity_type": "report", "entity_id": str(uuid.uuid4())},
        files={"file": ("note.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 502
    assert response.json()["error"] == "STORAGE_ERROR"


# ============ Cache ============

def test_cache_keys_start_with_company():
    company_id = uuid.uuid4()
    assert CacheService._key(company_id, "reports", "stats", "all") == f"company:{company_id}:reports:stats:all"


def test_disconnected_cache_is_a_miss():
    cache = CacheService()
    company_id = uuid.uuid4()

    async def scenario():
        await cache.set_report_stats(company_id, {"total_reports": 3})
        return await cache.get_report_stats(company_id)

    assert not cache.is_connected
    assert asyncio.run(scenario()) is None


# ============ Audit & health ============

def test_login_attempts_are_audited(client, admin):
    client.post("/api/auth/login", json={"email": admin.email, "password": "wrong"})
    client.post("/api/auth/login", json={"email": admin.email, "password": PASSWORD})

    events = client.get(f"/api/audit/events?event_type={AuditEventType.AUTHENTICATION.value}",
                        headers=auth_headers(admin)).json()
    assert len(events) == 2
    assert {e["severity"] for e in events} == {"LOW", "MEDIUM"}


def test_audit_requires_admin(client, technician):
    assert client.get("/api/audit/events", headers=auth_headers(technician)).status_code == 403


def test_health_report(client):
    body = client.get("/api/health").json()
    assert body["status"] == "UP"
    assert body["components"]["redis"]["status"] == "UNKNOWN"
    assert body["components"]["storage"]["status"] == "UNKNOWN"


# ============ Upload size & rate limits ============

class ChunkedUpload:
    def __init__(self, content: bytes, size=None):
        self.content = content
        self.size = size
        self.offset = 0
        self.reads = 0

    async def read(self, n: int) -> bytes:
        self.reads += 1
        chunk = self.content[self.offset:self.offset + n]
        self.offset += len(chunk)
        return chunk


def test_oversized_upload_stops_reading_early(monkeypatch):
    monkeypatch.setattr(settings, "max_upload_size_mb", 1)
    upload = ChunkedUpload(b"x" * (4 * 1024 * 1024))
    with pytest.raises(ValidationException):
        asyncio.run(read_upload(upload, chunk_size=512 * 1024))
    assert upload.reads == 3
    assert upload.offset < len(upload.content)


def test_declared_size_is_checked_before_reading(monkeypatch):
    monkeypatch.setattr(settings, "max_upload_size_mb", 1)
    upload = ChunkedUpload(b"x", size=2 * 1024 * 1024)
    with pytest.raises(ValidationException):
        asyncio.run(read_upload(upload))
    assert upload.reads == 0


def test_small_upload_is_read_whole():
    upload = ChunkedUpload(b"photo bytes" * 100)
    assert asyncio.run(read_upload(upload, chunk_size=64)) == b"photo bytes" * 100


def test_export_is_rate_limited(client, admin):
    headers = auth_headers(admin)
    limiter.reset()
    limiter.enabled = True
    try:
        statuses = [client.get("/api/reports/export", headers=headers).status_code for _ in range(6)]
    finally:
        limiter.enabled = False
        limiter.reset()
    assert statuses[:5] == [200] * 5
    assert statuses[5] == 429
