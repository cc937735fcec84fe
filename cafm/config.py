from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional, List


class Settings(BaseSettings):
    app_name: str = "CAFM Backend"
    environment: str = "development"

    # Database Configuration
    database_url: Optional[str] = None
    db_username: Optional[str] = None
    db_password: Optional[str] = None
    db_host: str = "localhost"
    db_port: str = "5432"
    db_name: Optional[str] = None

    # Connection pool (ignored for SQLite)
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 1800
    db_pool_pre_ping: bool = True
    db_echo: bool = False

    # Row level security: push the tenant id into the Postgres session
    enable_rls: bool = False

    # Authentication
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: Optional[int] = 60
    refresh_token_expire_days: int = 7
    password_reset_expire_minutes: int = 60

    rate_limit_enabled: bool = True

    # Login attempt policy
    max_login_attempts: int = 5
    login_attempt_window_minutes: int = 15
    login_lockout_minutes: int = 30

    @field_validator('algorithm', mode='before')
    @classmethod
    def parse_algorithm(cls, v):
        if v is None or v == '':
            return "HS256"
        return v

    @field_validator('access_token_expire_minutes', mode='before')
    @classmethod
    def parse_token_expire(cls, v):
        if v is None or v == '':
            return 60
        return int(v)

    # Redis cache
    cache_enabled: bool = True
    redis_url: str = "redis://localhost:6379/0"
    cache_default_ttl: int = 300
    upstash_redis_rest_url: Optional[str] = None
    upstash_redis_rest_token: Optional[str] = None

    # Object storage (MinIO / S3 compatible)
    storage_endpoint_url: Optional[str] = None
    storage_access_key: Optional[str] = None
    storage_secret_key: Optional[str] = None
    storage_region: str = "us-east-1"
    storage_bucket: str = "cafm-files"
    max_upload_size_mb: int = 10

    # Firebase Cloud Messaging
    firebase_service_account_path: Optional[str] = None

    # Email Configuration
    smtp_server: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    mail_from: str = "noreply@cafm.local"
    frontend_url: str = "http://localhost:4200"

    # Attendance geofence in meters
    checkin_radius_meters: float = 100.0

    cors_origins: List[str] = ["http://localhost:4200", "http://localhost:8100"]

    @property
    def database_connection_url(self) -> str:
        """Build database URL from individual components or use direct URL"""
        if all([self.db_username, self.db_password, self.db_host, self.db_port, self.db_name]):
            return f"postgresql://{self.db_username}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"
        elif self.database_url:
            return self.database_url
        else:
            return "sqlite:///./cafm.db"

    @property
    def storage_configured(self) -> bool:
        return bool(self.storage_access_key and self.storage_secret_key)

    class Config:
        env_file = ".env"


settings = Settings()
