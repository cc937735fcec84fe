import logging
import time
from typing import Dict, Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cafm.config import settings
from cafm.services.cache import cache_service
from cafm.services.storage import check_storage_health

logger = logging.getLogger(__name__)

UP = "UP"
DOWN = "DOWN"


def check_database(db: Session) -> Dict[str, Any]:
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": DOWN, "error": str(e)}
    return {
        "status": UP,
        "dialect": db.get_bind().dialect.name,
        "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
    }


async def check_redis() -> Dict[str, Any]:
    if not settings.cache_enabled:
        return {"status": "UNKNOWN", "detail": "disabled"}
    if not cache_service.is_connected:
        return {"status": DOWN, "detail": "not connected"}
    return await cache_service.ping()


async def health_report(db: Session) -> Dict[str, Any]:
    """Overall status follows the database; cache and storage are informational."""
    database = check_database(db)
    components = {
        "database": database,
        "redis": await check_redis(),
        "storage": check_storage_health(),
    }
    return {
        "status": database["status"],
        "application": settings.app_name,
        "environment": settings.environment,
        "components": components,
    }
