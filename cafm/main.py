from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
import logging

from cafm.api import (
    auth, companies, users, schools, assets, reports, work_orders, attendance, notifications, files, audit, health,
)
from cafm.config import settings
from cafm.database import engine, Base
from cafm.exceptions import register_exception_handlers
from cafm.middlewares.tenant_middleware import TenantContextMiddleware
from cafm.services.cache import cache_service
from cafm.utils.rate_limiter import limiter, rate_limit_exceeded_handler
import cafm.models  # noqa: F401  registers the tables on Base.metadata

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="CAFM Backend API", version="1.0.0")

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

register_exception_handlers(app)

app.add_middleware(TenantContextMiddleware)

# CORS middleware - must be added after all other middlewares
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.on_event("startup")
async def startup():
    await cache_service.connect()
    logger.info(f"{settings.app_name} started ({settings.environment})")


@app.on_event("shutdown")
async def shutdown():
    await cache_service.disconnect()


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(companies.router, prefix="/api/companies", tags=["Companies"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(schools.router, prefix="/api/schools", tags=["Schools"])
app.include_router(assets.router, prefix="/api/assets", tags=["Assets"])
app.include_router(reports.router, prefix="/api/reports", tags=["Reports"])
app.include_router(work_orders.router, prefix="/api/work-orders", tags=["Work Orders"])
app.include_router(attendance.router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(files.router, prefix="/api/files", tags=["Files"])
app.include_router(audit.router, prefix="/api/audit", tags=["Audit"])
app.include_router(health.router, prefix="/api/health", tags=["Health"])


@app.get("/")
async def root():
    return {"message": f"{settings.app_name} is running"}
