"""
Shared router dependencies: bearer authentication, tenant resolution,
role checks and pagination.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Header, Query, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cafm.database import get_db
from cafm.enums import UserType
from cafm.models import User
from cafm.repositories.users import UserRepository
from cafm.services.audit import TenantSecurityAuditService
from cafm.tenant.service import TenantContextService
from cafm.utils.rate_limiter import get_client_ip
from cafm.utils.security import verify_token

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    x_tenant_id: Optional[UUID] = Header(None),
    db: Session = Depends(get_db),
) -> User:
    """Authenticate the bearer token and bind the request to the user's company.

    Runs as an async dependency so the tenant set here is visible to the
    endpoint whether it is sync or async. Super admins may act on another
    company by sending ``X-Tenant-ID``.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    email = verify_token(credentials.credentials)
    if email is None:
        raise credentials_exception

    user = UserRepository(db).find_by_email(email)
    if user is None:
        raise credentials_exception
    if not user.is_active or user.is_locked or not user.status.can_login:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is not active")

    tenants = TenantContextService(db)
    if x_tenant_id is not None and user.user_type == UserType.SUPER_ADMIN and x_tenant_id != user.company_id:
        audit = TenantSecurityAuditService(db, get_client_ip(request))
        tenants.switch_tenant(user, x_tenant_id, audit)
        db.commit()
    else:
        tenants.set_context_for_user(user)
    request.state.user_id = user.id
    return user


def require_roles(*roles: UserType):
    """Dependency factory: the current user must hold one of ``roles``. Super admins always pass."""
    allowed = set(roles)

    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.user_type != UserType.SUPER_ADMIN and current_user.user_type not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions for this operation",
            )
        return current_user

    return checker


require_admin = require_roles(UserType.ADMIN)
require_manager = require_roles(UserType.ADMIN, UserType.SUPERVISOR)
require_super_admin = require_roles(UserType.SUPER_ADMIN)


@dataclass
class PageParams:
    page: int
    size: int


def pagination(
    page: int = Query(1, ge=1, description="1-based page number"),
    size: int = Query(20, ge=1, le=100),
) -> PageParams:
    return PageParams(page=page, size=size)


def commit(db: Session, action: str):
    """Commit the unit of work; a database failure rolls back and surfaces as HTTP 500."""
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error committing {action}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action}",
        )
