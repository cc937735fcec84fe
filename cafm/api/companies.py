from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from cafm.api.deps import get_current_user, require_super_admin, require_admin, pagination, PageParams, commit
from cafm.database import get_db
from cafm.enums import CompanyStatus, UserType
from cafm.mappers import company_to_response, page_to_response
from cafm.models import User
from cafm.schemas import (
    CompanyCreate, CompanyUpdate, CompanyStatusUpdate, SubscriptionUpdate, SubscriptionExtension,
    ResourceLimitsUpdate, ReasonRequest,
)
from cafm.services.audit import TenantSecurityAuditService
from cafm.services.companies import CompanyService

router = APIRouter()
logger = logging.getLogger(__name__)


def ensure_own_company(current_user: User, company_id: UUID):
    """Company admins may only touch their own company."""
    if current_user.user_type == UserType.SUPER_ADMIN:
        return
    if current_user.company_id != company_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access to this company is denied")


# ============ Platform administration ============

@router.get("")
async def list_companies(
    search: Optional[str] = None,
    company_status: Optional[CompanyStatus] = Query(None, alias="status"),
    params: PageParams = Depends(pagination),
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    page = CompanyService(db).list_companies(search, company_status, params.page, params.size)
    return page_to_response(page, company_to_response)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_company(
    body: CompanyCreate,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).create_company(body.model_dump(exclude_unset=True), created_by=current_user.id)
    commit(db, "create company")
    return company_to_response(company)


@router.get("/expiring")
async def expiring_subscriptions(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return [company_to_response(c) for c in CompanyService(db).find_expiring_subscriptions(days)]


@router.get("/domain-availability")
async def domain_availability(
    domain: Optional[str] = None,
    subdomain: Optional[str] = None,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    return CompanyService(db).check_domain_availability(domain, subdomain)


# ============ Single company ============

@router.get("/current")
async def current_company(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if current_user.company_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User has no company")
    return company_to_response(CompanyService(db).get_company(current_user.company_id))


@router.get("/{company_id}")
async def get_company(
    company_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_own_company(current_user, company_id)
    return company_to_response(CompanyService(db).get_company(company_id))


@router.put("/{company_id}")
async def update_company(
    company_id: UUID,
    body: CompanyUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_own_company(current_user, company_id)
    company = CompanyService(db).update_company(company_id, body.model_dump(exclude_unset=True), current_user.id)
    TenantSecurityAuditService(db).log_configuration_change(current_user.id, f"company:{company_id}")
    commit(db, "update company")
    return company_to_response(company)


@router.get("/{company_id}/statistics")
async def company_statistics(
    company_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ensure_own_company(current_user, company_id)
    stats = CompanyService(db).get_company_statistics(company_id)
    stats["company_id"] = str(stats["company_id"])
    return stats


@router.put("/{company_id}/status")
async def change_company_status(
    company_id: UUID,
    body: CompanyStatusUpdate,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    service = CompanyService(db)
    if body.status == CompanyStatus.SUSPENDED:
        company = service.suspend_company(company_id, body.reason)
    else:
        company = service.change_status(company_id, body.status)
    TenantSecurityAuditService(db).log_configuration_change(
        current_user.id, f"company:{company_id}:status", new_value=body.status.value
    )
    commit(db, "change company status")
    return company_to_response(company)


@router.post("/{company_id}/activate")
async def activate_company(
    company_id: UUID,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).activate_company(company_id)
    commit(db, "activate company")
    return company_to_response(company)


@router.post("/{company_id}/suspend")
async def suspend_company(
    company_id: UUID,
    body: ReasonRequest,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).suspend_company(company_id, body.reason)
    commit(db, "suspend company")
    return company_to_response(company)


@router.post("/{company_id}/subscription/upgrade")
async def upgrade_subscription(
    company_id: UUID,
    body: SubscriptionUpdate,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).upgrade_subscription(company_id, body.plan, body.end_date)
    commit(db, "upgrade subscription")
    return company_to_response(company)


@router.put("/{company_id}/subscription")
async def change_subscription(
    company_id: UUID,
    body: SubscriptionUpdate,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).change_subscription(company_id, body.plan, body.end_date)
    commit(db, "change subscription")
    return company_to_response(company)


@router.post("/{company_id}/subscription/extend")
async def extend_subscription(
    company_id: UUID,
    body: SubscriptionExtension,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).extend_subscription(company_id, body.months)
    commit(db, "extend subscription")
    return company_to_response(company)


@router.put("/{company_id}/limits")
async def update_limits(
    company_id: UUID,
    body: ResourceLimitsUpdate,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    company = CompanyService(db).update_resource_limits(company_id, **body.model_dump())
    commit(db, "update resource limits")
    return company_to_response(company)


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_company(
    company_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
):
    CompanyService(db).delete_company(company_id, current_user.id, reason)
    commit(db, "delete company")
