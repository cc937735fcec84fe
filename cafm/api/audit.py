from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from cafm.api.deps import require_admin
from cafm.database import get_db
from cafm.enums import AuditEventType, AuditSeverity
from cafm.mappers import audit_log_to_response
from cafm.models import User
from cafm.services.audit import TenantSecurityAuditService
from cafm.tenant.context import TenantContext

router = APIRouter()


@router.get("/events")
async def recent_events(
    event_type: Optional[AuditEventType] = None,
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    company_id = TenantContext.require_current_company_id()
    events = TenantSecurityAuditService(db).get_recent_events(company_id, limit, event_type)
    return [audit_log_to_response(e) for e in events]


@router.get("/events/severity/{severity}")
async def events_by_severity(
    severity: AuditSeverity,
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    company_id = TenantContext.require_current_company_id()
    events = TenantSecurityAuditService(db).get_events_by_severity(company_id, severity, limit)
    return [audit_log_to_response(e) for e in events]
