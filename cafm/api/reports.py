from datetime import date
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import io
import logging

from cafm.api.deps import get_current_user, require_admin, require_manager, pagination, PageParams, commit
from cafm.database import get_db
from cafm.enums import ReportStatus, ReportPriority, UserType
from cafm.mappers import report_to_response, page_to_response
from cafm.models import User
from cafm.schemas import (
    ReportCreate, ReportUpdate, ReportReview, ReportStatusUpdate, TechnicianAssignment, ReportCompletion,
    ReasonRequest,
)
from cafm.services.cache import cache_service
from cafm.services.reports import ReportService
from cafm.tenant.context import TenantContext
from cafm.utils.excel import XLSX_MEDIA_TYPE
from cafm.utils.rate_limiter import limiter, RateLimits

router = APIRouter()
logger = logging.getLogger(__name__)


async def invalidate_statistics():
    """Report changes move work order numbers too, so both caches go."""
    company_id = TenantContext.get_current_company_id()
    await cache_service.invalidate_reports(company_id)
    await cache_service.invalidate_work_orders(company_id)


@router.get("")
async def list_reports(
    report_status: Optional[ReportStatus] = Query(None, alias="status"),
    priority: Optional[ReportPriority] = None,
    school_id: Optional[UUID] = None,
    supervisor_id: Optional[UUID] = None,
    assigned_to_id: Optional[UUID] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Technicians only see the reports assigned to them
    if current_user.user_type == UserType.TECHNICIAN:
        assigned_to_id = current_user.id
    page = ReportService(db).list_reports(report_status, priority, school_id, supervisor_id, assigned_to_id,
                                          search, params.page, params.size)
    return page_to_response(page, report_to_response)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_report(
    body: ReportCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    report = ReportService(db).create_report(body.model_dump(exclude_unset=True), current_user)
    commit(db, "create report")
    await invalidate_statistics()
    return report_to_response(report)


@router.get("/overdue")
async def overdue_reports(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return [report_to_response(r) for r in ReportService(db).find_overdue()]


@router.get("/statistics")
async def report_statistics(
    school_id: Optional[UUID] = None,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return await ReportService(db).get_cached_statistics(school_id)


@router.get("/export")
@limiter.limit(RateLimits.EXPORT)
async def export_reports(
    request: Request,
    report_status: Optional[ReportStatus] = Query(None, alias="status"),
    priority: Optional[ReportPriority] = None,
    school_id: Optional[UUID] = None,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Download the filtered reports as an Excel workbook."""
    content = ReportService(db).export_reports_xlsx(report_status, priority, school_id)
    filename = f"reports_{date.today().strftime('%Y%m%d')}.xlsx"
    return StreamingResponse(
        io.BytesIO(content),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/{report_id}")
async def get_report(report_id: UUID, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return report_to_response(ReportService(db).get_report(report_id))


@router.put("/{report_id}")
async def update_report(
    report_id: UUID,
    body: ReportUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    report = ReportService(db).update_report(report_id, body.model_dump(exclude_unset=True), current_user.id)
    commit(db, "update report")
    await invalidate_statistics()
    return report_to_response(report)


# ============ Workflow ============

@router.post("/{report_id}/submit")
async def submit_report(report_id: UUID, current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    report = ReportService(db).submit(report_id)
    commit(db, "submit report")
    await invalidate_statistics()
    return report_to_response(report)


@router.post("/{report_id}/review")
async def review_report(
    report_id: UUID,
    body: ReportReview,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    report = ReportService(db).review(report_id, body.approved, body.notes)
    commit(db, "review report")
    await invalidate_statistics()
    return report_to_response(report)


@router.post("/{report_id}/assign")
async def assign_technician(
    report_id: UUID,
    body: TechnicianAssignment,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    report = ReportService(db).assign_technician(report_id, body.technician_id)
    commit(db, "assign technician")
    await invalidate_statistics()
    return report_to_response(report)


@router.post("/{report_id}/complete")
async def complete_report(
    report_id: UUID,
    body: ReportCompletion,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    report = ReportService(db).complete(report_id, body.actual_cost, body.notes)
    commit(db, "complete report")
    await invalidate_statistics()
    return report_to_response(report)


@router.post("/{report_id}/cancel")
async def cancel_report(
    report_id: UUID,
    body: ReasonRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    report = ReportService(db).cancel(report_id, body.reason)
    commit(db, "cancel report")
    await invalidate_statistics()
    return report_to_response(report)


@router.put("/{report_id}/status")
async def change_report_status(
    report_id: UUID,
    body: ReportStatusUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    report = ReportService(db).change_status(report_id, body.status)
    commit(db, "change report status")
    await invalidate_statistics()
    return report_to_response(report)


@router.post("/{report_id}/restore")
async def restore_report(report_id: UUID, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    report = ReportService(db).restore_report(report_id)
    commit(db, "restore report")
    await invalidate_statistics()
    return report_to_response(report)


@router.delete("/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ReportService(db).delete_report(report_id, current_user.id, reason)
    commit(db, "delete report")
    await invalidate_statistics()
