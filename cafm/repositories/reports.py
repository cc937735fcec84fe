from datetime import date
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cafm.enums import ReportStatus, ReportPriority
from cafm.models import Report
from cafm.repositories.base import TenantAwareRepository, Page, paginate

FINAL_STATUSES = [s for s in ReportStatus if s.is_final]
SCORE_EXCLUDED_STATUSES = [ReportStatus.COMPLETED, ReportStatus.CANCELLED, ReportStatus.REJECTED]


class ReportRepository(TenantAwareRepository[Report]):

    def __init__(self, db: Session):
        super().__init__(Report, db)

    def number_exists(self, company_id, report_number: str) -> bool:
        return (
            self.db.query(Report.id)
            .filter(Report.company_id == company_id, Report.report_number == report_number)
            .first()
            is not None
        )

    def search(self, company_id, status: Optional[ReportStatus] = None, priority: Optional[ReportPriority] = None,
               school_id=None, supervisor_id=None, assigned_to_id=None, search: Optional[str] = None,
               page: int = 1, size: int = 20) -> Page:
        return paginate(
            self._filtered(company_id, status, priority, school_id, supervisor_id, assigned_to_id, search),
            page, size,
        )

    def find_filtered(self, company_id, status: Optional[ReportStatus] = None,
                      priority: Optional[ReportPriority] = None, school_id=None) -> List[Report]:
        return self._filtered(company_id, status, priority, school_id).all()

    def _filtered(self, company_id, status=None, priority=None, school_id=None, supervisor_id=None,
                  assigned_to_id=None, search=None):
        query = self._tenant_query(company_id)
        if status:
            query = query.filter(Report.status == status)
        if priority:
            query = query.filter(Report.priority == priority)
        if school_id:
            query = query.filter(Report.school_id == school_id)
        if supervisor_id:
            query = query.filter(Report.supervisor_id == supervisor_id)
        if assigned_to_id:
            query = query.filter(Report.assigned_to_id == assigned_to_id)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(Report.title).like(term),
                func.lower(Report.report_number).like(term),
                func.lower(Report.description).like(term),
            ))
        return query.order_by(Report.created_at.desc())

    def find_overdue(self, company_id, today: Optional[date] = None) -> List[Report]:
        today = today or date.today()
        return (
            self._tenant_query(company_id)
            .filter(
                Report.scheduled_date.isnot(None),
                Report.scheduled_date < today,
                Report.status.notin_(FINAL_STATUSES),
            )
            .order_by(Report.scheduled_date)
            .all()
        )

    def find_open_for_school(self, school_id) -> List[Report]:
        """Reports that still weigh on a school's maintenance score"""
        return (
            self.db.query(Report)
            .filter(
                Report.school_id == school_id,
                Report.deleted_at.is_(None),
                Report.status.notin_(SCORE_EXCLUDED_STATUSES),
            )
            .all()
        )

    def find_for_statistics(self, company_id, school_id=None) -> List[Report]:
        query = self._tenant_query(company_id)
        if school_id:
            query = query.filter(Report.school_id == school_id)
        return query.all()
