"""
Maintenance reports raised by supervisors.

A report moves DRAFT -> SUBMITTED -> (IN_REVIEW) -> APPROVED -> IN_PROGRESS
-> COMPLETED, with rejection and cancellation branches. Open reports weigh
on their school's maintenance score.
"""
import logging
import secrets
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from cafm.enums import ReportStatus, ReportPriority, NotificationType
from cafm.exceptions import (
    ResourceNotFoundException, InvalidOperationStateException, BusinessRuleException,
)
from cafm.models import Report, School, User
from cafm.repositories.base import Page
from cafm.repositories.reports import ReportRepository
from cafm.repositories.schools import SchoolRepository
from cafm.repositories.users import UserRepository
from cafm.services.cache import cache_service
from cafm.services.notifications import NotificationService
from cafm.tenant.context import TenantContext
from cafm.utils.excel import create_styled_workbook, write_rows, workbook_bytes

logger = logging.getLogger(__name__)

SCORE_PENALTIES = {
    ReportPriority.CRITICAL: 20,
    ReportPriority.URGENT: 15,
    ReportPriority.HIGH: 10,
    ReportPriority.MEDIUM: 5,
}
DEFAULT_PENALTY = 2
OVERDUE_PENALTY = 5

REPORT_FIELDS = (
    "title", "description", "category", "priority", "scheduled_date", "estimated_cost",
    "building", "floor", "room_number", "location_details",
)

EXPORT_COLUMNS = [
    "Report Number", "Title", "School", "Status", "Priority", "Category", "Reported Date",
    "Scheduled Date", "Completed Date", "Estimated Cost", "Actual Cost", "Supervisor", "Assigned To",
]


def maintenance_score(reports: List[Report], today: Optional[date] = None) -> int:
    today = today or date.today()
    score = 100
    for report in reports:
        score -= SCORE_PENALTIES.get(report.priority, DEFAULT_PENALTY)
        if report.scheduled_date is not None and report.scheduled_date < today and not report.status.is_final:
            score -= OVERDUE_PENALTY
    return max(score, 0)


def _append_note(existing: Optional[str], label: str, note: Optional[str]) -> Optional[str]:
    if not note:
        return existing
    return f"{existing or ''}\n[{label}: {note}]"


class ReportService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = ReportRepository(db)

    def get_report(self, report_id) -> Report:
        company_id = TenantContext.require_current_company_id()
        report = self.repository.find_by_id_and_company_id(report_id, company_id)
        if report is None:
            raise ResourceNotFoundException("Report", report_id)
        return report

    def list_reports(self, status: Optional[ReportStatus] = None, priority: Optional[ReportPriority] = None,
                     school_id=None, supervisor_id=None, assigned_to_id=None, search: Optional[str] = None,
                     page: int = 1, size: int = 20) -> Page:
        company_id = TenantContext.require_current_company_id()
        return self.repository.search(company_id, status, priority, school_id, supervisor_id, assigned_to_id,
                                      search, page, size)

    def find_overdue(self) -> List[Report]:
        return self.repository.find_overdue(TenantContext.require_current_company_id())

    def generate_report_number(self, on_date: Optional[date] = None) -> str:
        company_id = TenantContext.require_current_company_id()
        stamp = (on_date or date.today()).strftime("%Y%m%d")
        while True:
            number = f"RPT-{stamp}-{secrets.randbelow(10000):04d}"
            if not self.repository.number_exists(company_id, number):
                return number

    def _get_school(self, school_id) -> School:
        school = SchoolRepository(self.db).find_by_id_and_company_id(
            school_id, TenantContext.require_current_company_id()
        )
        if school is None:
            raise ResourceNotFoundException("School", school_id)
        return school

    # ============ Create / update ============

    def create_report(self, data: Dict[str, Any], supervisor: User) -> Report:
        company_id = TenantContext.require_current_company_id()
        school = self._get_school(data["school_id"])
        priority = data.get("priority") or ReportPriority.MEDIUM
        reported = data.get("reported_date") or date.today()

        report = Report(
            company_id=company_id,
            report_number=self.generate_report_number(),
            school_id=school.id,
            supervisor_id=supervisor.id,
            status=ReportStatus.DRAFT,
            reported_date=reported,
            created_by=supervisor.id,
        )
        for field in REPORT_FIELDS:
            if data.get(field) is not None:
                setattr(report, field, data[field])
        report.priority = priority
        if report.scheduled_date is None:
            report.scheduled_date = reported + timedelta(days=priority.sla_days)
        self.repository.add(report)
        logger.info(f"Report {report.report_number} created for school {school.code}")
        return report

    def update_report(self, report_id, data: Dict[str, Any], modified_by=None) -> Report:
        report = self.get_report(report_id)
        if not report.status.is_editable:
            raise InvalidOperationStateException(f"Report in status {report.status.value} cannot be edited")
        for field in REPORT_FIELDS:
            if data.get(field) is not None:
                setattr(report, field, data[field])
        report.modified_by = modified_by
        return report

    # ============ Workflow ============

    def change_status(self, report_id, target: ReportStatus) -> Report:
        report = self.get_report(report_id)
        self._transition(report, target)
        return report

    def _transition(self, report: Report, target: ReportStatus):
        if not report.status.can_transition_to(target):
            raise InvalidOperationStateException(
                f"Cannot change report status from {report.status.value} to {target.value}"
            )
        logger.info(f"Report {report.report_number} {report.status.value} -> {target.value}")
        report.status = target

    def submit(self, report_id) -> Report:
        report = self.get_report(report_id)
        if report.status not in (ReportStatus.DRAFT, ReportStatus.REJECTED):
            raise InvalidOperationStateException("Only draft or rejected reports can be submitted")
        self._transition(report, ReportStatus.SUBMITTED)
        NotificationService(self.db).notify_admins(
            report.company_id,
            "Report Submitted",
            f"{report.report_number}: {report.title}",
            data={"report_id": str(report.id), "priority": report.priority.value},
            notification_type=NotificationType.REPORT_SUBMITTED,
        )
        return report

    def review(self, report_id, approved: bool, notes: Optional[str] = None) -> Report:
        report = self.get_report(report_id)
        if report.status not in (ReportStatus.SUBMITTED, ReportStatus.IN_REVIEW):
            raise InvalidOperationStateException("Only submitted reports can be reviewed")
        if approved:
            self._transition(report, ReportStatus.APPROVED)
        else:
            self._transition(report, ReportStatus.REJECTED)
            report.description = _append_note(report.description, "Rejection", notes)
        NotificationService(self.db).notify_report_status_change(report)
        return report

    def assign_technician(self, report_id, technician_id) -> Report:
        report = self.get_report(report_id)
        if report.status not in (ReportStatus.APPROVED, ReportStatus.IN_PROGRESS):
            raise InvalidOperationStateException("Only approved reports can be assigned")
        technician = UserRepository(self.db).find_by_id_and_company_id(technician_id, report.company_id)
        if technician is None:
            raise ResourceNotFoundException("User", technician_id)
        if not technician.can_be_assigned():
            raise BusinessRuleException(f"User {technician.email} cannot be assigned to maintenance work")
        report.assigned_to_id = technician.id
        if report.status == ReportStatus.APPROVED:
            self._transition(report, ReportStatus.IN_PROGRESS)
        NotificationService(self.db).notify_report_status_change(report, technician)
        return report

    def complete(self, report_id, actual_cost=None, notes: Optional[str] = None) -> Report:
        report = self.get_report(report_id)
        if report.status != ReportStatus.IN_PROGRESS:
            raise InvalidOperationStateException("Only reports in progress can be completed")
        self.mark_completed(report, actual_cost, notes)
        return report

    def mark_completed(self, report: Report, actual_cost=None, notes: Optional[str] = None):
        """Close a report and refresh its school's score; also used when a linked work order finishes."""
        if not report.status.can_transition_to(ReportStatus.COMPLETED):
            raise InvalidOperationStateException(f"Cannot complete a {report.status.value} report")
        report.status = ReportStatus.COMPLETED
        report.completed_date = date.today()
        if actual_cost is not None:
            report.actual_cost = actual_cost
        report.description = _append_note(report.description, "Completion", notes)
        self.db.flush()
        self.recalculate_school_score(report.school_id)
        NotificationService(self.db).notify_report_status_change(report)

    def cancel(self, report_id, reason: Optional[str] = None) -> Report:
        report = self.get_report(report_id)
        if report.status.is_final:
            raise InvalidOperationStateException(f"Report is already {report.status.value}")
        report.status = ReportStatus.CANCELLED
        report.description = _append_note(report.description, "Cancelled", reason)
        self.db.flush()
        self.recalculate_school_score(report.school_id)
        return report

    def delete_report(self, report_id, deleted_by=None, reason: Optional[str] = None):
        report = self.get_report(report_id)
        report.soft_delete(deleted_by, reason)
        self.db.flush()
        self.recalculate_school_score(report.school_id)

    def restore_report(self, report_id) -> Report:
        company_id = TenantContext.require_current_company_id()
        if self.repository.restore_by_id_and_company_id(report_id, company_id) == 0:
            raise ResourceNotFoundException("Deleted report", report_id)
        report = self.get_report(report_id)
        self.recalculate_school_score(report.school_id)
        return report

    # ============ Maintenance score ============

    def calculate_maintenance_score(self, school_id) -> int:
        return maintenance_score(self.repository.find_open_for_school(school_id))

    def recalculate_school_score(self, school_id) -> Optional[int]:
        school = self.db.get(School, school_id)
        if school is None:
            return None
        school.maintenance_score = self.calculate_maintenance_score(school_id)
        return school.maintenance_score

    # ============ Statistics ============

    def get_statistics(self, school_id=None) -> Dict[str, Any]:
        company_id = TenantContext.require_current_company_id()
        reports = self.repository.find_for_statistics(company_id, school_id)
        today = date.today()
        completion_days = [
            (r.completed_date - r.reported_date).days
            for r in reports
            if r.completed_date and r.reported_date
        ]
        return {
            "total_reports": len(reports),
            "by_status": dict(Counter(r.status.value for r in reports)),
            "by_priority": dict(Counter(r.priority.value for r in reports)),
            "completed": sum(1 for r in reports if r.status == ReportStatus.COMPLETED),
            "in_progress": sum(1 for r in reports if r.status == ReportStatus.IN_PROGRESS),
            "overdue": sum(
                1 for r in reports
                if r.scheduled_date and r.scheduled_date < today and not r.status.is_final
            ),
            "total_estimated_cost": float(sum((r.estimated_cost or Decimal(0) for r in reports), Decimal(0))),
            "total_actual_cost": float(sum((r.actual_cost or Decimal(0) for r in reports), Decimal(0))),
            "average_completion_days": (
                round(sum(completion_days) / len(completion_days), 1) if completion_days else None
            ),
        }

    async def get_cached_statistics(self, school_id=None) -> Dict[str, Any]:
        company_id = TenantContext.require_current_company_id()
        scope = str(school_id) if school_id else "all"
        cached = await cache_service.get_report_stats(company_id, scope)
        if cached is not None:
            return cached
        stats = self.get_statistics(school_id)
        await cache_service.set_report_stats(company_id, stats, scope)
        return stats

    # ============ Export ============

    def export_reports_xlsx(self, status: Optional[ReportStatus] = None,
                            priority: Optional[ReportPriority] = None, school_id=None) -> bytes:
        company_id = TenantContext.require_current_company_id()
        reports = self.repository.find_filtered(company_id, status, priority, school_id)
        wb = create_styled_workbook(EXPORT_COLUMNS, "Reports")
        count = write_rows(wb, (
            [
                r.report_number,
                r.title,
                r.school.name if r.school else None,
                r.status.display_name,
                r.priority.display_name,
                r.category,
                r.reported_date,
                r.scheduled_date,
                r.completed_date,
                float(r.estimated_cost) if r.estimated_cost is not None else None,
                float(r.actual_cost) if r.actual_cost is not None else None,
                r.supervisor.full_name if r.supervisor else None,
                r.assigned_to.full_name if r.assigned_to else None,
            ]
            for r in reports
        ))
        logger.info(f"Exported {count} reports for company {company_id}")
        return workbook_bytes(wb)
