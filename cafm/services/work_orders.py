"""
Work orders executed by technicians, optionally raised from a report.
"""
import logging
import secrets
from collections import Counter
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from cafm.enums import WorkOrderStatus, WorkOrderPriority, ReportStatus, UserType
from cafm.exceptions import (
    ResourceNotFoundException, InvalidOperationStateException, BusinessRuleException, AccessDeniedException,
    ValidationException,
)
from cafm.models import WorkOrder, WorkOrderTask, User, Report
from cafm.repositories.base import Page
from cafm.repositories.reports import ReportRepository
from cafm.repositories.schools import SchoolRepository
from cafm.repositories.users import UserRepository
from cafm.repositories.work_orders import WorkOrderRepository, WorkOrderTaskRepository
from cafm.services.cache import cache_service
from cafm.services.notifications import NotificationService
from cafm.services.reports import ReportService
from cafm.tenant.context import TenantContext

logger = logging.getLogger(__name__)

TASK_FIELDS = ("title", "description", "is_mandatory", "estimated_hours")

WORK_ORDER_FIELDS = (
    "title", "description", "category", "priority", "scheduled_start", "scheduled_end",
    "location_details", "latitude", "longitude", "estimated_hours", "material_cost", "other_cost",
)

_ASSIGNABLE_STATUSES = (WorkOrderStatus.PENDING, WorkOrderStatus.ASSIGNED)

_LINKABLE_REPORT_STATUSES = (ReportStatus.APPROVED, ReportStatus.PENDING, ReportStatus.IN_PROGRESS)


def _hours_between(start: datetime, end: datetime) -> Decimal:
    seconds = Decimal(str((end - start).total_seconds()))
    return (seconds / Decimal(3600)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


class WorkOrderService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = WorkOrderRepository(db)
        self.notifications = NotificationService(db)

    def get_work_order(self, work_order_id) -> WorkOrder:
        company_id = TenantContext.require_current_company_id()
        work_order = self.repository.find_by_id_and_company_id(work_order_id, company_id)
        if work_order is None:
            raise ResourceNotFoundException("Work order", work_order_id)
        return work_order

    def list_work_orders(self, status: Optional[WorkOrderStatus] = None,
                         priority: Optional[WorkOrderPriority] = None, assigned_to_id=None, school_id=None,
                         report_id=None, search: Optional[str] = None, page: int = 1, size: int = 20) -> Page:
        company_id = TenantContext.require_current_company_id()
        return self.repository.search(company_id, status, priority, assigned_to_id, school_id, report_id,
                                      search, page, size)

    def my_work_orders(self, user: User, status: Optional[WorkOrderStatus] = None,
                       page: int = 1, size: int = 20) -> Page:
        return self.list_work_orders(status=status, assigned_to_id=user.id, page=page, size=size)

    def find_overdue(self) -> List[WorkOrder]:
        return self.repository.find_overdue(TenantContext.require_current_company_id())

    def generate_work_order_number(self, on_date: Optional[date] = None) -> str:
        company_id = TenantContext.require_current_company_id()
        stamp = (on_date or date.today()).strftime("%Y%m%d")
        while True:
            number = f"WO-{stamp}-{secrets.randbelow(10000):04d}"
            if not self.repository.number_exists(company_id, number):
                return number

    def _get_technician(self, user_id) -> User:
        technician = UserRepository(self.db).find_by_id_and_company_id(
            user_id, TenantContext.require_current_company_id()
        )
        if technician is None:
            raise ResourceNotFoundException("User", user_id)
        if technician.user_type != UserType.TECHNICIAN:
            raise BusinessRuleException("Work orders can only be assigned to technicians")
        return technician

    def _get_report(self, report_id) -> Report:
        report = ReportRepository(self.db).find_by_id_and_company_id(
            report_id, TenantContext.require_current_company_id()
        )
        if report is None:
            raise ResourceNotFoundException("Report", report_id)
        return report

    # ============ Create / update ============

    def create_work_order(self, data: Dict[str, Any], created_by: User) -> WorkOrder:
        company_id = TenantContext.require_current_company_id()
        work_order = WorkOrder(
            company_id=company_id,
            work_order_number=self.generate_work_order_number(),
            status=WorkOrderStatus.PENDING,
            priority=WorkOrderPriority.MEDIUM,
            completion_percentage=0,
            created_by=created_by.id,
        )
        for field in WORK_ORDER_FIELDS:
            if data.get(field) is not None:
                setattr(work_order, field, data[field])

        if data.get("school_id"):
            school = SchoolRepository(self.db).find_by_id_and_company_id(data["school_id"], company_id)
            if school is None:
                raise ResourceNotFoundException("School", data["school_id"])
            work_order.school_id = school.id

        if data.get("report_id"):
            report = self._get_report(data["report_id"])
            if report.status not in _LINKABLE_REPORT_STATUSES:
                raise BusinessRuleException(
                    f"Cannot link a work order to a {report.status.value} report; it must be approved first"
                )
            work_order.report_id = report.id
            work_order.school_id = work_order.school_id or report.school_id
            report.status = ReportStatus.IN_PROGRESS

        technician = None
        if data.get("assigned_to_id"):
            technician = self._get_technician(data["assigned_to_id"])
            work_order.assigned_to_id = technician.id
            work_order.assigned_by_id = created_by.id
            work_order.assignment_date = datetime.utcnow()
            work_order.status = WorkOrderStatus.ASSIGNED

        self.repository.add(work_order)
        if technician is not None:
            self.notifications.notify_work_order_assigned(work_order, technician)
        logger.info(f"Work order {work_order.work_order_number} created in company {company_id}")
        return work_order

    def create_from_report(self, report_id, created_by: User, data: Optional[Dict[str, Any]] = None) -> WorkOrder:
        report = self._get_report(report_id)
        if report.status != ReportStatus.APPROVED:
            raise InvalidOperationStateException("Work orders can only be created from approved reports")
        payload = {
            "title": report.title,
            "description": report.description,
            "category": report.category,
            "priority": WorkOrderPriority.from_report_priority(report.priority),
            "location_details": report.location_details,
        }
        payload.update({k: v for k, v in (data or {}).items() if v is not None})
        payload["report_id"] = report.id
        return self.create_work_order(payload, created_by)

    def update_work_order(self, work_order_id, data: Dict[str, Any], modified_by=None) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status.is_final:
            raise InvalidOperationStateException(f"Work order is already {work_order.status.value}")
        for field in WORK_ORDER_FIELDS:
            if data.get(field) is not None:
                setattr(work_order, field, data[field])
        work_order.modified_by = modified_by
        return work_order

    # ============ Workflow ============

    def assign(self, work_order_id, technician_id, assigned_by: User) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status not in _ASSIGNABLE_STATUSES:
            raise InvalidOperationStateException(
                f"Work order in status {work_order.status.value} cannot be assigned"
            )
        technician = self._get_technician(technician_id)
        if not technician.can_be_assigned():
            raise BusinessRuleException(f"Technician {technician.email} is not available for assignment")
        work_order.assigned_to_id = technician.id
        work_order.assigned_by_id = assigned_by.id
        work_order.assignment_date = datetime.utcnow()
        work_order.status = WorkOrderStatus.ASSIGNED
        self.db.flush()
        self.notifications.notify_work_order_assigned(work_order, technician)
        logger.info(f"Work order {work_order.work_order_number} assigned to {technician.email}")
        return work_order

    def start(self, work_order_id, user: User) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if not work_order.status.can_start_work:
            raise InvalidOperationStateException(
                f"Work order in status {work_order.status.value} cannot be started"
            )
        if work_order.assigned_to_id != user.id and not user.user_type.can_manage_reports:
            raise AccessDeniedException("Only the assigned technician can start this work order")
        work_order.status = WorkOrderStatus.IN_PROGRESS
        if work_order.actual_start is None:
            work_order.actual_start = datetime.utcnow()
        return work_order

    def update_progress(self, work_order_id, percentage: int, notes: Optional[str] = None) -> WorkOrder:
        if not 0 <= percentage <= 100:
            raise ValidationException("Completion percentage must be between 0 and 100")
        work_order = self.get_work_order(work_order_id)
        if not work_order.status.is_active:
            raise InvalidOperationStateException("Progress can only be updated on active work orders")
        work_order.completion_percentage = percentage
        if notes:
            work_order.completion_notes = notes
        return work_order

    def hold(self, work_order_id, reason: Optional[str] = None) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if not work_order.status.is_active or work_order.status == WorkOrderStatus.ON_HOLD:
            raise InvalidOperationStateException("Only active work orders can be put on hold")
        work_order.status = WorkOrderStatus.ON_HOLD
        if reason:
            prefix = f"{work_order.completion_notes}\n" if work_order.completion_notes else ""
            work_order.completion_notes = f"{prefix}On Hold: {reason}"
        return work_order

    def resume(self, work_order_id) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status != WorkOrderStatus.ON_HOLD:
            raise InvalidOperationStateException("Only work orders on hold can be resumed")
        work_order.status = WorkOrderStatus.IN_PROGRESS
        return work_order

    def complete(self, work_order_id, notes: Optional[str] = None, material_cost=None, other_cost=None,
                 signature_url: Optional[str] = None) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status != WorkOrderStatus.IN_PROGRESS:
            raise InvalidOperationStateException("Only work orders in progress can be completed")

        now = datetime.utcnow()
        work_order.status = WorkOrderStatus.COMPLETED
        work_order.actual_end = now
        work_order.completion_percentage = 100
        if notes:
            work_order.completion_notes = notes
        if material_cost is not None:
            work_order.material_cost = material_cost
        if other_cost is not None:
            work_order.other_cost = other_cost
        if signature_url:
            work_order.signature_url = signature_url
        if work_order.actual_start is not None:
            work_order.actual_hours = _hours_between(work_order.actual_start, now)
            technician = work_order.assigned_to
            if technician is not None and technician.hourly_rate:
                work_order.labor_cost = (work_order.actual_hours * Decimal(str(technician.hourly_rate))).quantize(
                    Decimal("0.01"), rounding=ROUND_HALF_UP
                )

        report = work_order.report
        if report is not None and not report.status.is_final:
            if report.status == ReportStatus.PENDING:
                report.status = ReportStatus.IN_PROGRESS
            ReportService(self.db).mark_completed(report, actual_cost=work_order.total_cost)
        self.db.flush()
        self.notifications.notify_work_order_completed(work_order)
        logger.info(f"Work order {work_order.work_order_number} completed")
        return work_order

    def verify(self, work_order_id, verifier: User) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status != WorkOrderStatus.COMPLETED:
            raise InvalidOperationStateException("Only completed work orders can be verified")
        if not verifier.user_type.can_manage_reports:
            raise AccessDeniedException("Only supervisors or administrators can verify work orders")
        work_order.status = WorkOrderStatus.VERIFIED
        work_order.verified_by_id = verifier.id
        work_order.verified_at = datetime.utcnow()
        return work_order

    def cancel(self, work_order_id, reason: Optional[str] = None) -> WorkOrder:
        work_order = self.get_work_order(work_order_id)
        if work_order.status in (WorkOrderStatus.COMPLETED, WorkOrderStatus.VERIFIED):
            raise InvalidOperationStateException("Completed work orders cannot be cancelled")
        if work_order.status == WorkOrderStatus.CANCELLED:
            raise InvalidOperationStateException("Work order is already cancelled")
        work_order.status = WorkOrderStatus.CANCELLED
        if reason:
            work_order.completion_notes = f"Cancelled: {reason}"
        self.notifications.notify_work_order_cancelled(work_order, reason)
        return work_order

    def delete_work_order(self, work_order_id, deleted_by=None, reason: Optional[str] = None):
        work_order = self.get_work_order(work_order_id)
        work_order.soft_delete(deleted_by, reason)
        logger.info(f"Work order {work_order.work_order_number} soft deleted by {deleted_by}")

    # ============ Task checklist ============

    def _sync_completion(self, work_order: WorkOrder):
        tasks = work_order.tasks
        if not tasks:
            return
        done = sum(1 for t in tasks if t.is_completed)
        work_order.completion_percentage = done * 100 // len(tasks)

    def get_tasks(self, work_order_id) -> List[WorkOrderTask]:
        work_order = self.get_work_order(work_order_id)
        return WorkOrderTaskRepository(self.db).find_by_work_order(work_order.company_id, work_order.id)

    def add_task(self, work_order_id, data: Dict[str, Any], created_by=None) -> WorkOrderTask:
        work_order = self.get_work_order(work_order_id)
        if work_order.status.is_final:
            raise InvalidOperationStateException(
                f"Cannot add tasks to a {work_order.status.value} work order"
            )
        task = WorkOrderTask(
            company_id=work_order.company_id,
            task_number=WorkOrderTaskRepository(self.db).next_task_number(work_order.id),
            is_mandatory=True,
            is_completed=False,
            created_by=created_by,
        )
        for field in TASK_FIELDS:
            if data.get(field) is not None:
                setattr(task, field, data[field])
        work_order.tasks.append(task)
        self.db.flush()
        self._sync_completion(work_order)
        logger.info(f"Task {task.task_number} added to work order {work_order.work_order_number}")
        return task

    def update_task_status(self, task_id, is_completed: bool, user: User,
                           notes: Optional[str] = None) -> WorkOrderTask:
        company_id = TenantContext.require_current_company_id()
        task = WorkOrderTaskRepository(self.db).find_by_id_and_company_id(task_id, company_id)
        if task is None:
            raise ResourceNotFoundException("Task", task_id)
        work_order = self.get_work_order(task.work_order_id)
        if work_order.status.is_final:
            raise InvalidOperationStateException(f"Work order is already {work_order.status.value}")
        if work_order.assigned_to_id != user.id and not user.user_type.can_manage_reports:
            raise AccessDeniedException("Only the assigned technician can update tasks on this work order")

        task.is_completed = is_completed
        if is_completed:
            task.completed_at = datetime.utcnow()
            task.completed_by_id = user.id
        else:
            task.completed_at = None
            task.completed_by_id = None
        if notes:
            task.notes = notes
        task.modified_by = user.id
        self._sync_completion(work_order)
        return task

    # ============ Statistics ============

    def get_statistics(self) -> Dict[str, Any]:
        company_id = TenantContext.require_current_company_id()
        work_orders = self.repository.find_for_statistics(company_id)
        now = datetime.utcnow()
        finished = [w for w in work_orders if w.status in (WorkOrderStatus.COMPLETED, WorkOrderStatus.VERIFIED)]
        hours = [float(w.actual_hours) for w in finished if w.actual_hours is not None]
        return {
            "total_work_orders": len(work_orders),
            "by_status": dict(Counter(w.status.value for w in work_orders)),
            "by_priority": dict(Counter(w.priority.value for w in work_orders)),
            "overdue": sum(
                1 for w in work_orders
                if w.scheduled_end and w.scheduled_end < now and not w.status.is_final
            ),
            "completion_rate": round(len(finished) * 100.0 / len(work_orders), 1) if work_orders else 0.0,
            "total_cost": float(sum((Decimal(str(w.total_cost)) for w in work_orders), Decimal(0))),
            "average_completion_hours": round(sum(hours) / len(hours), 2) if hours else None,
        }

    async def get_cached_statistics(self) -> Dict[str, Any]:
        company_id = TenantContext.require_current_company_id()
        cached = await cache_service.get_work_order_stats(company_id)
        if cached is not None:
            return cached
        stats = self.get_statistics()
        await cache_service.set_work_order_stats(company_id, stats)
        return stats
