from datetime import datetime
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cafm.enums import WorkOrderStatus, WorkOrderPriority
from cafm.models import WorkOrder, WorkOrderTask
from cafm.repositories.base import TenantAwareRepository, Page, paginate

FINAL_STATUSES = [s for s in WorkOrderStatus if s.is_final]


class WorkOrderRepository(TenantAwareRepository[WorkOrder]):

    def __init__(self, db: Session):
        super().__init__(WorkOrder, db)

    def number_exists(self, company_id, work_order_number: str) -> bool:
        return (
            self.db.query(WorkOrder.id)
            .filter(WorkOrder.company_id == company_id, WorkOrder.work_order_number == work_order_number)
            .first()
            is not None
        )

    def search(self, company_id, status: Optional[WorkOrderStatus] = None,
               priority: Optional[WorkOrderPriority] = None, assigned_to_id=None, school_id=None,
               report_id=None, search: Optional[str] = None, page: int = 1, size: int = 20) -> Page:
        query = self._tenant_query(company_id)
        if status:
            query = query.filter(WorkOrder.status == status)
        if priority:
            query = query.filter(WorkOrder.priority == priority)
        if assigned_to_id:
            query = query.filter(WorkOrder.assigned_to_id == assigned_to_id)
        if school_id:
            query = query.filter(WorkOrder.school_id == school_id)
        if report_id:
            query = query.filter(WorkOrder.report_id == report_id)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(WorkOrder.title).like(term),
                func.lower(WorkOrder.work_order_number).like(term),
            ))
        return paginate(query.order_by(WorkOrder.created_at.desc()), page, size)

    def find_overdue(self, company_id, now: Optional[datetime] = None) -> List[WorkOrder]:
        now = now or datetime.utcnow()
        return (
            self._tenant_query(company_id)
            .filter(
                WorkOrder.scheduled_end.isnot(None),
                WorkOrder.scheduled_end < now,
                WorkOrder.status.notin_(FINAL_STATUSES),
            )
            .order_by(WorkOrder.scheduled_end)
            .all()
        )

    def find_by_report(self, company_id, report_id) -> List[WorkOrder]:
        return self._tenant_query(company_id).filter(WorkOrder.report_id == report_id).all()

    def find_for_statistics(self, company_id) -> List[WorkOrder]:
        return self._tenant_query(company_id).all()


class WorkOrderTaskRepository(TenantAwareRepository[WorkOrderTask]):

    def __init__(self, db: Session):
        super().__init__(WorkOrderTask, db)

    def find_by_work_order(self, company_id, work_order_id) -> List[WorkOrderTask]:
        return (
            self._tenant_query(company_id)
            .filter(WorkOrderTask.work_order_id == work_order_id)
            .order_by(WorkOrderTask.task_number)
            .all()
        )

    def next_task_number(self, work_order_id) -> int:
        current = (
            self.db.query(func.max(WorkOrderTask.task_number))
            .filter(WorkOrderTask.work_order_id == work_order_id)
            .scalar()
        )
        return (current or 0) + 1
