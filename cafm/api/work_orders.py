from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from cafm.api.deps import get_current_user, require_admin, require_manager, pagination, PageParams, commit
from cafm.api.reports import invalidate_statistics
from cafm.database import get_db
from cafm.enums import WorkOrderStatus, WorkOrderPriority, UserType
from cafm.mappers import work_order_to_response, work_order_task_to_response, page_to_response
from cafm.models import User
from cafm.schemas import (
    WorkOrderCreate, WorkOrderUpdate, WorkOrderFromReport, TechnicianAssignment, ProgressUpdate,
    WorkOrderCompletion, WorkOrderTaskCreate, WorkOrderTaskStatus, ReasonRequest,
)
from cafm.services.work_orders import WorkOrderService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_work_orders(
    work_order_status: Optional[WorkOrderStatus] = Query(None, alias="status"),
    priority: Optional[WorkOrderPriority] = None,
    assigned_to_id: Optional[UUID] = None,
    school_id: Optional[UUID] = None,
    report_id: Optional[UUID] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.user_type == UserType.TECHNICIAN:
        assigned_to_id = current_user.id
    page = WorkOrderService(db).list_work_orders(work_order_status, priority, assigned_to_id, school_id,
                                                 report_id, search, params.page, params.size)
    return page_to_response(page, work_order_to_response)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_work_order(
    body: WorkOrderCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).create_work_order(body.model_dump(exclude_unset=True), current_user)
    commit(db, "create work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.post("/from-report/{report_id}", status_code=status.HTTP_201_CREATED)
async def create_from_report(
    report_id: UUID,
    body: Optional[WorkOrderFromReport] = None,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    data = body.model_dump(exclude_unset=True) if body else None
    work_order = WorkOrderService(db).create_from_report(report_id, current_user, data)
    commit(db, "create work order from report")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.get("/my")
async def my_work_orders(
    work_order_status: Optional[WorkOrderStatus] = Query(None, alias="status"),
    params: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page = WorkOrderService(db).my_work_orders(current_user, work_order_status, params.page, params.size)
    return page_to_response(page, work_order_to_response)


@router.get("/overdue")
async def overdue_work_orders(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return [work_order_to_response(w) for w in WorkOrderService(db).find_overdue()]


@router.get("/statistics")
async def work_order_statistics(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return await WorkOrderService(db).get_cached_statistics()


@router.get("/{work_order_id}")
async def get_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return work_order_to_response(WorkOrderService(db).get_work_order(work_order_id))


@router.put("/{work_order_id}")
async def update_work_order(
    work_order_id: UUID,
    body: WorkOrderUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).update_work_order(
        work_order_id, body.model_dump(exclude_unset=True), current_user.id
    )
    commit(db, "update work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


# ============ Workflow ============

@router.post("/{work_order_id}/assign")
async def assign_work_order(
    work_order_id: UUID,
    body: TechnicianAssignment,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).assign(work_order_id, body.technician_id, current_user)
    commit(db, "assign work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.post("/{work_order_id}/start")
async def start_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).start(work_order_id, current_user)
    commit(db, "start work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.put("/{work_order_id}/progress")
async def update_progress(
    work_order_id: UUID,
    body: ProgressUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).update_progress(work_order_id, body.percentage, body.notes)
    commit(db, "update work order progress")
    return work_order_to_response(work_order)


@router.post("/{work_order_id}/hold")
async def hold_work_order(
    work_order_id: UUID,
    body: ReasonRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).hold(work_order_id, body.reason)
    commit(db, "put work order on hold")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.post("/{work_order_id}/resume")
async def resume_work_order(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).resume(work_order_id)
    commit(db, "resume work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.post("/{work_order_id}/complete")
async def complete_work_order(
    work_order_id: UUID,
    body: WorkOrderCompletion,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).complete(
        work_order_id, body.notes, body.material_cost, body.other_cost, body.signature_url
    )
    commit(db, "complete work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.post("/{work_order_id}/verify")
async def verify_work_order(
    work_order_id: UUID,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).verify(work_order_id, current_user)
    commit(db, "verify work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.post("/{work_order_id}/cancel")
async def cancel_work_order(
    work_order_id: UUID,
    body: ReasonRequest,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    work_order = WorkOrderService(db).cancel(work_order_id, body.reason)
    commit(db, "cancel work order")
    await invalidate_statistics()
    return work_order_to_response(work_order)


@router.delete("/{work_order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_work_order(
    work_order_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    WorkOrderService(db).delete_work_order(work_order_id, current_user.id, reason)
    commit(db, "delete work order")
    await invalidate_statistics()


# ============ Task checklist ============

@router.get("/{work_order_id}/tasks")
async def list_tasks(
    work_order_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [work_order_task_to_response(t) for t in WorkOrderService(db).get_tasks(work_order_id)]


@router.post("/{work_order_id}/tasks", status_code=status.HTTP_201_CREATED)
async def add_task(
    work_order_id: UUID,
    body: WorkOrderTaskCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    task = WorkOrderService(db).add_task(work_order_id, body.model_dump(exclude_unset=True), current_user.id)
    commit(db, "add work order task")
    return work_order_task_to_response(task)


@router.patch("/tasks/{task_id}")
async def update_task_status(
    task_id: UUID,
    body: WorkOrderTaskStatus,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Tick or untick a checklist item; the work order's completion percentage follows."""
    task = WorkOrderService(db).update_task_status(task_id, body.is_completed, current_user, body.notes)
    commit(db, "update work order task")
    return work_order_task_to_response(task)
