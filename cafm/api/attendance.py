from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
import logging

from cafm.api.deps import require_admin, require_roles, pagination, PageParams, commit
from cafm.database import get_db
from cafm.enums import UserType
from cafm.mappers import attendance_to_response
from cafm.models import User
from cafm.schemas import CheckInRequest, CheckOutRequest
from cafm.services.attendance import AttendanceService

router = APIRouter()
logger = logging.getLogger(__name__)

require_supervisor = require_roles(UserType.SUPERVISOR)


@router.post("/check-in")
async def check_in(
    body: CheckInRequest,
    current_user: User = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    """Check in at an assigned school; the device location must be within the allowed radius."""
    result = AttendanceService(db).check_in(current_user, body.school_id, body.latitude, body.longitude, body.notes)
    commit(db, "check in")
    return result


@router.post("/check-out")
async def check_out(
    body: CheckOutRequest,
    current_user: User = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    result = AttendanceService(db).check_out(current_user, body.latitude, body.longitude, body.notes)
    commit(db, "check out")
    return result


@router.get("/status")
async def current_status(current_user: User = Depends(require_supervisor), db: Session = Depends(get_db)):
    return AttendanceService(db).get_current_status(current_user)


@router.get("/history")
async def attendance_history(
    days: int = Query(30, ge=1, le=365),
    params: PageParams = Depends(pagination),
    current_user: User = Depends(require_supervisor),
    db: Session = Depends(get_db),
):
    history = AttendanceService(db).get_history(current_user, days, params.page, params.size)
    history["records"] = [attendance_to_response(r) for r in history["records"]]
    return history


@router.get("/company")
async def company_attendance(
    on_date: Optional[date] = Query(None, alias="date"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [attendance_to_response(a) for a in AttendanceService(db).get_company_attendance(on_date)]
