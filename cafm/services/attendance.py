import logging
import math
import time
from datetime import date, datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from cafm.config import settings
from cafm.enums import UserType, AttendanceStatus
from cafm.exceptions import (
    ResourceNotFoundException, BusinessRuleException, InvalidOperationStateException, AccessDeniedException,
)
from cafm.models import SupervisorAttendance, User
from cafm.repositories.attendance import AttendanceRepository
from cafm.repositories.schools import SchoolRepository, SupervisorSchoolRepository
from cafm.tenant.context import TenantContext

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000
EXPECTED_DURATION_MINUTES = 480


def distance_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_duration(minutes: int) -> str:
    return "%dh %02dm" % (minutes // 60, minutes % 60)


def _school_summary(school) -> Optional[Dict[str, Any]]:
    if school is None:
        return None
    return {"id": str(school.id), "code": school.code, "name": school.name, "name_ar": school.name_ar}


class AttendanceService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = AttendanceRepository(db)

    def check_in(self, supervisor: User, school_id, latitude: float, longitude: float,
                 notes: Optional[str] = None) -> Dict[str, Any]:
        if supervisor.user_type != UserType.SUPERVISOR:
            raise AccessDeniedException("Only supervisors can check in")
        company_id = TenantContext.require_current_company_id()

        if self.repository.find_active_check_in(supervisor.id) is not None:
            raise InvalidOperationStateException("You already have an active check-in today")

        school = SchoolRepository(self.db).find_by_id_and_company_id(school_id, company_id)
        if school is None:
            raise ResourceNotFoundException("School", school_id)
        if not SupervisorSchoolRepository(self.db).is_assigned(supervisor.id, school.id):
            raise AccessDeniedException("You are not assigned to this school")

        if school.latitude is not None and school.longitude is not None:
            distance = distance_meters(latitude, longitude, school.latitude, school.longitude)
            if distance > settings.checkin_radius_meters:
                raise BusinessRuleException("Check-in location is too far from school (%.0fm)" % distance)

        now = datetime.utcnow()
        attendance = SupervisorAttendance(
            company_id=company_id,
            supervisor_id=supervisor.id,
            school_id=school.id,
            attendance_date=now.date(),
            check_in_time=now,
            check_in_latitude=latitude,
            check_in_longitude=longitude,
            status=AttendanceStatus.CHECKED_IN,
            work_summary=notes,
            created_by=supervisor.id,
        )
        self.repository.add(attendance)
        logger.info(f"Supervisor {supervisor.email} checked in at school {school.code}")
        return {
            "attendance_id": str(attendance.id),
            "session_id": f"SESSION-{str(attendance.id)[:8]}-{int(time.time() * 1000)}",
            "check_in_time": attendance.check_in_time,
            "school": _school_summary(school),
            "expected_duration": EXPECTED_DURATION_MINUTES,
            "status": attendance.status.value,
        }

    def check_out(self, supervisor: User, latitude: Optional[float] = None, longitude: Optional[float] = None,
                  notes: Optional[str] = None) -> Dict[str, Any]:
        attendance = self.repository.find_active_check_in(supervisor.id)
        if attendance is None:
            raise InvalidOperationStateException("No active check-in found")

        attendance.check_out_time = datetime.utcnow()
        attendance.check_out_latitude = latitude
        attendance.check_out_longitude = longitude
        attendance.status = AttendanceStatus.CHECKED_OUT
        if notes:
            summary = attendance.work_summary or ""
            attendance.work_summary = f"{summary}; Check-out: {notes}" if summary else f"Check-out: {notes}"

        minutes = attendance.duration_minutes or 0
        logger.info(f"Supervisor {supervisor.email} checked out after {format_duration(minutes)}")
        return {
            "attendance_id": str(attendance.id),
            "check_in_time": attendance.check_in_time,
            "check_out_time": attendance.check_out_time,
            "duration_minutes": minutes,
            "duration": format_duration(minutes),
            "school": _school_summary(attendance.school),
            "status": attendance.status.value,
        }

    def get_history(self, supervisor: User, days: int = 30, page: int = 1, size: int = 20) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        history = self.repository.find_history(supervisor.id, since, page, size)
        records = self.repository.find_all_since(supervisor.id, since)

        completed = [r for r in records if r.check_out_time is not None]
        total_minutes = sum(r.duration_minutes for r in completed)
        total_hours = round(total_minutes / 60, 2)
        return {
            "records": history.items,
            "statistics": {
                "total_sessions": len(records),
                "completed_sessions": len(completed),
                "active_sessions": len(records) - len(completed),
                "total_hours": total_hours,
                "average_hours_per_session": round(total_hours / len(completed), 2) if completed else 0,
                "schools_visited": len({r.school_id for r in records}),
            },
            "pagination": {
                "page": history.page,
                "size": history.size,
                "total": history.total,
                "pages": history.pages,
            },
        }

    def get_current_status(self, supervisor: User) -> Dict[str, Any]:
        attendance = self.repository.find_active_check_in(supervisor.id)
        if attendance is None:
            return {"is_checked_in": False, "school": None, "check_in_time": None, "elapsed_minutes": 0}
        elapsed = int((datetime.utcnow() - attendance.check_in_time).total_seconds() // 60)
        return {
            "is_checked_in": True,
            "attendance_id": str(attendance.id),
            "school": _school_summary(attendance.school),
            "check_in_time": attendance.check_in_time,
            "elapsed_minutes": elapsed,
        }

    def get_company_attendance(self, on_date: Optional[date] = None):
        return self.repository.find_by_company_and_date(
            TenantContext.require_current_company_id(), on_date or date.today()
        )
