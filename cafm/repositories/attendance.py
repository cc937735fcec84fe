from datetime import date, datetime
from typing import Optional, List

from sqlalchemy.orm import Session

from cafm.models import SupervisorAttendance
from cafm.repositories.base import TenantAwareRepository, Page, paginate


class AttendanceRepository(TenantAwareRepository[SupervisorAttendance]):

    def __init__(self, db: Session):
        super().__init__(SupervisorAttendance, db)

    def find_active_check_in(self, supervisor_id, on_date: Optional[date] = None) -> Optional[SupervisorAttendance]:
        """Today's check-in that has no check-out yet"""
        on_date = on_date or datetime.utcnow().date()
        return (
            self.db.query(SupervisorAttendance)
            .filter(
                SupervisorAttendance.supervisor_id == supervisor_id,
                SupervisorAttendance.attendance_date == on_date,
                SupervisorAttendance.check_out_time.is_(None),
            )
            .order_by(SupervisorAttendance.check_in_time.desc())
            .first()
        )

    def find_history(self, supervisor_id, since: datetime, page: int = 1, size: int = 20) -> Page:
        query = (
            self.db.query(SupervisorAttendance)
            .filter(
                SupervisorAttendance.supervisor_id == supervisor_id,
                SupervisorAttendance.check_in_time >= since,
            )
            .order_by(SupervisorAttendance.check_in_time.desc())
        )
        return paginate(query, page, size)

    def find_all_since(self, supervisor_id, since: datetime) -> List[SupervisorAttendance]:
        return (
            self.db.query(SupervisorAttendance)
            .filter(
                SupervisorAttendance.supervisor_id == supervisor_id,
                SupervisorAttendance.check_in_time >= since,
            )
            .all()
        )

    def find_by_company_and_date(self, company_id, on_date: date) -> List[SupervisorAttendance]:
        return (
            self._tenant_query(company_id)
            .filter(SupervisorAttendance.attendance_date == on_date)
            .order_by(SupervisorAttendance.check_in_time)
            .all()
        )
