from typing import Optional, List

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from cafm.models import School, SupervisorSchool
from cafm.repositories.base import TenantAwareRepository, Page, paginate


class SchoolRepository(TenantAwareRepository[School]):

    def __init__(self, db: Session):
        super().__init__(School, db)

    def find_by_code(self, company_id, code: str) -> Optional[School]:
        return self._tenant_query(company_id).filter(func.lower(School.code) == code.lower()).first()

    def code_exists(self, company_id, code: str, exclude_id=None) -> bool:
        query = self._tenant_query(company_id, include_deleted=True).filter(func.lower(School.code) == code.lower())
        if exclude_id:
            query = query.filter(School.id != exclude_id)
        return query.first() is not None

    def search(self, company_id, school_type: Optional[str] = None, gender: Optional[str] = None,
               city: Optional[str] = None, search: Optional[str] = None, is_active: Optional[bool] = None,
               page: int = 1, size: int = 20) -> Page:
        query = self._tenant_query(company_id)
        if school_type:
            query = query.filter(School.type == school_type)
        if gender:
            query = query.filter(School.gender == gender)
        if city:
            query = query.filter(func.lower(School.city) == city.lower())
        if is_active is not None:
            query = query.filter(School.is_active.is_(is_active))
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(School.name).like(term),
                School.name_ar.like(f"%{search}%"),
                func.lower(School.code).like(term),
            ))
        return paginate(query.order_by(School.name), page, size)

    def find_active(self, company_id) -> List[School]:
        return self._tenant_query(company_id).filter(School.is_active.is_(True)).order_by(School.name).all()

    def find_with_coordinates(self, company_id) -> List[School]:
        return (
            self._tenant_query(company_id)
            .filter(School.is_active.is_(True), School.latitude.isnot(None), School.longitude.isnot(None))
            .all()
        )

    def find_below_score(self, company_id, threshold: int) -> List[School]:
        return (
            self._tenant_query(company_id)
            .filter(School.maintenance_score < threshold)
            .order_by(School.maintenance_score)
            .all()
        )

    def find_by_supervisor(self, company_id, supervisor_id) -> List[School]:
        return (
            self._tenant_query(company_id)
            .join(SupervisorSchool, SupervisorSchool.school_id == School.id)
            .filter(SupervisorSchool.supervisor_id == supervisor_id, SupervisorSchool.is_active.is_(True))
            .order_by(School.name)
            .all()
        )

    def find_unassigned(self, company_id) -> List[School]:
        assigned = select(SupervisorSchool.school_id).where(
            SupervisorSchool.company_id == company_id, SupervisorSchool.is_active.is_(True)
        )
        return self._tenant_query(company_id).filter(School.id.notin_(assigned)).all()


class SupervisorSchoolRepository:

    def __init__(self, db: Session):
        self.db = db

    def find(self, supervisor_id, school_id) -> Optional[SupervisorSchool]:
        return (
            self.db.query(SupervisorSchool)
            .filter(SupervisorSchool.supervisor_id == supervisor_id, SupervisorSchool.school_id == school_id)
            .first()
        )

    def is_assigned(self, supervisor_id, school_id) -> bool:
        link = self.find(supervisor_id, school_id)
        return link is not None and bool(link.is_active)

    def add(self, link: SupervisorSchool) -> SupervisorSchool:
        self.db.add(link)
        self.db.flush()
        return link

    def find_supervisors_for_school(self, school_id) -> List[SupervisorSchool]:
        return (
            self.db.query(SupervisorSchool)
            .filter(SupervisorSchool.school_id == school_id, SupervisorSchool.is_active.is_(True))
            .all()
        )
