import logging
import math
from collections import Counter
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy.orm import Session

from cafm.enums import UserType
from cafm.exceptions import (
    ResourceNotFoundException, DuplicateResourceException, ValidationException, BusinessRuleException,
    ErrorCode,
)
from cafm.models import School, SupervisorSchool, Company, User
from cafm.repositories.base import Page
from cafm.repositories.schools import SchoolRepository, SupervisorSchoolRepository
from cafm.repositories.users import UserRepository
from cafm.tenant.context import TenantContext
from cafm.utils.validators import is_valid_arabic_text

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
CRITICAL_SCORE_THRESHOLD = 50

SCHOOL_FIELDS = (
    "code", "name", "name_ar", "type", "gender", "address", "city", "latitude", "longitude",
    "activity_level",
)


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class SchoolService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = SchoolRepository(db)
        self.assignments = SupervisorSchoolRepository(db)

    def get_school(self, school_id) -> School:
        company_id = TenantContext.require_current_company_id()
        school = self.repository.find_by_id_and_company_id(school_id, company_id)
        if school is None:
            raise ResourceNotFoundException("School", school_id)
        return school

    def list_schools(self, school_type: Optional[str] = None, gender: Optional[str] = None,
                     city: Optional[str] = None, search: Optional[str] = None, is_active: Optional[bool] = None,
                     page: int = 1, size: int = 20) -> Page:
        company_id = TenantContext.require_current_company_id()
        return self.repository.search(company_id, school_type, gender, city, search, is_active, page, size)

    def is_code_available(self, code: str, exclude_id=None) -> bool:
        company_id = TenantContext.require_current_company_id()
        return not self.repository.code_exists(company_id, code, exclude_id)

    # ============ Create / update ============

    def _validate(self, data: Dict[str, Any]):
        if data.get("name_ar") and not is_valid_arabic_text(data["name_ar"], allow_mixed=True):
            raise ValidationException("Arabic name must contain Arabic characters")
        lat, lng = data.get("latitude"), data.get("longitude")
        if lat is not None and not -90 <= lat <= 90:
            raise ValidationException("Latitude must be between -90 and 90")
        if lng is not None and not -180 <= lng <= 180:
            raise ValidationException("Longitude must be between -180 and 180")

    def create_school(self, data: Dict[str, Any], created_by=None) -> School:
        company_id = TenantContext.require_current_company_id()
        code = data["code"].strip()
        if self.repository.code_exists(company_id, code):
            raise DuplicateResourceException(f"School code already exists: {code}")
        self._validate(data)

        company = self.db.get(Company, company_id)
        if company is not None and self.repository.count_by_company_id(company_id) >= (company.max_schools or 0):
            raise BusinessRuleException(
                f"School limit reached for plan {company.subscription_plan.value}",
                error_code=ErrorCode.LIMIT_EXCEEDED,
            )

        school = School(company_id=company_id, created_by=created_by, is_active=True, maintenance_score=100)
        for field in SCHOOL_FIELDS:
            if data.get(field) is not None:
                setattr(school, field, data[field])
        school.code = code
        self.repository.add(school)
        logger.info(f"School created: {school.code} in company {company_id}")
        return school

    def update_school(self, school_id, data: Dict[str, Any], modified_by=None) -> School:
        school = self.get_school(school_id)
        if data.get("code") and data["code"].strip().lower() != school.code.lower():
            if self.repository.code_exists(school.company_id, data["code"].strip(), exclude_id=school.id):
                raise DuplicateResourceException(f"School code already exists: {data['code']}")
        self._validate(data)
        for field in SCHOOL_FIELDS:
            if data.get(field) is not None:
                setattr(school, field, data[field])
        school.modified_by = modified_by
        return school

    def activate_school(self, school_id) -> School:
        school = self.get_school(school_id)
        school.is_active = True
        return school

    def deactivate_school(self, school_id) -> School:
        school = self.get_school(school_id)
        school.is_active = False
        return school

    def delete_school(self, school_id, deleted_by=None, reason: Optional[str] = None):
        school = self.get_school(school_id)
        school.soft_delete(deleted_by, reason)
        for link in self.assignments.find_supervisors_for_school(school.id):
            link.is_active = False
        logger.info(f"School {school.code} soft deleted by {deleted_by}")

    # ============ Geo queries ============

    def _with_distance(self, lat: float, lng: float) -> List[Tuple[School, float]]:
        company_id = TenantContext.require_current_company_id()
        return [
            (school, haversine_km(lat, lng, school.latitude, school.longitude))
            for school in self.repository.find_with_coordinates(company_id)
        ]

    def find_nearest_schools(self, lat: float, lng: float, limit: int = 5) -> List[Tuple[School, float]]:
        return sorted(self._with_distance(lat, lng), key=lambda pair: pair[1])[:limit]

    def find_within_radius(self, lat: float, lng: float, radius_km: float) -> List[Tuple[School, float]]:
        within = [pair for pair in self._with_distance(lat, lng) if pair[1] <= radius_km]
        return sorted(within, key=lambda pair: pair[1])

    # ============ Supervisors ============

    def _get_supervisor(self, supervisor_id) -> User:
        company_id = TenantContext.require_current_company_id()
        supervisor = UserRepository(self.db).find_by_id_and_company_id(supervisor_id, company_id)
        if supervisor is None:
            raise ResourceNotFoundException("User", supervisor_id)
        if supervisor.user_type != UserType.SUPERVISOR:
            raise BusinessRuleException("Only supervisors can be assigned to schools")
        return supervisor

    def assign_supervisor(self, school_id, supervisor_id, assigned_by=None) -> SupervisorSchool:
        school = self.get_school(school_id)
        supervisor = self._get_supervisor(supervisor_id)
        link = self.assignments.find(supervisor.id, school.id)
        if link is not None:
            if link.is_active:
                raise DuplicateResourceException("Supervisor is already assigned to this school")
            link.is_active = True
            link.modified_by = assigned_by
            return link
        link = SupervisorSchool(
            company_id=school.company_id,
            supervisor_id=supervisor.id,
            school_id=school.id,
            is_active=True,
            created_by=assigned_by,
        )
        self.assignments.add(link)
        logger.info(f"Supervisor {supervisor.email} assigned to school {school.code}")
        return link

    def unassign_supervisor(self, school_id, supervisor_id):
        school = self.get_school(school_id)
        link = self.assignments.find(supervisor_id, school.id)
        if link is None or not link.is_active:
            raise ResourceNotFoundException("Supervisor assignment")
        link.is_active = False

    def get_schools_by_supervisor(self, supervisor_id) -> List[School]:
        return self.repository.find_by_supervisor(TenantContext.require_current_company_id(), supervisor_id)

    def get_unassigned_schools(self) -> List[School]:
        return self.repository.find_unassigned(TenantContext.require_current_company_id())

    def get_supervisors(self, school_id) -> List[User]:
        school = self.get_school(school_id)
        return [link.supervisor for link in self.assignments.find_supervisors_for_school(school.id)]

    # ============ Maintenance score ============

    def update_maintenance_score(self, school_id, score: int) -> School:
        if not 0 <= score <= 100:
            raise ValidationException("Maintenance score must be between 0 and 100")
        school = self.get_school(school_id)
        school.maintenance_score = score
        return school

    def get_schools_with_critical_maintenance(self) -> List[School]:
        return self.repository.find_below_score(TenantContext.require_current_company_id(), CRITICAL_SCORE_THRESHOLD)

    def get_school_statistics(self) -> Dict[str, Any]:
        company_id = TenantContext.require_current_company_id()
        schools = self.repository.list_by_company_id(company_id)
        scores = [s.maintenance_score for s in schools if s.maintenance_score is not None]
        return {
            "total_schools": len(schools),
            "active_schools": sum(1 for s in schools if s.is_active),
            "by_type": dict(Counter(s.type or "UNSPECIFIED" for s in schools)),
            "by_gender": dict(Counter(s.gender or "UNSPECIFIED" for s in schools)),
            "average_maintenance_score": round(sum(scores) / len(scores), 1) if scores else None,
            "critical_maintenance": sum(1 for score in scores if score < CRITICAL_SCORE_THRESHOLD),
            "unassigned": len(self.repository.find_unassigned(company_id)),
        }
