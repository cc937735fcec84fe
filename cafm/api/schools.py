from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from cafm.api.deps import get_current_user, require_admin, require_manager, pagination, PageParams, commit
from cafm.database import get_db
from cafm.mappers import school_to_response, assignment_to_response, user_to_response, page_to_response
from cafm.models import User
from cafm.schemas import SchoolCreate, SchoolUpdate, MaintenanceScoreUpdate, SupervisorAssignment
from cafm.services.schools import SchoolService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_schools(
    type: Optional[str] = None,
    gender: Optional[str] = None,
    city: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    params: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page = SchoolService(db).list_schools(type, gender, city, search, is_active, params.page, params.size)
    return page_to_response(page, school_to_response)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_school(
    body: SchoolCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    school = SchoolService(db).create_school(body.model_dump(exclude_unset=True), current_user.id)
    commit(db, "create school")
    return school_to_response(school)


# ============ Lookups ============

@router.get("/code-available")
async def code_available(code: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"code": code, "available": SchoolService(db).is_code_available(code)}


@router.get("/nearest")
async def nearest_schools(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    limit: int = Query(5, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    nearest = SchoolService(db).find_nearest_schools(latitude, longitude, limit)
    return [school_to_response(school, km) for school, km in nearest]


@router.get("/within-radius")
async def schools_within_radius(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(5.0, gt=0, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    found = SchoolService(db).find_within_radius(latitude, longitude, radius_km)
    return [school_to_response(school, km) for school, km in found]


@router.get("/critical")
async def critical_schools(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return [school_to_response(s) for s in SchoolService(db).get_schools_with_critical_maintenance()]


@router.get("/unassigned")
async def unassigned_schools(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return [school_to_response(s) for s in SchoolService(db).get_unassigned_schools()]


@router.get("/statistics")
async def school_statistics(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return SchoolService(db).get_school_statistics()


@router.get("/by-supervisor/{supervisor_id}")
async def schools_by_supervisor(
    supervisor_id: UUID,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return [school_to_response(s) for s in SchoolService(db).get_schools_by_supervisor(supervisor_id)]


@router.get("/mine")
async def my_schools(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return [school_to_response(s) for s in SchoolService(db).get_schools_by_supervisor(current_user.id)]


# ============ Single school ============

@router.get("/{school_id}")
async def get_school(school_id: UUID, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return school_to_response(SchoolService(db).get_school(school_id))


@router.put("/{school_id}")
async def update_school(
    school_id: UUID,
    body: SchoolUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    school = SchoolService(db).update_school(school_id, body.model_dump(exclude_unset=True), current_user.id)
    commit(db, "update school")
    return school_to_response(school)


@router.post("/{school_id}/activate")
async def activate_school(school_id: UUID, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    school = SchoolService(db).activate_school(school_id)
    commit(db, "activate school")
    return school_to_response(school)


@router.post("/{school_id}/deactivate")
async def deactivate_school(
    school_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    school = SchoolService(db).deactivate_school(school_id)
    commit(db, "deactivate school")
    return school_to_response(school)


@router.put("/{school_id}/maintenance-score")
async def update_maintenance_score(
    school_id: UUID,
    body: MaintenanceScoreUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    school = SchoolService(db).update_maintenance_score(school_id, body.score)
    commit(db, "update maintenance score")
    return school_to_response(school)


@router.get("/{school_id}/supervisors")
async def school_supervisors(
    school_id: UUID,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return [user_to_response(u) for u in SchoolService(db).get_supervisors(school_id)]


@router.post("/{school_id}/supervisors", status_code=status.HTTP_201_CREATED)
async def assign_supervisor(
    school_id: UUID,
    body: SupervisorAssignment,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    link = SchoolService(db).assign_supervisor(school_id, body.supervisor_id, current_user.id)
    commit(db, "assign supervisor")
    return assignment_to_response(link)


@router.delete("/{school_id}/supervisors/{supervisor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unassign_supervisor(
    school_id: UUID,
    supervisor_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    SchoolService(db).unassign_supervisor(school_id, supervisor_id)
    commit(db, "unassign supervisor")


@router.delete("/{school_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_school(
    school_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    SchoolService(db).delete_school(school_id, current_user.id, reason)
    commit(db, "delete school")
