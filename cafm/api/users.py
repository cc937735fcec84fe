from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from cafm.api.deps import require_admin, require_manager, pagination, PageParams, commit
from cafm.database import get_db
from cafm.enums import UserType, UserStatus
from cafm.mappers import user_to_response, page_to_response
from cafm.models import User
from cafm.schemas import UserCreate, UserUpdate, ReasonRequest
from cafm.services.audit import TenantSecurityAuditService
from cafm.services.email import email_service
from cafm.services.users import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_users(
    user_type: Optional[UserType] = None,
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    search: Optional[str] = None,
    params: PageParams = Depends(pagination),
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    page = UserService(db).list_users(user_type, user_status, search, params.page, params.size)
    return page_to_response(page, user_to_response)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user, temporary_password = UserService(db).create_user(body.model_dump(exclude_unset=True), current_user.id)
    TenantSecurityAuditService(db).log_data_modification(current_user.id, "User", user.id, "CREATE")
    commit(db, "create user")
    if temporary_password:
        email_service.send_welcome(user.email, user.full_name, temporary_password)
    response = user_to_response(user)
    if temporary_password:
        response["temporary_password"] = temporary_password
    return response


@router.get("/technicians/available")
async def available_technicians(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return [user_to_response(u) for u in UserService(db).find_available_technicians()]


@router.get("/statistics")
async def user_statistics(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    return UserService(db).get_user_statistics()


@router.get("/{user_id}")
async def get_user(user_id: UUID, current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return user_to_response(UserService(db).get_user(user_id))


@router.put("/{user_id}")
async def update_user(
    user_id: UUID,
    body: UserUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)
    user = UserService(db).update_user(user_id, changes, current_user.id)
    TenantSecurityAuditService(db).log_data_modification(
        current_user.id, "User", user.id, "UPDATE", {k: str(v) for k, v in changes.items()}
    )
    commit(db, "update user")
    return user_to_response(user)


@router.post("/{user_id}/activate")
async def activate_user(user_id: UUID, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = UserService(db).activate_user(user_id)
    commit(db, "activate user")
    return user_to_response(user)


@router.post("/{user_id}/deactivate")
async def deactivate_user(user_id: UUID, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate yourself")
    user = UserService(db).deactivate_user(user_id)
    commit(db, "deactivate user")
    return user_to_response(user)


@router.post("/{user_id}/suspend")
async def suspend_user(
    user_id: UUID,
    body: ReasonRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = UserService(db).suspend_user(user_id, body.reason)
    commit(db, "suspend user")
    return user_to_response(user)


@router.post("/{user_id}/lock")
async def lock_user(
    user_id: UUID,
    body: ReasonRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = UserService(db).lock_user(user_id, body.reason)
    TenantSecurityAuditService(db).log_data_modification(current_user.id, "User", user.id, "LOCK")
    commit(db, "lock user")
    return user_to_response(user)


@router.post("/{user_id}/unlock")
async def unlock_user(user_id: UUID, current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    user = UserService(db).unlock_user(user_id)
    commit(db, "unlock user")
    return user_to_response(user)


@router.post("/{user_id}/reset-password")
async def reset_user_password(
    user_id: UUID,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    temporary_password = UserService(db).reset_user_password(user_id)
    TenantSecurityAuditService(db).log_data_modification(current_user.id, "User", user_id, "PASSWORD_RESET")
    commit(db, "reset user password")
    return {"temporary_password": temporary_password}


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    UserService(db).delete_user(user_id, current_user.id, reason)
    TenantSecurityAuditService(db).log_data_modification(current_user.id, "User", user_id, "DELETE")
    commit(db, "delete user")
