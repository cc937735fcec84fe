import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy.orm import Session

from cafm.enums import UserType, UserStatus
from cafm.exceptions import (
    ResourceNotFoundException, DuplicateResourceException, ValidationException, BusinessRuleException,
    AccessDeniedException, ErrorCode,
)
from cafm.models import User, Company
from cafm.repositories.base import Page
from cafm.repositories.users import UserRepository
from cafm.tenant.context import TenantContext
from cafm.utils.security import get_password_hash, verify_password, generate_temporary_password
from cafm.utils.validators import (
    password_violation_message, contains_personal_info, is_valid_iqama_id, is_valid_plate_number,
    normalize_plate_number,
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "phone", "username")
ADMIN_FIELDS = PROFILE_FIELDS + (
    "employee_id", "iqama_id", "plate_number", "department", "position", "specialization",
    "skill_level", "hourly_rate", "is_available_for_assignment", "user_type",
)

_LIMIT_FIELDS = {
    UserType.SUPERVISOR: "max_supervisors",
    UserType.TECHNICIAN: "max_technicians",
}


def ensure_strong_password(password: str, email: Optional[str] = None, first_name: Optional[str] = None,
                           last_name: Optional[str] = None):
    message = password_violation_message(password)
    if message:
        raise ValidationException(message, error_code=ErrorCode.WEAK_PASSWORD)
    name = " ".join(p for p in (first_name, last_name) if p)
    if contains_personal_info(password, email=email, name=name):
        raise ValidationException("Password must not contain your name or email", error_code=ErrorCode.WEAK_PASSWORD)


class UserService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = UserRepository(db)

    # ============ Lookups ============

    def get_user(self, user_id) -> User:
        company_id = TenantContext.require_current_company_id()
        user = self.repository.find_by_id_and_company_id(user_id, company_id)
        if user is None:
            raise ResourceNotFoundException("User", user_id)
        return user

    def list_users(self, user_type: Optional[UserType] = None, status: Optional[UserStatus] = None,
                   search: Optional[str] = None, page: int = 1, size: int = 20) -> Page:
        company_id = TenantContext.require_current_company_id()
        return self.repository.search(company_id, user_type, status, search, page, size)

    def find_available_technicians(self) -> List[User]:
        return self.repository.find_available_technicians(TenantContext.require_current_company_id())

    def get_user_statistics(self) -> Dict[str, Any]:
        company_id = TenantContext.require_current_company_id()
        stats = self.repository.get_stats_by_company_id(company_id)
        return {
            "total_users": stats.active_count,
            "deleted_users": stats.deleted_count,
            "by_type": self.repository.count_by_type(company_id),
            "by_status": self.repository.count_by_status(company_id),
            "available_technicians": len(self.repository.find_available_technicians(company_id)),
        }

    # ============ Create / update ============

    def _validate_identity_fields(self, data: Dict[str, Any]):
        if data.get("iqama_id") and not is_valid_iqama_id(data["iqama_id"]):
            raise ValidationException("Invalid Iqama/national ID")
        if data.get("plate_number"):
            if not is_valid_plate_number(data["plate_number"]):
                raise ValidationException("Invalid plate number format")
            data["plate_number"] = normalize_plate_number(data["plate_number"])

    def _check_limits(self, company: Company, user_type: UserType):
        if self.repository.count_by_company_id(company.id) >= (company.max_users or 0):
            raise BusinessRuleException(
                f"User limit reached for plan {company.subscription_plan.value}", error_code=ErrorCode.LIMIT_EXCEEDED
            )
        self._check_type_limit(company, user_type)

    def _check_type_limit(self, company: Company, user_type: UserType):
        limit_field = _LIMIT_FIELDS.get(user_type)
        if limit_field:
            current = len(self.repository.find_by_type(company.id, user_type))
            if current >= (getattr(company, limit_field) or 0):
                raise BusinessRuleException(
                    f"{user_type.display_name} limit reached for this company", error_code=ErrorCode.LIMIT_EXCEEDED
                )

    def create_user(self, data: Dict[str, Any], created_by=None) -> Tuple[User, Optional[str]]:
        """Create a user in the current company.

        Returns the user and, when no password was supplied, the generated
        temporary password so it can be handed over once.
        """
        company_id = TenantContext.require_current_company_id()
        company = self.db.get(Company, company_id)
        if company is None:
            raise ResourceNotFoundException("Company", company_id)

        email = data["email"].strip().lower()
        if self.repository.exists_by_email(email):
            raise DuplicateResourceException(f"Email already registered: {email}", error_code=ErrorCode.DUPLICATE_EMAIL)

        user_type = data.get("user_type") or UserType.VIEWER
        if user_type == UserType.SUPER_ADMIN:
            raise AccessDeniedException("Super administrators cannot be created inside a company")
        self._check_limits(company, user_type)
        self._validate_identity_fields(data)

        password = data.get("password")
        temporary_password = None
        if password:
            ensure_strong_password(password, email, data.get("first_name"), data.get("last_name"))
        else:
            password = temporary_password = generate_temporary_password()

        user = User(
            email=email,
            password_hash=get_password_hash(password),
            company_id=company_id,
            user_type=user_type,
            status=UserStatus.ACTIVE,
            is_active=True,
            is_locked=False,
            email_verified=bool(data.get("email_verified", False)),
            created_by=created_by,
            password_changed_at=datetime.utcnow(),
        )
        for field in ADMIN_FIELDS:
            if field != "user_type" and data.get(field) is not None:
                setattr(user, field, data[field])
        self.repository.add(user)
        logger.info(f"User created: {email} ({user_type.value}) in company {company_id}")
        return user, temporary_password

    def update_user(self, user_id, data: Dict[str, Any], modified_by=None) -> User:
        user = self.get_user(user_id)
        self._validate_identity_fields(data)
        new_type = data.get("user_type")
        if new_type == UserType.SUPER_ADMIN:
            raise AccessDeniedException("Cannot promote a user to super administrator")
        if new_type is not None and new_type != user.user_type:
            self._check_type_limit(self.db.get(Company, user.company_id), new_type)
        for field in ADMIN_FIELDS:
            if data.get(field) is not None:
                setattr(user, field, data[field])
        user.modified_by = modified_by
        return user

    def update_profile(self, user: User, data: Dict[str, Any]) -> User:
        for field in PROFILE_FIELDS:
            if data.get(field) is not None:
                setattr(user, field, data[field])
        return user

    def update_fcm_token(self, user: User, fcm_token: Optional[str]) -> User:
        user.fcm_token = fcm_token
        return user

    # ============ Status management ============

    def activate_user(self, user_id) -> User:
        user = self.get_user(user_id)
        user.status = UserStatus.ACTIVE
        user.is_active = True
        return user

    def deactivate_user(self, user_id) -> User:
        user = self.get_user(user_id)
        user.status = UserStatus.INACTIVE
        user.is_active = False
        return user

    def suspend_user(self, user_id, reason: Optional[str] = None) -> User:
        user = self.get_user(user_id)
        user.status = UserStatus.SUSPENDED
        user.lock_reason = reason
        logger.warning(f"User {user.email} suspended: {reason}")
        return user

    def lock_user(self, user_id, reason: Optional[str] = None) -> User:
        user = self.get_user(user_id)
        user.is_locked = True
        user.status = UserStatus.LOCKED
        user.lock_reason = reason
        logger.warning(f"User {user.email} locked: {reason}")
        return user

    def unlock_user(self, user_id) -> User:
        user = self.get_user(user_id)
        user.is_locked = False
        user.lock_reason = None
        user.failed_login_attempts = 0
        if user.status == UserStatus.LOCKED:
            user.status = UserStatus.ACTIVE
        return user

    def reset_user_password(self, user_id) -> str:
        user = self.get_user(user_id)
        temporary_password = generate_temporary_password()
        user.password_hash = get_password_hash(temporary_password)
        user.password_changed_at = datetime.utcnow()
        return temporary_password

    def change_password(self, user: User, current_password: str, new_password: str):
        if not verify_password(current_password, user.password_hash):
            raise ValidationException("Current password is incorrect")
        if current_password == new_password:
            raise ValidationException("New password must differ from the current password")
        ensure_strong_password(new_password, user.email, user.first_name, user.last_name)
        user.password_hash = get_password_hash(new_password)
        user.password_changed_at = datetime.utcnow()

    def delete_user(self, user_id, deleted_by=None, reason: Optional[str] = None):
        user = self.get_user(user_id)
        if user.id == deleted_by:
            raise BusinessRuleException("Users cannot delete their own account")
        user.soft_delete(deleted_by, reason)
        user.is_active = False
        logger.info(f"User {user.email} soft deleted by {deleted_by}")
