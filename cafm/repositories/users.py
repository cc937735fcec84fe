from datetime import datetime
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cafm.enums import UserType, UserStatus
from cafm.models import User, RefreshToken
from cafm.repositories.base import TenantAwareRepository, Page, paginate


class UserRepository(TenantAwareRepository[User]):

    def __init__(self, db: Session):
        super().__init__(User, db)

    def find_by_email(self, email: str) -> Optional[User]:
        """Case-insensitive lookup, soft-deleted users excluded"""
        return (
            self.db.query(User)
            .filter(func.lower(User.email) == email.strip().lower(), User.deleted_at.is_(None))
            .first()
        )

    def exists_by_email(self, email: str) -> bool:
        return (
            self.db.query(User.id).filter(func.lower(User.email) == email.strip().lower()).first()
            is not None
        )

    def find_by_reset_token(self, token: str) -> Optional[User]:
        return self.db.query(User).filter(User.password_reset_token == token).first()

    def search(self, company_id, user_type: Optional[UserType] = None, status: Optional[UserStatus] = None,
               search: Optional[str] = None, page: int = 1, size: int = 20) -> Page:
        query = self._tenant_query(company_id)
        if user_type:
            query = query.filter(User.user_type == user_type)
        if status:
            query = query.filter(User.status == status)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(User.email).like(term),
                func.lower(User.first_name).like(term),
                func.lower(User.last_name).like(term),
                func.lower(User.employee_id).like(term),
            ))
        return paginate(query.order_by(User.created_at.desc()), page, size)

    def find_by_type(self, company_id, user_type: UserType) -> List[User]:
        return self._tenant_query(company_id).filter(User.user_type == user_type).all()

    def find_available_technicians(self, company_id) -> List[User]:
        candidates = (
            self._tenant_query(company_id)
            .filter(
                User.user_type == UserType.TECHNICIAN,
                User.is_available_for_assignment.is_(True),
                User.status == UserStatus.ACTIVE,
            )
            .order_by(User.first_name)
            .all()
        )
        return [u for u in candidates if u.can_be_assigned()]

    def count_by_type(self, company_id) -> dict:
        rows = (
            self._tenant_query(company_id)
            .with_entities(User.user_type, func.count(User.id))
            .group_by(User.user_type)
            .all()
        )
        return {user_type.value: count for user_type, count in rows}

    def count_by_status(self, company_id) -> dict:
        rows = (
            self._tenant_query(company_id)
            .with_entities(User.status, func.count(User.id))
            .group_by(User.status)
            .all()
        )
        return {user_status.value: count for user_status, count in rows}

    def find_admins(self, company_id) -> List[User]:
        return (
            self._tenant_query(company_id)
            .filter(User.user_type.in_([UserType.ADMIN, UserType.SUPER_ADMIN]), User.is_active.is_(True))
            .all()
        )


class RefreshTokenRepository:

    def __init__(self, db: Session):
        self.db = db

    def add(self, token: RefreshToken) -> RefreshToken:
        self.db.add(token)
        self.db.flush()
        return token

    def find_valid(self, token: str) -> Optional[RefreshToken]:
        return (
            self.db.query(RefreshToken)
            .filter(
                RefreshToken.token == token,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > datetime.utcnow(),
            )
            .first()
        )

    def revoke(self, token: str) -> int:
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.token == token, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True}, synchronize_session="fetch")
        )

    def revoke_all_for_user(self, user_id) -> int:
        return (
            self.db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True}, synchronize_session="fetch")
        )
