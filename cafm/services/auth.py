"""
Login, token refresh/revocation and password recovery.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session

from cafm.config import settings
from cafm.exceptions import (
    AuthenticationException, AccountLockedException, ValidationException, ErrorCode,
)
from cafm.models import User, RefreshToken
from cafm.repositories.users import UserRepository, RefreshTokenRepository
from cafm.services.audit import TenantSecurityAuditService
from cafm.services.email import email_service
from cafm.services.login_attempts import login_attempt_service, LoginAttemptService
from cafm.services.users import ensure_strong_password
from cafm.utils.security import (
    verify_password, get_password_hash, create_access_token, create_refresh_token,
    decode_token, generate_reset_token, REFRESH_TOKEN,
)

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If the email is registered, a password reset link has been sent"


def token_claims(user: User) -> Dict[str, Any]:
    return {
        "sub": user.email,
        "user_id": user.id,
        "company_id": user.company_id,
        "user_type": user.user_type.value,
    }


class AuthService:

    def __init__(self, db: Session, ip_address: Optional[str] = None,
                 attempts: Optional[LoginAttemptService] = None):
        self.db = db
        self.users = UserRepository(db)
        self.refresh_tokens = RefreshTokenRepository(db)
        self.audit = TenantSecurityAuditService(db, ip_address)
        self.attempts = attempts or login_attempt_service

    def _fail(self, email: str, reason: str, exc: AuthenticationException, user: Optional[User] = None):
        # The audit row must survive the request failing
        self.audit.log_authentication(
            email, False, user_id=user.id if user else None,
            company_id=user.company_id if user else None, reason=reason,
        )
        self.db.commit()
        raise exc

    def login(self, email: str, password: str) -> Dict[str, Any]:
        email = email.strip().lower()
        if self.attempts.is_blocked(email):
            self._fail(email, "blocked", AccountLockedException(
                "Too many failed login attempts. Please try again later."
            ))

        user = self.users.find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            self.attempts.login_failed(email)
            if user is not None:
                user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
            remaining = self.attempts.get_remaining_attempts(email)
            if remaining <= 0:
                exc = AccountLockedException("Too many failed login attempts. Please try again later.")
            else:
                exc = AuthenticationException(f"Invalid credentials. {remaining} attempts remaining.")
            self._fail(email, "invalid credentials", exc, user)

        if not user.is_active:
            self._fail(email, "inactive", AuthenticationException(
                "Account is inactive", error_code=ErrorCode.ACCOUNT_INACTIVE
            ), user)
        if user.is_locked:
            self._fail(email, "locked", AccountLockedException(
                f"Account is locked: {user.lock_reason}" if user.lock_reason else None
            ), user)
        if not user.status.can_login:
            self._fail(email, f"status {user.status.value}", AuthenticationException(
                f"Account status does not allow login: {user.status.display_name}",
                error_code=ErrorCode.ACCOUNT_INACTIVE,
            ), user)

        self.attempts.login_succeeded(email)
        user.failed_login_attempts = 0
        user.last_login_at = datetime.utcnow()

        access_token = create_access_token(token_claims(user))
        refresh_token = self._issue_refresh_token(user)
        self.audit.log_authentication(email, True, user_id=user.id, company_id=user.company_id)
        logger.info(f"User logged in: {email}")
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": settings.access_token_expire_minutes * 60,
            "user": user,
        }

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        payload = decode_token(refresh_token)
        if payload is None or payload.get("type") != REFRESH_TOKEN:
            raise AuthenticationException("Invalid refresh token", error_code=ErrorCode.TOKEN_INVALID)
        stored = self.refresh_tokens.find_valid(refresh_token)
        if stored is None:
            raise AuthenticationException("Refresh token expired or revoked", error_code=ErrorCode.TOKEN_EXPIRED)
        user = stored.user
        if user is None or user.is_deleted or not user.is_active or not user.status.can_login:
            raise AuthenticationException("Account is inactive", error_code=ErrorCode.ACCOUNT_INACTIVE)
        # Each refresh token is single use
        stored.revoked = True
        return {
            "access_token": create_access_token(token_claims(user)),
            "refresh_token": self._issue_refresh_token(user),
            "token_type": "bearer",
            "expires_in": settings.access_token_expire_minutes * 60,
        }

    def _issue_refresh_token(self, user: User) -> str:
        token = create_refresh_token({"sub": user.email, "user_id": user.id})
        self.refresh_tokens.add(RefreshToken(
            token=token,
            user_id=user.id,
            expires_at=datetime.utcnow() + timedelta(days=settings.refresh_token_expire_days),
        ))
        return token

    def logout(self, refresh_token: str) -> bool:
        return self.refresh_tokens.revoke(refresh_token) > 0

    def logout_everywhere(self, user: User) -> int:
        return self.refresh_tokens.revoke_all_for_user(user.id)

    # ============ Password recovery ============

    def request_password_reset(self, email: str) -> str:
        user = self.users.find_by_email(email)
        if user is None or not user.is_active:
            logger.info(f"Password reset requested for unknown or inactive account: {email}")
            return RESET_REQUESTED_MESSAGE
        token = generate_reset_token()
        user.password_reset_token = token
        user.password_reset_expires_at = datetime.utcnow() + timedelta(minutes=settings.password_reset_expire_minutes)
        email_service.send_password_reset(user.email, user.full_name, token)
        return RESET_REQUESTED_MESSAGE

    def reset_password(self, token: str, new_password: str) -> User:
        user = self.users.find_by_reset_token(token)
        if user is None or user.password_reset_expires_at is None \
                or user.password_reset_expires_at < datetime.utcnow():
            raise ValidationException("Invalid or expired reset token")
        ensure_strong_password(new_password, user.email, user.first_name, user.last_name)
        user.password_hash = get_password_hash(new_password)
        user.password_changed_at = datetime.utcnow()
        user.password_reset_token = None
        user.password_reset_expires_at = None
        user.failed_login_attempts = 0
        self.attempts.reset(user.email)
        self.refresh_tokens.revoke_all_for_user(user.id)
        logger.info(f"Password reset completed for {user.email}")
        return user
