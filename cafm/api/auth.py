from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
import logging

from cafm.api.deps import get_current_user, commit
from cafm.database import get_db
from cafm.mappers import user_to_response
from cafm.models import User
from cafm.schemas import (
    LoginRequest, RefreshTokenRequest, PasswordResetRequest, PasswordResetConfirm, ChangePasswordRequest,
    TokenResponse, ProfileUpdate, FcmTokenUpdate,
)
from cafm.services.auth import AuthService
from cafm.services.users import UserService
from cafm.utils.rate_limiter import limiter, RateLimits, get_client_ip

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/login", response_model=TokenResponse)
@limiter.limit(RateLimits.LOGIN)
async def login(request: Request, credentials: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate with email and password and receive access and refresh tokens."""
    result = AuthService(db, get_client_ip(request)).login(credentials.email, credentials.password)
    commit(db, "record login")
    result["user"] = user_to_response(result["user"])
    return result


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit(RateLimits.REFRESH)
async def refresh_token(request: Request, body: RefreshTokenRequest, db: Session = Depends(get_db)):
    result = AuthService(db).refresh(body.refresh_token)
    commit(db, "rotate refresh token")
    return result


@router.post("/logout")
async def logout(body: RefreshTokenRequest, db: Session = Depends(get_db)):
    revoked = AuthService(db).logout(body.refresh_token)
    commit(db, "logout")
    return {"message": "Logged out", "revoked": revoked}


@router.post("/forgot-password")
@limiter.limit(RateLimits.FORGOT_PASSWORD)
async def forgot_password(request: Request, body: PasswordResetRequest, db: Session = Depends(get_db)):
    message = AuthService(db).request_password_reset(body.email)
    commit(db, "request password reset")
    return {"message": message}


@router.post("/reset-password")
@limiter.limit(RateLimits.RESET_PASSWORD)
async def reset_password(request: Request, body: PasswordResetConfirm, db: Session = Depends(get_db)):
    AuthService(db).reset_password(body.token, body.new_password)
    commit(db, "reset password")
    return {"message": "Password has been reset successfully"}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UserService(db).change_password(current_user, body.current_password, body.new_password)
    AuthService(db).logout_everywhere(current_user)
    commit(db, "change password")
    return {"message": "Password changed successfully"}


@router.get("/me")
async def me(current_user: User = Depends(get_current_user)):
    return user_to_response(current_user)


@router.put("/me")
async def update_me(
    body: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = UserService(db).update_profile(current_user, body.model_dump(exclude_unset=True))
    commit(db, "update profile")
    return user_to_response(user)


@router.put("/me/fcm-token")
async def update_fcm_token(
    body: FcmTokenUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    UserService(db).update_fcm_token(current_user, body.fcm_token)
    commit(db, "update device token")
    return {"message": "Device token updated"}
