import secrets
import string
import logging
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt, JWTError
from passlib.context import CryptContext

from cafm.config import settings
from cafm.utils.validators import is_strong_password

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


# Password
def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def generate_temporary_password(length: int = 16) -> str:
    """Random password that passes the strong password rules"""
    alphabet = string.ascii_letters + string.digits + "!@#$%^&*-_=+"
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if is_strong_password(candidate):
            return candidate


def generate_reset_token() -> str:
    return secrets.token_urlsafe(48)


# JWT
def _encode(data: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = {k: (str(v) if v is not None and not isinstance(v, (str, int, float, bool)) else v)
                 for k, v in data.items()}
    now = datetime.utcnow()
    to_encode.update({"exp": now + expires_delta, "iat": now, "type": token_type, "jti": secrets.token_hex(8)})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    expires_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(data, ACCESS_TOKEN, expires_delta)


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    expires_delta = expires_delta or timedelta(days=settings.refresh_token_expire_days)
    return _encode(data, REFRESH_TOKEN, expires_delta)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        logger.debug(f"Token rejected: {e}")
        return None


def verify_token(token: str, token_type: str = ACCESS_TOKEN) -> Optional[str]:
    """Return the subject (email) of a valid token of the given type"""
    payload = decode_token(token)
    if payload is None or payload.get("type") != token_type:
        return None
    return payload.get("sub")
