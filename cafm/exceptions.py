"""
Domain exceptions and their HTTP mapping.

Services raise these; ``register_exception_handlers`` turns them into JSON
error bodies so routers don't need to translate every failure by hand.
"""
import enum
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(enum.Enum):
    # (code, default message, http status)
    AUTHENTICATION_FAILED = ("AUTH_001", "Authentication failed", status.HTTP_401_UNAUTHORIZED)
    TOKEN_EXPIRED = ("AUTH_002", "Token has expired", status.HTTP_401_UNAUTHORIZED)
    TOKEN_INVALID = ("AUTH_003", "Invalid token", status.HTTP_401_UNAUTHORIZED)
    ACCOUNT_LOCKED = ("AUTH_004", "Account is locked", status.HTTP_423_LOCKED)
    ACCOUNT_INACTIVE = ("AUTH_005", "Account is inactive", status.HTTP_403_FORBIDDEN)
    ACCESS_DENIED = ("AUTHZ_001", "Access denied", status.HTTP_403_FORBIDDEN)
    VALIDATION_FAILED = ("VAL_001", "Validation failed", status.HTTP_400_BAD_REQUEST)
    WEAK_PASSWORD = ("VAL_002", "Password does not meet security requirements", status.HTTP_400_BAD_REQUEST)
    RESOURCE_NOT_FOUND = ("RES_001", "Resource not found", status.HTTP_404_NOT_FOUND)
    DUPLICATE_RESOURCE = ("RES_002", "Resource already exists", status.HTTP_409_CONFLICT)
    DUPLICATE_EMAIL = ("RES_003", "Email already registered", status.HTTP_409_CONFLICT)
    TENANT_ISOLATION_VIOLATION = ("TEN_001", "Tenant isolation violation", status.HTTP_403_FORBIDDEN)
    CROSS_TENANT_ACCESS_DENIED = ("TEN_002", "Cross-tenant access denied", status.HTTP_403_FORBIDDEN)
    TENANT_NOT_FOUND = ("TEN_003", "Tenant not found or inaccessible", status.HTTP_403_FORBIDDEN)
    BUSINESS_RULE_VIOLATION = ("BUS_001", "Business rule violation", 422)
    INVALID_OPERATION_STATE = ("BUS_002", "Operation not allowed in current state", status.HTTP_409_CONFLICT)
    LIMIT_EXCEEDED = ("BUS_003", "Subscription limit exceeded", 422)
    RATE_LIMIT_EXCEEDED = ("SYS_001", "Too many requests", status.HTTP_429_TOO_MANY_REQUESTS)
    STORAGE_ERROR = ("SYS_002", "File storage error", status.HTTP_502_BAD_GATEWAY)
    INTERNAL_SERVER_ERROR = ("SYS_999", "Internal server error", status.HTTP_500_INTERNAL_SERVER_ERROR)

    @property
    def code(self) -> str:
        return self.value[0]

    @property
    def default_message(self) -> str:
        return self.value[1]

    @property
    def http_status(self) -> int:
        return self.value[2]


class CafmException(Exception):
    """Base class for all domain errors"""

    error_code = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: Optional[str] = None, error_code: Optional[ErrorCode] = None,
                 details: Optional[Dict[str, Any]] = None):
        if error_code is not None:
            self.error_code = error_code
        self.message = message or self.error_code.default_message
        self.details = details or {}
        super().__init__(self.message)


class ResourceNotFoundException(CafmException):
    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found" if identifier is None else f"{resource} not found: {identifier}"
        super().__init__(message, details={"resource": resource})


class DuplicateResourceException(CafmException):
    error_code = ErrorCode.DUPLICATE_RESOURCE


class ValidationException(CafmException):
    error_code = ErrorCode.VALIDATION_FAILED


class BusinessRuleException(CafmException):
    error_code = ErrorCode.BUSINESS_RULE_VIOLATION


class InvalidOperationStateException(CafmException):
    error_code = ErrorCode.INVALID_OPERATION_STATE


class TenantIsolationException(CafmException):
    error_code = ErrorCode.TENANT_ISOLATION_VIOLATION


class AccessDeniedException(CafmException):
    error_code = ErrorCode.ACCESS_DENIED


class AuthenticationException(CafmException):
    error_code = ErrorCode.AUTHENTICATION_FAILED


class AccountLockedException(AuthenticationException):
    error_code = ErrorCode.ACCOUNT_LOCKED


class StorageException(CafmException):
    error_code = ErrorCode.STORAGE_ERROR


def error_body(code: ErrorCode, message: str, path: str, details: Optional[dict] = None) -> dict:
    body = {
        "error": code.name,
        "code": code.code,
        "detail": message,
        "timestamp": datetime.utcnow().isoformat(),
        "path": path,
    }
    if details:
        body["details"] = details
    return body


async def cafm_exception_handler(request: Request, exc: CafmException):
    code = exc.error_code
    if code.http_status >= 500:
        logger.error(f"{code.name} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{code.name} on {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if code.http_status == 401 else None
    return JSONResponse(
        status_code=code.http_status,
        content=error_body(code, exc.message, request.url.path, exc.details),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(CafmException, cafm_exception_handler)
