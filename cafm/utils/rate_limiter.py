"""
Rate limiting for the CAFM API.

Protects the authentication surface from brute force and reset abuse, and
keeps uploads and exports from hogging the workers:
- Login: 5 attempts per minute per IP
- Token refresh: 10 per minute per IP
- Forgot password: 3 per minute per IP
- File upload: 20 per minute per IP
- Report export: 5 per minute per IP

Usage:
    from cafm.utils.rate_limiter import limiter, RateLimits

    @router.post("/my-endpoint")
    @limiter.limit(RateLimits.UPLOAD)
    async def my_endpoint(request: Request):
        pass

Note: The `request: Request` parameter is REQUIRED for rate-limited endpoints.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from cafm.config import settings
from cafm.exceptions import ErrorCode, error_body

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Get the client IP address from the request.
    Handles cases where the app is behind a proxy/load balancer.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first one
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return get_remote_address(request)


limiter = Limiter(key_func=get_client_ip, enabled=settings.rate_limit_enabled)


class RateLimits:
    """Rate limit configurations for different endpoint types"""

    LOGIN = "5/minute"
    REFRESH = "10/minute"
    FORGOT_PASSWORD = "3/minute"
    RESET_PASSWORD = "5/minute"

    UPLOAD = "20/minute"
    EXPORT = "5/minute"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    limit_info = str(exc.detail) if hasattr(exc, 'detail') else "Rate limit exceeded"

    client_ip = get_client_ip(request)
    logger.warning(f"Rate limit exceeded for IP {client_ip} on {request.url.path}: {limit_info}")

    body = error_body(ErrorCode.RATE_LIMIT_EXCEEDED, "Too many requests. Please try again later.", request.url.path)
    body["limit_info"] = limit_info
    return JSONResponse(
        status_code=429,
        content=body,
        headers={"Retry-After": "60", "X-RateLimit-Limit": limit_info},
    )
