"""
Per-request tenant holder.

The current company id lives in a ContextVar so it follows the request
through sync handlers, async handlers and threadpool workers alike.
"""
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Optional, Callable, TypeVar

from cafm.exceptions import TenantIsolationException

logger = logging.getLogger(__name__)

T = TypeVar("T")

SYSTEM_TENANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

_current_company_id: ContextVar[Optional[uuid.UUID]] = ContextVar("current_company_id", default=None)


def _as_uuid(company_id) -> Optional[uuid.UUID]:
    if company_id is None or isinstance(company_id, uuid.UUID):
        return company_id
    return uuid.UUID(str(company_id))


class TenantContext:
    """Static accessors for the current tenant"""

    @staticmethod
    def set_current_company_id(company_id):
        _current_company_id.set(_as_uuid(company_id))
        logger.debug(f"Tenant context set to {company_id}")

    @staticmethod
    def get_current_company_id() -> Optional[uuid.UUID]:
        return _current_company_id.get()

    @staticmethod
    def has_tenant() -> bool:
        return _current_company_id.get() is not None

    @staticmethod
    def require_current_company_id() -> uuid.UUID:
        company_id = _current_company_id.get()
        if company_id is None:
            raise TenantIsolationException("No tenant context is set for this operation")
        return company_id

    @staticmethod
    def is_system_tenant() -> bool:
        return _current_company_id.get() == SYSTEM_TENANT_ID

    @staticmethod
    def clear():
        _current_company_id.set(None)

    @staticmethod
    def execute_with_tenant(company_id, fn: Callable[[], T]) -> T:
        """Run ``fn`` as ``company_id`` and restore whatever tenant was set before."""
        token = _current_company_id.set(_as_uuid(company_id))
        try:
            return fn()
        finally:
            _current_company_id.reset(token)


@contextmanager
def tenant_scope(company_id):
    token = _current_company_id.set(_as_uuid(company_id))
    try:
        yield company_id
    finally:
        _current_company_id.reset(token)
