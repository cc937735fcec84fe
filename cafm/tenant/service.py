import logging
from typing import Optional

from sqlalchemy.orm import Session

from cafm.config import settings
from cafm.database import apply_tenant_setting
from cafm.exceptions import TenantIsolationException, AccessDeniedException, ErrorCode
from cafm.enums import UserType
from cafm.models import Company, User
from cafm.tenant.context import TenantContext, SYSTEM_TENANT_ID

logger = logging.getLogger(__name__)


class TenantContextService:
    """Validates and switches the tenant for the current request."""

    def __init__(self, db: Session):
        self.db = db

    def validate_tenant_access(self, company_id) -> bool:
        if company_id is None:
            return False
        if company_id == SYSTEM_TENANT_ID:
            return True
        company = self.db.get(Company, company_id)
        return company is not None and company.is_accessible

    def set_tenant_context(self, company_id):
        if not self.validate_tenant_access(company_id):
            logger.warning(f"Refused tenant context for inaccessible company {company_id}")
            raise TenantIsolationException(
                f"Company {company_id} is not accessible", error_code=ErrorCode.TENANT_NOT_FOUND
            )
        TenantContext.set_current_company_id(company_id)
        if settings.enable_rls:
            apply_tenant_setting(self.db, company_id)

    def set_context_for_user(self, user: User):
        company_id = user.company_id or SYSTEM_TENANT_ID
        self.set_tenant_context(company_id)
        return company_id

    def switch_tenant(self, user: User, company_id, audit=None):
        """Super admins may act on behalf of another company."""
        if user.user_type != UserType.SUPER_ADMIN:
            raise AccessDeniedException("Only super administrators can switch tenants")
        previous = TenantContext.get_current_company_id()
        self.set_tenant_context(company_id)
        if audit is not None:
            audit.log_tenant_switch(user.id, previous, company_id)
        logger.info(f"User {user.email} switched tenant {previous} -> {company_id}")
        return company_id

    def belongs_to_current_tenant(self, entity) -> bool:
        current = TenantContext.get_current_company_id()
        if current is None:
            return False
        return getattr(entity, "company_id", None) == current

    def get_current_company(self) -> Optional[Company]:
        company_id = TenantContext.get_current_company_id()
        if company_id is None:
            return None
        return self.db.get(Company, company_id)

    def clear_tenant_context(self):
        TenantContext.clear()
        if settings.enable_rls:
            apply_tenant_setting(self.db, None)
