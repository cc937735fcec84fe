"""
Company (tenant) lifecycle: registration, status changes, subscriptions
and resource limits.
"""
import calendar
import logging
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from cafm.enums import CompanyStatus, SubscriptionPlan, UserType
from cafm.exceptions import (
    ResourceNotFoundException, DuplicateResourceException, InvalidOperationStateException,
    BusinessRuleException,
)
from cafm.models import Company
from cafm.repositories.base import Page
from cafm.repositories.companies import CompanyRepository
from cafm.repositories.schools import SchoolRepository
from cafm.repositories.users import UserRepository

logger = logging.getLogger(__name__)

TRIAL_DAYS = 30

UPDATABLE_FIELDS = (
    "name", "display_name", "domain", "subdomain", "contact_email", "contact_phone",
    "primary_contact_name", "industry", "country", "city", "address", "postal_code",
    "tax_number", "commercial_registration", "timezone", "locale", "currency",
    "settings", "features",
)


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class CompanyService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = CompanyRepository(db)

    def get_company(self, company_id) -> Company:
        company = self.repository.get(company_id)
        if company is None:
            raise ResourceNotFoundException("Company", company_id)
        return company

    def list_companies(self, search: Optional[str] = None, status: Optional[CompanyStatus] = None,
                       page: int = 1, size: int = 20) -> Page:
        return self.repository.search(search, status, page, size)

    def _check_domains(self, domain: Optional[str], subdomain: Optional[str], exclude_id=None):
        if self.repository.domain_taken(domain, exclude_id):
            raise DuplicateResourceException(f"Domain already in use: {domain}")
        if self.repository.subdomain_taken(subdomain, exclude_id):
            raise DuplicateResourceException(f"Subdomain already in use: {subdomain}")

    def create_company(self, data: Dict[str, Any], created_by=None) -> Company:
        self._check_domains(data.get("domain"), data.get("subdomain"))
        plan = data.pop("subscription_plan", None) or SubscriptionPlan.FREE

        company = Company(**{k: v for k, v in data.items() if k in UPDATABLE_FIELDS})
        company.created_by = created_by
        company.apply_plan_limits(plan)
        today = date.today()
        company.subscription_start_date = today
        if plan.is_free:
            company.status = CompanyStatus.TRIAL
            company.subscription_end_date = today + timedelta(days=TRIAL_DAYS)
        else:
            company.status = CompanyStatus.PENDING_SETUP
        company.is_active = True
        self.repository.add(company)
        logger.info(f"Company created: {company.name} ({company.id}) on plan {plan.value}")
        return company

    def update_company(self, company_id, data: Dict[str, Any], modified_by=None) -> Company:
        company = self.get_company(company_id)
        self._check_domains(data.get("domain"), data.get("subdomain"), exclude_id=company.id)
        for field, value in data.items():
            if field in UPDATABLE_FIELDS and value is not None:
                setattr(company, field, value)
        company.modified_by = modified_by
        return company

    def change_status(self, company_id, target: CompanyStatus) -> Company:
        company = self.get_company(company_id)
        if company.status == target:
            return company
        if not company.status.can_transition_to(target):
            raise InvalidOperationStateException(
                f"Cannot change company status from {company.status.value} to {target.value}"
            )
        previous = company.status
        company.status = target
        company.is_active = target != CompanyStatus.INACTIVE
        logger.info(f"Company {company.id} status {previous.value} -> {target.value}")
        return company

    def activate_company(self, company_id) -> Company:
        return self.change_status(company_id, CompanyStatus.ACTIVE)

    def deactivate_company(self, company_id) -> Company:
        return self.change_status(company_id, CompanyStatus.INACTIVE)

    def suspend_company(self, company_id, reason: Optional[str] = None) -> Company:
        company = self.change_status(company_id, CompanyStatus.SUSPENDED)
        company.settings = {**(company.settings or {}), "suspension_reason": reason}
        logger.warning(f"Company {company.id} suspended: {reason}")
        return company

    def delete_company(self, company_id, deleted_by=None, reason: Optional[str] = None):
        company = self.get_company(company_id)
        company.soft_delete(deleted_by, reason)
        company.is_active = False
        logger.info(f"Company {company.id} soft deleted by {deleted_by}")

    # ============ Subscription ============

    def upgrade_subscription(self, company_id, plan: SubscriptionPlan, end_date: Optional[date] = None) -> Company:
        company = self.get_company(company_id)
        if not plan.is_upgrade_from(company.subscription_plan):
            raise BusinessRuleException(
                f"{plan.value} is not an upgrade from {company.subscription_plan.value}"
            )
        company.apply_plan_limits(plan)
        company.subscription_start_date = date.today()
        company.subscription_end_date = end_date or _add_months(date.today(), 12)
        if company.status in (CompanyStatus.TRIAL, CompanyStatus.PENDING_SETUP):
            company.status = CompanyStatus.ACTIVE
        return company

    def change_subscription(self, company_id, plan: SubscriptionPlan, end_date: Optional[date] = None) -> Company:
        """Set a plan regardless of direction; downgrades must still fit current usage."""
        company = self.get_company(company_id)
        if plan.is_downgrade_from(company.subscription_plan):
            users = UserRepository(self.db).count_by_company_id(company.id)
            schools = SchoolRepository(self.db).count_by_company_id(company.id)
            if users > plan.max_users or schools > plan.max_schools:
                raise BusinessRuleException(f"Current usage exceeds the limits of plan {plan.value}")
        company.apply_plan_limits(plan)
        if end_date:
            company.subscription_end_date = end_date
        return company

    def extend_subscription(self, company_id, additional_months: int) -> Company:
        if additional_months <= 0:
            raise BusinessRuleException("Extension must be at least one month")
        company = self.get_company(company_id)
        base = company.subscription_end_date
        if base is None or base < date.today():
            base = date.today()
        company.subscription_end_date = _add_months(base, additional_months)
        return company

    def find_expiring_subscriptions(self, days_ahead: int = 30) -> List[Company]:
        return self.repository.find_expiring(days_ahead)

    # ============ Limits & statistics ============

    def can_add_users(self, company_id, count: int = 1) -> bool:
        company = self.get_company(company_id)
        current = UserRepository(self.db).count_by_company_id(company.id)
        return current + count <= (company.max_users or 0)

    def can_add_schools(self, company_id, count: int = 1) -> bool:
        company = self.get_company(company_id)
        current = SchoolRepository(self.db).count_by_company_id(company.id)
        return current + count <= (company.max_schools or 0)

    def update_resource_limits(self, company_id, max_users: Optional[int] = None,
                               max_schools: Optional[int] = None, max_supervisors: Optional[int] = None,
                               max_technicians: Optional[int] = None) -> Company:
        company = self.get_company(company_id)
        for field, value in (("max_users", max_users), ("max_schools", max_schools),
                             ("max_supervisors", max_supervisors), ("max_technicians", max_technicians)):
            if value is not None:
                if value < 0:
                    raise BusinessRuleException(f"{field} cannot be negative")
                setattr(company, field, value)
        return company

    def get_company_statistics(self, company_id) -> Dict[str, Any]:
        company = self.get_company(company_id)
        users = UserRepository(self.db)
        by_type = users.count_by_type(company.id)
        total_users = sum(by_type.values())
        total_schools = SchoolRepository(self.db).count_by_company_id(company.id)

        def usage(current: int, limit: Optional[int]) -> float:
            return round(current * 100.0 / limit, 1) if limit else 0.0

        return {
            "company_id": company.id,
            "total_users": total_users,
            "users_by_type": by_type,
            "total_schools": total_schools,
            "supervisors": by_type.get(UserType.SUPERVISOR.value, 0),
            "technicians": by_type.get(UserType.TECHNICIAN.value, 0),
            "user_usage_percent": usage(total_users, company.max_users),
            "school_usage_percent": usage(total_schools, company.max_schools),
            "subscription_plan": company.subscription_plan.value,
            "subscription_active": company.is_subscription_active,
        }

    def check_domain_availability(self, domain: Optional[str], subdomain: Optional[str]) -> Dict[str, Any]:
        return {
            "domain": domain,
            "domain_available": not self.repository.domain_taken(domain) if domain else None,
            "subdomain": subdomain,
            "subdomain_available": not self.repository.subdomain_taken(subdomain) if subdomain else None,
        }
