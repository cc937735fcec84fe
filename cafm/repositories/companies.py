from datetime import date, timedelta
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cafm.enums import CompanyStatus
from cafm.models import Company
from cafm.repositories.base import Page, paginate


class CompanyRepository:
    """Companies are the tenants themselves, so nothing here is tenant-filtered."""

    def __init__(self, db: Session):
        self.db = db

    def _active(self):
        return self.db.query(Company).filter(Company.deleted_at.is_(None))

    def get(self, company_id) -> Optional[Company]:
        return self._active().filter(Company.id == company_id).first()

    def add(self, company: Company) -> Company:
        self.db.add(company)
        self.db.flush()
        return company

    def find_by_domain(self, domain: str) -> Optional[Company]:
        return self._active().filter(func.lower(Company.domain) == domain.lower()).first()

    def find_by_subdomain(self, subdomain: str) -> Optional[Company]:
        return self._active().filter(func.lower(Company.subdomain) == subdomain.lower()).first()

    def domain_taken(self, domain: Optional[str], exclude_id=None) -> bool:
        if not domain:
            return False
        query = self.db.query(Company.id).filter(func.lower(Company.domain) == domain.lower())
        if exclude_id:
            query = query.filter(Company.id != exclude_id)
        return query.first() is not None

    def subdomain_taken(self, subdomain: Optional[str], exclude_id=None) -> bool:
        if not subdomain:
            return False
        query = self.db.query(Company.id).filter(func.lower(Company.subdomain) == subdomain.lower())
        if exclude_id:
            query = query.filter(Company.id != exclude_id)
        return query.first() is not None

    def find_by_status(self, status: CompanyStatus) -> List[Company]:
        return self._active().filter(Company.status == status).all()

    def search(self, search: Optional[str] = None, status: Optional[CompanyStatus] = None,
               page: int = 1, size: int = 20) -> Page:
        query = self._active()
        if status:
            query = query.filter(Company.status == status)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(Company.name).like(term),
                func.lower(Company.domain).like(term),
                func.lower(Company.contact_email).like(term),
            ))
        return paginate(query.order_by(Company.created_at.desc()), page, size)

    def find_expiring(self, days_ahead: int, today: Optional[date] = None) -> List[Company]:
        today = today or date.today()
        return (
            self._active()
            .filter(
                Company.subscription_end_date.isnot(None),
                Company.subscription_end_date >= today,
                Company.subscription_end_date <= today + timedelta(days=days_ahead),
            )
            .order_by(Company.subscription_end_date)
            .all()
        )

    def find_expired(self, today: Optional[date] = None) -> List[Company]:
        today = today or date.today()
        return (
            self._active()
            .filter(Company.subscription_end_date.isnot(None), Company.subscription_end_date < today)
            .all()
        )
