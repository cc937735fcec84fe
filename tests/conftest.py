"""
Shared fixtures: an in-memory SQLite database, a seeded company with one
user per role, and a TestClient wired to the same session.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cafm.database import Base, get_db
from cafm.enums import CompanyStatus, SubscriptionPlan, UserType, UserStatus
from cafm.main import app
from cafm.models import Company, User, School, SupervisorSchool
from cafm.services.login_attempts import login_attempt_service
from cafm.tenant.context import TenantContext
from cafm.utils.rate_limiter import limiter
from cafm.utils.security import get_password_hash, create_access_token

PASSWORD = "Zq7#Kv2!Lm9$Rb"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

limiter.enabled = False


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        TenantContext.clear()
        login_attempt_service.reset()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============ Seed data ============

def make_company(db, name="Riyadh Schools Maintenance", plan=SubscriptionPlan.PROFESSIONAL,
                 status=CompanyStatus.ACTIVE, subdomain=None) -> Company:
    company = Company(
        name=name,
        subdomain=subdomain,
        status=status,
        is_active=True,
        subscription_start_date=date.today(),
        subscription_end_date=date.today() + timedelta(days=365),
    )
    company.apply_plan_limits(plan)
    db.add(company)
    db.flush()
    return company


def make_user(db, company, email, user_type=UserType.VIEWER, **fields) -> User:
    values = dict(status=UserStatus.ACTIVE, is_active=True, is_locked=False, email_verified=True)
    values.update(fields)
    user = User(
        email=email,
        password_hash=get_password_hash(PASSWORD),
        company_id=company.id if company else None,
        user_type=user_type,
        **values,
    )
    db.add(user)
    db.flush()
    return user


def make_school(db, company, code="SCH-001", name="Al Noor School", **fields) -> School:
    school = School(company_id=company.id, code=code, name=name, **fields)
    db.add(school)
    db.flush()
    return school


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": user.email, "user_id": user.id, "company_id": user.company_id,
                                 "user_type": user.user_type.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def company(db):
    company = make_company(db)
    db.commit()
    return company


@pytest.fixture
def admin(db, company):
    user = make_user(db, company, "admin@riyadh-schools.sa", UserType.ADMIN, first_name="Huda", last_name="Saleh")
    db.commit()
    return user


@pytest.fixture
def supervisor(db, company):
    user = make_user(db, company, "supervisor@riyadh-schools.sa", UserType.SUPERVISOR, first_name="Omar")
    db.commit()
    return user


@pytest.fixture
def technician(db, company):
    user = make_user(db, company, "tech@riyadh-schools.sa", UserType.TECHNICIAN, first_name="Faisal",
                     hourly_rate=50, is_available_for_assignment=True)
    db.commit()
    return user


@pytest.fixture
def super_admin(db):
    user = make_user(db, None, "root@cafm-platform.sa", UserType.SUPER_ADMIN)
    db.commit()
    return user


@pytest.fixture
def school(db, company):
    school = make_school(db, company, latitude=24.7136, longitude=46.6753, type="PRIMARY", gender="BOYS")
    db.commit()
    return school


@pytest.fixture
def assigned_school(db, company, school, supervisor):
    db.add(SupervisorSchool(company_id=company.id, supervisor_id=supervisor.id, school_id=school.id))
    db.commit()
    return school


@pytest.fixture
def tenant(company):
    """Bind the current tenant for service-level tests."""
    TenantContext.set_current_company_id(company.id)
    yield company
    TenantContext.clear()
