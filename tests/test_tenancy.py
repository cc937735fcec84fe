import uuid
from datetime import datetime, timedelta

import pytest

from cafm.enums import CompanyStatus, UserType
from cafm.exceptions import TenantIsolationException, AccessDeniedException
from cafm.models import School
from cafm.repositories.schools import SchoolRepository
from cafm.services.audit import TenantSecurityAuditService
from cafm.tenant.context import TenantContext, SYSTEM_TENANT_ID, tenant_scope
from cafm.tenant.service import TenantContextService

from tests.conftest import make_company, make_school, make_user


# ============ Context holder ============

def test_context_defaults_to_empty():
    TenantContext.clear()
    assert TenantContext.get_current_company_id() is None
    assert not TenantContext.has_tenant()
    with pytest.raises(TenantIsolationException):
        TenantContext.require_current_company_id()


def test_context_accepts_string_ids():
    company_id = uuid.uuid4()
    TenantContext.set_current_company_id(str(company_id))
    assert TenantContext.get_current_company_id() == company_id
    TenantContext.clear()


def test_scoped_tenant_is_restored():
    outer, inner = uuid.uuid4(), uuid.uuid4()
    TenantContext.set_current_company_id(outer)
    with tenant_scope(inner):
        assert TenantContext.get_current_company_id() == inner
    assert TenantContext.get_current_company_id() == outer

    seen = TenantContext.execute_with_tenant(SYSTEM_TENANT_ID, TenantContext.is_system_tenant)
    assert seen is True
    assert TenantContext.get_current_company_id() == outer
    TenantContext.clear()


# ============ Context service ============

def test_validate_tenant_access(db, company):
    service = TenantContextService(db)
    assert service.validate_tenant_access(company.id)
    assert service.validate_tenant_access(SYSTEM_TENANT_ID)
    assert not service.validate_tenant_access(None)
    assert not service.validate_tenant_access(uuid.uuid4())

    suspended = make_company(db, "Suspended Co", status=CompanyStatus.SUSPENDED)
    assert not service.validate_tenant_access(suspended.id)


def test_trial_tenant_is_not_accessible(db):
    trial = make_company(db, "Trial Co", status=CompanyStatus.TRIAL)
    assert not trial.is_accessible
    assert not TenantContextService(db).validate_tenant_access(trial.id)


def test_set_context_for_user(db, company, admin, super_admin):
    service = TenantContextService(db)
    assert service.set_context_for_user(admin) == company.id
    assert TenantContext.get_current_company_id() == company.id
    assert service.get_current_company().id == company.id

    assert service.set_context_for_user(super_admin) == SYSTEM_TENANT_ID
    assert TenantContext.is_system_tenant()


def test_set_context_refuses_inaccessible_company(db):
    with pytest.raises(TenantIsolationException):
        TenantContextService(db).set_tenant_context(uuid.uuid4())
    assert TenantContext.get_current_company_id() is None


def test_only_super_admin_switches_tenant(db, company, admin, super_admin):
    other = make_company(db, "Jeddah Schools", subdomain="jeddah")
    service = TenantContextService(db)
    with pytest.raises(AccessDeniedException):
        service.switch_tenant(admin, other.id)

    audit = TenantSecurityAuditService(db, "10.0.0.5")
    service.set_context_for_user(super_admin)
    service.switch_tenant(super_admin, other.id, audit)
    db.flush()
    assert TenantContext.get_current_company_id() == other.id

    events = audit.get_recent_events(other.id)
    assert len(events) == 1
    assert events[0].ip_address == "10.0.0.5"


def test_belongs_to_current_tenant(db, company, school):
    service = TenantContextService(db)
    assert not service.belongs_to_current_tenant(school)
    TenantContext.set_current_company_id(company.id)
    assert service.belongs_to_current_tenant(school)
    service.clear_tenant_context()
    assert not TenantContext.has_tenant()


# ============ Tenant-aware repository ============

def test_repository_never_crosses_tenants(db, company, school):
    other = make_company(db, "Dammam Schools", subdomain="dammam")
    foreign = make_school(db, other, code="SCH-001", name="Foreign School")
    repository = SchoolRepository(db)

    assert repository.find_by_id_and_company_id(school.id, company.id) is not None
    assert repository.find_by_id_and_company_id(foreign.id, company.id) is None
    assert repository.count_by_company_id(company.id) == 1
    assert repository.find_ids_not_belonging_to_tenant([school.id, foreign.id], company.id) == {foreign.id}
    assert not repository.validate_all_ids_belong_to_tenant([school.id, foreign.id], company.id)


def test_soft_delete_and_restore(db, company, school, admin):
    repository = SchoolRepository(db)
    assert repository.soft_delete_by_id_and_company_id(school.id, company.id, admin.id, "closed") == 1
    assert repository.find_by_id_and_company_id(school.id, company.id) is None
    assert [s.id for s in repository.find_deleted_by_company_id(company.id)] == [school.id]
    assert [s.id for s in repository.find_restorable_by_company_id(company.id)] == [school.id]
    assert repository.find_purge_candidates_by_company_id(company.id) == []
    later = datetime.utcnow() + timedelta(days=91)
    assert [s.id for s in repository.find_purge_candidates_by_company_id(company.id, now=later)] == [school.id]

    stats = repository.get_stats_by_company_id(company.id)
    assert (stats.active_count, stats.deleted_count, stats.total_count) == (0, 1, 1)

    assert repository.restore_by_id_and_company_id(school.id, company.id) == 1
    assert repository.find_by_id_and_company_id(school.id, company.id) is not None


def test_pagination_is_one_based(db, company):
    for i in range(5):
        db.add(School(company_id=company.id, code=f"P-{i}", name=f"School {i}"))
    db.flush()
    page = SchoolRepository(db).find_all_by_company_id(company.id, page=2, size=2)
    assert page.page == 2
    assert page.total == 5
    assert page.pages == 3
    assert len(page.items) == 2
    assert page.has_next and page.has_previous


def test_user_lookup_is_case_insensitive(db, company):
    from cafm.repositories.users import UserRepository

    make_user(db, company, "mixed.case@riyadh-schools.sa", UserType.VIEWER)
    assert UserRepository(db).find_by_email("Mixed.Case@Riyadh-Schools.sa") is not None
