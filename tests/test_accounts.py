from datetime import date, timedelta

import pytest

from cafm.enums import CompanyStatus, SubscriptionPlan, UserType, UserStatus
from cafm.exceptions import (
    AuthenticationException, AccountLockedException, AccessDeniedException, BusinessRuleException,
    DuplicateResourceException, InvalidOperationStateException, ValidationException, ErrorCode,
)
from cafm.models import RefreshToken
from cafm.services.auth import AuthService
from cafm.services.companies import CompanyService
from cafm.services.login_attempts import LoginAttemptService
from cafm.services.users import UserService
from cafm.tenant.context import tenant_scope
from cafm.utils.security import verify_password, verify_token

from tests.conftest import PASSWORD, make_company, make_user


# ============ Companies ============

def test_free_company_starts_a_trial(db):
    company = CompanyService(db).create_company({"name": "Qassim Schools", "subdomain": "qassim"})
    assert company.status == CompanyStatus.TRIAL
    assert company.subscription_plan == SubscriptionPlan.FREE
    assert company.subscription_end_date == date.today() + timedelta(days=30)
    assert company.max_users == 10
    assert company.is_subscription_active


def test_paid_company_waits_for_setup(db):
    company = CompanyService(db).create_company({
        "name": "Makkah Schools", "subscription_plan": SubscriptionPlan.BASIC,
    })
    assert company.status == CompanyStatus.PENDING_SETUP
    assert company.max_schools == 10


def test_duplicate_subdomain_is_rejected(db, company):
    service = CompanyService(db)
    service.create_company({"name": "First", "subdomain": "taif"})
    with pytest.raises(DuplicateResourceException):
        service.create_company({"name": "Second", "subdomain": "taif"})
    assert service.check_domain_availability(None, "taif")["subdomain_available"] is False


def test_status_transitions_follow_the_lifecycle(db):
    service = CompanyService(db)
    company = service.create_company({"name": "Tabuk Schools"})
    service.suspend_company(company.id, "unpaid invoice")
    assert company.status == CompanyStatus.SUSPENDED
    assert company.settings["suspension_reason"] == "unpaid invoice"

    with pytest.raises(InvalidOperationStateException):
        service.change_status(company.id, CompanyStatus.PENDING_SETUP)

    service.activate_company(company.id)
    assert company.status == CompanyStatus.ACTIVE
    service.deactivate_company(company.id)
    assert not company.is_active


def test_upgrade_must_raise_the_plan(db, company):
    service = CompanyService(db)
    with pytest.raises(BusinessRuleException):
        service.upgrade_subscription(company.id, SubscriptionPlan.BASIC)

    upgraded = service.upgrade_subscription(company.id, SubscriptionPlan.ENTERPRISE)
    assert upgraded.max_users == 500


def test_trial_upgrade_activates_company(db):
    service = CompanyService(db)
    company = service.create_company({"name": "Hail Schools"})
    service.upgrade_subscription(company.id, SubscriptionPlan.BASIC)
    assert company.status == CompanyStatus.ACTIVE


def test_downgrade_must_fit_usage(db, company):
    for i in range(11):
        make_user(db, company, f"viewer{i}@riyadh-schools.sa")
    with pytest.raises(BusinessRuleException):
        CompanyService(db).change_subscription(company.id, SubscriptionPlan.FREE)


def test_extend_subscription_clamps_month_end(db, company):
    company.subscription_end_date = date(date.today().year + 1, 1, 31)
    service = CompanyService(db)
    service.extend_subscription(company.id, 1)
    assert company.subscription_end_date.month == 2
    assert company.subscription_end_date.day in (28, 29)

    with pytest.raises(BusinessRuleException):
        service.extend_subscription(company.id, 0)


def test_company_statistics(db, company, admin, supervisor, technician, school):
    stats = CompanyService(db).get_company_statistics(company.id)
    assert stats["total_users"] == 3
    assert stats["total_schools"] == 1
    assert stats["technicians"] == 1
    assert stats["user_usage_percent"] == 3.0


# ============ Users ============

def test_create_user_without_password_returns_temporary_one(db, tenant):
    user, temporary = UserService(db).create_user({
        "email": "New.Tech@Riyadh-Schools.sa", "user_type": UserType.TECHNICIAN, "first_name": "Saad",
    })
    assert user.email == "new.tech@riyadh-schools.sa"
    assert temporary
    assert verify_password(temporary, user.password_hash)
    assert user.status == UserStatus.ACTIVE


def test_duplicate_email_is_rejected(db, tenant, admin):
    with pytest.raises(DuplicateResourceException) as exc:
        UserService(db).create_user({"email": "ADMIN@riyadh-schools.sa"})
    assert exc.value.error_code == ErrorCode.DUPLICATE_EMAIL


def test_weak_password_is_rejected(db, tenant):
    with pytest.raises(ValidationException) as exc:
        UserService(db).create_user({"email": "weak@riyadh-schools.sa", "password": "password123"})
    assert exc.value.error_code == ErrorCode.WEAK_PASSWORD


def test_super_admin_cannot_be_created_in_company(db, tenant):
    with pytest.raises(AccessDeniedException):
        UserService(db).create_user({"email": "boss@riyadh-schools.sa", "user_type": UserType.SUPER_ADMIN})


def test_invalid_iqama_is_rejected(db, tenant):
    with pytest.raises(ValidationException):
        UserService(db).create_user({"email": "iqama@riyadh-schools.sa", "iqama_id": "1000000001"})
    user, _ = UserService(db).create_user({"email": "iqama2@riyadh-schools.sa", "iqama_id": "1000000008",
                                           "plate_number": "1234 abc"})
    assert user.plate_number == "1234 ABC"


def test_user_limit_of_plan(db):
    small = make_company(db, "Small Co", plan=SubscriptionPlan.FREE)
    for i in range(10):
        make_user(db, small, f"user{i}@small.sa")
    with tenant_scope(small.id):
        with pytest.raises(BusinessRuleException) as exc:
            UserService(db).create_user({"email": "eleventh@small.sa"})
    assert exc.value.error_code == ErrorCode.LIMIT_EXCEEDED


def test_role_change_respects_type_limit(db):
    small = make_company(db, "Small Co", plan=SubscriptionPlan.FREE)
    small.max_supervisors = 1
    make_user(db, small, "lead@small.sa", UserType.SUPERVISOR)
    viewer = make_user(db, small, "viewer@small.sa")
    with tenant_scope(small.id):
        service = UserService(db)
        with pytest.raises(BusinessRuleException) as exc:
            service.update_user(viewer.id, {"user_type": UserType.SUPERVISOR})
        assert exc.value.error_code == ErrorCode.LIMIT_EXCEEDED
        assert viewer.user_type == UserType.VIEWER

        service.update_user(viewer.id, {"user_type": UserType.TECHNICIAN, "department": "HVAC"})
    assert viewer.user_type == UserType.TECHNICIAN


def test_passwords_must_not_contain_name_or_email(db, tenant, admin):
    service = UserService(db)
    with pytest.raises(ValidationException) as exc:
        service.create_user({"email": "khalid.n@riyadh-schools.sa", "password": "Xk9!Khalid.N#Wz"})
    assert exc.value.error_code == ErrorCode.WEAK_PASSWORD
    assert "name or email" in exc.value.message

    with pytest.raises(ValidationException) as exc:
        service.change_password(admin, PASSWORD, "Zq7#Saleh!Lm9$R")
    assert "name or email" in exc.value.message

    auth = AuthService(db)
    auth.request_password_reset(admin.email)
    db.flush()
    with pytest.raises(ValidationException) as exc:
        auth.reset_password(admin.password_reset_token, "Zq7#Huda!Lm9$Rb")
    assert "name or email" in exc.value.message
    assert verify_password(PASSWORD, admin.password_hash)


def test_lock_and_unlock(db, tenant, technician):
    service = UserService(db)
    service.lock_user(technician.id, "lost badge")
    assert technician.is_locked and technician.status == UserStatus.LOCKED
    service.unlock_user(technician.id)
    assert not technician.is_locked and technician.status == UserStatus.ACTIVE


def test_users_cannot_delete_themselves(db, tenant, admin):
    with pytest.raises(BusinessRuleException):
        UserService(db).delete_user(admin.id, deleted_by=admin.id)


def test_change_password(db, tenant, admin):
    service = UserService(db)
    with pytest.raises(ValidationException):
        service.change_password(admin, "wrong", "Vt4@Np8&Qs3*Wd")
    service.change_password(admin, PASSWORD, "Vt4@Np8&Qs3*Wd")
    assert verify_password("Vt4@Np8&Qs3*Wd", admin.password_hash)


# ============ Authentication ============

def test_login_issues_tokens(db, admin):
    result = AuthService(db, "127.0.0.1").login("Admin@Riyadh-Schools.sa", PASSWORD)
    assert verify_token(result["access_token"]) == admin.email
    assert db.query(RefreshToken).filter(RefreshToken.user_id == admin.id).count() == 1
    assert admin.last_login_at is not None


def test_wrong_password_reports_remaining_attempts(db, admin):
    service = AuthService(db, attempts=LoginAttemptService(max_attempts=5))
    with pytest.raises(AuthenticationException) as exc:
        service.login(admin.email, "nope")
    assert "4 attempts remaining" in exc.value.message
    assert admin.failed_login_attempts == 1


def test_repeated_failures_block_login(db, admin):
    service = AuthService(db, attempts=LoginAttemptService(max_attempts=3))
    for _ in range(2):
        with pytest.raises(AuthenticationException):
            service.login(admin.email, "nope")
    with pytest.raises(AccountLockedException):
        service.login(admin.email, "nope")
    # Even the right password is refused while blocked
    with pytest.raises(AccountLockedException):
        service.login(admin.email, PASSWORD)


def test_inactive_and_locked_accounts_cannot_login(db, company):
    inactive = make_user(db, company, "gone@riyadh-schools.sa", is_active=False)
    locked = make_user(db, company, "locked@riyadh-schools.sa", is_locked=True, lock_reason="audit")
    db.commit()
    service = AuthService(db)
    with pytest.raises(AuthenticationException) as exc:
        service.login(inactive.email, PASSWORD)
    assert exc.value.error_code == ErrorCode.ACCOUNT_INACTIVE
    with pytest.raises(AccountLockedException):
        service.login(locked.email, PASSWORD)


def test_refresh_and_logout(db, admin):
    service = AuthService(db)
    tokens = service.login(admin.email, PASSWORD)
    refreshed = service.refresh(tokens["refresh_token"])
    assert verify_token(refreshed["access_token"]) == admin.email
    assert refreshed["refresh_token"] != tokens["refresh_token"]

    with pytest.raises(AuthenticationException) as exc:
        service.refresh(tokens["refresh_token"])
    assert exc.value.error_code == ErrorCode.TOKEN_EXPIRED
    with pytest.raises(AuthenticationException):
        service.refresh(tokens["access_token"])

    assert service.logout(refreshed["refresh_token"])
    with pytest.raises(AuthenticationException):
        service.refresh(refreshed["refresh_token"])


def test_password_reset_flow(db, admin):
    service = AuthService(db)
    service.request_password_reset(admin.email)
    db.flush()
    token = admin.password_reset_token
    assert token

    with pytest.raises(ValidationException):
        service.reset_password("not-a-token", "Vt4@Np8&Qs3*Wd")

    service.reset_password(token, "Vt4@Np8&Qs3*Wd")
    assert admin.password_reset_token is None
    assert service.login(admin.email, "Vt4@Np8&Qs3*Wd")["access_token"]


def test_reset_request_does_not_reveal_unknown_emails(db):
    message = AuthService(db).request_password_reset("nobody@riyadh-schools.sa")
    assert "If the email is registered" in message
