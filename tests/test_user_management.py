import pytest

from cafm.enums import UserType, UserStatus
from cafm.exceptions import ValidationException
from cafm.services.auth import AuthService
from reset_password import create_super_admin, reset_password, list_super_admins

from tests.conftest import make_user

NEW_PASSWORD = "Vt4@Np8&Qs3*Wd"


def test_create_super_admin(db):
    assert create_super_admin(db, "Owner@cafm-platform.sa", NEW_PASSWORD)
    admins = list_super_admins(db)
    assert [a.email for a in admins] == ["owner@cafm-platform.sa"]
    assert admins[0].company_id is None
    assert admins[0].user_type == UserType.SUPER_ADMIN

    assert not create_super_admin(db, "owner@cafm-platform.sa", NEW_PASSWORD)


def test_create_super_admin_requires_strong_password(db):
    with pytest.raises(ValidationException):
        create_super_admin(db, "owner@cafm-platform.sa", "admin123")


def test_reset_password_unlocks_account(db, company):
    user = make_user(db, company, "locked.out@riyadh-schools.sa", UserType.ADMIN,
                     is_locked=True, status=UserStatus.LOCKED, failed_login_attempts=5)
    db.commit()
    assert reset_password(db, user.email, NEW_PASSWORD)
    assert not user.is_locked
    assert user.status == UserStatus.ACTIVE
    assert AuthService(db).login(user.email, NEW_PASSWORD)["access_token"]

    assert not reset_password(db, "missing@riyadh-schools.sa", NEW_PASSWORD)
