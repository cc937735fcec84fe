from decimal import Decimal

import pytest

from cafm.enums import (
    ReportStatus, ReportPriority, WorkOrderStatus, WorkOrderPriority, AssetStatus, AssetCondition,
    CompanyStatus, SubscriptionPlan, UserStatus, UserType,
)
from cafm.utils.validators import (
    validate_strong_password, is_strong_password, is_valid_arabic_text, is_valid_plate_number,
    normalize_plate_number, is_valid_iqama_id, contains_personal_info,
)


# ============ Enums ============

def test_from_db_value_is_case_tolerant():
    assert ReportStatus.from_db_value("IN_PROGRESS") is ReportStatus.IN_PROGRESS
    assert ReportStatus.from_db_value("in_progress") is ReportStatus.IN_PROGRESS
    assert UserType.from_db_value("admin") is UserType.ADMIN
    assert ReportStatus.from_db_value(None) is None


def test_from_db_value_rejects_unknown():
    with pytest.raises(ValueError):
        AssetStatus.from_db_value("melted")


def test_report_transitions():
    assert ReportStatus.DRAFT.can_transition_to(ReportStatus.SUBMITTED)
    assert ReportStatus.SUBMITTED.can_transition_to(ReportStatus.REJECTED)
    assert ReportStatus.REJECTED.can_transition_to(ReportStatus.DRAFT)
    assert ReportStatus.PENDING.can_transition_to(ReportStatus.IN_PROGRESS)
    assert not ReportStatus.DRAFT.can_transition_to(ReportStatus.APPROVED)
    assert not ReportStatus.COMPLETED.can_transition_to(ReportStatus.IN_PROGRESS)
    assert not ReportStatus.CANCELLED.can_transition_to(ReportStatus.DRAFT)


def test_report_status_flags():
    assert ReportStatus.DRAFT.is_editable and ReportStatus.REJECTED.is_editable
    assert not ReportStatus.SUBMITTED.is_editable
    assert ReportStatus.LATE_COMPLETED.is_final
    assert ReportStatus.LATE.is_active


def test_report_priority_sla_days():
    assert ReportPriority.CRITICAL.sla_days == 1
    assert ReportPriority.URGENT.sla_days == 2
    assert ReportPriority.HIGH.sla_days == 7
    assert ReportPriority.MEDIUM.sla_days == 14
    assert ReportPriority.LOW.sla_days == 30
    assert ReportPriority.URGENT.requires_immediate_action


def test_work_order_priority_from_report_priority():
    assert WorkOrderPriority.from_report_priority(ReportPriority.CRITICAL) is WorkOrderPriority.EMERGENCY
    assert WorkOrderPriority.from_report_priority(ReportPriority.URGENT) is WorkOrderPriority.HIGH
    assert WorkOrderPriority.from_report_priority(ReportPriority.HIGH) is WorkOrderPriority.HIGH
    assert WorkOrderPriority.from_report_priority(ReportPriority.MEDIUM) is WorkOrderPriority.MEDIUM
    assert WorkOrderPriority.from_report_priority(ReportPriority.LOW) is WorkOrderPriority.LOW
    assert WorkOrderPriority.EMERGENCY.response_hours == 4
    assert WorkOrderPriority.SCHEDULED.response_hours is None


def test_work_order_status_flags():
    assert WorkOrderStatus.ASSIGNED.can_start_work
    assert WorkOrderStatus.ON_HOLD.can_start_work
    assert not WorkOrderStatus.PENDING.can_start_work
    assert WorkOrderStatus.VERIFIED.is_final


def test_asset_transitions():
    assert AssetStatus.ACTIVE.can_transition_to(AssetStatus.MAINTENANCE)
    assert AssetStatus.RETIRED.can_transition_to(AssetStatus.ACTIVE)
    assert not AssetStatus.RETIRED.can_transition_to(AssetStatus.MAINTENANCE)
    assert not AssetStatus.DISPOSED.can_transition_to(AssetStatus.ACTIVE)
    # Statuses without a rule are unrestricted
    assert AssetStatus.LOST.can_transition_to(AssetStatus.ACTIVE)


def test_asset_condition_scores():
    assert AssetCondition.from_score(95) is AssetCondition.EXCELLENT
    assert AssetCondition.from_score(70) is AssetCondition.GOOD
    assert AssetCondition.from_score(50) is AssetCondition.FAIR
    assert AssetCondition.from_score(30) is AssetCondition.POOR
    assert AssetCondition.from_score(10) is AssetCondition.UNUSABLE
    assert AssetCondition.POOR.needs_maintenance
    assert not AssetCondition.GOOD.needs_maintenance


def test_company_status_rules():
    assert CompanyStatus.PENDING_SETUP.can_transition_to(CompanyStatus.ACTIVE)
    assert not CompanyStatus.ACTIVE.can_transition_to(CompanyStatus.PENDING_SETUP)


def test_subscription_plans():
    assert SubscriptionPlan.BASIC.is_upgrade_from(SubscriptionPlan.FREE)
    assert SubscriptionPlan.FREE.is_downgrade_from(SubscriptionPlan.ENTERPRISE)
    assert SubscriptionPlan.FREE.max_users == 10
    assert SubscriptionPlan.BASIC.annual_price() == Decimal("99") * 12 * Decimal("0.8")


def test_user_status_login():
    assert UserStatus.ACTIVE.can_login
    assert not UserStatus.PENDING_VERIFICATION.can_login
    assert UserStatus.LOCKED.requires_admin_action


# ============ Validators ============

def test_strong_password_accepted():
    assert is_strong_password("Zq7#Kv2!Lm9$Rb")
    assert validate_strong_password(None) == []


@pytest.mark.parametrize("password, rule", [
    ("Sh0rt!x", "at least 12"),
    ("zq7#kv2!lm9$rb", "uppercase"),
    ("Zq7xKv2yLm9wRb", "special"),
    ("Zq7#Kv2!Lm123$", "sequential numbers"),
    ("Zq7#Kv2!Lmaaa$Rb", "repeated"),
    ("Zq7#Password!Rb", "common"),
])
def test_weak_passwords_report_the_broken_rule(password, rule):
    violations = validate_strong_password(password)
    assert any(rule in v for v in violations)


def test_personal_info_detection():
    assert contains_personal_info("omar2024!X", email="omar@example.com")
    assert contains_personal_info("Xx-saleh-99", name="Huda Saleh")
    assert not contains_personal_info("Zq7#Kv2!Lm9$Rb", username="huda")


def test_arabic_text():
    assert is_valid_arabic_text("مدرسة النور")
    assert not is_valid_arabic_text("Al Noor School")
    assert is_valid_arabic_text("مدرسة Al Noor", allow_mixed=True)
    assert is_valid_arabic_text("", allow_empty=True)
    assert not is_valid_arabic_text("")


def test_plate_numbers():
    assert is_valid_plate_number("1234 ABC")
    assert is_valid_plate_number("abc 1234")
    assert is_valid_plate_number("77")
    assert is_valid_plate_number(None)
    assert not is_valid_plate_number("AB-12")
    assert normalize_plate_number("  12   abc ") == "12 ABC"


def test_iqama_ids():
    assert is_valid_iqama_id("1000000008")
    assert is_valid_iqama_id("2000000006")
    assert not is_valid_iqama_id("1000000001")
    assert not is_valid_iqama_id("3000000004")
    assert not is_valid_iqama_id("10000008")
    assert is_valid_iqama_id("")
