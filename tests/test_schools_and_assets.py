import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from cafm.enums import AssetStatus, AssetCondition, DepreciationMethod, MaintenanceType, SubscriptionPlan
from cafm.exceptions import (
    BusinessRuleException, DuplicateResourceException, InvalidOperationStateException,
    ResourceNotFoundException, ValidationException, ErrorCode,
)
from cafm.models import Asset
from cafm.services.assets import AssetService, calculate_depreciation
from cafm.services.schools import SchoolService, haversine_km
from cafm.tenant.context import tenant_scope

from tests.conftest import make_company, make_school


# ============ Schools ============

def test_haversine_riyadh_to_jeddah():
    assert haversine_km(24.7136, 46.6753, 21.4858, 39.1925) == pytest.approx(845, abs=10)
    assert haversine_km(24.7136, 46.6753, 24.7136, 46.6753) == 0


def test_create_school_rejects_duplicate_code(db, tenant, school):
    service = SchoolService(db)
    assert not service.is_code_available("SCH-001")
    with pytest.raises(DuplicateResourceException):
        service.create_school({"code": "SCH-001", "name": "Copy"})


def test_create_school_validates_input(db, tenant):
    service = SchoolService(db)
    with pytest.raises(ValidationException):
        service.create_school({"code": "SCH-9", "name": "Bad", "latitude": 95})
    with pytest.raises(ValidationException):
        service.create_school({"code": "SCH-9", "name": "Bad", "name_ar": "No Arabic here"})
    school = service.create_school({"code": " SCH-9 ", "name": "Good", "name_ar": "مدرسة الفجر"})
    assert school.code == "SCH-9"
    assert school.maintenance_score == 100


def test_school_limit_of_plan(db):
    small = make_company(db, "Small Co", plan=SubscriptionPlan.FREE)
    for i in range(5):
        make_school(db, small, code=f"S-{i}")
    with tenant_scope(small.id):
        with pytest.raises(BusinessRuleException) as exc:
            SchoolService(db).create_school({"code": "S-5", "name": "Sixth"})
    assert exc.value.error_code == ErrorCode.LIMIT_EXCEEDED


def test_geo_queries(db, tenant, school):
    make_school(db, tenant, code="JED-1", name="Jeddah School", latitude=21.4858, longitude=39.1925)
    make_school(db, tenant, code="NOGEO", name="No Coordinates")
    service = SchoolService(db)

    nearest = service.find_nearest_schools(24.70, 46.68, limit=5)
    assert [s.code for s, _ in nearest] == ["SCH-001", "JED-1"]
    assert nearest[0][1] < 2

    within = service.find_within_radius(24.70, 46.68, 50)
    assert [s.code for s, _ in within] == ["SCH-001"]


def test_supervisor_assignment(db, tenant, school, supervisor, technician):
    service = SchoolService(db)
    assert [s.id for s in service.get_unassigned_schools()] == [school.id]

    with pytest.raises(BusinessRuleException):
        service.assign_supervisor(school.id, technician.id)

    service.assign_supervisor(school.id, supervisor.id)
    db.flush()
    assert service.get_unassigned_schools() == []
    assert [s.id for s in service.get_schools_by_supervisor(supervisor.id)] == [school.id]
    with pytest.raises(DuplicateResourceException):
        service.assign_supervisor(school.id, supervisor.id)

    service.unassign_supervisor(school.id, supervisor.id)
    db.flush()
    assert service.get_schools_by_supervisor(supervisor.id) == []
    # Re-assigning reactivates the existing link
    link = service.assign_supervisor(school.id, supervisor.id)
    assert link.is_active


def test_critical_maintenance_score(db, tenant, school):
    service = SchoolService(db)
    with pytest.raises(ValidationException):
        service.update_maintenance_score(school.id, 120)
    service.update_maintenance_score(school.id, 35)
    db.flush()
    assert [s.id for s in service.get_schools_with_critical_maintenance()] == [school.id]
    assert service.get_school_statistics()["critical_maintenance"] == 1


def test_schools_of_other_tenants_are_invisible(db, tenant):
    other = make_company(db, "Other Co", subdomain="other")
    foreign = make_school(db, other, code="F-1", name="Foreign")
    with pytest.raises(ResourceNotFoundException):
        SchoolService(db).get_school(foreign.id)


# ============ Depreciation ============

def _asset(**fields):
    values = dict(purchase_date=date(2024, 1, 15), purchase_cost=Decimal("12000"), salvage_value=Decimal("0"),
                  useful_life_years=5, depreciation_method=DepreciationMethod.STRAIGHT_LINE)
    values.update(fields)
    return Asset(**values)


def test_straight_line_depreciation_accrues_monthly():
    asset = _asset()
    assert calculate_depreciation(asset, date(2025, 1, 15)) == Decimal("2400.00")
    assert calculate_depreciation(asset, date(2025, 1, 14)) == Decimal("2200.00")
    assert calculate_depreciation(asset, date(2035, 1, 1)) == Decimal("12000.00")


def test_straight_line_respects_salvage():
    asset = _asset(salvage_value=Decimal("2000"))
    assert calculate_depreciation(asset, date(2040, 1, 1)) == Decimal("10000.00")


def test_declining_balance_depreciation():
    asset = _asset(purchase_cost=Decimal("10000"), salvage_value=Decimal("1000"),
                   depreciation_method=DepreciationMethod.DECLINING_BALANCE)
    assert calculate_depreciation(asset, date(2026, 1, 15)) == Decimal("6400.00")
    assert calculate_depreciation(asset, date(2030, 1, 15)) == Decimal("9000.00")


def test_missing_purchase_data_means_no_depreciation():
    assert calculate_depreciation(_asset(purchase_cost=None)) == Decimal("0.00")


# ============ Asset lifecycle ============

def test_create_asset_generates_code(db, tenant, school):
    service = AssetService(db)
    asset = service.create_asset({"name": "Split AC", "school_id": school.id, "purchase_cost": Decimal("3500"),
                                  "code_prefix": "hvac"})
    assert asset.asset_code.startswith("HVAC-")
    assert asset.status == AssetStatus.ACTIVE
    assert asset.current_value == Decimal("3500")

    with pytest.raises(DuplicateResourceException):
        service.create_asset({"name": "Copy", "asset_code": asset.asset_code})


def test_asset_status_transitions(db, tenant):
    service = AssetService(db)
    asset = service.create_asset({"name": "Projector", "asset_code": "PRJ-1"})
    service.change_status(asset.id, AssetStatus.RETIRED)
    with pytest.raises(InvalidOperationStateException):
        service.change_status(asset.id, AssetStatus.MAINTENANCE)
    service.change_status(asset.id, AssetStatus.ACTIVE)
    assert asset.status == AssetStatus.ACTIVE


def test_assignment_requires_assignable_status(db, tenant, technician):
    service = AssetService(db)
    asset = service.create_asset({"name": "Drill", "asset_code": "DRL-1"})
    service.assign_asset(asset.id, technician.id)
    assert asset.assigned_to_id == technician.id
    assert asset.assignment_date == date.today()

    service.return_asset(asset.id)
    with pytest.raises(InvalidOperationStateException):
        service.return_asset(asset.id)

    service.change_status(asset.id, AssetStatus.MAINTENANCE)
    with pytest.raises(InvalidOperationStateException):
        service.assign_asset(asset.id, technician.id)


def test_dispose_asset(db, tenant, technician):
    service = AssetService(db)
    asset = service.create_asset({"name": "Old Boiler", "asset_code": "BLR-1"})
    service.assign_asset(asset.id, technician.id)
    service.dispose_asset(asset.id, "SCRAP", Decimal("150"), "beyond repair")
    assert asset.status == AssetStatus.DISPOSED
    assert not asset.is_active
    assert asset.assigned_to_id is None
    with pytest.raises(InvalidOperationStateException):
        service.dispose_asset(asset.id, "SCRAP")


def test_record_maintenance_schedules_next_visit(db, tenant):
    service = AssetService(db)
    asset = service.create_asset({"name": "Generator", "asset_code": "GEN-1", "maintenance_frequency_days": 90})
    service.change_status(asset.id, AssetStatus.MAINTENANCE)
    record = service.record_maintenance(asset.id, date(2026, 3, 1), AssetCondition.EXCELLENT)
    assert record.maintenance_type == MaintenanceType.PREVENTIVE
    assert record.condition_after == AssetCondition.EXCELLENT
    assert asset.next_maintenance_date == date(2026, 5, 30)
    assert asset.status == AssetStatus.ACTIVE
    assert asset.condition == AssetCondition.EXCELLENT

    with pytest.raises(ValidationException):
        service.schedule_maintenance(asset.id, date.today() - timedelta(days=1))


def test_maintenance_history_accumulates_cost(db, tenant, technician):
    service = AssetService(db)
    asset = service.create_asset({"name": "Chiller", "asset_code": "CHL-1", "maintenance_frequency_days": 30})
    first = service.record_maintenance(asset.id, date(2026, 1, 10), details={
        "labor_cost": Decimal("200"), "parts_cost": Decimal("50.50"), "performed_by_id": technician.id,
    })
    second = service.record_maintenance(asset.id, date(2026, 2, 1), AssetCondition.FAIR, {
        "maintenance_type": MaintenanceType.CORRECTIVE, "external_cost": Decimal("100"),
        "next_maintenance_date": date(2026, 2, 15), "recommendations": "Replace compressor seals",
    })
    db.flush()

    assert first.total_cost == Decimal("250.50")
    assert first.next_maintenance_date == date(2026, 2, 9)
    assert first.performed_by_id == technician.id
    assert asset.last_maintenance_date == date(2026, 2, 1)
    assert asset.next_maintenance_date == date(2026, 2, 15)
    assert asset.condition == AssetCondition.FAIR
    assert asset.total_maintenance_cost == Decimal("350.50")
    assert [r.id for r in service.get_maintenance_history(asset.id)] == [second.id, first.id]


def test_maintenance_record_rules(db, tenant):
    service = AssetService(db)
    asset = service.create_asset({"name": "Pump", "asset_code": "PMP-1"})
    with pytest.raises(ValidationException):
        service.record_maintenance(asset.id, date.today() + timedelta(days=1))
    with pytest.raises(ResourceNotFoundException):
        service.record_maintenance(asset.id, details={"work_order_id": uuid.uuid4()})

    service.dispose_asset(asset.id, "SCRAP")
    with pytest.raises(InvalidOperationStateException):
        service.record_maintenance(asset.id)



def test_revalue_assets(db, tenant):
    service = AssetService(db)
    asset = service.create_asset({
        "name": "Bus", "asset_code": "BUS-1", "purchase_cost": Decimal("12000"),
        "purchase_date": date(2024, 1, 15), "useful_life_years": 5,
    })
    db.flush()
    assert service.update_asset_values(date(2025, 1, 15)) == 1
    assert asset.current_value == Decimal("9600.00")
    depreciation = service.get_depreciation(asset.id, date(2025, 1, 15))
    assert depreciation["method"] == "STRAIGHT_LINE"
    assert depreciation["book_value"] == Decimal("9600.00")
