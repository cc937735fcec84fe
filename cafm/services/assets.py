"""
Asset registry: lifecycle, assignment, maintenance scheduling and
depreciation.
"""
import logging
import time
from collections import Counter
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from cafm.enums import AssetStatus, AssetCondition, DepreciationMethod, MaintenanceType
from cafm.exceptions import (
    ResourceNotFoundException, DuplicateResourceException, InvalidOperationStateException,
    ValidationException,
)
from cafm.models import Asset, AssetMaintenance, School, User
from cafm.repositories.assets import AssetRepository, AssetMaintenanceRepository
from cafm.repositories.base import Page
from cafm.repositories.schools import SchoolRepository
from cafm.repositories.users import UserRepository
from cafm.repositories.work_orders import WorkOrderRepository
from cafm.tenant.context import TenantContext

logger = logging.getLogger(__name__)

DEFAULT_CODE_PREFIX = "AST"
DEFAULT_USEFUL_LIFE_YEARS = 5
CENTS = Decimal("0.01")

ASSET_FIELDS = (
    "name", "name_ar", "description", "category", "manufacturer", "model", "serial_number", "barcode",
    "purchase_date", "purchase_cost", "supplier", "warranty_end_date", "current_value", "salvage_value",
    "depreciation_method", "useful_life_years", "location", "condition", "maintenance_frequency_days",
    "next_maintenance_date",
)

MAINTENANCE_FIELDS = (
    "description", "labor_hours", "labor_cost", "parts_cost", "external_cost", "next_maintenance_date",
    "recommendations",
)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENTS, rounding=ROUND_HALF_UP)


def _months_between(start: date, end: date) -> int:
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        months -= 1
    return max(months, 0)


def calculate_depreciation(asset: Asset, as_of: Optional[date] = None) -> Decimal:
    """Accumulated depreciation of ``asset`` at ``as_of``.

    Straight line accrues monthly and stops at cost minus salvage. Declining
    balance applies a rate of 2 / useful life once per full year and never
    takes the book value below salvage.
    """
    if asset.purchase_cost is None or asset.purchase_date is None:
        return Decimal("0.00")
    as_of = as_of or date.today()
    cost = _money(asset.purchase_cost)
    salvage = _money(asset.salvage_value)
    years = asset.useful_life_years or DEFAULT_USEFUL_LIFE_YEARS
    months = _months_between(asset.purchase_date, as_of)
    depreciable = max(cost - salvage, Decimal("0"))

    if asset.depreciation_method == DepreciationMethod.DECLINING_BALANCE:
        rate = Decimal(2) / Decimal(years)
        book = cost
        for _ in range(months // 12):
            book = max(book - book * rate, salvage)
        return _money(cost - book)

    monthly = depreciable / Decimal(years * 12)
    return _money(min(monthly * months, depreciable))


def book_value(asset: Asset, as_of: Optional[date] = None) -> Decimal:
    return _money(asset.purchase_cost) - calculate_depreciation(asset, as_of)


class AssetService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = AssetRepository(db)

    def get_asset(self, asset_id) -> Asset:
        company_id = TenantContext.require_current_company_id()
        asset = self.repository.find_by_id_and_company_id(asset_id, company_id)
        if asset is None:
            raise ResourceNotFoundException("Asset", asset_id)
        return asset

    def list_assets(self, status: Optional[AssetStatus] = None, condition: Optional[AssetCondition] = None,
                    category: Optional[str] = None, school_id=None, assigned_to_id=None,
                    search: Optional[str] = None, page: int = 1, size: int = 20) -> Page:
        company_id = TenantContext.require_current_company_id()
        return self.repository.search(company_id, status, condition, category, school_id, assigned_to_id,
                                      search, page, size)

    def generate_asset_code(self, prefix: Optional[str] = None) -> str:
        company_id = TenantContext.require_current_company_id()
        base = f"{(prefix or DEFAULT_CODE_PREFIX).upper()}-{int(time.time() * 1000)}"
        code, suffix = base, 1
        while self.repository.code_exists(company_id, code):
            code = f"{base}-{suffix}"
            suffix += 1
        return code

    def _get_school(self, school_id) -> School:
        school = SchoolRepository(self.db).find_by_id_and_company_id(
            school_id, TenantContext.require_current_company_id()
        )
        if school is None:
            raise ResourceNotFoundException("School", school_id)
        return school

    def _get_user(self, user_id) -> User:
        user = UserRepository(self.db).find_by_id_and_company_id(
            user_id, TenantContext.require_current_company_id()
        )
        if user is None:
            raise ResourceNotFoundException("User", user_id)
        return user

    # ============ Create / update ============

    def create_asset(self, data: Dict[str, Any], created_by=None) -> Asset:
        company_id = TenantContext.require_current_company_id()
        code = (data.get("asset_code") or "").strip() or self.generate_asset_code(data.get("code_prefix"))
        if self.repository.code_exists(company_id, code):
            raise DuplicateResourceException(f"Asset code already exists: {code}")
        serial = data.get("serial_number")
        if serial and self.repository.serial_exists(company_id, serial):
            raise DuplicateResourceException(f"Serial number already exists: {serial}")
        if data.get("school_id"):
            self._get_school(data["school_id"])

        asset = Asset(
            company_id=company_id,
            asset_code=code,
            status=AssetStatus.ACTIVE,
            condition=AssetCondition.GOOD,
            is_active=True,
            created_by=created_by,
            school_id=data.get("school_id"),
        )
        for field in ASSET_FIELDS:
            if data.get(field) is not None:
                setattr(asset, field, data[field])
        if asset.current_value is None and asset.purchase_cost is not None:
            asset.current_value = asset.purchase_cost
        self.repository.add(asset)
        logger.info(f"Asset created: {asset.asset_code} in company {company_id}")
        return asset

    def update_asset(self, asset_id, data: Dict[str, Any], modified_by=None) -> Asset:
        asset = self.get_asset(asset_id)
        serial = data.get("serial_number")
        if serial and serial != asset.serial_number \
                and self.repository.serial_exists(asset.company_id, serial, exclude_id=asset.id):
            raise DuplicateResourceException(f"Serial number already exists: {serial}")
        for field in ASSET_FIELDS:
            if data.get(field) is not None:
                setattr(asset, field, data[field])
        asset.modified_by = modified_by
        return asset

    def change_status(self, asset_id, new_status: AssetStatus) -> Asset:
        asset = self.get_asset(asset_id)
        if asset.status == new_status:
            return asset
        if not asset.status.can_transition_to(new_status):
            raise InvalidOperationStateException(
                f"Cannot change asset status from {asset.status.value} to {new_status.value}"
            )
        asset.status = new_status
        if new_status == AssetStatus.DISPOSED:
            asset.is_active = False
        return asset

    # ============ Assignment & movement ============

    def assign_asset(self, asset_id, user_id) -> Asset:
        asset = self.get_asset(asset_id)
        if not asset.status.is_assignable:
            raise InvalidOperationStateException(f"Asset in status {asset.status.value} cannot be assigned")
        user = self._get_user(user_id)
        asset.assigned_to_id = user.id
        asset.assignment_date = date.today()
        logger.info(f"Asset {asset.asset_code} assigned to {user.email}")
        return asset

    def return_asset(self, asset_id) -> Asset:
        asset = self.get_asset(asset_id)
        if asset.assigned_to_id is None:
            raise InvalidOperationStateException("Asset is not assigned")
        asset.assigned_to_id = None
        asset.assignment_date = None
        return asset

    def transfer_asset(self, asset_id, school_id, location: Optional[str] = None) -> Asset:
        asset = self.get_asset(asset_id)
        if asset.status == AssetStatus.DISPOSED:
            raise InvalidOperationStateException("Disposed assets cannot be transferred")
        school = self._get_school(school_id)
        asset.school_id = school.id
        if location is not None:
            asset.location = location
        logger.info(f"Asset {asset.asset_code} transferred to school {school.code}")
        return asset

    def dispose_asset(self, asset_id, method: str, value=None, reason: Optional[str] = None,
                      disposal_date: Optional[date] = None) -> Asset:
        asset = self.get_asset(asset_id)
        if asset.status == AssetStatus.DISPOSED:
            raise InvalidOperationStateException("Asset is already disposed")
        asset.status = AssetStatus.DISPOSED
        asset.is_active = False
        asset.disposal_method = method
        asset.disposal_value = value
        asset.disposal_reason = reason
        asset.disposal_date = disposal_date or date.today()
        asset.assigned_to_id = None
        logger.info(f"Asset {asset.asset_code} disposed ({method})")
        return asset

    # ============ Maintenance ============

    def record_maintenance(self, asset_id, maintenance_date: Optional[date] = None,
                           condition: Optional[AssetCondition] = None, details: Optional[Dict[str, Any]] = None,
                           recorded_by=None) -> AssetMaintenance:
        """Add a visit to the asset's history and roll its dates, condition and cost forward."""
        asset = self.get_asset(asset_id)
        if asset.status == AssetStatus.DISPOSED:
            raise InvalidOperationStateException("Cannot record maintenance on a disposed asset")
        maintenance_date = maintenance_date or date.today()
        if maintenance_date > date.today():
            raise ValidationException("Maintenance date cannot be in the future")
        details = details or {}

        record = AssetMaintenance(
            company_id=asset.company_id,
            asset_id=asset.id,
            maintenance_date=maintenance_date,
            maintenance_type=details.get("maintenance_type") or MaintenanceType.PREVENTIVE,
            condition_after=condition,
            created_by=recorded_by,
        )
        for field in MAINTENANCE_FIELDS:
            if details.get(field) is not None:
                setattr(record, field, details[field])
        if details.get("performed_by_id"):
            record.performed_by_id = self._get_user(details["performed_by_id"]).id
        if details.get("work_order_id"):
            work_order = WorkOrderRepository(self.db).find_by_id_and_company_id(
                details["work_order_id"], asset.company_id
            )
            if work_order is None:
                raise ResourceNotFoundException("Work order", details["work_order_id"])
            record.work_order_id = work_order.id
        if record.next_maintenance_date is None and asset.maintenance_frequency_days:
            record.next_maintenance_date = maintenance_date + timedelta(days=asset.maintenance_frequency_days)
        AssetMaintenanceRepository(self.db).add(record)

        asset.last_maintenance_date = maintenance_date
        if record.next_maintenance_date is not None:
            asset.next_maintenance_date = record.next_maintenance_date
        if condition is not None:
            asset.condition = condition
        asset.total_maintenance_cost = _money(asset.total_maintenance_cost) + _money(record.total_cost)
        if asset.status == AssetStatus.MAINTENANCE:
            asset.status = AssetStatus.ACTIVE
        asset.modified_by = recorded_by
        logger.info(f"{record.maintenance_type.value} maintenance recorded for asset {asset.asset_code}")
        return record

    def get_maintenance_history(self, asset_id) -> List[AssetMaintenance]:
        asset = self.get_asset(asset_id)
        return AssetMaintenanceRepository(self.db).find_by_asset(asset.company_id, asset.id)

    def schedule_maintenance(self, asset_id, scheduled_date: date) -> Asset:
        asset = self.get_asset(asset_id)
        if scheduled_date < date.today():
            raise ValidationException("Maintenance cannot be scheduled in the past")
        asset.next_maintenance_date = scheduled_date
        return asset

    def find_assets_due_for_maintenance(self, days_ahead: int = 7) -> List[Asset]:
        return self.repository.find_due_for_maintenance(TenantContext.require_current_company_id(), days_ahead)

    # ============ Valuation ============

    def get_depreciation(self, asset_id, as_of: Optional[date] = None) -> Dict[str, Any]:
        asset = self.get_asset(asset_id)
        accumulated = calculate_depreciation(asset, as_of)
        return {
            "asset_id": asset.id,
            "method": (asset.depreciation_method or DepreciationMethod.STRAIGHT_LINE).value,
            "purchase_cost": _money(asset.purchase_cost),
            "salvage_value": _money(asset.salvage_value),
            "accumulated_depreciation": accumulated,
            "book_value": _money(asset.purchase_cost) - accumulated,
        }

    def update_asset_values(self, as_of: Optional[date] = None) -> int:
        assets = self.repository.find_depreciable(TenantContext.require_current_company_id())
        for asset in assets:
            asset.current_value = book_value(asset, as_of)
        logger.info(f"Recalculated current value of {len(assets)} assets")
        return len(assets)

    def get_asset_statistics(self) -> Dict[str, Any]:
        assets = self.repository.list_by_company_id(TenantContext.require_current_company_id())
        return {
            "total_assets": len(assets),
            "active_assets": sum(1 for a in assets if a.is_active),
            "by_status": dict(Counter(a.status.value for a in assets)),
            "by_condition": dict(Counter(a.condition.value for a in assets if a.condition)),
            "total_purchase_cost": sum((_money(a.purchase_cost) for a in assets), Decimal("0.00")),
            "total_current_value": sum((_money(a.current_value) for a in assets), Decimal("0.00")),
            "assigned_assets": sum(1 for a in assets if a.assigned_to_id),
            "maintenance_due": sum(1 for a in assets if a.is_maintenance_due),
            "under_warranty": sum(1 for a in assets if a.is_under_warranty),
        }

    def delete_asset(self, asset_id, deleted_by=None, reason: Optional[str] = None):
        asset = self.get_asset(asset_id)
        asset.soft_delete(deleted_by, reason)
        logger.info(f"Asset {asset.asset_code} soft deleted by {deleted_by}")
