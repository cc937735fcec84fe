from datetime import date, timedelta
from typing import Optional, List

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from cafm.enums import AssetStatus, AssetCondition
from cafm.models import Asset, AssetMaintenance
from cafm.repositories.base import TenantAwareRepository, Page, paginate


class AssetRepository(TenantAwareRepository[Asset]):

    def __init__(self, db: Session):
        super().__init__(Asset, db)

    def code_exists(self, company_id, asset_code: str, exclude_id=None) -> bool:
        query = self._tenant_query(company_id, include_deleted=True).filter(Asset.asset_code == asset_code)
        if exclude_id:
            query = query.filter(Asset.id != exclude_id)
        return query.first() is not None

    def serial_exists(self, company_id, serial_number: str, exclude_id=None) -> bool:
        query = self._tenant_query(company_id).filter(Asset.serial_number == serial_number)
        if exclude_id:
            query = query.filter(Asset.id != exclude_id)
        return query.first() is not None

    def find_by_code(self, company_id, asset_code: str) -> Optional[Asset]:
        return self._tenant_query(company_id).filter(Asset.asset_code == asset_code).first()

    def search(self, company_id, status: Optional[AssetStatus] = None, condition: Optional[AssetCondition] = None,
               category: Optional[str] = None, school_id=None, assigned_to_id=None, search: Optional[str] = None,
               page: int = 1, size: int = 20) -> Page:
        query = self._tenant_query(company_id)
        if status:
            query = query.filter(Asset.status == status)
        if condition:
            query = query.filter(Asset.condition == condition)
        if category:
            query = query.filter(Asset.category == category)
        if school_id:
            query = query.filter(Asset.school_id == school_id)
        if assigned_to_id:
            query = query.filter(Asset.assigned_to_id == assigned_to_id)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(or_(
                func.lower(Asset.name).like(term),
                func.lower(Asset.asset_code).like(term),
                func.lower(Asset.serial_number).like(term),
                func.lower(Asset.barcode).like(term),
            ))
        return paginate(query.order_by(Asset.created_at.desc()), page, size)

    def find_due_for_maintenance(self, company_id, days_ahead: int = 7, today: Optional[date] = None) -> List[Asset]:
        horizon = (today or date.today()) + timedelta(days=days_ahead)
        return (
            self._tenant_query(company_id)
            .filter(
                Asset.is_active.is_(True),
                Asset.next_maintenance_date.isnot(None),
                Asset.next_maintenance_date <= horizon,
            )
            .order_by(Asset.next_maintenance_date)
            .all()
        )

    def find_depreciable(self, company_id) -> List[Asset]:
        return (
            self._tenant_query(company_id)
            .filter(Asset.is_active.is_(True), Asset.purchase_cost.isnot(None), Asset.purchase_date.isnot(None))
            .all()
        )


class AssetMaintenanceRepository(TenantAwareRepository[AssetMaintenance]):

    def __init__(self, db: Session):
        super().__init__(AssetMaintenance, db)

    def find_by_asset(self, company_id, asset_id) -> List[AssetMaintenance]:
        return (
            self._tenant_query(company_id)
            .filter(AssetMaintenance.asset_id == asset_id)
            .order_by(AssetMaintenance.maintenance_date.desc(), AssetMaintenance.created_at.desc())
            .all()
        )
