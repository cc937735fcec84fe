from datetime import date
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
import logging

from cafm.api.deps import get_current_user, require_admin, require_manager, pagination, PageParams, commit
from cafm.database import get_db
from cafm.enums import AssetStatus, AssetCondition
from cafm.mappers import asset_to_response, asset_maintenance_to_response, page_to_response
from cafm.models import User
from cafm.schemas import (
    AssetCreate, AssetUpdate, AssetStatusUpdate, AssetAssignment, AssetTransfer, AssetDisposal,
    MaintenanceRecord, MaintenanceSchedule,
)
from cafm.services.assets import AssetService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_assets(
    asset_status: Optional[AssetStatus] = Query(None, alias="status"),
    condition: Optional[AssetCondition] = None,
    category: Optional[str] = None,
    school_id: Optional[UUID] = None,
    assigned_to_id: Optional[UUID] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page = AssetService(db).list_assets(asset_status, condition, category, school_id, assigned_to_id,
                                        search, params.page, params.size)
    return page_to_response(page, asset_to_response)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_asset(
    body: AssetCreate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).create_asset(body.model_dump(exclude_unset=True), current_user.id)
    commit(db, "create asset")
    return asset_to_response(asset)


@router.get("/maintenance-due")
async def maintenance_due(
    days: int = Query(7, ge=0, le=365),
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return [asset_to_response(a) for a in AssetService(db).find_assets_due_for_maintenance(days)]


@router.get("/statistics")
async def asset_statistics(current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    return AssetService(db).get_asset_statistics()


@router.post("/revalue")
async def revalue_assets(
    as_of: Optional[date] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Recalculate the current value of every depreciable asset."""
    updated = AssetService(db).update_asset_values(as_of)
    commit(db, "revalue assets")
    return {"updated": updated}


@router.get("/{asset_id}")
async def get_asset(asset_id: UUID, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return asset_to_response(AssetService(db).get_asset(asset_id))


@router.put("/{asset_id}")
async def update_asset(
    asset_id: UUID,
    body: AssetUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).update_asset(asset_id, body.model_dump(exclude_unset=True), current_user.id)
    commit(db, "update asset")
    return asset_to_response(asset)


@router.put("/{asset_id}/status")
async def change_asset_status(
    asset_id: UUID,
    body: AssetStatusUpdate,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).change_status(asset_id, body.status)
    commit(db, "change asset status")
    return asset_to_response(asset)


# ============ Custody ============

@router.post("/{asset_id}/assign")
async def assign_asset(
    asset_id: UUID,
    body: AssetAssignment,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).assign_asset(asset_id, body.user_id)
    commit(db, "assign asset")
    return asset_to_response(asset)


@router.post("/{asset_id}/return")
async def return_asset(asset_id: UUID, current_user: User = Depends(require_manager), db: Session = Depends(get_db)):
    asset = AssetService(db).return_asset(asset_id)
    commit(db, "return asset")
    return asset_to_response(asset)


@router.post("/{asset_id}/transfer")
async def transfer_asset(
    asset_id: UUID,
    body: AssetTransfer,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).transfer_asset(asset_id, body.school_id, body.location)
    commit(db, "transfer asset")
    return asset_to_response(asset)


@router.post("/{asset_id}/dispose")
async def dispose_asset(
    asset_id: UUID,
    body: AssetDisposal,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).dispose_asset(asset_id, body.method, body.value, body.reason, body.disposal_date)
    commit(db, "dispose asset")
    return asset_to_response(asset)


# ============ Maintenance and valuation ============

@router.post("/{asset_id}/maintenance", status_code=status.HTTP_201_CREATED)
async def record_maintenance(
    asset_id: UUID,
    body: MaintenanceRecord,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    details = body.model_dump(exclude_unset=True, exclude={"maintenance_date", "condition"})
    record = AssetService(db).record_maintenance(
        asset_id, body.maintenance_date, body.condition, details, current_user.id
    )
    commit(db, "record maintenance")
    return {"maintenance": asset_maintenance_to_response(record), "asset": asset_to_response(record.asset)}


@router.get("/{asset_id}/maintenance")
async def maintenance_history(
    asset_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [asset_maintenance_to_response(r) for r in AssetService(db).get_maintenance_history(asset_id)]


@router.put("/{asset_id}/maintenance/schedule")
async def schedule_maintenance(
    asset_id: UUID,
    body: MaintenanceSchedule,
    current_user: User = Depends(require_manager),
    db: Session = Depends(get_db),
):
    asset = AssetService(db).schedule_maintenance(asset_id, body.scheduled_date)
    commit(db, "schedule maintenance")
    return asset_to_response(asset)


@router.get("/{asset_id}/depreciation")
async def asset_depreciation(
    asset_id: UUID,
    as_of: Optional[date] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return AssetService(db).get_depreciation(asset_id, as_of)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(
    asset_id: UUID,
    reason: Optional[str] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    AssetService(db).delete_asset(asset_id, current_user.id, reason)
    commit(db, "delete asset")
