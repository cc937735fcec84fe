"""
Generic tenant-aware repository.

Every query here is filtered by ``company_id`` and, unless a method says
otherwise, excludes soft-deleted rows.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TypeVar, Generic, Type, Optional, List, Iterable, Set

from sqlalchemy.orm import Session, Query

T = TypeVar("T")

RESTORE_WINDOW_DAYS = 30
PURGE_AFTER_DAYS = 90


@dataclass
class Page(Generic[T]):
    items: List[T]
    total: int
    page: int
    size: int

    @property
    def pages(self) -> int:
        if self.size <= 0:
            return 0
        return math.ceil(self.total / self.size)

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


@dataclass
class TenantEntityStats:
    active_count: int
    deleted_count: int
    total_count: int


def paginate(query: Query, page: int = 1, size: int = 20) -> Page:
    page = max(page, 1)
    size = max(size, 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * size).limit(size).all()
    return Page(items=items, total=total, page=page, size=size)


class TenantAwareRepository(Generic[T]):
    """Tenant-filtered CRUD, soft delete/restore and statistics for one model."""

    def __init__(self, model: Type[T], db: Session):
        self.model = model
        self.db = db

    # ============ Query helpers ============

    @property
    def _soft_deletable(self) -> bool:
        return hasattr(self.model, "deleted_at")

    def _tenant_query(self, company_id, include_deleted: bool = False) -> Query:
        query = self.db.query(self.model).filter(self.model.company_id == company_id)
        if self._soft_deletable and not include_deleted:
            query = query.filter(self.model.deleted_at.is_(None))
        return query

    def _deleted_query(self, company_id) -> Query:
        return self.db.query(self.model).filter(
            self.model.company_id == company_id,
            self.model.deleted_at.isnot(None),
        )

    # ============ Basic operations ============

    def get(self, entity_id) -> Optional[T]:
        return self.db.get(self.model, entity_id)

    def add(self, entity: T, flush: bool = True) -> T:
        self.db.add(entity)
        if flush:
            self.db.flush()
        return entity

    def find_by_id_and_company_id(self, entity_id, company_id) -> Optional[T]:
        return self._tenant_query(company_id).filter(self.model.id == entity_id).first()

    def find_all_by_company_id(self, company_id, page: int = 1, size: int = 20) -> Page:
        query = self._tenant_query(company_id).order_by(self.model.created_at.desc())
        return paginate(query, page, size)

    def list_by_company_id(self, company_id) -> List[T]:
        return self._tenant_query(company_id).order_by(self.model.created_at.desc()).all()

    def count_by_company_id(self, company_id) -> int:
        return self._tenant_query(company_id).count()

    def exists_by_id_and_company_id(self, entity_id, company_id) -> bool:
        return self._tenant_query(company_id).filter(self.model.id == entity_id).first() is not None

    # ============ Soft delete / restore ============

    def soft_delete_by_id_and_company_id(self, entity_id, company_id, deleted_by=None, reason=None) -> int:
        return self._tenant_query(company_id).filter(self.model.id == entity_id).update(
            {
                self.model.deleted_at: datetime.utcnow(),
                self.model.deleted_by: deleted_by,
                self.model.deletion_reason: reason,
            },
            synchronize_session="fetch",
        )

    def soft_delete_all_by_ids_and_company_id(self, ids: Iterable, company_id, deleted_by=None, reason=None) -> int:
        ids = list(ids)
        if not ids:
            return 0
        return self._tenant_query(company_id).filter(self.model.id.in_(ids)).update(
            {
                self.model.deleted_at: datetime.utcnow(),
                self.model.deleted_by: deleted_by,
                self.model.deletion_reason: reason,
            },
            synchronize_session="fetch",
        )

    def restore_by_id_and_company_id(self, entity_id, company_id) -> int:
        return self._deleted_query(company_id).filter(self.model.id == entity_id).update(
            {
                self.model.deleted_at: None,
                self.model.deleted_by: None,
                self.model.deletion_reason: None,
            },
            synchronize_session="fetch",
        )

    def find_deleted_by_company_id(self, company_id) -> List[T]:
        return self._deleted_query(company_id).order_by(self.model.deleted_at.desc()).all()

    def find_restorable_by_company_id(self, company_id, now: Optional[datetime] = None) -> List[T]:
        cutoff = (now or datetime.utcnow()) - timedelta(days=RESTORE_WINDOW_DAYS)
        return self._deleted_query(company_id).filter(self.model.deleted_at >= cutoff).all()

    def find_purge_candidates_by_company_id(self, company_id, now: Optional[datetime] = None) -> List[T]:
        cutoff = (now or datetime.utcnow()) - timedelta(days=PURGE_AFTER_DAYS)
        return self._deleted_query(company_id).filter(self.model.deleted_at < cutoff).all()

    # ============ Time windows ============

    def find_by_company_id_and_created_at_between(self, company_id, start: datetime, end: datetime) -> List[T]:
        return (
            self._tenant_query(company_id)
            .filter(self.model.created_at >= start, self.model.created_at <= end)
            .order_by(self.model.created_at.desc())
            .all()
        )

    def find_recently_updated_by_company_id(self, company_id, since: datetime) -> List[T]:
        return (
            self._tenant_query(company_id)
            .filter(self.model.updated_at >= since)
            .order_by(self.model.updated_at.desc())
            .all()
        )

    # ============ Statistics & validation ============

    def get_stats_by_company_id(self, company_id) -> TenantEntityStats:
        total = self._tenant_query(company_id, include_deleted=True).count()
        deleted = self._deleted_query(company_id).count() if self._soft_deletable else 0
        return TenantEntityStats(active_count=total - deleted, deleted_count=deleted, total_count=total)

    def find_ids_not_belonging_to_tenant(self, ids: Iterable, company_id) -> Set:
        wanted = set(ids)
        if not wanted:
            return set()
        found = {
            row[0]
            for row in self.db.query(self.model.id)
            .filter(self.model.company_id == company_id, self.model.id.in_(wanted))
            .all()
        }
        return wanted - found

    def validate_all_ids_belong_to_tenant(self, ids: Iterable, company_id) -> bool:
        return not self.find_ids_not_belonging_to_tenant(ids, company_id)
