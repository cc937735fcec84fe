from typing import List

from sqlalchemy.orm import Session

from cafm.models import FileUpload
from cafm.repositories.base import TenantAwareRepository


class FileUploadRepository(TenantAwareRepository[FileUpload]):

    def __init__(self, db: Session):
        super().__init__(FileUpload, db)

    def find_by_entity(self, company_id, entity_type: str, entity_id) -> List[FileUpload]:
        return (
            self._tenant_query(company_id)
            .filter(FileUpload.entity_type == entity_type, FileUpload.entity_id == entity_id)
            .order_by(FileUpload.created_at.desc())
            .all()
        )

    def total_size(self, company_id) -> int:
        return sum(f.size_bytes or 0 for f in self._tenant_query(company_id).all())
