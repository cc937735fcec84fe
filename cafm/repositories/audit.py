from typing import List, Optional

from sqlalchemy.orm import Session

from cafm.enums import AuditSeverity, AuditEventType
from cafm.models import AuditLog


class AuditLogRepository:

    def __init__(self, db: Session):
        self.db = db

    def add(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        self.db.flush()
        return entry

    def find_recent(self, company_id, limit: int = 50, event_type: Optional[AuditEventType] = None) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.company_id == company_id)
        if event_type:
            query = query.filter(AuditLog.event_type == event_type)
        return query.order_by(AuditLog.created_at.desc()).limit(limit).all()

    def find_by_severity(self, company_id, severity: AuditSeverity, limit: int = 50) -> List[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.company_id == company_id, AuditLog.severity == severity)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
            .all()
        )
