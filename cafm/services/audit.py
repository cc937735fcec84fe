"""
Security audit trail for tenant-sensitive events.

Every event is written to the ``cafm.security.audit`` logger and persisted as
an AuditLog row that commits together with the caller's transaction.
"""
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy.orm import Session

from cafm.enums import AuditEventType, AuditSeverity
from cafm.models import AuditLog
from cafm.repositories.audit import AuditLogRepository
from cafm.tenant.context import TenantContext

audit_logger = logging.getLogger("cafm.security.audit")

_LOG_LEVELS = {
    AuditSeverity.LOW: logging.INFO,
    AuditSeverity.MEDIUM: logging.INFO,
    AuditSeverity.HIGH: logging.WARNING,
    AuditSeverity.CRITICAL: logging.ERROR,
}


class TenantSecurityAuditService:

    def __init__(self, db: Session, ip_address: Optional[str] = None):
        self.db = db
        self.ip_address = ip_address
        self.repository = AuditLogRepository(db)

    def _record(self, event_type: AuditEventType, severity: AuditSeverity, description: str,
                user_id=None, company_id=None, entity_type: Optional[str] = None, entity_id=None,
                details: Optional[Dict[str, Any]] = None) -> AuditLog:
        company_id = company_id or TenantContext.get_current_company_id()
        audit_logger.log(
            _LOG_LEVELS[severity],
            f"[{severity.value}] {event_type.value} company={company_id} user={user_id} {description}",
        )
        entry = AuditLog(
            company_id=company_id,
            user_id=user_id,
            event_type=event_type,
            severity=severity,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            description=description,
            details=details or {},
            ip_address=self.ip_address,
        )
        self.db.add(entry)
        return entry

    def log_tenant_violation(self, user_id, attempted_company_id, entity_type: str, entity_id=None):
        return self._record(
            AuditEventType.TENANT_VIOLATION, AuditSeverity.HIGH,
            f"Tenant violation: access to {entity_type} {entity_id} of company {attempted_company_id}",
            user_id=user_id, entity_type=entity_type, entity_id=entity_id,
            details={"attempted_company_id": str(attempted_company_id)},
        )

    def log_cross_tenant_access(self, user_id, user_company_id, target_company_id, resource: str):
        return self._record(
            AuditEventType.CROSS_TENANT_ACCESS, AuditSeverity.CRITICAL,
            f"Cross-tenant access attempt from {user_company_id} to {target_company_id} on {resource}",
            user_id=user_id, company_id=user_company_id,
            details={"target_company_id": str(target_company_id), "resource": resource},
        )

    def log_tenant_switch(self, user_id, from_company_id, to_company_id):
        return self._record(
            AuditEventType.TENANT_SWITCH, AuditSeverity.MEDIUM,
            f"Tenant switch from {from_company_id} to {to_company_id}",
            user_id=user_id, company_id=to_company_id,
            details={"from": str(from_company_id), "to": str(to_company_id)},
        )

    def log_entity_access(self, user_id, entity_type: str, entity_id, action: str, granted: bool):
        severity = AuditSeverity.LOW if granted else AuditSeverity.HIGH
        outcome = "granted" if granted else "denied"
        return self._record(
            AuditEventType.ENTITY_ACCESS, severity,
            f"Entity access {outcome}: {action} on {entity_type} {entity_id}",
            user_id=user_id, entity_type=entity_type, entity_id=entity_id,
            details={"action": action, "granted": granted},
        )

    def log_authentication(self, email: str, success: bool, user_id=None, company_id=None,
                           reason: Optional[str] = None):
        severity = AuditSeverity.LOW if success else AuditSeverity.MEDIUM
        outcome = "succeeded" if success else "failed"
        description = f"Authentication {outcome} for {email}"
        if reason:
            description += f": {reason}"
        return self._record(
            AuditEventType.AUTHENTICATION, severity, description,
            user_id=user_id, company_id=company_id, details={"email": email, "success": success},
        )

    def log_data_modification(self, user_id, entity_type: str, entity_id, operation: str,
                              changes: Optional[Dict[str, Any]] = None):
        return self._record(
            AuditEventType.DATA_MODIFICATION, AuditSeverity.MEDIUM,
            f"{operation} on {entity_type} {entity_id}",
            user_id=user_id, entity_type=entity_type, entity_id=entity_id,
            details={"operation": operation, "changes": changes or {}},
        )

    def log_bulk_operation(self, user_id, entity_type: str, operation: str, count: int):
        return self._record(
            AuditEventType.BULK_OPERATION, AuditSeverity.MEDIUM,
            f"Bulk {operation} on {count} {entity_type} records",
            user_id=user_id, entity_type=entity_type, details={"operation": operation, "count": count},
        )

    def log_configuration_change(self, user_id, setting: str, old_value=None, new_value=None):
        return self._record(
            AuditEventType.CONFIGURATION_CHANGE, AuditSeverity.MEDIUM,
            f"Configuration change: {setting}",
            user_id=user_id,
            details={"setting": setting, "old": str(old_value), "new": str(new_value)},
        )

    def log_security_incident(self, description: str, severity: AuditSeverity = AuditSeverity.HIGH,
                              user_id=None, details: Optional[Dict[str, Any]] = None):
        return self._record(
            AuditEventType.SECURITY_INCIDENT, severity, description, user_id=user_id, details=details,
        )

    def get_recent_events(self, company_id, limit: int = 50, event_type: Optional[AuditEventType] = None) -> List[AuditLog]:
        return self.repository.find_recent(company_id, limit, event_type)

    def get_events_by_severity(self, company_id, severity: AuditSeverity, limit: int = 50) -> List[AuditLog]:
        return self.repository.find_by_severity(company_id, severity, limit)
