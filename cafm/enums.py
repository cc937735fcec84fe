"""
Domain enumerations.

Every enum value is the string stored in the database. Legacy rows may carry
a different case, so lookups go through ``from_db_value``.
"""
import enum
from decimal import Decimal
from typing import Optional


class DbEnum(str, enum.Enum):
    """String enum persisted by value with tolerant lookup."""

    @property
    def db_value(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        return self.name.replace("_", " ").title()

    @classmethod
    def from_db_value(cls, value):
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for member in cls:
            if member.value == text:
                return member
        lowered = text.lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Unknown {cls.__name__}: {value}")


# ============ Users & Companies ============

class UserType(DbEnum):
    VIEWER = "VIEWER"
    TECHNICIAN = "TECHNICIAN"
    SUPERVISOR = "SUPERVISOR"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"

    @property
    def is_admin(self) -> bool:
        return self in (UserType.ADMIN, UserType.SUPER_ADMIN)

    @property
    def can_manage_reports(self) -> bool:
        return self in (UserType.SUPERVISOR, UserType.ADMIN, UserType.SUPER_ADMIN)

    @property
    def can_perform_maintenance(self) -> bool:
        return self in (UserType.TECHNICIAN, UserType.SUPERVISOR)


class UserStatus(DbEnum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    LOCKED = "LOCKED"
    ARCHIVED = "ARCHIVED"

    @property
    def can_login(self) -> bool:
        return self == UserStatus.ACTIVE

    @property
    def is_temporary(self) -> bool:
        return self in (UserStatus.PENDING_VERIFICATION, UserStatus.INACTIVE)

    @property
    def requires_admin_action(self) -> bool:
        return self in (UserStatus.SUSPENDED, UserStatus.LOCKED)


class CompanyStatus(DbEnum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    TRIAL = "TRIAL"
    PENDING_SETUP = "PENDING_SETUP"

    def can_transition_to(self, target: "CompanyStatus") -> bool:
        return target in _COMPANY_TRANSITIONS.get(self, ())


_COMPANY_TRANSITIONS = {
    CompanyStatus.PENDING_SETUP: (CompanyStatus.ACTIVE, CompanyStatus.TRIAL, CompanyStatus.INACTIVE),
    CompanyStatus.TRIAL: (CompanyStatus.ACTIVE, CompanyStatus.SUSPENDED, CompanyStatus.INACTIVE),
    CompanyStatus.ACTIVE: (CompanyStatus.SUSPENDED, CompanyStatus.INACTIVE),
    CompanyStatus.SUSPENDED: (CompanyStatus.ACTIVE, CompanyStatus.INACTIVE),
    CompanyStatus.INACTIVE: (CompanyStatus.ACTIVE, CompanyStatus.TRIAL),
}


class SubscriptionPlan(DbEnum):
    FREE = "FREE"
    BASIC = "BASIC"
    PROFESSIONAL = "PROFESSIONAL"
    ENTERPRISE = "ENTERPRISE"

    @property
    def limits(self) -> dict:
        return dict(_PLAN_LIMITS[self])

    @property
    def monthly_price(self) -> Decimal:
        return _PLAN_LIMITS[self]["price"]

    @property
    def max_users(self) -> int:
        return _PLAN_LIMITS[self]["max_users"]

    @property
    def max_schools(self) -> int:
        return _PLAN_LIMITS[self]["max_schools"]

    @property
    def max_supervisors(self) -> int:
        return _PLAN_LIMITS[self]["max_supervisors"]

    @property
    def max_technicians(self) -> int:
        return _PLAN_LIMITS[self]["max_technicians"]

    @property
    def max_storage_gb(self) -> int:
        return _PLAN_LIMITS[self]["max_storage_gb"]

    @property
    def is_free(self) -> bool:
        return self == SubscriptionPlan.FREE

    def annual_price(self, discount_percent: int = 20) -> Decimal:
        yearly = self.monthly_price * 12
        return yearly * (Decimal(100) - Decimal(discount_percent)) / Decimal(100)

    def _rank(self) -> int:
        return list(SubscriptionPlan).index(self)

    def is_upgrade_from(self, other: "SubscriptionPlan") -> bool:
        return self._rank() > other._rank()

    def is_downgrade_from(self, other: "SubscriptionPlan") -> bool:
        return self._rank() < other._rank()


_PLAN_LIMITS = {
    SubscriptionPlan.FREE: {
        "price": Decimal("0"), "max_users": 10, "max_schools": 5,
        "max_supervisors": 3, "max_technicians": 15, "max_storage_gb": 1,
    },
    SubscriptionPlan.BASIC: {
        "price": Decimal("99"), "max_users": 25, "max_schools": 10,
        "max_supervisors": 8, "max_technicians": 40, "max_storage_gb": 5,
    },
    SubscriptionPlan.PROFESSIONAL: {
        "price": Decimal("299"), "max_users": 100, "max_schools": 50,
        "max_supervisors": 25, "max_technicians": 150, "max_storage_gb": 20,
    },
    SubscriptionPlan.ENTERPRISE: {
        "price": Decimal("999"), "max_users": 500, "max_schools": 200,
        "max_supervisors": 100, "max_technicians": 1000, "max_storage_gb": 100,
    },
}


# ============ Reports ============

class ReportStatus(DbEnum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    COMPLETED = "completed"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    LATE = "late"
    LATE_COMPLETED = "late_completed"

    @property
    def is_editable(self) -> bool:
        return self in (ReportStatus.DRAFT, ReportStatus.REJECTED)

    @property
    def is_active(self) -> bool:
        return self in (ReportStatus.IN_PROGRESS, ReportStatus.PENDING, ReportStatus.LATE)

    @property
    def is_final(self) -> bool:
        return self in (
            ReportStatus.COMPLETED, ReportStatus.RESOLVED, ReportStatus.CLOSED,
            ReportStatus.CANCELLED, ReportStatus.LATE_COMPLETED,
        )

    def can_transition_to(self, target: "ReportStatus") -> bool:
        return target in _REPORT_TRANSITIONS.get(self, ())


_REPORT_TRANSITIONS = {
    ReportStatus.DRAFT: (ReportStatus.SUBMITTED, ReportStatus.CANCELLED),
    ReportStatus.SUBMITTED: (ReportStatus.IN_REVIEW, ReportStatus.APPROVED, ReportStatus.REJECTED, ReportStatus.CANCELLED),
    ReportStatus.IN_REVIEW: (ReportStatus.APPROVED, ReportStatus.REJECTED, ReportStatus.CANCELLED),
    ReportStatus.APPROVED: (ReportStatus.IN_PROGRESS, ReportStatus.CANCELLED),
    ReportStatus.REJECTED: (ReportStatus.DRAFT, ReportStatus.SUBMITTED, ReportStatus.CANCELLED),
    ReportStatus.IN_PROGRESS: (ReportStatus.PENDING, ReportStatus.COMPLETED, ReportStatus.CANCELLED),
    ReportStatus.PENDING: (ReportStatus.IN_PROGRESS, ReportStatus.CANCELLED),
}


class ReportPriority(DbEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"

    @property
    def sla_days(self) -> int:
        return _REPORT_SLA_DAYS[self]

    @property
    def requires_immediate_action(self) -> bool:
        return self in (ReportPriority.URGENT, ReportPriority.CRITICAL)


_REPORT_SLA_DAYS = {
    ReportPriority.LOW: 30,
    ReportPriority.MEDIUM: 14,
    ReportPriority.HIGH: 7,
    ReportPriority.URGENT: 2,
    ReportPriority.CRITICAL: 1,
}


# ============ Work Orders ============

class WorkOrderStatus(DbEnum):
    DRAFT = "draft"
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    VERIFIED = "verified"

    @property
    def is_editable(self) -> bool:
        return self in (WorkOrderStatus.DRAFT, WorkOrderStatus.PENDING, WorkOrderStatus.ASSIGNED)

    @property
    def is_active(self) -> bool:
        return self in (WorkOrderStatus.ASSIGNED, WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.ON_HOLD)

    @property
    def is_final(self) -> bool:
        return self in (WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED, WorkOrderStatus.VERIFIED)

    @property
    def can_start_work(self) -> bool:
        return self in (WorkOrderStatus.ASSIGNED, WorkOrderStatus.ON_HOLD)


class WorkOrderPriority(DbEnum):
    EMERGENCY = "emergency"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    SCHEDULED = "scheduled"

    @property
    def sort_order(self) -> int:
        return _WO_PRIORITY_META[self][0]

    @property
    def response_hours(self) -> Optional[int]:
        return _WO_PRIORITY_META[self][1]

    @property
    def is_critical(self) -> bool:
        return self in (WorkOrderPriority.EMERGENCY, WorkOrderPriority.HIGH)

    @classmethod
    def from_report_priority(cls, priority: ReportPriority) -> "WorkOrderPriority":
        return {
            ReportPriority.CRITICAL: cls.EMERGENCY,
            ReportPriority.URGENT: cls.HIGH,
            ReportPriority.HIGH: cls.HIGH,
            ReportPriority.MEDIUM: cls.MEDIUM,
            ReportPriority.LOW: cls.LOW,
        }.get(priority, cls.MEDIUM)


_WO_PRIORITY_META = {
    WorkOrderPriority.EMERGENCY: (1, 4),
    WorkOrderPriority.HIGH: (2, 24),
    WorkOrderPriority.MEDIUM: (3, 72),
    WorkOrderPriority.LOW: (4, 168),
    WorkOrderPriority.SCHEDULED: (5, None),
}


# ============ Assets ============

class AssetStatus(DbEnum):
    ACTIVE = "ACTIVE"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    MAINTENANCE_REQUIRED = "MAINTENANCE_REQUIRED"
    RETIRED = "RETIRED"
    DISPOSED = "DISPOSED"
    LOST = "LOST"
    RESERVED = "RESERVED"
    DAMAGED = "DAMAGED"

    @property
    def is_assignable(self) -> bool:
        return self in (AssetStatus.ACTIVE, AssetStatus.RESERVED)

    def can_transition_to(self, target: "AssetStatus") -> bool:
        if self not in _ASSET_TRANSITIONS:
            return True
        return target in _ASSET_TRANSITIONS[self]


_ASSET_TRANSITIONS = {
    AssetStatus.ACTIVE: (AssetStatus.RESERVED, AssetStatus.MAINTENANCE, AssetStatus.RETIRED, AssetStatus.DISPOSED),
    AssetStatus.RESERVED: (AssetStatus.ACTIVE, AssetStatus.MAINTENANCE, AssetStatus.DISPOSED),
    AssetStatus.MAINTENANCE: (AssetStatus.ACTIVE, AssetStatus.RESERVED, AssetStatus.DISPOSED),
    AssetStatus.RETIRED: (AssetStatus.ACTIVE, AssetStatus.DISPOSED),
    AssetStatus.DISPOSED: (),
}


class AssetCondition(DbEnum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    UNUSABLE = "UNUSABLE"

    @property
    def score(self) -> int:
        return _CONDITION_SCORES[self]

    @property
    def needs_maintenance(self) -> bool:
        return self in (AssetCondition.FAIR, AssetCondition.POOR, AssetCondition.UNUSABLE)

    @classmethod
    def from_score(cls, score: int) -> "AssetCondition":
        if score >= 90:
            return cls.EXCELLENT
        if score >= 70:
            return cls.GOOD
        if score >= 50:
            return cls.FAIR
        if score >= 30:
            return cls.POOR
        return cls.UNUSABLE


_CONDITION_SCORES = {
    AssetCondition.EXCELLENT: 100,
    AssetCondition.GOOD: 80,
    AssetCondition.FAIR: 60,
    AssetCondition.POOR: 40,
    AssetCondition.UNUSABLE: 20,
}


class DepreciationMethod(DbEnum):
    STRAIGHT_LINE = "STRAIGHT_LINE"
    DECLINING_BALANCE = "DECLINING_BALANCE"


class MaintenanceType(DbEnum):
    PREVENTIVE = "PREVENTIVE"
    CORRECTIVE = "CORRECTIVE"
    INSPECTION = "INSPECTION"
    CALIBRATION = "CALIBRATION"


# ============ Attendance ============

class AttendanceStatus(DbEnum):
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    VERIFIED = "VERIFIED"
    ABSENT = "ABSENT"
    LATE = "LATE"


# ============ Notifications ============

class NotificationType(DbEnum):
    WORK_ORDER_ASSIGNED = "WORK_ORDER_ASSIGNED"
    WORK_ORDER_COMPLETED = "WORK_ORDER_COMPLETED"
    WORK_ORDER_CANCELLED = "WORK_ORDER_CANCELLED"
    WORK_ORDER_OVERDUE = "WORK_ORDER_OVERDUE"
    REPORT_SUBMITTED = "REPORT_SUBMITTED"
    REPORT_STATUS_UPDATE = "REPORT_STATUS_UPDATE"
    REPORT_APPROVED = "REPORT_APPROVED"
    REPORT_REJECTED = "REPORT_REJECTED"
    URGENT_ALERT = "URGENT_ALERT"
    SAFETY_ALERT = "SAFETY_ALERT"
    EMERGENCY_NOTIFICATION = "EMERGENCY_NOTIFICATION"
    SYSTEM_MAINTENANCE = "SYSTEM_MAINTENANCE"
    DAILY_SUMMARY = "DAILY_SUMMARY"
    WEEKLY_REPORT = "WEEKLY_REPORT"
    REMINDER = "REMINDER"
    ACCOUNT_UPDATE = "ACCOUNT_UPDATE"
    PASSWORD_RESET = "PASSWORD_RESET"
    LOGIN_ALERT = "LOGIN_ALERT"
    GENERAL_INFO = "GENERAL_INFO"
    ANNOUNCEMENT = "ANNOUNCEMENT"
    UPDATE_AVAILABLE = "UPDATE_AVAILABLE"

    @property
    def is_urgent(self) -> bool:
        return self in (
            NotificationType.URGENT_ALERT, NotificationType.SAFETY_ALERT,
            NotificationType.EMERGENCY_NOTIFICATION, NotificationType.WORK_ORDER_OVERDUE,
        )

    @property
    def requires_action(self) -> bool:
        return self in (
            NotificationType.WORK_ORDER_ASSIGNED, NotificationType.WORK_ORDER_OVERDUE,
            NotificationType.REPORT_REJECTED, NotificationType.PASSWORD_RESET,
            NotificationType.SAFETY_ALERT,
        )


# ============ Security audit ============

class AuditEventType(DbEnum):
    TENANT_VIOLATION = "TENANT_VIOLATION"
    CROSS_TENANT_ACCESS = "CROSS_TENANT_ACCESS"
    TENANT_SWITCH = "TENANT_SWITCH"
    ENTITY_ACCESS = "ENTITY_ACCESS"
    AUTHENTICATION = "AUTHENTICATION"
    DATA_MODIFICATION = "DATA_MODIFICATION"
    BULK_OPERATION = "BULK_OPERATION"
    CONFIGURATION_CHANGE = "CONFIGURATION_CHANGE"
    SECURITY_INCIDENT = "SECURITY_INCIDENT"


class AuditSeverity(DbEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
