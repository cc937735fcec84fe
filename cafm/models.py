import uuid
from datetime import datetime, date

from sqlalchemy import (
    Column, Integer, String, DateTime, Text, Boolean, ForeignKey, Float, Date, Numeric,
    UniqueConstraint, Index, JSON, Uuid, BigInteger,
)
from sqlalchemy.orm import relationship, declared_attr

from cafm.database import Base
from cafm.db_types import EnumType
from cafm.enums import (
    UserType, UserStatus, CompanyStatus, SubscriptionPlan, ReportStatus, ReportPriority,
    WorkOrderStatus, WorkOrderPriority, AssetStatus, AssetCondition, DepreciationMethod, MaintenanceType,
    AttendanceStatus, NotificationType, AuditEventType, AuditSeverity,
)


# ============ Mixins ============

class AuditMixin:
    """Primary key, audit timestamps and optimistic lock version"""
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    created_by = Column(Uuid, nullable=True)
    modified_by = Column(Uuid, nullable=True)
    version = Column(Integer, default=0, nullable=False)


class SoftDeleteMixin:
    deleted_at = Column(DateTime, nullable=True, index=True)
    deleted_by = Column(Uuid, nullable=True)
    deletion_reason = Column(String(500), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def soft_delete(self, deleted_by=None, reason=None):
        self.deleted_at = datetime.utcnow()
        self.deleted_by = deleted_by
        self.deletion_reason = reason

    def restore(self):
        self.deleted_at = None
        self.deleted_by = None
        self.deletion_reason = None


class TenantMixin:
    @declared_attr
    def company_id(cls):
        return Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)


# ============ Tenancy ============

class Company(AuditMixin, SoftDeleteMixin, Base):
    """Tenant: every domain row belongs to exactly one company"""
    __tablename__ = "companies"

    name = Column(String(255), nullable=False)
    display_name = Column(String(255))
    domain = Column(String(255), unique=True, nullable=True)
    subdomain = Column(String(100), unique=True, nullable=True)
    contact_email = Column(String(255))
    contact_phone = Column(String(50))
    primary_contact_name = Column(String(255))
    industry = Column(String(100))
    country = Column(String(100), default="Saudi Arabia")
    city = Column(String(100))
    address = Column(Text)
    postal_code = Column(String(20))
    tax_number = Column(String(50))
    commercial_registration = Column(String(50))
    timezone = Column(String(50), default="Asia/Riyadh")
    locale = Column(String(10), default="ar_SA")
    currency = Column(String(3), default="SAR")

    subscription_plan = Column(EnumType(SubscriptionPlan), default=SubscriptionPlan.FREE, nullable=False)
    subscription_start_date = Column(Date)
    subscription_end_date = Column(Date)
    max_users = Column(Integer, default=10)
    max_schools = Column(Integer, default=5)
    max_supervisors = Column(Integer, default=3)
    max_technicians = Column(Integer, default=15)
    max_storage_gb = Column(Integer, default=1)

    status = Column(EnumType(CompanyStatus), default=CompanyStatus.PENDING_SETUP, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    settings = Column(JSON, default=dict)
    features = Column(JSON, default=dict)

    users = relationship("User", back_populates="company")
    schools = relationship("School", back_populates="company")

    @property
    def is_accessible(self) -> bool:
        return bool(self.is_active) and self.status == CompanyStatus.ACTIVE and not self.is_deleted

    @property
    def is_subscription_active(self) -> bool:
        if self.subscription_end_date is None:
            return True
        return self.subscription_end_date >= date.today()

    def apply_plan_limits(self, plan: SubscriptionPlan):
        self.subscription_plan = plan
        self.max_users = plan.max_users
        self.max_schools = plan.max_schools
        self.max_supervisors = plan.max_supervisors
        self.max_technicians = plan.max_technicians
        self.max_storage_gb = plan.max_storage_gb


class User(AuditMixin, SoftDeleteMixin, Base):
    __tablename__ = "users"

    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(50))
    employee_id = Column(String(50))
    iqama_id = Column(String(10))
    plate_number = Column(String(20))

    user_type = Column(EnumType(UserType), default=UserType.VIEWER, nullable=False)
    status = Column(EnumType(UserStatus), default=UserStatus.PENDING_VERIFICATION, nullable=False)
    email_verified = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    is_locked = Column(Boolean, default=False)
    lock_reason = Column(String(500))
    last_login_at = Column(DateTime)
    failed_login_attempts = Column(Integer, default=0)
    password_changed_at = Column(DateTime)
    password_reset_token = Column(String(255), index=True)
    password_reset_expires_at = Column(DateTime)
    fcm_token = Column(String(500))

    department = Column(String(100))
    position = Column(String(100))
    specialization = Column(String(100))
    skill_level = Column(String(50))
    hourly_rate = Column(Numeric(10, 2))
    is_available_for_assignment = Column(Boolean, default=True)

    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True, index=True)
    company = relationship("Company", back_populates="users")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    @property
    def is_verified(self) -> bool:
        return bool(self.email_verified) and self.status == UserStatus.ACTIVE

    def can_be_assigned(self) -> bool:
        return (
            self.user_type == UserType.TECHNICIAN
            and bool(self.is_available_for_assignment)
            and self.is_verified
            and not self.is_locked
        )


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    token = Column(String(1024), unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    revoked = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")


# ============ Schools ============

class School(AuditMixin, SoftDeleteMixin, TenantMixin, Base):
    __tablename__ = "schools"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_school_company_code"),)

    code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    name_ar = Column(String(255))
    type = Column(String(50))
    gender = Column(String(20))
    address = Column(Text)
    city = Column(String(100))
    latitude = Column(Float)
    longitude = Column(Float)
    is_active = Column(Boolean, default=True)
    maintenance_score = Column(Integer, default=100)
    activity_level = Column(String(20), default="MEDIUM")

    company = relationship("Company", back_populates="schools")
    supervisor_links = relationship("SupervisorSchool", back_populates="school")


class SupervisorSchool(AuditMixin, TenantMixin, Base):
    """Assignment of a supervisor to a school"""
    __tablename__ = "supervisor_schools"
    __table_args__ = (UniqueConstraint("supervisor_id", "school_id", name="uq_supervisor_school"),)

    supervisor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    assigned_at = Column(DateTime, default=datetime.utcnow)

    supervisor = relationship("User")
    school = relationship("School", back_populates="supervisor_links")


# ============ Assets ============

class Asset(AuditMixin, SoftDeleteMixin, TenantMixin, Base):
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("company_id", "asset_code", name="uq_asset_company_code"),
        Index("ix_assets_company_serial", "company_id", "serial_number"),
    )

    asset_code = Column(String(100), nullable=False)
    name = Column(String(255), nullable=False)
    name_ar = Column(String(255))
    description = Column(Text)
    category = Column(String(100))
    manufacturer = Column(String(100))
    model = Column(String(100))
    serial_number = Column(String(100))
    barcode = Column(String(100))

    purchase_date = Column(Date)
    purchase_cost = Column(Numeric(12, 2))
    supplier = Column(String(255))
    warranty_end_date = Column(Date)
    current_value = Column(Numeric(12, 2))
    salvage_value = Column(Numeric(12, 2), default=0)
    depreciation_method = Column(EnumType(DepreciationMethod), default=DepreciationMethod.STRAIGHT_LINE)
    useful_life_years = Column(Integer, default=5)

    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=True, index=True)
    location = Column(String(255))
    assigned_to_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    assignment_date = Column(Date)

    status = Column(EnumType(AssetStatus), default=AssetStatus.ACTIVE, nullable=False)
    condition = Column(EnumType(AssetCondition), default=AssetCondition.GOOD)

    maintenance_frequency_days = Column(Integer)
    last_maintenance_date = Column(Date)
    next_maintenance_date = Column(Date)
    total_maintenance_cost = Column(Numeric(12, 2), default=0)

    disposal_date = Column(Date)
    disposal_method = Column(String(100))
    disposal_value = Column(Numeric(12, 2))
    disposal_reason = Column(Text)
    is_active = Column(Boolean, default=True)

    school = relationship("School")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])

    @property
    def is_under_warranty(self) -> bool:
        return self.warranty_end_date is not None and self.warranty_end_date >= date.today()

    @property
    def is_maintenance_due(self) -> bool:
        return self.next_maintenance_date is not None and self.next_maintenance_date <= date.today()


class AssetMaintenance(AuditMixin, TenantMixin, Base):
    """One maintenance visit in an asset's history"""
    __tablename__ = "asset_maintenance"

    asset_id = Column(Uuid, ForeignKey("assets.id"), nullable=False, index=True)
    maintenance_date = Column(Date, nullable=False)
    maintenance_type = Column(EnumType(MaintenanceType), default=MaintenanceType.PREVENTIVE, nullable=False)
    description = Column(Text)
    performed_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    work_order_id = Column(Uuid, ForeignKey("work_orders.id"), nullable=True)

    labor_hours = Column(Numeric(8, 2))
    labor_cost = Column(Numeric(12, 2), default=0)
    parts_cost = Column(Numeric(12, 2), default=0)
    external_cost = Column(Numeric(12, 2), default=0)

    condition_after = Column(EnumType(AssetCondition))
    next_maintenance_date = Column(Date)
    recommendations = Column(Text)

    asset = relationship("Asset")
    performed_by = relationship("User")

    @property
    def total_cost(self):
        return (self.labor_cost or 0) + (self.parts_cost or 0) + (self.external_cost or 0)


# ============ Reports ============

class Report(AuditMixin, SoftDeleteMixin, TenantMixin, Base):
    """Maintenance report raised by a supervisor for a school"""
    __tablename__ = "reports"
    __table_args__ = (UniqueConstraint("company_id", "report_number", name="uq_report_company_number"),)

    report_number = Column(String(50), nullable=False, index=True)
    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=False, index=True)
    supervisor_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    assigned_to_id = Column(Uuid, ForeignKey("users.id"), nullable=True)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    status = Column(EnumType(ReportStatus), default=ReportStatus.DRAFT, nullable=False, index=True)
    priority = Column(EnumType(ReportPriority), default=ReportPriority.MEDIUM, nullable=False)

    reported_date = Column(Date, default=date.today)
    scheduled_date = Column(Date)
    completed_date = Column(Date)
    estimated_cost = Column(Numeric(12, 2))
    actual_cost = Column(Numeric(12, 2))

    building = Column(String(100))
    floor = Column(String(50))
    room_number = Column(String(50))
    location_details = Column(Text)

    school = relationship("School")
    supervisor = relationship("User", foreign_keys=[supervisor_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])

    @property
    def is_overdue(self) -> bool:
        if self.status is None or self.status.is_final or self.scheduled_date is None:
            return False
        return self.scheduled_date < date.today()


# ============ Work Orders ============

class WorkOrder(AuditMixin, SoftDeleteMixin, TenantMixin, Base):
    __tablename__ = "work_orders"
    __table_args__ = (UniqueConstraint("company_id", "work_order_number", name="uq_work_order_company_number"),)

    work_order_number = Column(String(50), nullable=False, index=True)
    report_id = Column(Uuid, ForeignKey("reports.id"), nullable=True)
    assigned_to_id = Column(Uuid, ForeignKey("users.id"), nullable=True, index=True)
    assigned_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    assignment_date = Column(DateTime)

    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(100))
    priority = Column(EnumType(WorkOrderPriority), default=WorkOrderPriority.MEDIUM, nullable=False)
    status = Column(EnumType(WorkOrderStatus), default=WorkOrderStatus.PENDING, nullable=False, index=True)

    scheduled_start = Column(DateTime)
    scheduled_end = Column(DateTime)
    actual_start = Column(DateTime)
    actual_end = Column(DateTime)

    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=True)
    location_details = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)

    estimated_hours = Column(Numeric(8, 2))
    actual_hours = Column(Numeric(8, 2))
    labor_cost = Column(Numeric(12, 2), default=0)
    material_cost = Column(Numeric(12, 2), default=0)
    other_cost = Column(Numeric(12, 2), default=0)

    completion_percentage = Column(Integer, default=0)
    completion_notes = Column(Text)
    signature_url = Column(String(500))
    verified_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime)

    report = relationship("Report")
    school = relationship("School")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    assigned_by = relationship("User", foreign_keys=[assigned_by_id])
    verified_by = relationship("User", foreign_keys=[verified_by_id])
    tasks = relationship("WorkOrderTask", back_populates="work_order", order_by="WorkOrderTask.task_number",
                         cascade="all, delete-orphan")

    @property
    def total_cost(self):
        return (self.labor_cost or 0) + (self.material_cost or 0) + (self.other_cost or 0)

    @property
    def is_overdue(self) -> bool:
        if self.status is None or self.status.is_final or self.scheduled_end is None:
            return False
        return self.scheduled_end < datetime.utcnow()


class WorkOrderTask(AuditMixin, TenantMixin, Base):
    """Checklist item on a work order"""
    __tablename__ = "work_order_tasks"
    __table_args__ = (UniqueConstraint("work_order_id", "task_number", name="uq_work_order_task_number"),)

    work_order_id = Column(Uuid, ForeignKey("work_orders.id"), nullable=False, index=True)
    task_number = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    is_mandatory = Column(Boolean, default=True)
    is_completed = Column(Boolean, default=False)
    estimated_hours = Column(Numeric(8, 2))
    completed_at = Column(DateTime)
    completed_by_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    notes = Column(Text)

    work_order = relationship("WorkOrder", back_populates="tasks")
    completed_by = relationship("User")


# ============ Attendance ============

class SupervisorAttendance(AuditMixin, TenantMixin, Base):
    __tablename__ = "supervisor_attendance"

    supervisor_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    school_id = Column(Uuid, ForeignKey("schools.id"), nullable=False)
    attendance_date = Column(Date, nullable=False, default=date.today, index=True)
    check_in_time = Column(DateTime, nullable=False)
    check_out_time = Column(DateTime)
    check_in_latitude = Column(Float)
    check_in_longitude = Column(Float)
    check_out_latitude = Column(Float)
    check_out_longitude = Column(Float)
    status = Column(EnumType(AttendanceStatus), default=AttendanceStatus.CHECKED_IN, nullable=False)
    work_summary = Column(Text)

    supervisor = relationship("User")
    school = relationship("School")

    @property
    def duration_minutes(self):
        if not self.check_out_time:
            return None
        return int((self.check_out_time - self.check_in_time).total_seconds() // 60)


# ============ Notifications ============

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=True, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text)
    data = Column(JSON)
    notification_type = Column(EnumType(NotificationType), default=NotificationType.GENERAL_INFO)
    read = Column(Boolean, default=False)
    read_at = Column(DateTime)
    sent_push = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    deleted_at = Column(DateTime)
    deleted_by = Column(Uuid)

    user = relationship("User")


# ============ Audit & Files ============

class AuditLog(Base):
    """Persisted security audit event"""
    __tablename__ = "audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=True, index=True)
    user_id = Column(Uuid, nullable=True)
    event_type = Column(EnumType(AuditEventType), nullable=False)
    severity = Column(EnumType(AuditSeverity), nullable=False)
    entity_type = Column(String(100))
    entity_id = Column(String(100))
    description = Column(Text)
    details = Column(JSON)
    ip_address = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class FileUpload(AuditMixin, SoftDeleteMixin, TenantMixin, Base):
    __tablename__ = "file_uploads"

    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Uuid, nullable=False, index=True)
    original_name = Column(String(255), nullable=False)
    object_key = Column(String(500), nullable=False, unique=True)
    content_type = Column(String(100))
    size_bytes = Column(BigInteger, default=0)
    uploaded_by = Column(Uuid, ForeignKey("users.id"))
