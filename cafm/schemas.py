from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from cafm.enums import (
    UserType, CompanyStatus, SubscriptionPlan, ReportStatus, ReportPriority,
    WorkOrderPriority, AssetStatus, AssetCondition, DepreciationMethod, NotificationType,
    MaintenanceType,
)
from cafm.utils.validators import (
    password_violation_message, is_valid_arabic_text, is_valid_plate_number, normalize_plate_number,
    is_valid_iqama_id,
)


def _strong_password(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    message = password_violation_message(value)
    if message:
        raise ValueError(message)
    return value


def _arabic(value: Optional[str]) -> Optional[str]:
    if value and not is_valid_arabic_text(value, allow_mixed=True):
        raise ValueError("Must contain Arabic characters")
    return value


# ============ Auth ============

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(BaseModel):
    token: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v):
        return _strong_password(v)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v):
        return _strong_password(v)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[Dict[str, Any]] = None


class TenantSwitchRequest(BaseModel):
    company_id: UUID


# ============ Companies ============

class CompanyBase(BaseModel):
    name: Optional[str] = None
    display_name: Optional[str] = None
    domain: Optional[str] = None
    subdomain: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    primary_contact_name: Optional[str] = None
    industry: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    tax_number: Optional[str] = None
    commercial_registration: Optional[str] = None
    timezone: Optional[str] = None
    locale: Optional[str] = None
    currency: Optional[str] = Field(default=None, max_length=3)
    settings: Optional[Dict[str, Any]] = None
    features: Optional[Dict[str, Any]] = None

    @field_validator("subdomain")
    @classmethod
    def normalize_subdomain(cls, v):
        return v.strip().lower() if v else v


class CompanyCreate(CompanyBase):
    name: str = Field(min_length=2, max_length=255)
    subscription_plan: SubscriptionPlan = SubscriptionPlan.FREE


class CompanyUpdate(CompanyBase):
    pass


class CompanyStatusUpdate(BaseModel):
    status: CompanyStatus
    reason: Optional[str] = None


class SubscriptionUpdate(BaseModel):
    plan: SubscriptionPlan
    end_date: Optional[date] = None


class SubscriptionExtension(BaseModel):
    months: int = Field(gt=0, le=60)


class ResourceLimitsUpdate(BaseModel):
    max_users: Optional[int] = Field(default=None, ge=0)
    max_schools: Optional[int] = Field(default=None, ge=0)
    max_supervisors: Optional[int] = Field(default=None, ge=0)
    max_technicians: Optional[int] = Field(default=None, ge=0)


# ============ Users ============

class UserBase(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    iqama_id: Optional[str] = None
    plate_number: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    specialization: Optional[str] = None
    skill_level: Optional[str] = None
    hourly_rate: Optional[Decimal] = Field(default=None, ge=0)
    is_available_for_assignment: Optional[bool] = None

    @field_validator("iqama_id")
    @classmethod
    def check_iqama(cls, v):
        if v and not is_valid_iqama_id(v):
            raise ValueError("Invalid Iqama/national ID")
        return v

    @field_validator("plate_number")
    @classmethod
    def check_plate(cls, v):
        if v and not is_valid_plate_number(v):
            raise ValueError("Invalid plate number format")
        return normalize_plate_number(v)


class UserCreate(UserBase):
    email: EmailStr
    password: Optional[str] = None
    user_type: UserType = UserType.VIEWER
    email_verified: bool = True

    @field_validator("password")
    @classmethod
    def check_password(cls, v):
        return _strong_password(v)


class UserUpdate(UserBase):
    user_type: Optional[UserType] = None


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    username: Optional[str] = None
    phone: Optional[str] = None


class FcmTokenUpdate(BaseModel):
    fcm_token: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


# ============ Schools ============

class SchoolBase(BaseModel):
    name: Optional[str] = None
    name_ar: Optional[str] = None
    type: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    activity_level: Optional[str] = None

    @field_validator("name_ar")
    @classmethod
    def check_arabic(cls, v):
        return _arabic(v)


class SchoolCreate(SchoolBase):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)


class SchoolUpdate(SchoolBase):
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)


class MaintenanceScoreUpdate(BaseModel):
    score: int = Field(ge=0, le=100)


class SupervisorAssignment(BaseModel):
    supervisor_id: UUID


# ============ Assets ============

class AssetBase(BaseModel):
    name: Optional[str] = None
    name_ar: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    barcode: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[Decimal] = Field(default=None, ge=0)
    supplier: Optional[str] = None
    warranty_end_date: Optional[date] = None
    current_value: Optional[Decimal] = Field(default=None, ge=0)
    salvage_value: Optional[Decimal] = Field(default=None, ge=0)
    depreciation_method: Optional[DepreciationMethod] = None
    useful_life_years: Optional[int] = Field(default=None, gt=0)
    location: Optional[str] = None
    condition: Optional[AssetCondition] = None
    maintenance_frequency_days: Optional[int] = Field(default=None, gt=0)
    next_maintenance_date: Optional[date] = None

    @field_validator("name_ar")
    @classmethod
    def check_arabic(cls, v):
        return _arabic(v)


class AssetCreate(AssetBase):
    name: str = Field(min_length=1, max_length=255)
    asset_code: Optional[str] = None
    code_prefix: Optional[str] = Field(default=None, max_length=10)
    school_id: Optional[UUID] = None


class AssetUpdate(AssetBase):
    pass


class AssetStatusUpdate(BaseModel):
    status: AssetStatus


class AssetAssignment(BaseModel):
    user_id: UUID


class AssetTransfer(BaseModel):
    school_id: UUID
    location: Optional[str] = None


class AssetDisposal(BaseModel):
    method: str
    value: Optional[Decimal] = Field(default=None, ge=0)
    reason: Optional[str] = None
    disposal_date: Optional[date] = None


class MaintenanceRecord(BaseModel):
    maintenance_date: Optional[date] = None
    maintenance_type: MaintenanceType = MaintenanceType.PREVENTIVE
    condition: Optional[AssetCondition] = None
    description: Optional[str] = None
    performed_by_id: Optional[UUID] = None
    work_order_id: Optional[UUID] = None
    labor_hours: Optional[Decimal] = Field(default=None, ge=0)
    labor_cost: Optional[Decimal] = Field(default=None, ge=0)
    parts_cost: Optional[Decimal] = Field(default=None, ge=0)
    external_cost: Optional[Decimal] = Field(default=None, ge=0)
    next_maintenance_date: Optional[date] = None
    recommendations: Optional[str] = None


class MaintenanceSchedule(BaseModel):
    scheduled_date: date


# ============ Reports ============

class ReportBase(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[ReportPriority] = None
    scheduled_date: Optional[date] = None
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    building: Optional[str] = None
    floor: Optional[str] = None
    room_number: Optional[str] = None
    location_details: Optional[str] = None


class ReportCreate(ReportBase):
    school_id: UUID
    title: str = Field(min_length=1, max_length=255)
    reported_date: Optional[date] = None


class ReportUpdate(ReportBase):
    pass


class ReportReview(BaseModel):
    approved: bool
    notes: Optional[str] = None


class ReportStatusUpdate(BaseModel):
    status: ReportStatus


class TechnicianAssignment(BaseModel):
    technician_id: UUID


class ReportCompletion(BaseModel):
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


# ============ Work orders ============

class WorkOrderBase(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[WorkOrderPriority] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    location_details: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    estimated_hours: Optional[Decimal] = Field(default=None, ge=0)
    material_cost: Optional[Decimal] = Field(default=None, ge=0)
    other_cost: Optional[Decimal] = Field(default=None, ge=0)


class WorkOrderCreate(WorkOrderBase):
    title: str = Field(min_length=1, max_length=255)
    report_id: Optional[UUID] = None
    school_id: Optional[UUID] = None
    assigned_to_id: Optional[UUID] = None


class WorkOrderUpdate(WorkOrderBase):
    pass


class WorkOrderFromReport(BaseModel):
    assigned_to_id: Optional[UUID] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    estimated_hours: Optional[Decimal] = Field(default=None, ge=0)


class ProgressUpdate(BaseModel):
    percentage: int = Field(ge=0, le=100)
    notes: Optional[str] = None


class WorkOrderCompletion(BaseModel):
    notes: Optional[str] = None
    material_cost: Optional[Decimal] = Field(default=None, ge=0)
    other_cost: Optional[Decimal] = Field(default=None, ge=0)
    signature_url: Optional[str] = None


class WorkOrderTaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    is_mandatory: Optional[bool] = None
    estimated_hours: Optional[Decimal] = Field(default=None, ge=0)


class WorkOrderTaskStatus(BaseModel):
    is_completed: bool
    notes: Optional[str] = None



# ============ Attendance ============

class CheckInRequest(BaseModel):
    school_id: UUID
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    notes: Optional[str] = None


class CheckOutRequest(BaseModel):
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    notes: Optional[str] = None


# ============ Notifications ============

class NotificationSend(BaseModel):
    user_ids: List[UUID]
    title: str = Field(min_length=1, max_length=255)
    body: str
    data: Optional[Dict[str, Any]] = None
    notification_type: NotificationType = NotificationType.GENERAL_INFO


# ============ Pagination ============

class PageResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int
    page: int
    size: int
