"""
Entity -> response dict mappers used by the routers.
"""
from decimal import Decimal
from typing import Optional, Callable, Any

from cafm.models import (
    Company, User, School, SupervisorSchool, Asset, AssetMaintenance, Report, WorkOrder, WorkOrderTask,
    SupervisorAttendance, Notification, AuditLog, FileUpload,
)
from cafm.repositories.base import Page


def _id(value) -> Optional[str]:
    return str(value) if value is not None else None


def _money(value) -> Optional[float]:
    if value is None:
        return None
    return float(value) if isinstance(value, Decimal) else value


def _enum(value) -> Optional[str]:
    return value.value if value is not None else None


def page_to_response(page: Page, mapper: Callable[[Any], dict]) -> dict:
    return {
        "items": [mapper(item) for item in page.items],
        "total": page.total,
        "page": page.page,
        "size": page.size,
        "pages": page.pages,
    }


def company_to_response(company: Company) -> dict:
    return {
        "id": _id(company.id),
        "name": company.name,
        "display_name": company.display_name,
        "domain": company.domain,
        "subdomain": company.subdomain,
        "contact_email": company.contact_email,
        "contact_phone": company.contact_phone,
        "primary_contact_name": company.primary_contact_name,
        "industry": company.industry,
        "country": company.country,
        "city": company.city,
        "address": company.address,
        "timezone": company.timezone,
        "locale": company.locale,
        "currency": company.currency,
        "status": _enum(company.status),
        "is_active": company.is_active,
        "subscription_plan": _enum(company.subscription_plan),
        "subscription_start_date": company.subscription_start_date,
        "subscription_end_date": company.subscription_end_date,
        "subscription_active": company.is_subscription_active,
        "limits": {
            "max_users": company.max_users,
            "max_schools": company.max_schools,
            "max_supervisors": company.max_supervisors,
            "max_technicians": company.max_technicians,
            "max_storage_gb": company.max_storage_gb,
        },
        "settings": company.settings or {},
        "features": company.features or {},
        "created_at": company.created_at,
    }


def user_to_response(user: User) -> dict:
    return {
        "id": _id(user.id),
        "email": user.email,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "phone": user.phone,
        "employee_id": user.employee_id,
        "iqama_id": user.iqama_id,
        "plate_number": user.plate_number,
        "user_type": _enum(user.user_type),
        "status": _enum(user.status),
        "is_active": user.is_active,
        "is_locked": user.is_locked,
        "email_verified": user.email_verified,
        "department": user.department,
        "position": user.position,
        "specialization": user.specialization,
        "skill_level": user.skill_level,
        "hourly_rate": _money(user.hourly_rate),
        "is_available_for_assignment": user.is_available_for_assignment,
        "company_id": _id(user.company_id),
        "last_login_at": user.last_login_at,
        "created_at": user.created_at,
    }


def user_summary(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": _id(user.id), "email": user.email, "full_name": user.full_name,
            "user_type": _enum(user.user_type)}


def school_to_response(school: School, distance_km: Optional[float] = None) -> dict:
    data = {
        "id": _id(school.id),
        "code": school.code,
        "name": school.name,
        "name_ar": school.name_ar,
        "type": school.type,
        "gender": school.gender,
        "address": school.address,
        "city": school.city,
        "latitude": school.latitude,
        "longitude": school.longitude,
        "is_active": school.is_active,
        "maintenance_score": school.maintenance_score,
        "activity_level": school.activity_level,
        "created_at": school.created_at,
    }
    if distance_km is not None:
        data["distance_km"] = round(distance_km, 3)
    return data


def assignment_to_response(link: SupervisorSchool) -> dict:
    return {
        "id": _id(link.id),
        "supervisor_id": _id(link.supervisor_id),
        "school_id": _id(link.school_id),
        "is_active": link.is_active,
        "assigned_at": link.assigned_at,
    }


def asset_to_response(asset: Asset) -> dict:
    return {
        "id": _id(asset.id),
        "asset_code": asset.asset_code,
        "name": asset.name,
        "name_ar": asset.name_ar,
        "description": asset.description,
        "category": asset.category,
        "manufacturer": asset.manufacturer,
        "model": asset.model,
        "serial_number": asset.serial_number,
        "barcode": asset.barcode,
        "purchase_date": asset.purchase_date,
        "purchase_cost": _money(asset.purchase_cost),
        "current_value": _money(asset.current_value),
        "salvage_value": _money(asset.salvage_value),
        "depreciation_method": _enum(asset.depreciation_method),
        "useful_life_years": asset.useful_life_years,
        "warranty_end_date": asset.warranty_end_date,
        "under_warranty": asset.is_under_warranty,
        "school_id": _id(asset.school_id),
        "location": asset.location,
        "assigned_to_id": _id(asset.assigned_to_id),
        "assignment_date": asset.assignment_date,
        "status": _enum(asset.status),
        "condition": _enum(asset.condition),
        "maintenance_frequency_days": asset.maintenance_frequency_days,
        "last_maintenance_date": asset.last_maintenance_date,
        "next_maintenance_date": asset.next_maintenance_date,
        "maintenance_due": asset.is_maintenance_due,
        "total_maintenance_cost": _money(asset.total_maintenance_cost),
        "disposal_date": asset.disposal_date,
        "disposal_method": asset.disposal_method,
        "disposal_value": _money(asset.disposal_value),
        "is_active": asset.is_active,
        "created_at": asset.created_at,
    }


def asset_maintenance_to_response(record: AssetMaintenance) -> dict:
    return {
        "id": _id(record.id),
        "asset_id": _id(record.asset_id),
        "maintenance_date": record.maintenance_date,
        "maintenance_type": _enum(record.maintenance_type),
        "description": record.description,
        "performed_by": user_summary(record.performed_by),
        "work_order_id": _id(record.work_order_id),
        "labor_hours": _money(record.labor_hours),
        "labor_cost": _money(record.labor_cost),
        "parts_cost": _money(record.parts_cost),
        "external_cost": _money(record.external_cost),
        "total_cost": _money(record.total_cost),
        "condition_after": _enum(record.condition_after),
        "next_maintenance_date": record.next_maintenance_date,
        "recommendations": record.recommendations,
        "created_at": record.created_at,
    }


def report_to_response(report: Report) -> dict:
    return {
        "id": _id(report.id),
        "report_number": report.report_number,
        "school_id": _id(report.school_id),
        "school_name": report.school.name if report.school else None,
        "supervisor": user_summary(report.supervisor),
        "assigned_to": user_summary(report.assigned_to),
        "title": report.title,
        "description": report.description,
        "category": report.category,
        "status": _enum(report.status),
        "priority": _enum(report.priority),
        "reported_date": report.reported_date,
        "scheduled_date": report.scheduled_date,
        "completed_date": report.completed_date,
        "estimated_cost": _money(report.estimated_cost),
        "actual_cost": _money(report.actual_cost),
        "building": report.building,
        "floor": report.floor,
        "room_number": report.room_number,
        "location_details": report.location_details,
        "is_overdue": report.is_overdue,
        "created_at": report.created_at,
    }


def work_order_to_response(work_order: WorkOrder) -> dict:
    return {
        "id": _id(work_order.id),
        "work_order_number": work_order.work_order_number,
        "report_id": _id(work_order.report_id),
        "school_id": _id(work_order.school_id),
        "title": work_order.title,
        "description": work_order.description,
        "category": work_order.category,
        "priority": _enum(work_order.priority),
        "status": _enum(work_order.status),
        "assigned_to": user_summary(work_order.assigned_to),
        "assigned_by": user_summary(work_order.assigned_by),
        "assignment_date": work_order.assignment_date,
        "scheduled_start": work_order.scheduled_start,
        "scheduled_end": work_order.scheduled_end,
        "actual_start": work_order.actual_start,
        "actual_end": work_order.actual_end,
        "location_details": work_order.location_details,
        "estimated_hours": _money(work_order.estimated_hours),
        "actual_hours": _money(work_order.actual_hours),
        "labor_cost": _money(work_order.labor_cost),
        "material_cost": _money(work_order.material_cost),
        "other_cost": _money(work_order.other_cost),
        "total_cost": _money(work_order.total_cost),
        "completion_percentage": work_order.completion_percentage,
        "completion_notes": work_order.completion_notes,
        "signature_url": work_order.signature_url,
        "verified_by": user_summary(work_order.verified_by),
        "verified_at": work_order.verified_at,
        "tasks": [work_order_task_to_response(t) for t in work_order.tasks],
        "is_overdue": work_order.is_overdue,
        "created_at": work_order.created_at,
    }


def work_order_task_to_response(task: WorkOrderTask) -> dict:
    return {
        "id": _id(task.id),
        "work_order_id": _id(task.work_order_id),
        "task_number": task.task_number,
        "title": task.title,
        "description": task.description,
        "is_mandatory": task.is_mandatory,
        "is_completed": task.is_completed,
        "estimated_hours": _money(task.estimated_hours),
        "completed_at": task.completed_at,
        "completed_by_id": _id(task.completed_by_id),
        "notes": task.notes,
    }


def attendance_to_response(attendance: SupervisorAttendance) -> dict:
    return {
        "id": _id(attendance.id),
        "supervisor_id": _id(attendance.supervisor_id),
        "school_id": _id(attendance.school_id),
        "school_name": attendance.school.name if attendance.school else None,
        "attendance_date": attendance.attendance_date,
        "check_in_time": attendance.check_in_time,
        "check_out_time": attendance.check_out_time,
        "duration_minutes": attendance.duration_minutes,
        "status": _enum(attendance.status),
        "work_summary": attendance.work_summary,
    }


def notification_to_response(notification: Notification) -> dict:
    return {
        "id": _id(notification.id),
        "title": notification.title,
        "body": notification.body,
        "data": notification.data or {},
        "notification_type": _enum(notification.notification_type),
        "urgent": notification.notification_type.is_urgent if notification.notification_type else False,
        "read": notification.read,
        "read_at": notification.read_at,
        "created_at": notification.created_at,
    }


def audit_log_to_response(entry: AuditLog) -> dict:
    return {
        "id": _id(entry.id),
        "company_id": _id(entry.company_id),
        "user_id": _id(entry.user_id),
        "event_type": _enum(entry.event_type),
        "severity": _enum(entry.severity),
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "description": entry.description,
        "details": entry.details or {},
        "ip_address": entry.ip_address,
        "created_at": entry.created_at,
    }


def file_to_response(upload: FileUpload) -> dict:
    return {
        "id": _id(upload.id),
        "entity_type": upload.entity_type,
        "entity_id": _id(upload.entity_id),
        "original_name": upload.original_name,
        "content_type": upload.content_type,
        "size_bytes": upload.size_bytes,
        "uploaded_by": _id(upload.uploaded_by),
        "created_at": upload.created_at,
    }
