import re
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from cafm.enums import ReportStatus, ReportPriority, WorkOrderStatus, WorkOrderPriority, UserType, NotificationType
from cafm.exceptions import (
    AccessDeniedException, BusinessRuleException, InvalidOperationStateException, ResourceNotFoundException,
    ValidationException,
)
from cafm.models import Report, Notification, SupervisorAttendance
from cafm.services.attendance import AttendanceService, distance_meters, format_duration
from cafm.services.notifications import NotificationService
from cafm.services.reports import ReportService, maintenance_score
from cafm.services.work_orders import WorkOrderService

from tests.conftest import make_user


def _report(db, school, supervisor, priority=ReportPriority.HIGH, **fields):
    data = {"school_id": school.id, "title": "Leaking pipe", "description": "Water under the sink",
            "priority": priority}
    data.update(fields)
    return ReportService(db).create_report(data, supervisor)


def _approved_report(db, school, supervisor, priority=ReportPriority.HIGH):
    service = ReportService(db)
    report = _report(db, school, supervisor, priority)
    service.submit(report.id)
    service.review(report.id, approved=True)
    return report


# ============ Reports ============

def test_create_report_numbers_and_schedules(db, tenant, school, supervisor):
    report = _report(db, school, supervisor, ReportPriority.HIGH)
    assert re.fullmatch(r"RPT-\d{8}-\d{4}", report.report_number)
    assert report.report_number[4:12] == date.today().strftime("%Y%m%d")
    assert report.status == ReportStatus.DRAFT
    assert report.scheduled_date == date.today() + timedelta(days=7)

    explicit = _report(db, school, supervisor, ReportPriority.LOW, scheduled_date=date(2030, 1, 1))
    assert explicit.scheduled_date == date(2030, 1, 1)


def test_report_defaults_to_medium_priority(db, tenant, school, supervisor):
    report = ReportService(db).create_report({"school_id": school.id, "title": "Broken window"}, supervisor)
    assert report.priority == ReportPriority.MEDIUM
    assert report.scheduled_date == date.today() + timedelta(days=14)


def test_submit_notifies_admins(db, tenant, school, supervisor, admin):
    report = _report(db, school, supervisor)
    ReportService(db).submit(report.id)
    assert report.status == ReportStatus.SUBMITTED
    notification = db.query(Notification).filter(Notification.user_id == admin.id).one()
    assert notification.notification_type == NotificationType.REPORT_SUBMITTED


def test_rejection_appends_note_and_allows_resubmission(db, tenant, school, supervisor):
    service = ReportService(db)
    report = _report(db, school, supervisor)
    service.submit(report.id)
    service.review(report.id, approved=False, notes="Need photos")
    assert report.status == ReportStatus.REJECTED
    assert report.description == "Water under the sink\n[Rejection: Need photos]"

    service.update_report(report.id, {"title": "Leaking pipe in lab"})
    service.submit(report.id)
    service.review(report.id, approved=True)
    assert report.status == ReportStatus.APPROVED
    with pytest.raises(InvalidOperationStateException):
        service.update_report(report.id, {"title": "Too late"})


def test_only_draft_or_rejected_reports_can_be_submitted(db, tenant, school, supervisor):
    report = _approved_report(db, school, supervisor)
    with pytest.raises(InvalidOperationStateException):
        ReportService(db).submit(report.id)


def test_assign_and_complete_report(db, tenant, school, supervisor, technician):
    service = ReportService(db)
    report = _approved_report(db, school, supervisor, ReportPriority.CRITICAL)
    service.recalculate_school_score(school.id)
    assert school.maintenance_score == 80

    with pytest.raises(BusinessRuleException):
        service.assign_technician(report.id, supervisor.id)
    service.assign_technician(report.id, technician.id)
    assert report.status == ReportStatus.IN_PROGRESS
    assert report.assigned_to_id == technician.id

    service.complete(report.id, actual_cost=Decimal("250.00"), notes="Pipe replaced")
    assert report.status == ReportStatus.COMPLETED
    assert report.completed_date == date.today()
    assert report.description.endswith("[Completion: Pipe replaced]")
    assert school.maintenance_score == 100


def test_unavailable_technician_cannot_be_assigned(db, tenant, school, supervisor, company):
    busy = make_user(db, company, "busy@riyadh-schools.sa", UserType.TECHNICIAN, is_available_for_assignment=False)
    report = _approved_report(db, school, supervisor)
    with pytest.raises(BusinessRuleException):
        ReportService(db).assign_technician(report.id, busy.id)


def test_cancel_and_restore(db, tenant, school, supervisor):
    service = ReportService(db)
    report = _report(db, school, supervisor)
    service.cancel(report.id, "Duplicate")
    assert report.status == ReportStatus.CANCELLED
    with pytest.raises(InvalidOperationStateException):
        service.cancel(report.id)

    other = _report(db, school, supervisor)
    service.delete_report(other.id, deleted_by=supervisor.id)
    db.flush()
    with pytest.raises(ResourceNotFoundException):
        service.get_report(other.id)
    assert service.restore_report(other.id).id == other.id


def test_maintenance_score_penalties():
    today = date(2026, 5, 10)
    reports = [
        Report(priority=ReportPriority.CRITICAL, status=ReportStatus.SUBMITTED, scheduled_date=today),
        Report(priority=ReportPriority.MEDIUM, status=ReportStatus.IN_PROGRESS,
               scheduled_date=today - timedelta(days=1)),
        Report(priority=ReportPriority.LOW, status=ReportStatus.DRAFT, scheduled_date=None),
    ]
    assert maintenance_score(reports, today) == 100 - 20 - 5 - 5 - 2
    assert maintenance_score(reports * 5, today) == 0


def test_report_statistics(db, tenant, school, supervisor):
    _report(db, school, supervisor, estimated_cost=Decimal("100"))
    _report(db, school, supervisor, ReportPriority.LOW, estimated_cost=Decimal("50.50"))
    stats = ReportService(db).get_statistics()
    assert stats["total_reports"] == 2
    assert stats["by_status"] == {ReportStatus.DRAFT.value: 2}
    assert stats["total_estimated_cost"] == 150.5


def test_export_reports_xlsx(db, tenant, school, supervisor):
    _report(db, school, supervisor)
    content = ReportService(db).export_reports_xlsx()
    # xlsx files are zip archives
    assert content[:2] == b"PK"


# ============ Work orders ============

def test_create_from_report_maps_priority(db, tenant, school, supervisor):
    report = _approved_report(db, school, supervisor, ReportPriority.CRITICAL)
    work_order = WorkOrderService(db).create_from_report(report.id, supervisor)
    assert re.fullmatch(r"WO-\d{8}-\d{4}", work_order.work_order_number)
    assert work_order.priority == WorkOrderPriority.EMERGENCY
    assert work_order.school_id == school.id
    assert work_order.title == "Leaking pipe"
    assert work_order.status == WorkOrderStatus.PENDING
    assert report.status == ReportStatus.IN_PROGRESS


def test_create_from_unapproved_report_is_refused(db, tenant, school, supervisor):
    report = _report(db, school, supervisor)
    with pytest.raises(InvalidOperationStateException):
        WorkOrderService(db).create_from_report(report.id, supervisor)


def test_linked_report_must_be_approved(db, tenant, school, supervisor):
    service = WorkOrderService(db)
    report = _report(db, school, supervisor)
    with pytest.raises(BusinessRuleException):
        service.create_work_order({"title": "Fix pipe", "report_id": report.id}, supervisor)
    ReportService(db).submit(report.id)
    with pytest.raises(BusinessRuleException):
        service.create_work_order({"title": "Fix pipe", "report_id": report.id}, supervisor)
    assert report.status == ReportStatus.SUBMITTED


def test_pre_review_report_cannot_be_completed(db, tenant, school, supervisor):
    report = _report(db, school, supervisor)
    with pytest.raises(InvalidOperationStateException):
        ReportService(db).mark_completed(report)
    assert report.status == ReportStatus.DRAFT


def test_pending_report_completes_with_its_work_order(db, tenant, school, supervisor, technician):
    report = _approved_report(db, school, supervisor)
    service = WorkOrderService(db)
    work_order = service.create_work_order(
        {"title": "Fix pipe", "report_id": report.id, "assigned_to_id": technician.id}, supervisor
    )
    assert report.status == ReportStatus.IN_PROGRESS
    report.status = ReportStatus.PENDING
    service.start(work_order.id, technician)
    service.complete(work_order.id)
    assert report.status == ReportStatus.COMPLETED


def test_work_orders_go_to_technicians_only(db, tenant, supervisor, technician):
    service = WorkOrderService(db)
    work_order = service.create_work_order({"title": "Replace filters"}, supervisor)
    with pytest.raises(BusinessRuleException):
        service.assign(work_order.id, supervisor.id, supervisor)
    service.assign(work_order.id, technician.id, supervisor)
    assert work_order.status == WorkOrderStatus.ASSIGNED
    assert work_order.assigned_by_id == supervisor.id
    assert db.query(Notification).filter(Notification.user_id == technician.id).count() == 1


def test_work_order_lifecycle_and_labor_cost(db, tenant, school, supervisor, technician, company):
    report = _approved_report(db, school, supervisor)
    service = WorkOrderService(db)
    work_order = service.create_from_report(report.id, supervisor)
    service.assign(work_order.id, technician.id, supervisor)

    stranger = make_user(db, company, "other.tech@riyadh-schools.sa", UserType.TECHNICIAN)
    with pytest.raises(AccessDeniedException):
        service.start(work_order.id, stranger)

    service.start(work_order.id, technician)
    assert work_order.status == WorkOrderStatus.IN_PROGRESS
    with pytest.raises(ValidationException):
        service.update_progress(work_order.id, 150)
    service.update_progress(work_order.id, 40, "Parts ordered")

    service.hold(work_order.id, "Waiting for parts")
    assert work_order.status == WorkOrderStatus.ON_HOLD
    assert work_order.completion_notes.endswith("On Hold: Waiting for parts")
    with pytest.raises(InvalidOperationStateException):
        service.complete(work_order.id)
    service.resume(work_order.id)

    work_order.actual_start = datetime.utcnow() - timedelta(hours=2)
    service.complete(work_order.id, notes="Done", material_cost=Decimal("80.00"))
    assert work_order.status == WorkOrderStatus.COMPLETED
    assert work_order.completion_percentage == 100
    assert work_order.actual_hours == Decimal("2.00")
    assert work_order.labor_cost == Decimal("100.00")
    assert report.status == ReportStatus.COMPLETED

    with pytest.raises(AccessDeniedException):
        service.verify(work_order.id, technician)
    service.verify(work_order.id, supervisor)
    assert work_order.status == WorkOrderStatus.VERIFIED
    with pytest.raises(InvalidOperationStateException):
        service.cancel(work_order.id, "Too late")


def test_cancel_work_order(db, tenant, supervisor):
    service = WorkOrderService(db)
    work_order = service.create_work_order({"title": "Paint corridor"}, supervisor)
    service.cancel(work_order.id, "Budget cut")
    assert work_order.status == WorkOrderStatus.CANCELLED
    assert work_order.completion_notes == "Cancelled: Budget cut"
    with pytest.raises(InvalidOperationStateException):
        service.cancel(work_order.id)


def test_my_work_orders(db, tenant, supervisor, technician):
    service = WorkOrderService(db)
    mine = service.create_work_order({"title": "Fix door", "assigned_to_id": technician.id}, supervisor)
    service.create_work_order({"title": "Unassigned"}, supervisor)
    page = service.my_work_orders(technician)
    assert [w.id for w in page.items] == [mine.id]


def test_task_checklist_drives_completion(db, tenant, supervisor, technician, company):
    service = WorkOrderService(db)
    work_order = service.create_work_order({"title": "Service AC units", "assigned_to_id": technician.id},
                                           supervisor)
    first = service.add_task(work_order.id, {"title": "Isolate power"}, supervisor.id)
    second = service.add_task(work_order.id, {"title": "Clean filters", "estimated_hours": Decimal("1.5")})
    third = service.add_task(work_order.id, {"title": "Test airflow", "is_mandatory": False})
    assert [t.task_number for t in service.get_tasks(work_order.id)] == [1, 2, 3]
    assert work_order.completion_percentage == 0

    service.update_task_status(first.id, True, technician, "Breaker 4 locked out")
    assert first.completed_by_id == technician.id
    assert first.completed_at is not None
    assert work_order.completion_percentage == 33
    service.update_task_status(second.id, True, supervisor)
    assert work_order.completion_percentage == 66

    service.update_task_status(second.id, False, technician)
    assert second.completed_at is None
    assert second.completed_by_id is None
    assert work_order.completion_percentage == 33

    stranger = make_user(db, company, "other.tech@riyadh-schools.sa", UserType.TECHNICIAN)
    with pytest.raises(AccessDeniedException):
        service.update_task_status(third.id, True, stranger)
    with pytest.raises(ResourceNotFoundException):
        service.update_task_status(work_order.id, True, technician)


def test_closed_work_orders_take_no_tasks(db, tenant, supervisor):
    service = WorkOrderService(db)
    work_order = service.create_work_order({"title": "Paint corridor"}, supervisor)
    task = service.add_task(work_order.id, {"title": "Cover floors"})
    service.cancel(work_order.id)
    with pytest.raises(InvalidOperationStateException):
        service.add_task(work_order.id, {"title": "Second coat"})
    with pytest.raises(InvalidOperationStateException):
        service.update_task_status(task.id, True, supervisor)


# ============ Attendance ============

def test_distance_and_duration_helpers():
    assert distance_meters(24.7136, 46.6753, 24.7136, 46.6753) == 0
    assert distance_meters(24.7136, 46.6753, 24.7145, 46.6753) == pytest.approx(100, abs=1)
    assert format_duration(125) == "2h 05m"
    assert format_duration(0) == "0h 00m"


def test_check_in_requires_assignment_and_proximity(db, tenant, school, supervisor):
    service = AttendanceService(db)
    with pytest.raises(AccessDeniedException):
        service.check_in(supervisor, school.id, 24.7136, 46.6753)


def test_check_in_and_out(db, tenant, assigned_school, supervisor):
    service = AttendanceService(db)
    with pytest.raises(BusinessRuleException):
        service.check_in(supervisor, assigned_school.id, 24.7236, 46.6753)

    result = service.check_in(supervisor, assigned_school.id, 24.7137, 46.6754, "Morning round")
    assert result["status"] == "CHECKED_IN"
    assert result["school"]["code"] == "SCH-001"
    assert result["session_id"].startswith("SESSION-")
    assert service.get_current_status(supervisor)["is_checked_in"]

    with pytest.raises(InvalidOperationStateException):
        service.check_in(supervisor, assigned_school.id, 24.7137, 46.6754)

    attendance = db.query(SupervisorAttendance).one()
    attendance.check_in_time = datetime.utcnow() - timedelta(minutes=125, seconds=10)
    result = service.check_out(supervisor, notes="All good")
    assert result["duration"] == "2h 05m"
    assert attendance.work_summary == "Morning round; Check-out: All good"
    db.flush()

    assert not service.get_current_status(supervisor)["is_checked_in"]
    with pytest.raises(InvalidOperationStateException):
        service.check_out(supervisor)

    history = service.get_history(supervisor)
    assert history["statistics"]["completed_sessions"] == 1
    assert history["statistics"]["schools_visited"] == 1


def test_only_supervisors_check_in(db, tenant, school, technician):
    with pytest.raises(AccessDeniedException):
        AttendanceService(db).check_in(technician, school.id, 24.7136, 46.6753)


# ============ Notifications ============

def test_notifications_belong_to_their_recipient(db, tenant, technician, supervisor):
    service = NotificationService(db)
    notification = service.send_notification(technician, "Heads up", "Inspection tomorrow")
    assert service.unread_count(technician) == 1

    with pytest.raises(ResourceNotFoundException):
        service.mark_read(supervisor, notification.id)

    service.mark_read(technician, notification.id)
    db.flush()
    assert service.unread_count(technician) == 0

    service.send_notification(technician, "Second", "Body")
    assert service.mark_all_read(technician) == 1

    service.delete(technician, notification.id)
    db.flush()
    assert service.list_for_user(technician).total == 1
