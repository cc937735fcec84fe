import logging
from datetime import datetime
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from cafm.enums import NotificationType, ReportStatus
from cafm.exceptions import ResourceNotFoundException
from cafm.models import Notification, User, WorkOrder, Report
from cafm.repositories.base import Page
from cafm.repositories.notifications import NotificationRepository
from cafm.repositories.users import UserRepository
from cafm.services.push_notification import PushNotificationService

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(self, db: Session):
        self.db = db
        self.repository = NotificationRepository(db)

    def send_notification(self, user: User, title: str, body: str, data: Optional[Dict[str, Any]] = None,
                          notification_type: NotificationType = NotificationType.GENERAL_INFO) -> Notification:
        """Store an in-app notification and push it to the user's device when one is registered."""
        notification = Notification(
            company_id=user.company_id,
            user_id=user.id,
            title=title,
            body=body,
            data=data or {},
            notification_type=notification_type,
        )
        self.repository.add(notification)

        if user.fcm_token:
            notification.sent_push = PushNotificationService.send_notification(
                fcm_token=user.fcm_token,
                title=title,
                body=body,
                data={**(data or {}), "notification_id": str(notification.id)},
                notification_type=notification_type.value,
                urgent=notification_type.is_urgent,
            )
        logger.info(f"Notification '{notification_type.value}' queued for user {user.id}")
        return notification

    def notify_users(self, users: List[User], title: str, body: str, data: Optional[Dict[str, Any]] = None,
                     notification_type: NotificationType = NotificationType.GENERAL_INFO) -> int:
        for user in users:
            self.send_notification(user, title, body, data, notification_type)
        return len(users)

    def notify_admins(self, company_id, title: str, body: str, data: Optional[Dict[str, Any]] = None,
                      notification_type: NotificationType = NotificationType.GENERAL_INFO) -> int:
        admins = UserRepository(self.db).find_admins(company_id)
        return self.notify_users(admins, title, body, data, notification_type)

    # ============ Domain events ============

    def notify_work_order_assigned(self, work_order: WorkOrder, technician: User):
        return self.send_notification(
            technician,
            "New Work Order Assigned",
            f"{work_order.work_order_number}: {work_order.title}",
            data={
                "work_order_id": str(work_order.id),
                "work_order_number": work_order.work_order_number,
                "priority": work_order.priority.value,
            },
            notification_type=NotificationType.WORK_ORDER_ASSIGNED,
        )

    def notify_work_order_completed(self, work_order: WorkOrder):
        recipient = work_order.assigned_by
        if recipient is None:
            return None
        return self.send_notification(
            recipient,
            "Work Order Completed",
            f"{work_order.work_order_number} has been completed",
            data={"work_order_id": str(work_order.id)},
            notification_type=NotificationType.WORK_ORDER_COMPLETED,
        )

    def notify_work_order_cancelled(self, work_order: WorkOrder, reason: Optional[str] = None):
        recipient = work_order.assigned_to
        if recipient is None:
            return None
        body = f"{work_order.work_order_number} was cancelled"
        if reason:
            body += f": {reason}"
        return self.send_notification(
            recipient, "Work Order Cancelled", body,
            data={"work_order_id": str(work_order.id)},
            notification_type=NotificationType.WORK_ORDER_CANCELLED,
        )

    def notify_report_status_change(self, report: Report, recipient: Optional[User] = None):
        recipient = recipient or report.supervisor
        if recipient is None:
            return None
        notification_type = {
            ReportStatus.APPROVED: NotificationType.REPORT_APPROVED,
            ReportStatus.REJECTED: NotificationType.REPORT_REJECTED,
            ReportStatus.SUBMITTED: NotificationType.REPORT_SUBMITTED,
        }.get(report.status, NotificationType.REPORT_STATUS_UPDATE)
        return self.send_notification(
            recipient,
            f"Report {report.report_number}",
            f"Status changed to {report.status.display_name}",
            data={"report_id": str(report.id), "status": report.status.value},
            notification_type=notification_type,
        )

    # ============ Inbox ============

    def list_for_user(self, user: User, unread_only: bool = False, page: int = 1, size: int = 20) -> Page:
        return self.repository.find_for_user(user.id, unread_only, page, size)

    def unread_count(self, user: User) -> int:
        return self.repository.count_unread(user.id)

    def _get_owned(self, user: User, notification_id) -> Notification:
        notification = self.repository.find_by_id_and_user(notification_id, user.id)
        if notification is None:
            raise ResourceNotFoundException("Notification", notification_id)
        return notification

    def mark_read(self, user: User, notification_id) -> Notification:
        notification = self._get_owned(user, notification_id)
        if not notification.read:
            notification.read = True
            notification.read_at = datetime.utcnow()
        return notification

    def mark_all_read(self, user: User) -> int:
        return self.repository.mark_all_read(user.id)

    def delete(self, user: User, notification_id):
        notification = self._get_owned(user, notification_id)
        notification.deleted_at = datetime.utcnow()
        notification.deleted_by = user.id
