from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from cafm.models import Notification
from cafm.repositories.base import Page, paginate


class NotificationRepository:
    """Notifications are owned by a user; every lookup is keyed on the recipient."""

    def __init__(self, db: Session):
        self.db = db

    def _for_user(self, user_id):
        return self.db.query(Notification).filter(
            Notification.user_id == user_id, Notification.deleted_at.is_(None)
        )

    def add(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.db.flush()
        return notification

    def find_for_user(self, user_id, unread_only: bool = False, page: int = 1, size: int = 20) -> Page:
        query = self._for_user(user_id)
        if unread_only:
            query = query.filter(Notification.read.is_(False))
        return paginate(query.order_by(Notification.created_at.desc()), page, size)

    def find_by_id_and_user(self, notification_id, user_id) -> Optional[Notification]:
        return self._for_user(user_id).filter(Notification.id == notification_id).first()

    def count_unread(self, user_id) -> int:
        return self._for_user(user_id).filter(Notification.read.is_(False)).count()

    def mark_all_read(self, user_id) -> int:
        return (
            self._for_user(user_id)
            .filter(Notification.read.is_(False))
            .update({Notification.read: True, Notification.read_at: datetime.utcnow()}, synchronize_session="fetch")
        )
