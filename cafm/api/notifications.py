from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from cafm.api.deps import get_current_user, require_admin, pagination, PageParams, commit
from cafm.database import get_db
from cafm.mappers import notification_to_response, page_to_response
from cafm.models import User
from cafm.schemas import NotificationSend
from cafm.services.notifications import NotificationService
from cafm.services.users import UserService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    params: PageParams = Depends(pagination),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    page = NotificationService(db).list_for_user(current_user, unread_only, params.page, params.size)
    return page_to_response(page, notification_to_response)


@router.get("/unread-count")
async def unread_count(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"unread": NotificationService(db).unread_count(current_user)}


@router.put("/read-all")
async def mark_all_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    updated = NotificationService(db).mark_all_read(current_user)
    commit(db, "mark notifications read")
    return {"updated": updated}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    notification = NotificationService(db).mark_read(current_user, notification_id)
    commit(db, "mark notification read")
    return notification_to_response(notification)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    NotificationService(db).delete(current_user, notification_id)
    commit(db, "delete notification")


@router.post("/send", status_code=status.HTTP_201_CREATED)
async def send_notification(
    body: NotificationSend,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Send an in-app (and push, where a device is registered) notification to users of this company."""
    users = UserService(db)
    recipients = [users.get_user(user_id) for user_id in body.user_ids]
    sent = NotificationService(db).notify_users(
        recipients, body.title, body.body, body.data, body.notification_type
    )
    commit(db, "send notifications")
    return {"sent": sent}
