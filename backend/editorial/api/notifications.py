"""
Notification inbox of the acting user.
"""
from fastapi import APIRouter, Depends, Query

from editorial.core.dependencies import get_current_user, get_services
from editorial.core.response_formatter import ResponseFormatter
from editorial.models import UserInDB
from editorial.services.container import EditorialServices

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    notifications = await services.notifications.list_for_recipient(
        current_user.id, unread_only=unread_only, limit=limit
    )
    return ResponseFormatter.success(notifications, message=f"{len(notifications)} notification(s)")


@router.post("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    current_user: UserInDB = Depends(get_current_user),
    services: EditorialServices = Depends(get_services)
):
    await services.notifications.mark_read(notification_id, current_user.id)
    return ResponseFormatter.success(message="Notification marked as read")
