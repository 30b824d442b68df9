from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.notifications.schemas import (
    MarkReadRequest, NotificationListResponse, NotificationType,
)
from app.modules.notifications.service import NotificationService
from app.core.dependencies import get_current_user
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_notification_service(supabase: Client = Depends(get_supabase)) -> NotificationService:
    return NotificationService(supabase)


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = False,
    type: Optional[NotificationType] = None,
    limit: Optional[int] = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: Dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    """List the caller's notifications across all their groups"""
    return service.list_notifications(
        user_id=current_user["id"],
        unread_only=unread_only,
        type=type,
        limit=limit,
        offset=offset
    )


@router.post("/read")
async def mark_notifications_read(
    body: MarkReadRequest,
    current_user: Dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    """Mark the listed notifications as read, or every unread one when no ids are given"""
    updated = service.mark_as_read(current_user["id"], body.notification_ids)
    return {"message": "Notifications marked as read", "updated": updated}


@router.delete("/{notification_id}", status_code=204)
async def delete_notification(
    notification_id: str,
    current_user: Dict = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
):
    service.delete_notification(current_user["id"], notification_id)
    return None
