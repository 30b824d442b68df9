import logging
from supabase import Client
from app.config.settings import settings
from app.core.clock import utcnow_iso
from app.core.errors import AppError, ForbiddenError, InternalError, NotFoundError
from app.modules.notifications.schemas import (
    NotificationListResponse, NotificationResponse, NotificationType,
)
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """
    Fire-and-forget writer for the notifications table.
    Delivery is advisory: failures are logged and never raised to the caller.
    """

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def emit(self, membership_id: Optional[str], type: NotificationType, data: Optional[Dict[str, Any]] = None) -> bool:
        if not membership_id:
            return False
        try:
            self.supabase.table("notifications").insert({
                "membership_id": membership_id,
                "type": NotificationType(type).value,
                "data": data or {},
            }).execute()
            return True
        except Exception as e:
            logger.warning(f"Failed to emit {type} notification to membership {membership_id}: {e}")
            return False

    def emit_many(self, membership_ids: Iterable[str], type: NotificationType, data: Optional[Dict[str, Any]] = None) -> int:
        """Emit the same event to several recipients; returns how many were written"""
        return sum(1 for membership_id in membership_ids if self.emit(membership_id, type, data))


class NotificationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _membership_ids(self, user_id: str) -> List[str]:
        result = self.supabase.table("memberships")\
            .select("id")\
            .eq("user_id", user_id)\
            .is_("left_at", "null")\
            .execute()
        return [m["id"] for m in result.data or []]

    def list_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> NotificationListResponse:
        """Notifications addressed to any of the user's active memberships, newest first"""
        try:
            membership_ids = self._membership_ids(user_id)
            if not membership_ids:
                return NotificationListResponse(notifications=[], total=0)
            limit = limit or settings.default_page_size
            query = self.supabase.table("notifications")\
                .select("*")\
                .in_("membership_id", membership_ids)
            if unread_only:
                query = query.is_("read_at", "null")
            if type:
                query = query.eq("type", NotificationType(type).value)
            result = query.order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            notifications = [NotificationResponse(**n) for n in result.data or []]
            return NotificationListResponse(notifications=notifications, total=len(notifications))
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch notifications: {e}")

    def mark_as_read(self, user_id: str, notification_ids: Optional[List[str]] = None) -> int:
        """Mark the given notifications (or all unread ones) as read; returns the number updated"""
        try:
            membership_ids = self._membership_ids(user_id)
            if not membership_ids:
                return 0
            query = self.supabase.table("notifications")\
                .update({"read_at": utcnow_iso()})\
                .in_("membership_id", membership_ids)\
                .is_("read_at", "null")
            if notification_ids:
                query = query.in_("id", notification_ids)
            result = query.execute()
            return len(result.data or [])
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to mark notifications as read: {e}")

    def delete_notification(self, user_id: str, notification_id: str) -> bool:
        try:
            result = self.supabase.table("notifications")\
                .select("*")\
                .eq("id", notification_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise NotFoundError("Notification not found", code="notification_not_found")
            owner = self.supabase.table("memberships")\
                .select("user_id")\
                .eq("id", result.data[0]["membership_id"])\
                .limit(1)\
                .execute()
            if not owner.data or owner.data[0]["user_id"] != user_id:
                raise ForbiddenError("Not your notification", code="not_your_notification")
            self.supabase.table("notifications")\
                .delete()\
                .eq("id", notification_id)\
                .execute()
            return True
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to delete notification: {e}")
