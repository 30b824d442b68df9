from enum import Enum
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime


class NotificationType(str, Enum):
    TASK_REMINDER = "task_reminder"
    TASK_ASSIGNED = "task_assigned"
    TASK_COMPLETED = "task_completed"
    TRANSFER_REQUEST = "transfer_request"
    TRANSFER_ACCEPTED = "transfer_accepted"
    TRANSFER_REFUSED = "transfer_refused"
    ROLE_CHANGED = "role_changed"
    MEMBER_ADDED = "member_added"
    WELCOME = "welcome"
    PING = "ping"


class NotificationResponse(BaseModel):
    id: str
    membership_id: str
    type: NotificationType
    data: Dict[str, Any] = {}
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int


class MarkReadRequest(BaseModel):
    notification_ids: Optional[List[str]] = None
