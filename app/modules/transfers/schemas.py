from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime


class TransferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    CANCELLED = "cancelled"


class TransferCreate(BaseModel):
    task_id: str
    to_membership_id: Optional[str] = None
    return_task_id: Optional[str] = None
    message: Optional[str] = Field(None, max_length=500)


class TransferResponse(BaseModel):
    id: str
    group_id: str
    task_id: str
    from_membership_id: str
    to_membership_id: Optional[str] = None
    return_task_id: Optional[str] = None
    status: TransferStatus
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    class Config:
        from_attributes = True


class TransferListResponse(BaseModel):
    transfers: List[TransferResponse]
    total: int
