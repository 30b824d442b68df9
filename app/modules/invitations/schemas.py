from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.modules.memberships.schemas import MembershipResponse


class InvitationType(str, Enum):
    QR = "qr"
    PSEUDO = "pseudo"


class InvitationCreate(BaseModel):
    type: InvitationType
    pseudo: Optional[str] = None
    expires_in_hours: Optional[int] = Field(None, ge=1, le=720)
    max_uses: Optional[int] = Field(None, ge=1, le=100)


class InvitationResponse(BaseModel):
    id: str
    group_id: str
    created_by: Optional[str] = None
    code: Optional[str] = None
    pseudo: Optional[str] = None
    max_uses: int
    current_uses: int = 0
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvitationGroup(BaseModel):
    id: str
    name: str
    type: str


class InvitationPublicResponse(BaseModel):
    """What an invitee may see before joining"""
    id: str
    group: Optional[InvitationGroup] = None
    pseudo: Optional[str] = None
    expires_at: datetime
    max_uses: int
    current_uses: int


class InvitationAcceptResponse(BaseModel):
    group_id: str
    membership: MembershipResponse
    message: str
