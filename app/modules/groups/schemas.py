from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from app.modules.memberships.schemas import MembershipResponse


class GroupType(str, Enum):
    FAMILY = "family"
    ROOMMATES = "roommates"
    COMPANY = "company"
    OTHER = "other"


class GroupCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: GroupType = GroupType.FAMILY


class GroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[GroupType] = None


class GroupResponse(BaseModel):
    id: str
    name: str
    type: GroupType
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MyGroupResponse(GroupResponse):
    member_count: int = 0
    my_membership: MembershipResponse


class GroupWithMembersResponse(GroupResponse):
    members: List[MembershipResponse] = []
