from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime


class MemberAdd(BaseModel):
    user_id: str
    role_name: str = "member"
    importance: Optional[int] = Field(None, ge=0, le=100)


class MemberUpdate(BaseModel):
    role_name: Optional[str] = None
    role_id: Optional[str] = None
    importance: Optional[int] = Field(None, ge=0, le=100)
    custom_permissions: Optional[Dict[str, Any]] = None  # non-boolean values are dropped by the service


class MembershipResponse(BaseModel):
    id: str
    group_id: str
    user_id: str
    role_name: str
    role_id: Optional[str] = None
    importance: int
    custom_permissions: Dict[str, bool] = {}
    joined_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    display_name: Optional[str] = None
    pseudo: Optional[str] = None
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True
