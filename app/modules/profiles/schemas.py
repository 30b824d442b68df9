from pydantic import BaseModel, Field
from typing import Literal, List, Optional
from datetime import datetime
import re

PSEUDO_PATTERN = re.compile(r"[A-Za-z0-9_]{3,20}")


def is_valid_pseudo(pseudo: Optional[str]) -> bool:
    """3-20 letters, digits or underscores, nothing else"""
    return bool(pseudo) and PSEUDO_PATTERN.fullmatch(pseudo) is not None


class ProfileUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    pseudo: Optional[str] = None
    avatar_url: Optional[str] = None
    locale: Optional[Literal["en", "fr"]] = None


class ProfileResponse(BaseModel):
    user_id: str
    display_name: str
    pseudo: Optional[str] = None
    avatar_url: Optional[str] = None
    locale: str = "en"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileMembership(BaseModel):
    id: str
    group_id: str
    role_name: str
    importance: int


class MyProfileResponse(ProfileResponse):
    memberships: List[ProfileMembership] = []
