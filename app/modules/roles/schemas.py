from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from datetime import datetime


class RoleCreate(BaseModel):
    name: Optional[str] = Field(None, max_length=50)
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    importance: int = Field(50, ge=0, le=100)
    permissions: Optional[Dict[str, Any]] = None  # non-boolean values are dropped by the service


class RoleUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    importance: Optional[int] = Field(None, ge=0, le=100)
    permissions: Optional[Dict[str, Any]] = None  # non-boolean values are dropped by the service


class RoleResponse(BaseModel):
    id: str
    group_id: str
    name: str
    display_name: str
    description: Optional[str] = None
    importance: int
    permissions: Dict[str, bool] = {}
    is_default: bool = False
    member_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
