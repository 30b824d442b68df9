from pydantic import BaseModel
from typing import Any, Dict, List, Optional


class SessionMembership(BaseModel):
    membership_id: str
    group_id: str
    role_name: str
    importance: int
    permissions: Dict[str, bool]


class SessionResponse(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = {}
    memberships: List[SessionMembership] = []
