from fastapi import APIRouter, Depends, Security
from fastapi.security import HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.schemas import SessionMembership, SessionResponse
from app.modules.auth.service import AuthService
from app.core.dependencies import get_auth_service, get_current_user, security
from app.core.permissions import resolve_permissions
from supabase import Client
from typing import Dict

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/session", response_model=SessionResponse)
async def get_session(
    current_user: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
):
    """Current user with the effective permissions of each active membership (for client UI)"""
    result = supabase.table("memberships")\
        .select("*")\
        .eq("user_id", current_user["id"])\
        .is_("left_at", "null")\
        .execute()
    memberships = [
        SessionMembership(
            membership_id=m["id"],
            group_id=m["group_id"],
            role_name=m["role_name"],
            importance=m["importance"],
            permissions=resolve_permissions(m, supabase).model_dump(),
        )
        for m in result.data or []
    ]
    return SessionResponse(**current_user, memberships=memberships)


@router.post("/signout", status_code=200)
async def sign_out(
    current_user: Dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Security(security),
    service: AuthService = Depends(get_auth_service)
):
    """Invalidate the cached session for this token"""
    service.sign_out(credentials.credentials)
    return {"message": "Signed out successfully"}
