"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.core.errors import BadRequestError, ForbiddenError, InternalError
from app.core.permissions import canonical_permission, resolve_permissions
from supabase import Client
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Resolve the caller's identity from the bearer token"""
    token = credentials.credentials if credentials else None
    return auth_service.get_current_user(token)


def fetch_active_membership(supabase: Client, group_id: str, user_id: str) -> Optional[dict]:
    result = supabase.table("memberships")\
        .select("*")\
        .eq("group_id", group_id)\
        .eq("user_id", user_id)\
        .is_("left_at", "null")\
        .limit(1)\
        .execute()
    return result.data[0] if result.data else None


def load_membership(
    request: Request,
    group_id: Optional[str] = None,
    user_data: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_supabase)
) -> dict:
    """Load the caller's active membership in the route's group and attach it to the request"""
    if not group_id:
        raise BadRequestError("Group ID is required", code="group_id_required")
    try:
        membership = fetch_active_membership(supabase, group_id, user_data["id"])
    except Exception as e:
        logger.error(f"Error loading membership for group {group_id}: {e}")
        raise InternalError("Failed to load membership")
    if not membership:
        raise ForbiddenError("You are not a member of this group", code="not_a_member")
    request.state.membership = membership
    request.state.group_id = group_id
    return membership


def check_permission(membership: Optional[Dict[str, Any]], permission: str, supabase: Optional[Client] = None) -> dict:
    """Raise unless the membership resolves the given permission to True"""
    if membership is None:
        raise ForbiddenError(
            "Membership not loaded",
            code="membership_not_loaded",
        )
    key = canonical_permission(permission)
    permissions = resolve_permissions(membership, supabase)
    if getattr(permissions, key, False) is not True:
        raise ForbiddenError(
            f"You need '{key}' permission to perform this action",
            code="insufficient_permissions",
            required_permission=key,
            your_permissions=permissions.model_dump(),
        )
    return membership


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check(
        membership: Dict = Depends(load_membership),
        supabase: Client = Depends(get_supabase)
    ) -> dict:
        return check_permission(membership, required_permission, supabase)
    return check


def check_role(membership: Optional[Dict[str, Any]], *allowed_roles: str) -> dict:
    if membership is None:
        raise ForbiddenError("Membership not loaded", code="membership_not_loaded")
    if membership.get("role_name") not in allowed_roles:
        raise ForbiddenError(
            f"You need one of these roles: {', '.join(allowed_roles)}",
            code="insufficient_role",
            your_role=membership.get("role_name"),
            required_roles=list(allowed_roles),
        )
    return membership


def require_role(*allowed_roles: str):
    """Factory function to create role check dependency"""
    def check(membership: Dict = Depends(load_membership)) -> dict:
        return check_role(membership, *allowed_roles)
    return check


def require_importance(min_importance: int):
    """Factory function to create minimum-importance check dependency"""
    def check(membership: Dict = Depends(load_membership)) -> dict:
        if membership.get("importance", 0) < min_importance:
            raise ForbiddenError(
                f"Minimum importance level required: {min_importance}",
                code="insufficient_importance",
                your_importance=membership.get("importance", 0),
                required_importance=min_importance,
            )
        return membership
    return check
