"""
Membership permission resolution.

A membership's effective permissions are its role bundle (the group's
role-store entry when role_id is set, otherwise the fixed default for
role_name) with the membership's custom_permissions overrides applied on
top, field by field. Only known keys with boolean values override.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict
from supabase import Client

from app.config.permissions_config import (
    DEFAULT_PERMISSIONS,
    FALLBACK_ROLE_NAME,
    PERMISSION_ALIASES,
    PERMISSION_KEYS,
)

logger = logging.getLogger(__name__)


class PermissionSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_create_tasks: bool = False
    can_assign_tasks: bool = False
    can_delete_tasks: bool = False
    can_manage_members: bool = False
    can_edit_group: bool = False
    can_manage_roles: bool = False
    can_view_audit_log: bool = False
    can_connect_calendar: bool = False
    can_manage_hub: bool = False


class PermissionOverrides(BaseModel):
    """Sparse overrides; None means "inherit from the role"."""

    can_create_tasks: Optional[bool] = None
    can_assign_tasks: Optional[bool] = None
    can_delete_tasks: Optional[bool] = None
    can_manage_members: Optional[bool] = None
    can_edit_group: Optional[bool] = None
    can_manage_roles: Optional[bool] = None
    can_view_audit_log: Optional[bool] = None
    can_connect_calendar: Optional[bool] = None
    can_manage_hub: Optional[bool] = None

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "PermissionOverrides":
        return cls(**normalize_permission_map(raw))


def canonical_permission(key: str) -> str:
    return PERMISSION_ALIASES.get(key, key)


def normalize_permission_map(raw: Optional[Mapping[str, Any]]) -> Dict[str, bool]:
    """Keep known keys (aliases accepted) whose values are real booleans"""
    if not raw or not isinstance(raw, Mapping):
        return {}
    cleaned = {}
    for key, value in raw.items():
        canonical = canonical_permission(str(key))
        # bool only: 0/1 or "true" strings are not overrides
        if canonical in PERMISSION_KEYS and isinstance(value, bool):
            cleaned[canonical] = value
    return cleaned


def default_permissions(role_name: Optional[str]) -> PermissionSet:
    bundle = DEFAULT_PERMISSIONS.get(role_name or "", DEFAULT_PERMISSIONS[FALLBACK_ROLE_NAME])
    return PermissionSet(**bundle)


def _role_store_permissions(membership: Mapping[str, Any], supabase: Client) -> Optional[PermissionSet]:
    try:
        result = supabase.table("group_roles")\
            .select("permissions")\
            .eq("id", membership["role_id"])\
            .limit(1)\
            .execute()
    except Exception as e:
        logger.warning(f"Role lookup failed for role_id {membership.get('role_id')}: {e}")
        return None
    if not result.data:
        logger.warning(f"Role {membership.get('role_id')} not found, using defaults for {membership.get('role_name')}")
        return None
    return PermissionSet(**normalize_permission_map(result.data[0].get("permissions")))


def apply_overrides(base: PermissionSet, overrides: PermissionOverrides) -> PermissionSet:
    return base.model_copy(update=overrides.model_dump(exclude_none=True))


def resolve_permissions(membership: Mapping[str, Any], supabase: Optional[Client] = None) -> PermissionSet:
    base = None
    if membership.get("role_id") and supabase is not None:
        base = _role_store_permissions(membership, supabase)
    if base is None:
        base = default_permissions(membership.get("role_name"))
    overrides = PermissionOverrides.from_mapping(membership.get("custom_permissions"))
    return apply_overrides(base, overrides)


def has_permission(membership: Mapping[str, Any], permission: str, supabase: Optional[Client] = None) -> bool:
    key = canonical_permission(permission)
    if key not in PERMISSION_KEYS:
        return False
    return getattr(resolve_permissions(membership, supabase), key) is True
