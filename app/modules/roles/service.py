import logging
import random
from supabase import Client
from app.config.permissions_config import OWNER_ROLE_NAME, get_default_role_rows, is_system_role
from app.core.clock import utcnow_iso
from app.core.errors import (
    AppError, BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError,
    translate_api_error,
)
from app.core.permissions import normalize_permission_map
from app.modules.roles.schemas import RoleCreate, RoleUpdate, RoleResponse
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class RoleService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_default_roles(self, group_id: str) -> List[dict]:
        """Insert the five system roles for a new group. Errors propagate."""
        try:
            result = self.supabase.table("group_roles")\
                .insert(get_default_role_rows(group_id))\
                .execute()
        except Exception as e:
            raise InternalError(f"Failed to create default roles: {e}")
        if not result.data:
            raise InternalError("Failed to create default roles")
        return result.data

    def get_role_by_name(self, group_id: str, name: str) -> Optional[dict]:
        result = self.supabase.table("group_roles")\
            .select("*")\
            .eq("group_id", group_id)\
            .eq("name", name.lower())\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def get_role_row(self, group_id: str, role_id: str) -> Optional[dict]:
        result = self.supabase.table("group_roles")\
            .select("*")\
            .eq("group_id", group_id)\
            .eq("id", role_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def is_valid_role_id(self, group_id: str, role_id: str) -> bool:
        try:
            return self.get_role_row(group_id, role_id) is not None
        except Exception as e:
            logger.warning(f"Role validation failed for {role_id}: {e}")
            return False

    def get_lowest_importance_role(self, group_id: str) -> Optional[dict]:
        """One of the roles tied for the lowest importance, picked at random"""
        result = self.supabase.table("group_roles")\
            .select("*")\
            .eq("group_id", group_id)\
            .order("importance")\
            .execute()
        if not result.data:
            return None
        lowest = min(role["importance"] for role in result.data)
        return random.choice([role for role in result.data if role["importance"] == lowest])

    def _member_counts(self, group_id: str, active_only: bool = True) -> Dict[str, int]:
        query = self.supabase.table("memberships")\
            .select("role_id")\
            .eq("group_id", group_id)
        if active_only:
            query = query.is_("left_at", "null")
        result = query.execute()
        counts: Dict[str, int] = {}
        for row in result.data or []:
            if row.get("role_id"):
                counts[row["role_id"]] = counts.get(row["role_id"], 0) + 1
        return counts

    def list_roles(self, group_id: str) -> List[RoleResponse]:
        """List roles of a group with their active member counts, most important first"""
        try:
            result = self.supabase.table("group_roles")\
                .select("*")\
                .eq("group_id", group_id)\
                .order("importance", desc=True)\
                .execute()
            counts = self._member_counts(group_id)
            return [
                RoleResponse(**role, member_count=counts.get(role["id"], 0))
                for role in result.data or []
            ]
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch roles: {e}")

    def get_role(self, group_id: str, role_id: str) -> RoleResponse:
        try:
            role = self.get_role_row(group_id, role_id)
            if not role:
                raise NotFoundError("Role not found", code="role_not_found")
            counts = self._member_counts(group_id)
            return RoleResponse(**role, member_count=counts.get(role_id, 0))
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch role: {e}")

    def create_role(self, group_id: str, role_data: RoleCreate) -> RoleResponse:
        """Create a custom role; system role names are reserved"""
        if not role_data.name or not role_data.display_name:
            raise BadRequestError("name and display_name are required")
        name = role_data.name.strip().lower()
        if is_system_role(name):
            raise BadRequestError("Cannot create role with system role name", code="reserved_role_name")
        try:
            result = self.supabase.table("group_roles").insert({
                "group_id": group_id,
                "name": name,
                "display_name": role_data.display_name,
                "description": role_data.description,
                "importance": role_data.importance,
                "permissions": normalize_permission_map(role_data.permissions),
                "is_default": False,
            }).execute()
            if not result.data:
                raise InternalError("Failed to create role")
            logger.info(f"Created custom role '{name}' in group {group_id}")
            return RoleResponse(**result.data[0])
        except Exception as e:
            raise translate_api_error(
                e, "Failed to create role",
                conflict_message="A role with this name already exists in this group",
            )

    def update_role(self, group_id: str, role_id: str, role_data: RoleUpdate) -> RoleResponse:
        try:
            existing = self.get_role_row(group_id, role_id)
            if not existing:
                raise NotFoundError("Role not found", code="role_not_found")
            if existing["name"] == OWNER_ROLE_NAME:
                raise ForbiddenError("Cannot modify owner role", code="owner_role_immutable")

            update_data = {}
            if role_data.display_name is not None:
                update_data["display_name"] = role_data.display_name
            if role_data.description is not None:
                update_data["description"] = role_data.description
            if role_data.importance is not None:
                update_data["importance"] = role_data.importance
            if role_data.permissions is not None:
                update_data["permissions"] = normalize_permission_map(role_data.permissions)

            if not update_data:
                return self.get_role(group_id, role_id)

            update_data["updated_at"] = utcnow_iso()
            result = self.supabase.table("group_roles")\
                .update(update_data)\
                .eq("id", role_id)\
                .eq("group_id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Role not found", code="role_not_found")
            return self.get_role(group_id, role_id)
        except Exception as e:
            raise translate_api_error(e, "Failed to update role")

    def delete_role(self, group_id: str, role_id: str) -> bool:
        """Delete a custom role; blocked for the owner role and while members still hold it"""
        try:
            existing = self.get_role_row(group_id, role_id)
            if not existing:
                raise NotFoundError("Role not found", code="role_not_found")
            if existing["name"] == OWNER_ROLE_NAME:
                raise ForbiddenError("Cannot delete owner role", code="owner_role_immutable")

            # left memberships keep their role_id and still reference the role
            member_count = self._member_counts(group_id, active_only=False).get(role_id, 0)
            if member_count > 0:
                raise ConflictError(
                    "Cannot delete role with assigned members",
                    code="role_in_use",
                    member_count=member_count,
                )

            result = self.supabase.table("group_roles")\
                .delete()\
                .eq("id", role_id)\
                .eq("group_id", group_id)\
                .execute()
            return len(result.data) > 0
        except Exception as e:
            raise translate_api_error(e, "Failed to delete role")
