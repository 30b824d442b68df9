import logging
from supabase import Client
from app.config.permissions_config import (
    DEFAULT_ROLE_NAME, OWNER_ROLE_NAME, get_default_importance, is_system_role,
)
from app.core.clock import utcnow_iso
from app.core.errors import (
    AppError, BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError,
    translate_api_error,
)
from app.core.permissions import normalize_permission_map
from app.modules.memberships.schemas import MemberAdd, MemberUpdate, MembershipResponse
from app.modules.notifications.schemas import NotificationType
from app.modules.notifications.service import NotificationEmitter
from app.modules.roles.service import RoleService
from typing import List, Optional

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("display_name", "pseudo", "avatar_url")


class MembershipService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.roles = RoleService(supabase)
        self.notifications = NotificationEmitter(supabase)

    def get_active_row(self, group_id: str, membership_id: str) -> Optional[dict]:
        result = self.supabase.table("memberships")\
            .select("*")\
            .eq("id", membership_id)\
            .eq("group_id", group_id)\
            .is_("left_at", "null")\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def find_by_user(self, group_id: str, user_id: str) -> Optional[dict]:
        """Latest membership row of the user in the group, active or left"""
        result = self.supabase.table("memberships")\
            .select("*")\
            .eq("group_id", group_id)\
            .eq("user_id", user_id)\
            .order("joined_at", desc=True)\
            .execute()
        if not result.data:
            return None
        active = [m for m in result.data if m.get("left_at") is None]
        return active[0] if active else result.data[0]

    def count_active_owners(self, group_id: str) -> int:
        result = self.supabase.table("memberships")\
            .select("id")\
            .eq("group_id", group_id)\
            .eq("role_name", OWNER_ROLE_NAME)\
            .is_("left_at", "null")\
            .execute()
        return len(result.data or [])

    def is_last_owner(self, membership: dict) -> bool:
        return membership.get("role_name") == OWNER_ROLE_NAME \
            and self.count_active_owners(membership["group_id"]) <= 1

    def _with_profiles(self, memberships: List[dict]) -> List[MembershipResponse]:
        user_ids = list({m["user_id"] for m in memberships})
        profiles = {}
        if user_ids:
            result = self.supabase.table("profiles")\
                .select("user_id, display_name, pseudo, avatar_url")\
                .in_("user_id", user_ids)\
                .execute()
            profiles = {p["user_id"]: p for p in result.data or []}
        responses = []
        for m in memberships:
            profile = profiles.get(m["user_id"], {})
            extra = {field: profile.get(field) for field in PROFILE_FIELDS}
            responses.append(MembershipResponse(**{**m, **extra}))
        return responses

    def list_members(self, group_id: str) -> List[MembershipResponse]:
        """Active members, most important first"""
        try:
            result = self.supabase.table("memberships")\
                .select("*")\
                .eq("group_id", group_id)\
                .is_("left_at", "null")\
                .order("importance", desc=True)\
                .execute()
            return self._with_profiles(result.data or [])
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch members: {e}")

    def get_member(self, group_id: str, membership_id: str) -> MembershipResponse:
        try:
            membership = self.get_active_row(group_id, membership_id)
            if not membership:
                raise NotFoundError("Member not found", code="member_not_found")
            return self._with_profiles([membership])[0]
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch member: {e}")

    def join(self, group_id: str, user_id: str, role_name: str = DEFAULT_ROLE_NAME,
             importance: Optional[int] = None) -> dict:
        """
        Make the user an active member of the group. A previously left membership is
        reactivated with the given role and its overrides reset instead of inserting a
        duplicate row. Raises ConflictError when the user is already active.
        """
        role = self.roles.get_role_by_name(group_id, role_name)
        values = {
            "role_name": role_name,
            "role_id": role["id"] if role else None,
            "importance": importance if importance is not None else get_default_importance(role_name),
            "custom_permissions": {},
        }
        existing = self.find_by_user(group_id, user_id)
        if existing and existing.get("left_at") is None:
            raise ConflictError("User is already a member of this group", code="already_member")
        if existing:
            result = self.supabase.table("memberships")\
                .update({**values, "left_at": None, "joined_at": utcnow_iso()})\
                .eq("id", existing["id"])\
                .execute()
            logger.info(f"Reactivated membership {existing['id']} in group {group_id}")
        else:
            result = self.supabase.table("memberships")\
                .insert({**values, "group_id": group_id, "user_id": user_id})\
                .execute()
        if not result.data:
            raise InternalError("Failed to create membership")
        return result.data[0]

    def add_member(self, group_id: str, member_data: MemberAdd, acting_membership: dict) -> MembershipResponse:
        role_name = member_data.role_name.lower()
        if not is_system_role(role_name):
            raise BadRequestError(
                "Role must be one of: owner, admin, member, child, guest", code="invalid_role"
            )
        try:
            membership = self.join(group_id, member_data.user_id, role_name, member_data.importance)
        except Exception as e:
            raise translate_api_error(
                e, "Failed to add member",
                conflict_message="User is already a member of this group",
            )
        self.notifications.emit(membership["id"], NotificationType.MEMBER_ADDED, {
            "group_id": group_id,
            "added_by": acting_membership["id"],
        })
        return self._with_profiles([membership])[0]

    def update_member(self, group_id: str, membership_id: str, member_data: MemberUpdate,
                      acting_membership: dict) -> MembershipResponse:
        """Change role, importance or permission overrides of another member"""
        changes_role = member_data.role_name is not None or member_data.role_id is not None
        if changes_role and membership_id == acting_membership["id"]:
            raise ForbiddenError(
                "Ask another admin or owner to change your role", code="cannot_change_own_role"
            )
        try:
            target = self.get_active_row(group_id, membership_id)
            if not target:
                raise NotFoundError("Member not found", code="member_not_found")

            update_data = {}
            if member_data.role_name is not None:
                role_name = member_data.role_name.lower()
                if not is_system_role(role_name):
                    raise BadRequestError(
                        "Role must be one of: owner, admin, member, child, guest", code="invalid_role"
                    )
                role = self.roles.get_role_by_name(group_id, role_name)
                update_data["role_name"] = role_name
                update_data["role_id"] = role["id"] if role else None
            if member_data.role_id is not None:
                if not self.roles.is_valid_role_id(group_id, member_data.role_id):
                    raise BadRequestError("Role does not belong to this group", code="invalid_role_id")
                role = self.roles.get_role_row(group_id, member_data.role_id)
                update_data["role_id"] = role["id"]
                # custom roles keep the previous system role_name
                if is_system_role(role["name"]):
                    update_data["role_name"] = role["name"]
            if member_data.importance is not None:
                update_data["importance"] = member_data.importance
            if member_data.custom_permissions is not None:
                update_data["custom_permissions"] = normalize_permission_map(member_data.custom_permissions)

            if not update_data:
                return self._with_profiles([target])[0]

            demotes_owner = target["role_name"] == OWNER_ROLE_NAME \
                and update_data.get("role_name", OWNER_ROLE_NAME) != OWNER_ROLE_NAME
            if demotes_owner and self.is_last_owner(target):
                raise ForbiddenError(
                    "Cannot demote the last owner of the group", code="last_owner"
                )

            result = self.supabase.table("memberships")\
                .update(update_data)\
                .eq("id", membership_id)\
                .eq("group_id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Member not found", code="member_not_found")
            updated = result.data[0]
        except Exception as e:
            raise translate_api_error(e, "Failed to update member")

        if changes_role and (updated["role_name"] != target["role_name"] or updated.get("role_id") != target.get("role_id")):
            self.notifications.emit(membership_id, NotificationType.ROLE_CHANGED, {
                "group_id": group_id,
                "new_role": updated["role_name"],
                "role_id": updated.get("role_id"),
                "changed_by": acting_membership["id"],
            })
        return self._with_profiles([updated])[0]

    def _soft_delete(self, membership: dict) -> bool:
        result = self.supabase.table("memberships")\
            .update({"left_at": utcnow_iso()})\
            .eq("id", membership["id"])\
            .is_("left_at", "null")\
            .execute()
        return len(result.data or []) > 0

    def remove_member(self, group_id: str, membership_id: str, acting_membership: dict) -> bool:
        """Soft-delete another member; the last owner cannot be removed"""
        if membership_id == acting_membership["id"]:
            raise ForbiddenError("Use the leave group endpoint instead", code="cannot_remove_self")
        try:
            target = self.get_active_row(group_id, membership_id)
            if not target:
                raise NotFoundError("Member not found", code="member_not_found")
            if self.is_last_owner(target):
                raise ForbiddenError("Cannot remove the last owner of the group", code="last_owner")
            removed = self._soft_delete(target)
            logger.info(f"Membership {membership_id} removed from group {group_id} by {acting_membership['id']}")
            return removed
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to remove member: {e}")

    def leave(self, membership: dict) -> bool:
        try:
            if self.is_last_owner(membership):
                raise ForbiddenError(
                    "Transfer ownership before leaving the group", code="last_owner"
                )
            return self._soft_delete(membership)
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to leave group: {e}")
