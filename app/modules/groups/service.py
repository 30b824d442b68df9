import logging
from supabase import Client
from app.config.permissions_config import OWNER_ROLE_NAME, get_default_importance
from app.core.clock import utcnow_iso
from app.core.errors import AppError, InternalError, NotFoundError, translate_api_error
from app.modules.groups.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupWithMembersResponse, MyGroupResponse,
)
from app.modules.memberships.schemas import MembershipResponse
from app.modules.memberships.service import MembershipService
from app.modules.roles.service import RoleService
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


class GroupService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.roles = RoleService(supabase)
        self.memberships = MembershipService(supabase)

    def get_group_row(self, group_id: str) -> Optional[dict]:
        result = self.supabase.table("groups")\
            .select("*")\
            .eq("id", group_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _rollback_group(self, group_id: str):
        try:
            self.supabase.table("groups")\
                .delete()\
                .eq("id", group_id)\
                .execute()
            logger.warning(f"Rolled back group {group_id} after failed setup")
        except Exception as e:
            logger.error(f"Rollback of group {group_id} failed, group is orphaned: {e}")

    def create_group(self, group_data: GroupCreate, user_id: str) -> MyGroupResponse:
        """
        Create a group, bootstrap its system roles and make the caller its owner.
        The three writes are independent; if either later step fails the group is deleted.
        """
        try:
            result = self.supabase.table("groups").insert({
                "name": group_data.name,
                "type": group_data.type.value,
            }).execute()
            if not result.data:
                raise InternalError("Failed to create group")
        except Exception as e:
            raise translate_api_error(e, "Failed to create group")
        group = result.data[0]

        try:
            roles = self.roles.create_default_roles(group["id"])
            owner_role = next((r for r in roles if r["name"] == OWNER_ROLE_NAME), None)
            membership = self.supabase.table("memberships").insert({
                "group_id": group["id"],
                "user_id": user_id,
                "role_name": OWNER_ROLE_NAME,
                "role_id": owner_role["id"] if owner_role else None,
                "importance": get_default_importance(OWNER_ROLE_NAME),
                "custom_permissions": {},
            }).execute()
            if not membership.data:
                raise InternalError("Failed to create group membership")
        except Exception as e:
            logger.error(f"Failed to set up group {group['id']}: {e}")
            self._rollback_group(group["id"])
            raise translate_api_error(e, "Failed to create group membership")

        logger.info(f"Group {group['id']} created by user {user_id}")
        return MyGroupResponse(
            **group,
            member_count=1,
            my_membership=MembershipResponse(**membership.data[0]),
        )

    def list_my_groups(self, user_id: str) -> List[MyGroupResponse]:
        """Groups the user is an active member of, with member counts and the user's membership"""
        try:
            memberships = self.supabase.table("memberships")\
                .select("*")\
                .eq("user_id", user_id)\
                .is_("left_at", "null")\
                .execute()
            if not memberships.data:
                return []
            by_group = {m["group_id"]: m for m in memberships.data}
            group_ids = list(by_group.keys())

            groups = self.supabase.table("groups")\
                .select("*")\
                .in_("id", group_ids)\
                .order("created_at", desc=True)\
                .execute()
            members = self.supabase.table("memberships")\
                .select("group_id")\
                .in_("group_id", group_ids)\
                .is_("left_at", "null")\
                .execute()
            counts: Dict[str, int] = {}
            for m in members.data or []:
                counts[m["group_id"]] = counts.get(m["group_id"], 0) + 1

            return [
                MyGroupResponse(
                    **group,
                    member_count=counts.get(group["id"], 0),
                    my_membership=MembershipResponse(**by_group[group["id"]]),
                )
                for group in groups.data or []
            ]
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch groups: {e}")

    def get_group(self, group_id: str) -> GroupWithMembersResponse:
        try:
            group = self.get_group_row(group_id)
            if not group:
                raise NotFoundError("Group not found", code="group_not_found")
            return GroupWithMembersResponse(**group, members=self.memberships.list_members(group_id))
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch group: {e}")

    def update_group(self, group_id: str, group_data: GroupUpdate) -> GroupResponse:
        try:
            update_data = {}
            if group_data.name:
                update_data["name"] = group_data.name
            if group_data.type is not None:
                update_data["type"] = group_data.type.value

            if not update_data:
                group = self.get_group_row(group_id)
                if not group:
                    raise NotFoundError("Group not found", code="group_not_found")
                return GroupResponse(**group)

            update_data["updated_at"] = utcnow_iso()
            result = self.supabase.table("groups")\
                .update(update_data)\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Group not found", code="group_not_found")
            return GroupResponse(**result.data[0])
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to update group: {e}")

    def delete_group(self, group_id: str) -> bool:
        """Delete group; dependent rows go with it through cascading foreign keys"""
        try:
            result = self.supabase.table("groups")\
                .delete()\
                .eq("id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Group not found", code="group_not_found")
            logger.info(f"Group {group_id} deleted")
            return True
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to delete group: {e}")

    def leave_group(self, membership: dict) -> bool:
        return self.memberships.leave(membership)
