import logging
from supabase import Client
from app.core.clock import utcnow_iso
from app.core.errors import (
    AppError, BadRequestError, InternalError, NotFoundError, translate_api_error,
)
from app.modules.profiles.schemas import (
    MyProfileResponse, ProfileMembership, ProfileResponse, ProfileUpdate, is_valid_pseudo,
)
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile_row(self, user_id: str) -> Optional[dict]:
        result = self.supabase.table("profiles")\
            .select("*")\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def get_by_pseudo(self, pseudo: str) -> Optional[dict]:
        result = self.supabase.table("profiles")\
            .select("*")\
            .eq("pseudo", pseudo)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def ensure_profile(self, user_data: Dict[str, Any]) -> dict:
        """Return the caller's profile, creating a minimal one if the sign-up hook never ran"""
        try:
            profile = self.get_profile_row(user_data["id"])
            if profile:
                return profile
            metadata = user_data.get("user_metadata") or {}
            display_name = metadata.get("name") or user_data.get("email") or "User"
            logger.info(f"Creating missing profile for user {user_data['id']}")
            result = self.supabase.table("profiles").insert({
                "user_id": user_data["id"],
                "display_name": display_name,
                "locale": "en",
            }).execute()
            if not result.data:
                raise InternalError("Failed to create user profile")
            return result.data[0]
        except Exception as e:
            raise translate_api_error(e, "Failed to create user profile")

    def get_me(self, user_data: Dict[str, Any]) -> MyProfileResponse:
        """Caller's profile with their active memberships"""
        try:
            profile = self.get_profile_row(user_data["id"])
            if not profile:
                raise NotFoundError("Profile not found", code="profile_not_found")
            memberships = self.supabase.table("memberships")\
                .select("id, group_id, role_name, importance")\
                .eq("user_id", user_data["id"])\
                .is_("left_at", "null")\
                .execute()
            return MyProfileResponse(
                **profile,
                memberships=[ProfileMembership(**m) for m in memberships.data or []],
            )
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch profile: {e}")

    def get_public_profile(self, user_id: str) -> ProfileResponse:
        try:
            profile = self.get_profile_row(user_id)
            if not profile:
                raise NotFoundError("Profile not found", code="profile_not_found")
            return ProfileResponse(**profile)
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch profile: {e}")

    def update_me(self, user_data: Dict[str, Any], profile_data: ProfileUpdate) -> ProfileResponse:
        update_data = {}
        if profile_data.display_name:
            update_data["display_name"] = profile_data.display_name
        if profile_data.pseudo is not None:
            if profile_data.pseudo and not is_valid_pseudo(profile_data.pseudo):
                raise BadRequestError(
                    "Pseudo must be 3-20 alphanumeric characters or underscores",
                    code="invalid_pseudo",
                )
            update_data["pseudo"] = profile_data.pseudo or None
        if profile_data.avatar_url is not None:
            update_data["avatar_url"] = profile_data.avatar_url
        if profile_data.locale:
            update_data["locale"] = profile_data.locale

        try:
            profile = self.ensure_profile(user_data)
            if not update_data:
                return ProfileResponse(**profile)
            update_data["updated_at"] = utcnow_iso()
            result = self.supabase.table("profiles")\
                .update(update_data)\
                .eq("user_id", user_data["id"])\
                .execute()
            if not result.data:
                raise NotFoundError("Profile not found", code="profile_not_found")
            return ProfileResponse(**result.data[0])
        except Exception as e:
            raise translate_api_error(
                e, "Failed to update profile",
                conflict_message="This pseudo is already in use by another user",
            )
