import logging
import secrets
from supabase import Client
from app.config.settings import settings
from app.core.clock import hours_from_now, is_past, utcnow_iso
from app.core.errors import (
    AppError, BadRequestError, ConflictError, ForbiddenError, GoneError, InternalError,
    NotFoundError, translate_api_error,
)
from app.modules.invitations.schemas import (
    InvitationAcceptResponse, InvitationCreate, InvitationGroup, InvitationPublicResponse,
    InvitationResponse, InvitationType,
)
from app.modules.memberships.service import MembershipService
from app.modules.notifications.schemas import NotificationType
from app.modules.notifications.service import NotificationEmitter
from app.modules.profiles.schemas import is_valid_pseudo
from app.modules.profiles.service import ProfileService
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# No I/O/0/1 (and no Z, read as 2) so codes survive being typed from a screen
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXY23456789"


def generate_invitation_code(length: Optional[int] = None) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length or settings.invitation_code_length))


def is_exhausted(invitation: dict) -> bool:
    return invitation.get("current_uses", 0) >= invitation.get("max_uses", 1)


def is_live(invitation: dict) -> bool:
    return invitation.get("revoked_at") is None \
        and not is_past(invitation["expires_at"]) \
        and not is_exhausted(invitation)


class InvitationService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.profiles = ProfileService(supabase)
        self.memberships = MembershipService(supabase)
        self.notifications = NotificationEmitter(supabase)

    def _code_exists(self, code: str) -> bool:
        result = self.supabase.table("invitations")\
            .select("id")\
            .eq("code", code)\
            .limit(1)\
            .execute()
        return bool(result.data)

    def _unique_code(self) -> str:
        for _ in range(settings.invitation_code_attempts):
            code = generate_invitation_code()
            if not self._code_exists(code):
                return code
        logger.error(f"No unique invitation code after {settings.invitation_code_attempts} attempts")
        raise InternalError("Failed to generate unique code, please try again", code="code_generation_failed")

    def _groups_by_id(self, group_ids: List[str]) -> Dict[str, InvitationGroup]:
        if not group_ids:
            return {}
        result = self.supabase.table("groups")\
            .select("id, name, type")\
            .in_("id", list(set(group_ids)))\
            .execute()
        return {g["id"]: InvitationGroup(**g) for g in result.data or []}

    def _public_view(self, invitation: dict, groups: Dict[str, InvitationGroup]) -> InvitationPublicResponse:
        return InvitationPublicResponse(
            id=invitation["id"],
            group=groups.get(invitation["group_id"]),
            pseudo=invitation.get("pseudo"),
            expires_at=invitation["expires_at"],
            max_uses=invitation["max_uses"],
            current_uses=invitation["current_uses"],
        )

    def _lookup(self, code_or_pseudo: str) -> Optional[dict]:
        """Unrevoked invitation by code (unique), else the most recent one for that pseudo"""
        by_code = self.supabase.table("invitations")\
            .select("*")\
            .eq("code", code_or_pseudo)\
            .is_("revoked_at", "null")\
            .limit(1)\
            .execute()
        if by_code.data:
            return by_code.data[0]
        by_pseudo = self.supabase.table("invitations")\
            .select("*")\
            .eq("pseudo", code_or_pseudo)\
            .is_("revoked_at", "null")\
            .order("created_at", desc=True)\
            .limit(1)\
            .execute()
        return by_pseudo.data[0] if by_pseudo.data else None

    @staticmethod
    def _check_usable(invitation: dict):
        if is_past(invitation["expires_at"]):
            raise GoneError("This invitation has expired", code="invitation_expired")
        if is_exhausted(invitation):
            raise GoneError(
                "This invitation has reached its maximum number of uses", code="invitation_exhausted"
            )

    def _count_use(self, invitation: dict) -> bool:
        """
        Increment current_uses with a compare-and-set. A miss means another redemption
        got there first: re-read and retry while uses remain. False once the cap is reached.
        """
        seen = invitation
        # every miss is another redemption, so at most max_uses retries
        for _ in range(invitation["max_uses"] + 1):
            if is_exhausted(seen):
                return False
            used = self.supabase.table("invitations")\
                .update({"current_uses": seen["current_uses"] + 1})\
                .eq("id", seen["id"])\
                .eq("current_uses", seen["current_uses"])\
                .execute()
            if used.data:
                return True
            logger.warning(f"Concurrent redemption of invitation {seen['id']}, retrying use count")
            fresh = self.supabase.table("invitations")\
                .select("*")\
                .eq("id", seen["id"])\
                .limit(1)\
                .execute()
            if not fresh.data:
                return False
            seen = fresh.data[0]
        return False

    def _undo_join(self, membership: dict, previous: Optional[dict]):
        """Revert a join whose invitation use could not be counted"""
        try:
            if previous:
                restored = {k: previous.get(k) for k in (
                    "role_name", "role_id", "importance", "custom_permissions", "joined_at", "left_at",
                )}
                self.supabase.table("memberships")\
                    .update(restored)\
                    .eq("id", membership["id"])\
                    .execute()
            else:
                self.supabase.table("memberships")\
                    .delete()\
                    .eq("id", membership["id"])\
                    .execute()
            logger.warning(f"Reverted membership {membership['id']} after losing invitation redemption race")
        except Exception as e:
            logger.error(f"Could not revert membership {membership['id']}, group is over its invitation cap: {e}")

    def create_invitation(self, group_id: str, invitation_data: InvitationCreate, acting_membership: dict) -> InvitationResponse:
        """Issue a QR code invitation or one addressed to a pseudo"""
        expires_in = invitation_data.expires_in_hours or settings.invitation_default_expiry_hours
        row: Dict[str, Any] = {
            "group_id": group_id,
            "created_by": acting_membership["id"],
            "max_uses": invitation_data.max_uses or settings.invitation_default_max_uses,
            "current_uses": 0,
            "expires_at": hours_from_now(expires_in),
        }
        try:
            if invitation_data.type == InvitationType.PSEUDO:
                pseudo = invitation_data.pseudo
                if not is_valid_pseudo(pseudo):
                    raise BadRequestError(
                        "Pseudo must be 3-20 alphanumeric characters or underscores",
                        code="invalid_pseudo",
                    )
                profile = self.profiles.get_by_pseudo(pseudo)
                if not profile:
                    raise NotFoundError(f'No user found with pseudo "{pseudo}"', code="pseudo_not_found")
                existing = self.memberships.find_by_user(group_id, profile["user_id"])
                if existing and existing.get("left_at") is None:
                    raise ConflictError(
                        f'User with pseudo "{pseudo}" is already a member of this group',
                        code="already_member",
                    )
                pending = self.supabase.table("invitations")\
                    .select("*")\
                    .eq("group_id", group_id)\
                    .eq("pseudo", pseudo)\
                    .is_("revoked_at", "null")\
                    .execute()
                if any(is_live(inv) for inv in pending.data or []):
                    raise ConflictError(
                        f'An invitation for "{pseudo}" already exists', code="invitation_exists"
                    )
                row["pseudo"] = pseudo
            else:
                row["code"] = self._unique_code()

            result = self.supabase.table("invitations").insert(row).execute()
            if not result.data:
                raise InternalError("Failed to create invitation")
            logger.info(f"{invitation_data.type.value} invitation {result.data[0]['id']} created for group {group_id}")
            return InvitationResponse(**result.data[0])
        except Exception as e:
            raise translate_api_error(
                e, "Failed to create invitation",
                conflict_message="Invitation already exists",
            )

    def get_invitation(self, code_or_pseudo: str) -> InvitationPublicResponse:
        """Public lookup used by the QR scanner before sign-in"""
        try:
            invitation = self._lookup(code_or_pseudo)
            if not invitation:
                raise NotFoundError("Invalid or revoked invitation code/pseudo", code="invitation_not_found")
            self._check_usable(invitation)
            return self._public_view(invitation, self._groups_by_id([invitation["group_id"]]))
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch invitation: {e}")

    def accept_invitation(self, code_or_pseudo: str, user_data: Dict[str, Any]) -> InvitationAcceptResponse:
        """
        Redeem an invitation for the caller.
        1. ensure a profile exists
        2. resolve the invitation (code first, then latest pseudo match)
        3. reject expired, exhausted, or someone else's pseudo invitation
        4. join the group as member (reactivating a left membership)
        5. count the use (undoing the join if the cap was reached meanwhile) and welcome the new member
        """
        self.profiles.ensure_profile(user_data)
        try:
            invitation = self._lookup(code_or_pseudo)
            if not invitation:
                raise NotFoundError("Invalid or revoked invitation", code="invitation_not_found")
            self._check_usable(invitation)
            if invitation.get("pseudo"):
                profile = self.profiles.get_profile_row(user_data["id"])
                if not profile or profile.get("pseudo") != invitation["pseudo"]:
                    raise ForbiddenError(
                        f'This invitation is for user with pseudo "{invitation["pseudo"]}"',
                        code="pseudo_mismatch",
                    )
            previous = self.memberships.find_by_user(invitation["group_id"], user_data["id"])
            membership = self.memberships.join(invitation["group_id"], user_data["id"])
        except Exception as e:
            raise translate_api_error(
                e, "Failed to join group",
                conflict_message="You are already a member of this group",
            )

        try:
            counted = self._count_use(invitation)
        except Exception as e:
            logger.error(f"Failed to count use of invitation {invitation['id']}: {e}")
            self._undo_join(membership, previous)
            raise InternalError("Failed to join group")
        if not counted:
            self._undo_join(membership, previous)
            raise GoneError(
                "This invitation has reached its maximum number of uses", code="invitation_exhausted"
            )

        self.notifications.emit(membership["id"], NotificationType.WELCOME, {
            "group_id": invitation["group_id"],
            "invitation_id": invitation["id"],
        })
        logger.info(f"User {user_data['id']} joined group {invitation['group_id']} via invitation {invitation['id']}")
        return InvitationAcceptResponse(
            group_id=invitation["group_id"],
            membership=self.memberships.get_member(invitation["group_id"], membership["id"]),
            message="Successfully joined the group",
        )

    def list_invitations(self, group_id: str) -> List[InvitationResponse]:
        """Live invitations of a group: not revoked, not expired, not exhausted"""
        try:
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("group_id", group_id)\
                .is_("revoked_at", "null")\
                .order("created_at", desc=True)\
                .execute()
            return [InvitationResponse(**inv) for inv in result.data or [] if is_live(inv)]
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch invitations: {e}")

    def revoke_invitation(self, group_id: str, invitation_id: str) -> InvitationResponse:
        """Revoke an invitation; an already revoked one reads as not found"""
        try:
            result = self.supabase.table("invitations")\
                .update({"revoked_at": utcnow_iso()})\
                .eq("id", invitation_id)\
                .eq("group_id", group_id)\
                .is_("revoked_at", "null")\
                .execute()
            if not result.data:
                raise NotFoundError("Invitation not found", code="invitation_not_found")
            return InvitationResponse(**result.data[0])
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to revoke invitation: {e}")

    def list_pending(self, user_id: str) -> List[InvitationPublicResponse]:
        """Live invitations addressed to the caller's pseudo"""
        try:
            profile = self.profiles.get_profile_row(user_id)
            if not profile or not profile.get("pseudo"):
                return []
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("pseudo", profile["pseudo"])\
                .is_("revoked_at", "null")\
                .gt("expires_at", utcnow_iso())\
                .order("created_at", desc=True)\
                .execute()
            invitations = [inv for inv in result.data or [] if not is_exhausted(inv)]
            groups = self._groups_by_id([inv["group_id"] for inv in invitations])
            return [self._public_view(inv, groups) for inv in invitations]
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch pending invitations: {e}")

    def refuse_invitation(self, invitation_id: str, user_id: str) -> bool:
        """Recipient-side decline of a pseudo invitation"""
        try:
            profile = self.profiles.get_profile_row(user_id)
            if not profile or not profile.get("pseudo"):
                raise BadRequestError("You must set a pseudo before managing invitations", code="no_pseudo")
            result = self.supabase.table("invitations")\
                .select("*")\
                .eq("id", invitation_id)\
                .eq("pseudo", profile["pseudo"])\
                .is_("revoked_at", "null")\
                .limit(1)\
                .execute()
            if not result.data:
                raise NotFoundError("Invalid invitation or not addressed to you", code="invitation_not_found")
            if is_past(result.data[0]["expires_at"]):
                raise GoneError("This invitation has expired", code="invitation_expired")
            refused = self.supabase.table("invitations")\
                .update({"revoked_at": utcnow_iso()})\
                .eq("id", invitation_id)\
                .is_("revoked_at", "null")\
                .execute()
            if not refused.data:
                raise NotFoundError("Invalid invitation or not addressed to you", code="invitation_not_found")
            return True
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to refuse invitation: {e}")
