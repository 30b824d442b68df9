from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.invitations.schemas import (
    InvitationAcceptResponse, InvitationCreate, InvitationPublicResponse, InvitationResponse,
)
from app.modules.invitations.service import InvitationService
from app.core.dependencies import get_current_user, require_permission
from supabase import Client
from typing import List, Dict

group_router = APIRouter(prefix="/groups/{group_id}/invitations", tags=["invitations"])
router = APIRouter(prefix="/invitations", tags=["invitations"])


def get_invitation_service(supabase: Client = Depends(get_supabase)) -> InvitationService:
    return InvitationService(supabase)


@group_router.post("", response_model=InvitationResponse, status_code=201)
async def create_invitation(
    group_id: str,
    invitation_data: InvitationCreate,
    membership: Dict = Depends(require_permission("can_manage_members")),
    service: InvitationService = Depends(get_invitation_service)
):
    """Create a QR or pseudo invitation (requires can_manage_members)"""
    return service.create_invitation(group_id, invitation_data, membership)


@group_router.get("", response_model=List[InvitationResponse])
async def list_invitations(
    group_id: str,
    membership: Dict = Depends(require_permission("can_manage_members")),
    service: InvitationService = Depends(get_invitation_service)
):
    """List live invitations of the group (requires can_manage_members)"""
    return service.list_invitations(group_id)


@group_router.delete("/{invitation_id}", response_model=InvitationResponse)
async def revoke_invitation(
    group_id: str,
    invitation_id: str,
    membership: Dict = Depends(require_permission("can_manage_members")),
    service: InvitationService = Depends(get_invitation_service)
):
    """Revoke an invitation (requires can_manage_members)"""
    return service.revoke_invitation(group_id, invitation_id)


@router.get("/pending", response_model=List[InvitationPublicResponse])
async def list_pending_invitations(
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service)
):
    """Invitations addressed to the caller's pseudo"""
    return service.list_pending(current_user["id"])


@router.get("/{code_or_pseudo}", response_model=InvitationPublicResponse)
async def get_invitation(
    code_or_pseudo: str,
    service: InvitationService = Depends(get_invitation_service)
):
    """Public invitation lookup by QR code or pseudo (no authentication)"""
    return service.get_invitation(code_or_pseudo)


@router.post("/{code_or_pseudo}/accept", response_model=InvitationAcceptResponse)
async def accept_invitation(
    code_or_pseudo: str,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service)
):
    """Join the group behind an invitation"""
    return service.accept_invitation(code_or_pseudo, current_user)


@router.post("/{invitation_id}/refuse")
async def refuse_invitation(
    invitation_id: str,
    current_user: Dict = Depends(get_current_user),
    service: InvitationService = Depends(get_invitation_service)
):
    """Decline an invitation addressed to your pseudo"""
    service.refuse_invitation(invitation_id, current_user["id"])
    return {"message": "Invitation refused successfully"}
