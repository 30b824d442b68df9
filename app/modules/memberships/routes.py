from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.memberships.schemas import MemberAdd, MemberUpdate, MembershipResponse
from app.modules.memberships.service import MembershipService
from app.core.dependencies import load_membership, require_permission
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/groups/{group_id}/members", tags=["members"])


def get_membership_service(supabase: Client = Depends(get_supabase)) -> MembershipService:
    return MembershipService(supabase)


@router.get("", response_model=List[MembershipResponse])
async def list_members(
    group_id: str,
    membership: Dict = Depends(load_membership),
    service: MembershipService = Depends(get_membership_service)
):
    """List active members of the group, most important first"""
    return service.list_members(group_id)


@router.get("/{member_id}", response_model=MembershipResponse)
async def get_member(
    group_id: str,
    member_id: str,
    membership: Dict = Depends(load_membership),
    service: MembershipService = Depends(get_membership_service)
):
    return service.get_member(group_id, member_id)


@router.post("", response_model=MembershipResponse, status_code=201)
async def add_member(
    group_id: str,
    member_data: MemberAdd,
    membership: Dict = Depends(require_permission("can_manage_members")),
    service: MembershipService = Depends(get_membership_service)
):
    """Add a user to the group, reactivating a previous membership (requires can_manage_members)"""
    return service.add_member(group_id, member_data, membership)


@router.put("/{member_id}", response_model=MembershipResponse)
async def update_member(
    group_id: str,
    member_id: str,
    member_data: MemberUpdate,
    membership: Dict = Depends(require_permission("can_manage_members")),
    service: MembershipService = Depends(get_membership_service)
):
    """Update role, importance or permission overrides (requires can_manage_members)"""
    return service.update_member(group_id, member_id, member_data, membership)


@router.delete("/{member_id}", status_code=204)
async def remove_member(
    group_id: str,
    member_id: str,
    membership: Dict = Depends(require_permission("can_manage_members")),
    service: MembershipService = Depends(get_membership_service)
):
    """Remove a member (requires can_manage_members; use /leave for yourself)"""
    service.remove_member(group_id, member_id, membership)
    return None
