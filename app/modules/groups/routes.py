from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.groups.schemas import (
    GroupCreate, GroupUpdate, GroupResponse, GroupWithMembersResponse, MyGroupResponse,
)
from app.modules.groups.service import GroupService
from app.core.dependencies import get_current_user, load_membership, require_permission, require_role
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/groups", tags=["groups"])


def get_group_service(supabase: Client = Depends(get_supabase)) -> GroupService:
    return GroupService(supabase)


@router.post("", response_model=MyGroupResponse, status_code=201)
async def create_group(
    group_data: GroupCreate,
    current_user: Dict = Depends(get_current_user),
    service: GroupService = Depends(get_group_service)
):
    """Create a new group; the caller becomes its owner"""
    return service.create_group(group_data, current_user["id"])


@router.get("", response_model=List[MyGroupResponse])
async def list_my_groups(
    current_user: Dict = Depends(get_current_user),
    service: GroupService = Depends(get_group_service)
):
    """List groups the caller is an active member of"""
    return service.list_my_groups(current_user["id"])


@router.get("/{group_id}", response_model=GroupWithMembersResponse)
async def get_group(
    group_id: str,
    membership: Dict = Depends(load_membership),
    service: GroupService = Depends(get_group_service)
):
    """Get group with its active members (requires membership)"""
    return service.get_group(group_id)


@router.put("/{group_id}", response_model=GroupResponse)
async def update_group(
    group_id: str,
    group_data: GroupUpdate,
    membership: Dict = Depends(require_permission("can_edit_group")),
    service: GroupService = Depends(get_group_service)
):
    """Update group (requires can_edit_group)"""
    return service.update_group(group_id, group_data)


@router.delete("/{group_id}", status_code=204)
async def delete_group(
    group_id: str,
    membership: Dict = Depends(require_role("owner")),
    service: GroupService = Depends(get_group_service)
):
    """Delete group (owner only)"""
    service.delete_group(group_id)
    return None


@router.post("/{group_id}/leave")
async def leave_group(
    group_id: str,
    membership: Dict = Depends(load_membership),
    service: GroupService = Depends(get_group_service)
):
    """Leave the group; the last owner must hand over ownership first"""
    service.leave_group(membership)
    return {"message": "Left group successfully"}
