from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.roles.schemas import RoleCreate, RoleUpdate, RoleResponse
from app.modules.roles.service import RoleService
from app.core.dependencies import load_membership, require_permission
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/groups/{group_id}/roles", tags=["roles"])


def get_role_service(supabase: Client = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


@router.get("", response_model=List[RoleResponse])
async def list_roles(
    group_id: str,
    membership: Dict = Depends(load_membership),
    service: RoleService = Depends(get_role_service)
):
    """List roles of the group with their active member counts"""
    return service.list_roles(group_id)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    group_id: str,
    role_id: str,
    membership: Dict = Depends(load_membership),
    service: RoleService = Depends(get_role_service)
):
    return service.get_role(group_id, role_id)


@router.post("", response_model=RoleResponse, status_code=201)
async def create_role(
    group_id: str,
    role_data: RoleCreate,
    membership: Dict = Depends(require_permission("can_manage_roles")),
    service: RoleService = Depends(get_role_service)
):
    """Create a custom role (requires can_manage_roles)"""
    return service.create_role(group_id, role_data)


@router.put("/{role_id}", response_model=RoleResponse)
async def update_role(
    group_id: str,
    role_id: str,
    role_data: RoleUpdate,
    membership: Dict = Depends(require_permission("can_manage_roles")),
    service: RoleService = Depends(get_role_service)
):
    """Update a custom role (requires can_manage_roles; owner role is immutable)"""
    return service.update_role(group_id, role_id, role_data)


@router.delete("/{role_id}", status_code=204)
async def delete_role(
    group_id: str,
    role_id: str,
    membership: Dict = Depends(require_permission("can_manage_roles")),
    service: RoleService = Depends(get_role_service)
):
    """Delete a custom role (requires can_manage_roles; blocked while members hold it)"""
    service.delete_role(group_id, role_id)
    return None
