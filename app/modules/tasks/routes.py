from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.tasks.schemas import (
    TaskAssign, TaskCompletionResponse, TaskCreate, TaskListResponse, TaskResponse,
    TaskStatus, TaskUpdate,
)
from app.modules.tasks.service import TaskService
from app.core.dependencies import load_membership, require_permission
from supabase import Client
from typing import Dict, Optional
from datetime import datetime

router = APIRouter(prefix="/groups/{group_id}/tasks", tags=["tasks"])


def get_task_service(supabase: Client = Depends(get_supabase)) -> TaskService:
    return TaskService(supabase)


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    group_id: str,
    task_data: TaskCreate,
    membership: Dict = Depends(require_permission("can_create_tasks")),
    service: TaskService = Depends(get_task_service)
):
    """Create a task (requires can_create_tasks)"""
    return service.create_task(group_id, task_data, membership)


@router.get("", response_model=TaskListResponse)
async def list_tasks(
    group_id: str,
    status: Optional[TaskStatus] = None,
    is_free: Optional[bool] = None,
    assigned_to_me: bool = False,
    due_from: Optional[datetime] = Query(None, alias="from"),
    due_to: Optional[datetime] = Query(None, alias="to"),
    limit: Optional[int] = Query(None, ge=1, le=200),
    offset: int = Query(0, ge=0),
    membership: Dict = Depends(load_membership),
    service: TaskService = Depends(get_task_service)
):
    """List tasks of the group with optional filters"""
    return service.list_tasks(
        group_id,
        membership,
        status=status,
        is_free=is_free,
        assigned_to_me=assigned_to_me,
        due_from=due_from,
        due_to=due_to,
        limit=limit,
        offset=offset
    )


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    group_id: str,
    task_id: str,
    membership: Dict = Depends(load_membership),
    service: TaskService = Depends(get_task_service)
):
    return service.get_task(group_id, task_id, membership)


@router.put("/{task_id}", response_model=TaskResponse)
async def update_task(
    group_id: str,
    task_id: str,
    task_data: TaskUpdate,
    membership: Dict = Depends(require_permission("can_create_tasks")),
    service: TaskService = Depends(get_task_service)
):
    """Update a task (requires can_create_tasks)"""
    return service.update_task(group_id, task_id, task_data, membership)


@router.delete("/{task_id}", status_code=204)
async def delete_task(
    group_id: str,
    task_id: str,
    membership: Dict = Depends(require_permission("can_delete_tasks")),
    service: TaskService = Depends(get_task_service)
):
    """Delete a task (requires can_delete_tasks)"""
    service.delete_task(group_id, task_id)
    return None


@router.post("/{task_id}/assign", response_model=TaskResponse)
async def assign_task(
    group_id: str,
    task_id: str,
    assign_data: TaskAssign,
    membership: Dict = Depends(require_permission("can_assign_tasks")),
    service: TaskService = Depends(get_task_service)
):
    """Assign members to a task (requires can_assign_tasks)"""
    return service.assign_task(group_id, task_id, assign_data, membership)


@router.post("/{task_id}/complete", response_model=TaskCompletionResponse)
async def complete_task(
    group_id: str,
    task_id: str,
    membership: Dict = Depends(load_membership),
    service: TaskService = Depends(get_task_service)
):
    """Complete the caller's assignment; returns done or partially_completed"""
    return service.complete_task(group_id, task_id, membership)


@router.post("/{task_id}/take", response_model=TaskResponse)
async def take_task(
    group_id: str,
    task_id: str,
    membership: Dict = Depends(load_membership),
    service: TaskService = Depends(get_task_service)
):
    """Claim a free task"""
    return service.take_task(group_id, task_id, membership)
