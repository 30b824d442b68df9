from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from datetime import datetime


class TaskStatus(str, Enum):
    OPEN = "open"
    DONE = "done"
    CANCELLED = "cancelled"


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    required_count: int = Field(1, ge=1)
    is_free: bool = False
    assigned_membership_ids: List[str] = []


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    required_count: Optional[int] = Field(None, ge=1)
    is_free: Optional[bool] = None
    status: Optional[TaskStatus] = None


class TaskAssign(BaseModel):
    membership_ids: List[str] = Field(..., min_length=1)


class TaskAssignmentResponse(BaseModel):
    id: str
    task_id: str
    membership_id: str
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TaskResponse(BaseModel):
    id: str
    group_id: str
    title: str
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    required_count: int = 1
    is_free: bool = False
    status: TaskStatus
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    assignments: List[TaskAssignmentResponse] = []
    can_complete: bool = False
    can_transfer: bool = False

    class Config:
        from_attributes = True


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int


class TaskCompletionResponse(BaseModel):
    task_id: str
    task_status: Literal["done", "partially_completed"]
    message: str
