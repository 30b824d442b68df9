import logging
from supabase import Client
from app.config.settings import settings
from app.core.clock import utcnow_iso
from app.core.errors import (
    AppError, BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError,
    is_unique_violation, translate_api_error,
)
from app.modules.notifications.schemas import NotificationType
from app.modules.notifications.service import NotificationEmitter
from app.modules.tasks.schemas import (
    TaskAssign, TaskAssignmentResponse, TaskCompletionResponse, TaskCreate, TaskListResponse,
    TaskResponse, TaskStatus, TaskUpdate,
)
from typing import Dict, Iterable, List, Optional
from datetime import datetime

logger = logging.getLogger(__name__)


class TaskService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.notifications = NotificationEmitter(supabase)

    # Row access shared with the transfer engine

    def get_task_row(self, group_id: str, task_id: str) -> Optional[dict]:
        result = self.supabase.table("tasks")\
            .select("*")\
            .eq("id", task_id)\
            .eq("group_id", group_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def get_assignments(self, task_id: str) -> List[dict]:
        result = self.supabase.table("task_assignments")\
            .select("*")\
            .eq("task_id", task_id)\
            .execute()
        return result.data or []

    def get_assignment(self, task_id: str, membership_id: str) -> Optional[dict]:
        result = self.supabase.table("task_assignments")\
            .select("*")\
            .eq("task_id", task_id)\
            .eq("membership_id", membership_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def insert_assignment(self, task_id: str, membership_id: str) -> dict:
        result = self.supabase.table("task_assignments").insert({
            "task_id": task_id,
            "membership_id": membership_id,
        }).execute()
        if not result.data:
            raise InternalError("Failed to create assignment")
        return result.data[0]

    def delete_assignment(self, task_id: str, membership_id: str) -> int:
        result = self.supabase.table("task_assignments")\
            .delete()\
            .eq("task_id", task_id)\
            .eq("membership_id", membership_id)\
            .execute()
        return len(result.data or [])

    def _require_active_members(self, group_id: str, membership_ids: Iterable[str]):
        wanted = set(membership_ids)
        if not wanted:
            return
        result = self.supabase.table("memberships")\
            .select("id")\
            .eq("group_id", group_id)\
            .in_("id", list(wanted))\
            .is_("left_at", "null")\
            .execute()
        missing = wanted - {m["id"] for m in result.data or []}
        if missing:
            raise BadRequestError(
                "Assignees must be active members of this group",
                code="invalid_assignee",
                membership_ids=sorted(missing),
            )

    def _assignments_by_task(self, task_ids: List[str]) -> Dict[str, List[dict]]:
        by_task: Dict[str, List[dict]] = {task_id: [] for task_id in task_ids}
        if not task_ids:
            return by_task
        result = self.supabase.table("task_assignments")\
            .select("*")\
            .in_("task_id", task_ids)\
            .execute()
        for assignment in result.data or []:
            by_task.setdefault(assignment["task_id"], []).append(assignment)
        return by_task

    @staticmethod
    def _to_response(task: dict, assignments: List[dict], membership_id: Optional[str]) -> TaskResponse:
        holds_open_assignment = any(
            a["membership_id"] == membership_id and a.get("completed_at") is None
            for a in assignments
        )
        is_open = task["status"] == TaskStatus.OPEN.value
        return TaskResponse(
            **task,
            assignments=[TaskAssignmentResponse(**a) for a in assignments],
            can_complete=is_open and holds_open_assignment,
            can_transfer=is_open and holds_open_assignment,
        )

    def _notify_assigned(self, task: dict, membership_ids: Iterable[str], assigned_by: str):
        self.notifications.emit_many(membership_ids, NotificationType.TASK_ASSIGNED, {
            "group_id": task["group_id"],
            "task_id": task["id"],
            "task_title": task["title"],
            "assigned_by": assigned_by,
        })

    # Operations

    def create_task(self, group_id: str, task_data: TaskCreate, acting_membership: dict) -> TaskResponse:
        """Create an open task, optionally assigned to some members who are notified"""
        assignees = list(dict.fromkeys(task_data.assigned_membership_ids))
        try:
            self._require_active_members(group_id, assignees)
            result = self.supabase.table("tasks").insert({
                "group_id": group_id,
                "title": task_data.title,
                "description": task_data.description,
                "due_at": task_data.due_at.isoformat() if task_data.due_at else None,
                "required_count": task_data.required_count,
                "is_free": task_data.is_free,
                "status": TaskStatus.OPEN.value,
                "created_by": acting_membership["id"],
            }).execute()
            if not result.data:
                raise InternalError("Failed to create task")
        except Exception as e:
            raise translate_api_error(e, "Failed to create task")
        task = result.data[0]

        assignments = []
        if assignees:
            try:
                inserted = self.supabase.table("task_assignments")\
                    .insert([{"task_id": task["id"], "membership_id": m} for m in assignees])\
                    .execute()
                assignments = inserted.data or []
            except Exception as e:
                # the task itself is valid without its assignees
                logger.error(f"Failed to assign task {task['id']}: {e}")
            self._notify_assigned(task, [a["membership_id"] for a in assignments], acting_membership["id"])

        logger.info(f"Task {task['id']} created in group {group_id}")
        return self._to_response(task, assignments, acting_membership["id"])

    def list_tasks(
        self,
        group_id: str,
        membership: dict,
        status: Optional[TaskStatus] = None,
        is_free: Optional[bool] = None,
        assigned_to_me: bool = False,
        due_from: Optional[datetime] = None,
        due_to: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> TaskListResponse:
        """List tasks of a group ordered by due date, soonest first, undated last"""
        try:
            query = self.supabase.table("tasks")\
                .select("*")\
                .eq("group_id", group_id)
            if status is not None:
                query = query.eq("status", TaskStatus(status).value)
            if is_free is not None:
                query = query.eq("is_free", is_free)
            if due_from is not None:
                query = query.gte("due_at", due_from.isoformat())
            if due_to is not None:
                query = query.lte("due_at", due_to.isoformat())
            if assigned_to_me:
                mine = self.supabase.table("task_assignments")\
                    .select("task_id")\
                    .eq("membership_id", membership["id"])\
                    .is_("completed_at", "null")\
                    .execute()
                task_ids = [a["task_id"] for a in mine.data or []]
                if not task_ids:
                    return TaskListResponse(tasks=[], total=0)
                query = query.in_("id", task_ids)

            limit = limit or settings.default_page_size
            result = query.order("due_at")\
                .range(offset, offset + limit - 1)\
                .execute()
            tasks = result.data or []
            by_task = self._assignments_by_task([t["id"] for t in tasks])
            responses = [self._to_response(t, by_task.get(t["id"], []), membership["id"]) for t in tasks]
            return TaskListResponse(tasks=responses, total=len(responses))
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch tasks: {e}")

    def get_task(self, group_id: str, task_id: str, membership: dict) -> TaskResponse:
        try:
            task = self.get_task_row(group_id, task_id)
            if not task:
                raise NotFoundError("Task not found", code="task_not_found")
            return self._to_response(task, self.get_assignments(task_id), membership["id"])
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch task: {e}")

    def update_task(self, group_id: str, task_id: str, task_data: TaskUpdate, membership: dict) -> TaskResponse:
        update_data = task_data.model_dump(mode="json", exclude_unset=True)
        try:
            if not update_data:
                return self.get_task(group_id, task_id, membership)
            update_data["updated_at"] = utcnow_iso()
            result = self.supabase.table("tasks")\
                .update(update_data)\
                .eq("id", task_id)\
                .eq("group_id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Task not found", code="task_not_found")
            return self._to_response(result.data[0], self.get_assignments(task_id), membership["id"])
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to update task: {e}")

    def delete_task(self, group_id: str, task_id: str) -> bool:
        try:
            result = self.supabase.table("tasks")\
                .delete()\
                .eq("id", task_id)\
                .eq("group_id", group_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Task not found", code="task_not_found")
            return True
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to delete task: {e}")

    def assign_task(self, group_id: str, task_id: str, assign_data: TaskAssign, acting_membership: dict) -> TaskResponse:
        """Add assignees to a task; any already-assigned member makes the whole call a conflict"""
        membership_ids = list(dict.fromkeys(assign_data.membership_ids))
        try:
            task = self.get_task_row(group_id, task_id)
            if not task:
                raise NotFoundError("Task not found", code="task_not_found")
            self._require_active_members(group_id, membership_ids)

            already = {a["membership_id"] for a in self.get_assignments(task_id)} & set(membership_ids)
            if already:
                raise ConflictError(
                    "Task is already assigned to some of these members",
                    code="already_assigned",
                    membership_ids=sorted(already),
                )
            self.supabase.table("task_assignments")\
                .insert([{"task_id": task_id, "membership_id": m} for m in membership_ids])\
                .execute()
        except Exception as e:
            raise translate_api_error(
                e, "Failed to assign task",
                conflict_message="Task is already assigned to some of these members",
            )

        self._notify_assigned(task, membership_ids, acting_membership["id"])
        return self._to_response(task, self.get_assignments(task_id), acting_membership["id"])

    def complete_task(self, group_id: str, task_id: str, membership: dict) -> TaskCompletionResponse:
        """
        Mark the caller's assignment completed. Completing twice is a no-op.
        The task becomes done once every assignment carries completed_at.
        """
        try:
            task = self.get_task_row(group_id, task_id)
            if not task:
                raise NotFoundError("Task not found", code="task_not_found")
            if task["status"] == TaskStatus.CANCELLED.value:
                raise BadRequestError("Task is cancelled", code="task_cancelled")
            if not self.get_assignment(task_id, membership["id"]):
                raise ForbiddenError("You are not assigned to this task", code="not_assigned")

            # matches zero rows when already completed
            self.supabase.table("task_assignments")\
                .update({"completed_at": utcnow_iso()})\
                .eq("task_id", task_id)\
                .eq("membership_id", membership["id"])\
                .is_("completed_at", "null")\
                .execute()

            assignments = self.get_assignments(task_id)
            all_completed = bool(assignments) and all(a.get("completed_at") for a in assignments)
            transitioned = []
            if all_completed:
                updated = self.supabase.table("tasks")\
                    .update({"status": TaskStatus.DONE.value, "updated_at": utcnow_iso()})\
                    .eq("id", task_id)\
                    .eq("status", TaskStatus.OPEN.value)\
                    .execute()
                transitioned = updated.data or []
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to complete task: {e}")

        if transitioned and task.get("created_by") and task["created_by"] != membership["id"]:
            self.notifications.emit(task["created_by"], NotificationType.TASK_COMPLETED, {
                "group_id": group_id,
                "task_id": task_id,
                "task_title": task["title"],
                "completed_by": membership["id"],
            })

        if all_completed:
            return TaskCompletionResponse(task_id=task_id, task_status="done", message="Task completed")
        return TaskCompletionResponse(
            task_id=task_id,
            task_status="partially_completed",
            message="Your part is done, waiting for the other assignees",
        )

    def take_task(self, group_id: str, task_id: str, membership: dict) -> TaskResponse:
        """Claim a free open task for the caller"""
        try:
            task = self.get_task_row(group_id, task_id)
            if not task:
                raise NotFoundError("Task not found", code="task_not_found")
            if not task.get("is_free"):
                raise BadRequestError("This task is not marked as free", code="task_not_free")
            if task["status"] != TaskStatus.OPEN.value:
                raise BadRequestError("This task is already completed or cancelled", code="task_not_open")

            assignments = self.get_assignments(task_id)
            if any(a["membership_id"] == membership["id"] for a in assignments):
                raise ConflictError("You have already taken this task", code="already_taken")
            if len(assignments) >= task.get("required_count", 1):
                raise ConflictError("This task has already been taken", code="already_taken")

            self.insert_assignment(task_id, membership["id"])
        except Exception as e:
            if is_unique_violation(e):
                raise ConflictError("You have already taken this task", code="already_taken")
            raise translate_api_error(e, "Failed to take task")

        logger.info(f"Task {task_id} taken by membership {membership['id']}")
        return self._to_response(task, self.get_assignments(task_id), membership["id"])
