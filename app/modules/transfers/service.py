"""
Task transfer engine.

A transfer moves one assignment from its requester to another member,
optionally handing a second task back the other way. Status goes from
pending to exactly one of accepted, refused or cancelled and never moves
again. Resolution is a compare-and-set on status = pending, so of two
concurrent resolutions only one matches a row.

The data service has no transactions: the assignment hand-off on
acceptance is a sequence of independent writes. Each write registers an
undo step before the next one runs; if a later write fails the undo steps
run in reverse and the transfer goes back to pending.
"""

import logging
from supabase import Client
from app.config.settings import settings
from app.core.clock import utcnow_iso
from app.core.errors import (
    AppError, BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError,
    translate_api_error,
)
from app.modules.notifications.schemas import NotificationType
from app.modules.notifications.service import NotificationEmitter
from app.modules.tasks.schemas import TaskStatus
from app.modules.tasks.service import TaskService
from app.modules.transfers.schemas import (
    TransferCreate, TransferListResponse, TransferResponse, TransferStatus,
)
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class TransferService:
    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.tasks = TaskService(supabase)
        self.notifications = NotificationEmitter(supabase)

    def get_transfer_row(self, group_id: str, transfer_id: str) -> Optional[dict]:
        result = self.supabase.table("task_transfers")\
            .select("*")\
            .eq("id", transfer_id)\
            .eq("group_id", group_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _is_active_member(self, group_id: str, membership_id: str) -> bool:
        result = self.supabase.table("memberships")\
            .select("id")\
            .eq("id", membership_id)\
            .eq("group_id", group_id)\
            .is_("left_at", "null")\
            .limit(1)\
            .execute()
        return bool(result.data)

    def _load_pending(self, group_id: str, transfer_id: str) -> dict:
        transfer = self.get_transfer_row(group_id, transfer_id)
        if not transfer:
            raise NotFoundError("Transfer not found", code="transfer_not_found")
        if transfer["status"] != TransferStatus.PENDING.value:
            raise BadRequestError(
                "Transfer already resolved",
                code="transfer_already_resolved",
                status=transfer["status"],
            )
        return transfer

    def _resolve(self, transfer: dict, status: TransferStatus, acting_membership_id: str) -> dict:
        """Move a pending transfer to a terminal status; losing a race reads as already resolved"""
        result = self.supabase.table("task_transfers")\
            .update({
                "status": status.value,
                "resolved_at": utcnow_iso(),
                "resolved_by": acting_membership_id,
            })\
            .eq("id", transfer["id"])\
            .eq("status", TransferStatus.PENDING.value)\
            .execute()
        if not result.data:
            raise BadRequestError("Transfer already resolved", code="transfer_already_resolved")
        return result.data[0]

    def create_transfer(self, group_id: str, transfer_data: TransferCreate, acting_membership: dict) -> TransferResponse:
        """Propose handing one of the caller's open assignments to another member"""
        membership_id = acting_membership["id"]
        try:
            task = self.tasks.get_task_row(group_id, transfer_data.task_id)
            if not task:
                raise NotFoundError("Task not found", code="task_not_found")
            if task["status"] != TaskStatus.OPEN.value:
                raise BadRequestError("Cannot transfer completed or cancelled task", code="task_not_open")

            assignment = self.tasks.get_assignment(transfer_data.task_id, membership_id)
            if not assignment or assignment.get("completed_at") is not None:
                raise ForbiddenError("You are not assigned to this task", code="not_assigned")

            if transfer_data.to_membership_id is not None:
                if transfer_data.to_membership_id == membership_id:
                    raise BadRequestError("Cannot transfer a task to yourself", code="invalid_recipient")
                if not self._is_active_member(group_id, transfer_data.to_membership_id):
                    raise BadRequestError("Recipient is not a member of this group", code="invalid_recipient")

            if transfer_data.return_task_id is not None:
                if transfer_data.return_task_id == transfer_data.task_id:
                    raise BadRequestError("Return task must be a different task", code="invalid_return_task")
                return_task = self.tasks.get_task_row(group_id, transfer_data.return_task_id)
                if not return_task:
                    raise NotFoundError("Return task not found", code="return_task_not_found")
                if return_task["status"] != TaskStatus.OPEN.value:
                    raise BadRequestError("Return task is not open", code="invalid_return_task")

            result = self.supabase.table("task_transfers").insert({
                "group_id": group_id,
                "task_id": transfer_data.task_id,
                "from_membership_id": membership_id,
                "to_membership_id": transfer_data.to_membership_id,
                "return_task_id": transfer_data.return_task_id,
                "message": transfer_data.message,
                "status": TransferStatus.PENDING.value,
            }).execute()
            if not result.data:
                raise InternalError("Failed to create transfer")
        except Exception as e:
            raise translate_api_error(e, "Failed to create transfer")
        transfer = result.data[0]

        # open offers have no recipient to notify
        if transfer_data.to_membership_id:
            self.notifications.emit(transfer_data.to_membership_id, NotificationType.TRANSFER_REQUEST, {
                "group_id": group_id,
                "transfer_id": transfer["id"],
                "task_id": transfer_data.task_id,
                "task_title": task["title"],
                "return_task_id": transfer_data.return_task_id,
                "from_member": membership_id,
                "message": transfer_data.message,
            })
        logger.info(f"Transfer {transfer['id']} proposed for task {transfer_data.task_id}")
        return TransferResponse(**transfer)

    def list_transfers(
        self,
        group_id: str,
        membership: dict,
        status: Optional[TransferStatus] = None,
        from_me: bool = False,
        to_me: bool = False,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> TransferListResponse:
        try:
            query = self.supabase.table("task_transfers")\
                .select("*")\
                .eq("group_id", group_id)
            if status is not None:
                query = query.eq("status", TransferStatus(status).value)
            if from_me:
                query = query.eq("from_membership_id", membership["id"])
            if to_me:
                query = query.eq("to_membership_id", membership["id"])
            limit = limit or settings.default_page_size
            result = query.order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            transfers = [TransferResponse(**t) for t in result.data or []]
            return TransferListResponse(transfers=transfers, total=len(transfers))
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch transfers: {e}")

    def get_transfer(self, group_id: str, transfer_id: str) -> TransferResponse:
        try:
            transfer = self.get_transfer_row(group_id, transfer_id)
            if not transfer:
                raise NotFoundError("Transfer not found", code="transfer_not_found")
            return TransferResponse(**transfer)
        except AppError:
            raise
        except Exception as e:
            raise InternalError(f"Failed to fetch transfer: {e}")

    def _move_assignment(self, task_id: str, from_id: str, to_id: str,
                         undo: List[Tuple[str, Callable[[], None]]]):
        """Remove from_id's assignment on the task and give one to to_id, registering undo steps"""
        original = self.tasks.get_assignment(task_id, from_id)
        if original:
            self.tasks.delete_assignment(task_id, from_id)
            restored = {k: original[k] for k in ("task_id", "membership_id", "assigned_at", "completed_at") if k in original}
            undo.append((
                f"restore assignment of {from_id} on task {task_id}",
                lambda: self.supabase.table("task_assignments").insert(restored).execute(),
            ))
        if not self.tasks.get_assignment(task_id, to_id):
            self.tasks.insert_assignment(task_id, to_id)
            undo.append((
                f"drop assignment of {to_id} on task {task_id}",
                lambda: self.tasks.delete_assignment(task_id, to_id),
            ))

    def _compensate(self, transfer: dict, undo: List[Tuple[str, Callable[[], None]]]):
        for description, step in reversed(undo):
            try:
                step()
            except Exception as e:
                logger.error(f"Compensation failed for transfer {transfer['id']} ({description}): {e}")
        try:
            self.supabase.table("task_transfers")\
                .update({"status": TransferStatus.PENDING.value, "resolved_at": None, "resolved_by": None})\
                .eq("id", transfer["id"])\
                .eq("status", TransferStatus.ACCEPTED.value)\
                .execute()
        except Exception as e:
            logger.error(f"Could not reopen transfer {transfer['id']} after failed hand-off: {e}")

    def accept_transfer(self, group_id: str, transfer_id: str, acting_membership: dict) -> TransferResponse:
        """
        Accept a pending transfer: the caller takes over the requester's assignment and,
        for an exchange, the requester takes over the caller's assignment on the return task.
        """
        membership_id = acting_membership["id"]
        try:
            transfer = self._load_pending(group_id, transfer_id)
            if transfer.get("to_membership_id") and transfer["to_membership_id"] != membership_id:
                raise ForbiddenError("You are not the recipient of this transfer", code="not_recipient")
            if transfer["from_membership_id"] == membership_id:
                raise ForbiddenError("You cannot accept your own transfer", code="own_transfer")
            if self.tasks.get_assignment(transfer["task_id"], membership_id):
                raise ConflictError("You are already assigned to this task", code="already_assigned")

            resolved = self._resolve(transfer, TransferStatus.ACCEPTED, membership_id)
        except Exception as e:
            raise translate_api_error(e, "Failed to accept transfer")

        undo: List[Tuple[str, Callable[[], None]]] = []
        try:
            self._move_assignment(transfer["task_id"], transfer["from_membership_id"], membership_id, undo)
            if transfer.get("return_task_id"):
                self._move_assignment(transfer["return_task_id"], membership_id, transfer["from_membership_id"], undo)
        except Exception as e:
            logger.error(f"Assignment hand-off failed for transfer {transfer_id}, compensating: {e}")
            self._compensate(transfer, undo)
            raise InternalError("Failed to hand over the task assignment", code="transfer_handoff_failed")

        self.notifications.emit(transfer["from_membership_id"], NotificationType.TRANSFER_ACCEPTED, {
            "group_id": group_id,
            "transfer_id": transfer_id,
            "task_id": transfer["task_id"],
            "return_task_id": transfer.get("return_task_id"),
            "accepted_by": membership_id,
        })
        logger.info(f"Transfer {transfer_id} accepted by membership {membership_id}")
        return TransferResponse(**resolved)

    def refuse_transfer(self, group_id: str, transfer_id: str, acting_membership: dict) -> TransferResponse:
        membership_id = acting_membership["id"]
        try:
            transfer = self._load_pending(group_id, transfer_id)
            if transfer["from_membership_id"] == membership_id:
                raise ForbiddenError("Cancel your own transfer instead of refusing it", code="own_transfer")
            if transfer.get("to_membership_id") and transfer["to_membership_id"] != membership_id:
                raise ForbiddenError("You are not the recipient of this transfer", code="not_recipient")
            resolved = self._resolve(transfer, TransferStatus.REFUSED, membership_id)
        except Exception as e:
            raise translate_api_error(e, "Failed to refuse transfer")

        self.notifications.emit(transfer["from_membership_id"], NotificationType.TRANSFER_REFUSED, {
            "group_id": group_id,
            "transfer_id": transfer_id,
            "task_id": transfer["task_id"],
            "refused_by": membership_id,
        })
        return TransferResponse(**resolved)

    def cancel_transfer(self, group_id: str, transfer_id: str, acting_membership: dict) -> TransferResponse:
        """Withdraw a pending transfer (requester only)"""
        membership_id = acting_membership["id"]
        try:
            transfer = self._load_pending(group_id, transfer_id)
            if transfer["from_membership_id"] != membership_id:
                raise ForbiddenError("Only the requester can cancel this transfer", code="not_requester")
            resolved = self._resolve(transfer, TransferStatus.CANCELLED, membership_id)
        except Exception as e:
            raise translate_api_error(e, "Failed to cancel transfer")
        return TransferResponse(**resolved)
