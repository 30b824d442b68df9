"""Unit tests for the task transfer state machine."""

import pytest

from app.core.errors import BadRequestError, ConflictError, ForbiddenError, InternalError, NotFoundError
from app.modules.tasks.schemas import TaskCreate
from app.modules.tasks.service import TaskService
from app.modules.transfers.schemas import TransferCreate, TransferStatus
from app.modules.transfers.service import TransferService


@pytest.fixture
def chore(db, household):
    """A task assigned to bob"""
    return TaskService(db).create_task(
        household.group_id, TaskCreate(title="Take out trash", assigned_membership_ids=[household.bob["id"]]),
        household.owner,
    )


def assignees(db, task_id):
    return {a["membership_id"] for a in db.rows("task_assignments") if a["task_id"] == task_id}


@pytest.mark.unit
class TestCreateTransfer:
    def test_targeted_transfer_notifies_recipient(self, db, household, chore):
        transfer = TransferService(db).create_transfer(
            household.group_id,
            TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"], message="Swap?"),
            household.bob,
        )

        assert transfer.status == TransferStatus.PENDING
        assert transfer.from_membership_id == household.bob["id"]
        requests = [n for n in db.rows("notifications") if n["type"] == "transfer_request"]
        assert [n["membership_id"] for n in requests] == [household.carol["id"]]
        assert requests[0]["data"]["message"] == "Swap?"

    def test_open_offer_sends_nothing(self, db, household, chore):
        TransferService(db).create_transfer(household.group_id, TransferCreate(task_id=chore.id), household.bob)
        assert [n for n in db.rows("notifications") if n["type"] == "transfer_request"] == []

    def test_requester_must_hold_an_open_assignment(self, db, household, chore):
        service = TransferService(db)
        with pytest.raises(ForbiddenError):
            service.create_transfer(household.group_id, TransferCreate(task_id=chore.id), household.carol)

        TaskService(db).complete_task(household.group_id, chore.id, household.bob)
        with pytest.raises(BadRequestError) as exc_info:
            service.create_transfer(household.group_id, TransferCreate(task_id=chore.id), household.bob)
        assert exc_info.value.error_code == "task_not_open"

    def test_recipient_checks(self, db, household, chore):
        service = TransferService(db)
        for recipient in (household.bob["id"], "memberships-404"):
            with pytest.raises(BadRequestError) as exc_info:
                service.create_transfer(
                    household.group_id, TransferCreate(task_id=chore.id, to_membership_id=recipient), household.bob
                )
            assert exc_info.value.error_code == "invalid_recipient"

    def test_return_task_checks(self, db, household, chore):
        service = TransferService(db)
        with pytest.raises(BadRequestError):
            service.create_transfer(
                household.group_id, TransferCreate(task_id=chore.id, return_task_id=chore.id), household.bob
            )
        with pytest.raises(NotFoundError) as exc_info:
            service.create_transfer(
                household.group_id, TransferCreate(task_id=chore.id, return_task_id="tasks-404"), household.bob
            )
        assert exc_info.value.error_code == "return_task_not_found"

    def test_unknown_task(self, db, household):
        with pytest.raises(NotFoundError):
            TransferService(db).create_transfer(household.group_id, TransferCreate(task_id="tasks-404"), household.bob)

    def test_duplicate_pending_transfers_are_allowed(self, db, household, chore):
        service = TransferService(db)
        service.create_transfer(household.group_id, TransferCreate(task_id=chore.id), household.bob)
        service.create_transfer(household.group_id, TransferCreate(task_id=chore.id), household.bob)
        assert len(service.list_transfers(household.group_id, household.bob, status=TransferStatus.PENDING).transfers) == 2


@pytest.mark.unit
class TestAcceptTransfer:
    def test_recipient_takes_over_assignment(self, db, household, chore):
        service = TransferService(db)
        transfer = service.create_transfer(
            household.group_id, TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"]), household.bob
        )

        accepted = service.accept_transfer(household.group_id, transfer.id, household.carol)

        assert accepted.status == TransferStatus.ACCEPTED
        assert accepted.resolved_by == household.carol["id"]
        assert assignees(db, chore.id) == {household.carol["id"]}
        accepted_notes = [n for n in db.rows("notifications") if n["type"] == "transfer_accepted"]
        assert [n["membership_id"] for n in accepted_notes] == [household.bob["id"]]

    def test_accepting_twice_reports_already_resolved(self, db, household, chore):
        service = TransferService(db)
        transfer = service.create_transfer(
            household.group_id, TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"]), household.bob
        )
        service.accept_transfer(household.group_id, transfer.id, household.carol)

        with pytest.raises(BadRequestError) as exc_info:
            service.accept_transfer(household.group_id, transfer.id, household.bob)

        assert exc_info.value.error_code == "transfer_already_resolved"
        assert exc_info.value.extra["status"] == "accepted"

    def test_only_the_recipient_may_accept(self, db, household, chore):
        service = TransferService(db)
        transfer = service.create_transfer(
            household.group_id, TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"]), household.bob
        )
        with pytest.raises(ForbiddenError) as exc_info:
            service.accept_transfer(household.group_id, transfer.id, household.owner)
        assert exc_info.value.error_code == "not_recipient"

    def test_open_offer_accepted_by_anyone_but_requester(self, db, household, chore):
        service = TransferService(db)
        transfer = service.create_transfer(household.group_id, TransferCreate(task_id=chore.id), household.bob)

        with pytest.raises(ForbiddenError):
            service.accept_transfer(household.group_id, transfer.id, household.bob)
        service.accept_transfer(household.group_id, transfer.id, household.owner)

        assert assignees(db, chore.id) == {household.owner["id"]}

    def test_recipient_already_assigned(self, db, household):
        task = TaskService(db).create_task(
            household.group_id,
            TaskCreate(title="Garden", required_count=2,
                       assigned_membership_ids=[household.bob["id"], household.carol["id"]]),
            household.owner,
        )
        service = TransferService(db)
        transfer = service.create_transfer(household.group_id, TransferCreate(task_id=task.id), household.bob)

        with pytest.raises(ConflictError):
            service.accept_transfer(household.group_id, transfer.id, household.carol)
        assert service.get_transfer(household.group_id, transfer.id).status == TransferStatus.PENDING

    def test_exchange_swaps_both_assignments(self, db, household, chore):
        tasks = TaskService(db)
        laundry = tasks.create_task(
            household.group_id, TaskCreate(title="Laundry", assigned_membership_ids=[household.carol["id"]]),
            household.owner,
        )
        service = TransferService(db)
        transfer = service.create_transfer(
            household.group_id,
            TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"], return_task_id=laundry.id),
            household.bob,
        )

        service.accept_transfer(household.group_id, transfer.id, household.carol)

        assert assignees(db, chore.id) == {household.carol["id"]}
        assert assignees(db, laundry.id) == {household.bob["id"]}

    def test_failed_handoff_is_rolled_back(self, db, household, chore):
        service = TransferService(db)
        transfer = service.create_transfer(
            household.group_id, TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"]), household.bob
        )
        db.fail_on("task_assignments", "insert")

        with pytest.raises(InternalError) as exc_info:
            service.accept_transfer(household.group_id, transfer.id, household.carol)

        assert exc_info.value.error_code == "transfer_handoff_failed"
        assert assignees(db, chore.id) == {household.bob["id"]}
        reopened = service.get_transfer(household.group_id, transfer.id)
        assert reopened.status == TransferStatus.PENDING
        assert reopened.resolved_by is None

        # the reopened transfer can be accepted once the store recovers
        service.accept_transfer(household.group_id, transfer.id, household.carol)
        assert assignees(db, chore.id) == {household.carol["id"]}


@pytest.mark.unit
class TestRefuseAndCancel:
    @pytest.fixture
    def transfer(self, db, household, chore):
        return TransferService(db).create_transfer(
            household.group_id, TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"]), household.bob
        )

    def test_refuse_keeps_assignment(self, db, household, chore, transfer):
        refused = TransferService(db).refuse_transfer(household.group_id, transfer.id, household.carol)

        assert refused.status == TransferStatus.REFUSED
        assert assignees(db, chore.id) == {household.bob["id"]}
        assert any(n["type"] == "transfer_refused" for n in db.rows("notifications"))

    def test_requester_cannot_refuse(self, db, household, transfer):
        with pytest.raises(ForbiddenError):
            TransferService(db).refuse_transfer(household.group_id, transfer.id, household.bob)

    def test_only_requester_cancels(self, db, household, transfer):
        service = TransferService(db)
        with pytest.raises(ForbiddenError) as exc_info:
            service.cancel_transfer(household.group_id, transfer.id, household.carol)
        assert exc_info.value.error_code == "not_requester"

        cancelled = service.cancel_transfer(household.group_id, transfer.id, household.bob)
        assert cancelled.status == TransferStatus.CANCELLED

    def test_terminal_states_do_not_move(self, db, household, transfer):
        service = TransferService(db)
        service.cancel_transfer(household.group_id, transfer.id, household.bob)

        with pytest.raises(BadRequestError):
            service.accept_transfer(household.group_id, transfer.id, household.carol)
        with pytest.raises(BadRequestError):
            service.refuse_transfer(household.group_id, transfer.id, household.carol)
        with pytest.raises(BadRequestError):
            service.cancel_transfer(household.group_id, transfer.id, household.bob)
        assert service.get_transfer(household.group_id, transfer.id).status == TransferStatus.CANCELLED

    def test_lost_race_reads_as_resolved(self, db, household, transfer):
        service = TransferService(db)
        pending = service.get_transfer_row(household.group_id, transfer.id)
        service.refuse_transfer(household.group_id, transfer.id, household.carol)

        with pytest.raises(BadRequestError):
            service._resolve(pending, TransferStatus.ACCEPTED, household.carol["id"])

    def test_unknown_transfer(self, db, household):
        with pytest.raises(NotFoundError):
            TransferService(db).refuse_transfer(household.group_id, "task_transfers-404", household.carol)


@pytest.mark.unit
class TestListing:
    def test_direction_filters(self, db, household, chore):
        service = TransferService(db)
        sent = service.create_transfer(
            household.group_id, TransferCreate(task_id=chore.id, to_membership_id=household.carol["id"]), household.bob
        )

        assert [t.id for t in service.list_transfers(household.group_id, household.bob, from_me=True).transfers] == [sent.id]
        assert [t.id for t in service.list_transfers(household.group_id, household.carol, to_me=True).transfers] == [sent.id]
        assert service.list_transfers(household.group_id, household.carol, from_me=True).total == 0
