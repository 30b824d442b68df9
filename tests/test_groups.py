"""Unit tests for group creation and lifecycle."""

import pytest

from app.core.errors import ForbiddenError, InternalError, NotFoundError
from app.modules.groups.schemas import GroupCreate, GroupType, GroupUpdate
from app.modules.groups.service import GroupService


@pytest.mark.unit
class TestCreateGroup:
    def test_creator_becomes_owner(self, db):
        group = GroupService(db).create_group(GroupCreate(name="Family"), "alice")

        roles = {r["name"]: r for r in db.rows("group_roles")}
        assert set(roles) == {"owner", "admin", "member", "child", "guest"}
        assert all(r["group_id"] == group.id for r in roles.values())
        assert group.member_count == 1
        assert group.my_membership.role_name == "owner"
        assert group.my_membership.importance == 100
        assert group.my_membership.role_id == roles["owner"]["id"]

    def test_membership_failure_deletes_group(self, db):
        db.fail_on("memberships", "insert")

        with pytest.raises(InternalError):
            GroupService(db).create_group(GroupCreate(name="Family"), "alice")

        assert db.rows("groups") == []
        assert db.rows("memberships") == []

    def test_role_bootstrap_failure_deletes_group(self, db):
        db.fail_on("group_roles", "insert")

        with pytest.raises(InternalError):
            GroupService(db).create_group(GroupCreate(name="Family"), "alice")

        assert db.rows("groups") == []

    def test_group_insert_failure(self, db):
        db.fail_on("groups", "insert")
        with pytest.raises(InternalError):
            GroupService(db).create_group(GroupCreate(name="Family"), "alice")
        assert db.rows("group_roles") == []


@pytest.mark.unit
class TestGroupLifecycle:
    def test_list_my_groups(self, db, household):
        service = GroupService(db)
        service.create_group(GroupCreate(name="Flat", type=GroupType.ROOMMATES), "bob")

        groups = {g.name: g for g in service.list_my_groups("bob")}

        assert set(groups) == {"Family", "Flat"}
        assert groups["Family"].member_count == 3
        assert groups["Family"].my_membership.role_name == "member"
        assert groups["Flat"].my_membership.role_name == "owner"
        assert service.list_my_groups("dave") == []

    def test_get_group_includes_members(self, db, household):
        group = GroupService(db).get_group(household.group_id)
        assert [m.display_name for m in group.members] == ["Alice", "Bob", "Carol"]

    def test_update(self, db, household):
        service = GroupService(db)
        updated = service.update_group(household.group_id, GroupUpdate(name="The Smiths"))
        assert updated.name == "The Smiths"
        assert updated.type == GroupType.FAMILY
        assert service.update_group(household.group_id, GroupUpdate()).name == "The Smiths"

    def test_delete(self, db, household):
        service = GroupService(db)
        assert service.delete_group(household.group_id) is True
        with pytest.raises(NotFoundError):
            service.get_group(household.group_id)
        with pytest.raises(NotFoundError):
            service.delete_group(household.group_id)

    def test_sole_owner_cannot_leave(self, db, household):
        with pytest.raises(ForbiddenError):
            GroupService(db).leave_group(household.owner)

    def test_member_leaves(self, db, household):
        assert GroupService(db).leave_group(household.bob) is True
        assert household.membership("bob") is None
        assert [g.name for g in GroupService(db).list_my_groups("bob")] == []
