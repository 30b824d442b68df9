"""Unit tests for membership permission resolution."""

import pytest

from app.config.permissions_config import DEFAULT_PERMISSIONS, PERMISSION_KEYS
from app.core.permissions import (
    PermissionSet,
    default_permissions,
    has_permission,
    normalize_permission_map,
    resolve_permissions,
)
from app.modules.roles.schemas import RoleCreate
from app.modules.roles.service import RoleService


def membership(role_name="member", role_id=None, custom_permissions=None):
    return {
        "id": "m-1",
        "group_id": "g-1",
        "role_name": role_name,
        "role_id": role_id,
        "custom_permissions": custom_permissions or {},
    }


@pytest.mark.unit
class TestDefaultBundles:
    def test_owner_holds_every_permission(self):
        perms = resolve_permissions(membership("owner"))
        assert all(getattr(perms, key) for key in PERMISSION_KEYS)

    def test_guest_holds_nothing(self):
        perms = resolve_permissions(membership("guest"))
        assert not any(getattr(perms, key) for key in PERMISSION_KEYS)

    def test_member_can_create_but_not_assign(self):
        perms = resolve_permissions(membership("member"))
        assert perms.can_create_tasks is True
        assert perms.can_assign_tasks is False
        assert perms.can_manage_members is False

    def test_unknown_role_falls_back_to_guest(self):
        assert default_permissions("overlord") == default_permissions("guest")
        assert resolve_permissions(membership("overlord")) == PermissionSet()

    def test_bundles_cover_every_key(self):
        for bundle in DEFAULT_PERMISSIONS.values():
            assert set(bundle) == set(PERMISSION_KEYS)


@pytest.mark.unit
class TestOverrides:
    @pytest.mark.parametrize("role_name", ["owner", "admin", "member", "child", "guest"])
    def test_empty_overrides_equal_base(self, role_name):
        assert resolve_permissions(membership(role_name)) == default_permissions(role_name)

    def test_boolean_override_wins_both_ways(self):
        perms = resolve_permissions(membership("child", custom_permissions={
            "can_create_tasks": True,
        }))
        assert perms.can_create_tasks is True

        perms = resolve_permissions(membership("owner", custom_permissions={
            "can_delete_tasks": False,
        }))
        assert perms.can_delete_tasks is False
        assert perms.can_assign_tasks is True

    def test_non_boolean_and_unknown_keys_are_ignored(self):
        perms = resolve_permissions(membership("child", custom_permissions={
            "can_create_tasks": "true",
            "can_assign_tasks": 1,
            "can_fly": True,
        }))
        assert perms == default_permissions("child")

    def test_short_form_override_keys_are_accepted(self):
        perms = resolve_permissions(membership("child", custom_permissions={"assign_tasks": True}))
        assert perms.can_assign_tasks is True

    def test_normalize_permission_map(self):
        assert normalize_permission_map(None) == {}
        assert normalize_permission_map(["can_create_tasks"]) == {}
        assert normalize_permission_map({
            "create_tasks": True,
            "can_edit_group": False,
            "can_fly": True,
            "can_manage_hub": None,
        }) == {"can_create_tasks": True, "can_edit_group": False}


@pytest.mark.unit
class TestHasPermission:
    def test_unknown_key_is_always_false(self):
        assert has_permission(membership("owner"), "nonexistent_key") is False
        assert has_permission(membership("owner", custom_permissions={"nonexistent_key": True}), "nonexistent_key") is False

    def test_alias_resolves_to_canonical_key(self):
        assert has_permission(membership("member"), "create_tasks") is True
        assert has_permission(membership("member"), "can_create_tasks") is True
        assert has_permission(membership("member"), "delete_tasks") is False


@pytest.mark.unit
class TestRoleStoreLookup:
    def test_custom_role_bundle_replaces_role_name_default(self, db):
        role = RoleService(db).create_role("g-1", RoleCreate(
            name="Chef",
            display_name="Chef de cuisine",
            permissions={"can_assign_tasks": True},
        ))
        perms = resolve_permissions(membership("member", role_id=role.id), db)

        assert perms.can_assign_tasks is True
        # keys missing from the stored bundle are off
        assert perms.can_create_tasks is False

    def test_overrides_apply_on_top_of_role_store(self, db):
        role = RoleService(db).create_role("g-1", RoleCreate(
            name="chef", display_name="Chef", permissions={"can_assign_tasks": True},
        ))
        perms = resolve_permissions(
            membership("member", role_id=role.id, custom_permissions={"can_assign_tasks": False}), db
        )
        assert perms.can_assign_tasks is False

    def test_missing_role_falls_back_to_role_name(self, db):
        perms = resolve_permissions(membership("member", role_id="group_roles-404"), db)
        assert perms == default_permissions("member")

    def test_lookup_failure_is_not_raised(self, db):
        role = RoleService(db).create_role("g-1", RoleCreate(
            name="chef", display_name="Chef", permissions={"can_assign_tasks": True},
        ))
        db.fail_on("group_roles", "select")

        perms = resolve_permissions(membership("member", role_id=role.id), db)

        assert perms == default_permissions("member")

    def test_without_store_role_id_is_ignored(self):
        perms = resolve_permissions(membership("member", role_id="anything"))
        assert perms == default_permissions("member")
