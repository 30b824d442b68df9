"""Pytest configuration and shared fixtures."""

from types import SimpleNamespace
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from app.core.dependencies import fetch_active_membership
from app.database.supabase_client import get_supabase
from app.main import app
from app.modules.auth.service import clear_auth_cache
from app.modules.groups.schemas import GroupCreate
from app.modules.groups.service import GroupService
from app.modules.memberships.service import MembershipService
from fakes import FakeSupabase


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture(autouse=True)
def _fresh_auth_cache():
    clear_auth_cache()
    yield
    clear_auth_cache()


@pytest.fixture
def add_user(db):
    """Create a profile and a bearer token for a user id; returns request headers for that user"""

    def _add_user(user_id: str, pseudo: Optional[str] = None, with_profile: bool = True) -> dict:
        if with_profile:
            db.table("profiles").insert({
                "user_id": user_id,
                "display_name": user_id.capitalize(),
                "pseudo": pseudo,
            }).execute()
        token = f"token-{user_id}"
        db.auth.register(token, user_id)
        return {"Authorization": f"Bearer {token}"}

    return _add_user


@pytest.fixture
def household(db, add_user):
    """
    Group "Family" owned by alice, with bob as member and carol as child.
    Memberships are the raw rows as the guard would load them.
    """
    headers = {
        "alice": add_user("alice", pseudo="alice"),
        "bob": add_user("bob", pseudo="bob"),
        "carol": add_user("carol", pseudo="carol"),
        "dave": add_user("dave", pseudo="dave"),
    }
    group = GroupService(db).create_group(GroupCreate(name="Family"), "alice")
    members = MembershipService(db)
    members.join(group.id, "bob")
    members.join(group.id, "carol", role_name="child")

    def membership(user_id: str) -> Optional[dict]:
        return fetch_active_membership(db, group.id, user_id)

    return SimpleNamespace(
        group_id=group.id,
        headers=headers,
        membership=membership,
        owner=membership("alice"),
        bob=membership("bob"),
        carol=membership("carol"),
    )


@pytest.fixture
def client(db):
    app.dependency_overrides[get_supabase] = lambda: db
    app.state.limiter.enabled = False
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    app.state.limiter.enabled = True
