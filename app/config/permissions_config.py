"""
Permissions and Roles Configuration
This config defines the fixed system roles of a foyer and their default permission bundles.
Used by the permission resolver and by the default-role bootstrap run at group creation.
"""

from typing import Dict, List

# Every permission flag a membership can hold
PERMISSION_KEYS: List[str] = [
    "can_create_tasks",
    "can_assign_tasks",
    "can_delete_tasks",
    "can_manage_members",
    "can_edit_group",
    "can_manage_roles",
    "can_view_audit_log",
    "can_connect_calendar",
    "can_manage_hub",
]

# Short-form names accepted by callers ("create_tasks" -> "can_create_tasks")
PERMISSION_ALIASES: Dict[str, str] = {
    key[len("can_"):]: key for key in PERMISSION_KEYS
}

# System roles, highest importance first
SYSTEM_ROLES = {
    "owner": {
        "display_name": "Maître de foyer",
        "description": "Propriétaire avec tous les droits",
        "importance": 100,
        "grants": list(PERMISSION_KEYS),
    },
    "admin": {
        "display_name": "Administrateur",
        "description": "Administrateur avec droits étendus",
        "importance": 80,
        "grants": list(PERMISSION_KEYS),
    },
    "member": {
        "display_name": "Membre",
        "description": "Membre standard",
        "importance": 50,
        "grants": ["can_create_tasks", "can_connect_calendar"],
    },
    "child": {
        "display_name": "Enfant",
        "description": "Enfant avec permissions limitées",
        "importance": 30,
        "grants": [],
    },
    "guest": {
        "display_name": "Invité",
        "description": "Accès minimal",
        "importance": 10,
        "grants": [],
    },
}

SYSTEM_ROLE_NAMES: List[str] = list(SYSTEM_ROLES.keys())

DEFAULT_ROLE_NAME = "member"
FALLBACK_ROLE_NAME = "guest"
OWNER_ROLE_NAME = "owner"


def build_permission_bundle(grants: List[str]) -> Dict[str, bool]:
    """Expand a list of granted keys into a full {permission: bool} bundle"""
    return {key: key in grants for key in PERMISSION_KEYS}


DEFAULT_PERMISSIONS: Dict[str, Dict[str, bool]] = {
    name: build_permission_bundle(role["grants"]) for name, role in SYSTEM_ROLES.items()
}


def get_default_importance(role_name: str) -> int:
    role = SYSTEM_ROLES.get(role_name)
    return role["importance"] if role else SYSTEM_ROLES[DEFAULT_ROLE_NAME]["importance"]


def is_system_role(role_name: str) -> bool:
    return role_name.lower() in SYSTEM_ROLES


def get_default_role_rows(group_id: str) -> List[dict]:
    """
    Returns the group_roles rows inserted when a group is created.
    Format: [
        {"group_id": ..., "name": "owner", "display_name": "...", "importance": 100,
         "permissions": {"can_create_tasks": true, ...}, "is_default": true},
        ...
    ]
    """
    return [
        {
            "group_id": group_id,
            "name": name,
            "display_name": role["display_name"],
            "description": role["description"],
            "is_default": True,
            "importance": role["importance"],
            "permissions": dict(DEFAULT_PERMISSIONS[name]),
        }
        for name, role in SYSTEM_ROLES.items()
    ]
