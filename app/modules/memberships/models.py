# Supabase tables: memberships
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

memberships:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, on delete cascade)
- user_id: uuid (foreign key to auth.users.id, not null)
- role_name: text (not null, default: 'member') - values: owner, admin, member, child, guest
- role_id: uuid (foreign key to group_roles.id, nullable) - role-store entry, takes precedence over role_name
- importance: integer (0-100, default 50)
- custom_permissions: jsonb (default '{}') - sparse {"can_assign_tasks": true, ...} overrides
- joined_at: timestamp (default: now())
- left_at: timestamp (nullable) - soft delete, null = active
- partial unique index on (group_id, user_id) where left_at is null
"""
