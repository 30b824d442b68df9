# Supabase tables: group_roles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

group_roles:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, on delete cascade)
- name: text (not null, lowercase) - system names: owner, admin, member, child, guest
- display_name: text (not null)
- description: text (nullable)
- importance: integer (0-100, default 50)
- permissions: jsonb (default '{}') - {"can_create_tasks": true, ...}
- is_default: boolean (true for the five system roles)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (group_id, name)

memberships.role_id references group_roles.id (nullable).
"""
