# Supabase tables: groups
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

groups:
- id: uuid (primary key)
- name: text (not null)
- type: text (not null, default: 'family') - values: family, roommates, company, other
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

Child tables (memberships, group_roles, tasks, task_transfers, invitations)
reference groups.id with on delete cascade, so deleting a group removes them.
"""
