# Supabase tables: notifications
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

notifications:
- id: uuid (primary key)
- membership_id: uuid (foreign key to memberships.id, on delete cascade) - recipient
- type: text (not null) - see NotificationType
- data: jsonb (default '{}') - event payload (task_id, transfer_id, group_id, ...)
- read_at: timestamp (nullable) - null = unread
- created_at: timestamp (default: now())
"""
