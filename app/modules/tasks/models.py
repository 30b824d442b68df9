# Supabase tables: tasks, task_assignments
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

tasks:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, on delete cascade)
- title: text (not null)
- description: text (nullable)
- due_at: timestamp (nullable)
- required_count: integer (not null, default: 1) - assignees needed
- is_free: boolean (default: false) - claimable by any member through /take
- status: text (not null, default: 'open') - values: open, done, cancelled
- created_by: uuid (foreign key to memberships.id, nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)

task_assignments:
- id: uuid (primary key)
- task_id: uuid (foreign key to tasks.id, on delete cascade)
- membership_id: uuid (foreign key to memberships.id, on delete cascade)
- assigned_at: timestamp (default: now())
- completed_at: timestamp (nullable) - null = still to do
- unique constraint on (task_id, membership_id)
"""
