# Supabase tables: task_transfers
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

task_transfers:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, on delete cascade)
- task_id: uuid (foreign key to tasks.id, on delete cascade)
- from_membership_id: uuid (foreign key to memberships.id, not null) - requester
- to_membership_id: uuid (foreign key to memberships.id, nullable) - null = open offer
- return_task_id: uuid (foreign key to tasks.id, nullable) - task handed back on acceptance
- status: text (not null, default: 'pending') - values: pending, accepted, refused, cancelled
- message: text (nullable)
- created_at: timestamp (default: now())
- resolved_at: timestamp (nullable)
- resolved_by: uuid (foreign key to memberships.id, nullable)

No uniqueness on pending transfers per (task_id, from_membership_id).
"""
