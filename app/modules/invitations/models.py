# Supabase tables: invitations
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

invitations:
- id: uuid (primary key)
- group_id: uuid (foreign key to groups.id, on delete cascade)
- created_by: uuid (foreign key to memberships.id, not null)
- code: text (nullable, unique) - QR invitations, 8 chars from an unambiguous alphabet
- pseudo: text (nullable) - pseudo invitations, target profile pseudo
- max_uses: integer (not null, default: 1)
- current_uses: integer (not null, default: 0) - current_uses <= max_uses
- expires_at: timestamp (not null)
- revoked_at: timestamp (nullable) - set by revoke (group side) or refuse (recipient side)
- created_at: timestamp (default: now())

Expired and exhausted are derived from expires_at / current_uses, never stored.
"""
