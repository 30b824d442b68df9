# Supabase tables: profiles
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

profiles:
- user_id: uuid (primary key, references auth.users.id)
- display_name: text (not null)
- pseudo: text (nullable, unique) - 3-20 chars of [A-Za-z0-9_], target of pseudo invitations
- avatar_url: text (nullable)
- locale: text (default: 'en') - values: en, fr
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
"""
