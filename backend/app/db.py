"""
Database client configuration.
Uses Supabase for PostgreSQL + Auth. Lead sources and leads are
organization-scoped rows; the webhook endpoint has no user session, so it
goes through the admin client.
"""

import os
from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

if not SUPABASE_URL or not SUPABASE_KEY:
    raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set in environment variables")

# Client for user-level operations (uses anon key + RLS)
supabase: Client = create_client(SUPABASE_URL, SUPABASE_KEY)

# Admin client for webhook ingestion and org lookups (bypasses RLS)
supabase_admin: Client = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY) if SUPABASE_SERVICE_KEY else None
