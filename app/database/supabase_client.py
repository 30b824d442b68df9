import logging
from supabase import create_client, Client
from app.config import settings

logger = logging.getLogger(__name__)


class SupabaseClient:
    """
    Process-wide Supabase clients. Services write through the service-role client
    when its key is configured; membership guards enforce authorization instead of RLS.
    """
    _anon_client: Client = None
    _service_client: Client = None

    @classmethod
    def get_anon_client(cls) -> Client:
        if cls._anon_client is None:
            cls._anon_client = create_client(settings.supabase_url, settings.supabase_key)
        return cls._anon_client

    @classmethod
    def get_service_client(cls) -> Client:
        if cls._service_client is None and settings.supabase_service_role_key:
            cls._service_client = create_client(
                settings.supabase_url, settings.supabase_service_role_key
            )
        return cls._service_client or cls.get_anon_client()

    @classmethod
    def reset(cls):
        cls._anon_client = None
        cls._service_client = None


def get_supabase() -> Client:
    return SupabaseClient.get_service_client()


def check_connection(supabase: Client) -> bool:
    """Cheapest round-trip to the data service, used by the readiness check"""
    try:
        supabase.table("groups").select("id").limit(1).execute()
        return True
    except Exception as e:
        logger.error(f"Supabase readiness check failed: {e}")
        return False
