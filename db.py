"""
Supabase client singleton for the PassItPal backend.
"""
from supabase import acreate_client, AsyncClient

from config import SUPABASE_URL, SUPABASE_KEY

_client: AsyncClient = None


async def get_supabase() -> AsyncClient:
    global _client
    if _client is None:
        if not SUPABASE_URL or not SUPABASE_KEY:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
        _client = await acreate_client(SUPABASE_URL, SUPABASE_KEY)
    return _client
