from config import STORE_BACKEND
from stores.memory_store import MemoryStore
from stores.supabase_store import SupabaseStore


async def build_store(backend: str = STORE_BACKEND):
    """Create the store selected by STORE_BACKEND."""
    if backend == "memory":
        return MemoryStore()
    if backend == "supabase":
        from db import get_supabase

        return SupabaseStore(await get_supabase())
    raise RuntimeError(f"Unknown STORE_BACKEND: {backend!r}")
