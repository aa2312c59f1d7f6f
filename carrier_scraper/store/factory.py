"""Pick the datastore backend from configuration."""
from carrier_scraper.config import config
from carrier_scraper.store.base import ScraperStore


def build_store(backend: str | None = None) -> ScraperStore:
    backend = (backend or config.STORE_BACKEND).lower()
    if backend == "supabase":
        from carrier_scraper.store.supabase_store import SupabaseStore
        return SupabaseStore()
    if backend == "sqlite":
        from carrier_scraper.store.sqlite_store import SqliteStore
        return SqliteStore()
    raise ValueError(f"Unknown store backend '{backend}'")
