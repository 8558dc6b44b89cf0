import logging

from propjournal.backend.base import AuthenticationError, AuthSession, BackendError, JournalBackend, Query
from propjournal.config import Settings


logger = logging.getLogger(__name__)


def create_backend(settings: Settings) -> JournalBackend:
    if settings.backend == "supabase":
        from propjournal.backend.supabase_backend import SupabaseBackend

        return SupabaseBackend(settings.supabase_url, settings.supabase_key)

    from propjournal.backend.sqlite_backend import SqliteBackend

    logger.info("Using local sqlite store at %s", settings.db_path)
    return SqliteBackend(settings.db_path)


__all__ = [
    "AuthSession",
    "AuthenticationError",
    "BackendError",
    "JournalBackend",
    "Query",
    "create_backend",
]
