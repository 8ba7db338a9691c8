"""Persistent store: Postgres (preferred) or file-based fallback."""

from __future__ import annotations

import logging

from replygate.config import Settings, get_settings
from replygate.store.base import Store
from replygate.store.file_store import FileStore

logger = logging.getLogger(__name__)


def get_store(settings: Settings | None = None) -> Store:
    """Return the configured store. ``postgres`` needs REPLYGATE_DATABASE_URL."""
    settings = settings or get_settings()
    backend = settings.replygate_store_backend.lower()
    if backend == "postgres":
        from replygate.store.postgres_store import PostgresStore

        if not settings.replygate_database_url:
            raise ValueError("REPLYGATE_DATABASE_URL is required for the postgres store")
        logger.info("Using Postgres store")
        return PostgresStore(settings.replygate_database_url)
    if backend != "file":
        logger.warning("Unknown store backend '%s', defaulting to file store.", backend)
    logger.info("Using file-based store (%s)", settings.store_dir)
    return FileStore(settings.store_dir)


__all__ = ["FileStore", "Store", "get_store"]
