"""Rating and match record stores."""

import logging

from ..config import database_url, starting_rating, store_backend_name
from .base import MatchStore, RatingStore, StoreBackend, StoreTransaction, ensure_pending
from .memory import MemoryStoreBackend
from .sql import SqlStoreBackend

logger = logging.getLogger(__name__)


def build_backend() -> StoreBackend:
    """Build the backend selected by ``STORE_BACKEND`` / ``DATABASE_URL``."""

    name = store_backend_name()
    if name == "sql":
        url = database_url()
        if not url:
            raise RuntimeError("DATABASE_URL is required for the sql store backend")
        logger.info("Using SQL store backend")
        return SqlStoreBackend.from_url(url, starting_rating=starting_rating())
    logger.info("Using in-memory store backend")
    return MemoryStoreBackend(starting_rating=starting_rating())


__all__ = [
    "MatchStore",
    "RatingStore",
    "StoreBackend",
    "StoreTransaction",
    "MemoryStoreBackend",
    "SqlStoreBackend",
    "build_backend",
    "ensure_pending",
]
