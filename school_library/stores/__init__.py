"""Storage backends behind one interface, selected once at startup."""

from typing import Optional

from ..config import Settings, settings as default_settings
from .base import IntegrityViolation, LibraryStore, StoreSession
from .memory_store import MemoryStore
from .sqlite_store import SQLiteStore

BACKENDS = ("sqlite", "memory")


def create_store(config: Optional[Settings] = None, db_file: Optional[str] = None) -> LibraryStore:
    """Build the backend named by ``config.storage_backend``."""
    config = config or default_settings
    backend = (config.storage_backend or "sqlite").lower()
    if backend == "memory":
        store: LibraryStore = MemoryStore()
    elif backend == "sqlite":
        store = SQLiteStore(db_file or config.database_file)
    else:
        raise ValueError(f"Unknown storage backend {backend!r}; expected one of {', '.join(BACKENDS)}.")
    store.initialize()
    return store


__all__ = [
    "BACKENDS",
    "IntegrityViolation",
    "LibraryStore",
    "MemoryStore",
    "SQLiteStore",
    "StoreSession",
    "create_store",
]
