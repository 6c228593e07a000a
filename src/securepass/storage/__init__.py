# Storage Module - Credential persistence
#
# Pluggable backends behind one CredentialStore + VerifierStore contract:
# - memory: process-local dicts (development, tests)
# - json: single JSON document under the data dir
# - database: SQLAlchemy (SQLite by default)

import logging

from .base import (
    Category,
    Credential,
    CredentialStore,
    PasswordStats,
    StorageBackend,
    VerifierStore,
)
from .database import DatabaseStorage
from .json_file import JsonFileStorage
from .memory import MemoryStorage

logger = logging.getLogger(__name__)


def get_storage(settings) -> StorageBackend:
    """
    Create the storage backend selected by settings.storage.

    Args:
        settings: securepass.core.config.Settings

    Returns:
        A ready-to-use StorageBackend
    """
    if settings.storage == "json":
        backend = JsonFileStorage(settings.data_dir)
    elif settings.storage == "database":
        if not settings.database_url:
            settings.data_dir.mkdir(parents=True, exist_ok=True)
        backend = DatabaseStorage(settings.resolved_database_url)
    else:
        backend = MemoryStorage()

    logger.info(f"Using {backend.name} storage")
    return backend


__all__ = [
    "Category",
    "Credential",
    "CredentialStore",
    "DatabaseStorage",
    "JsonFileStorage",
    "MemoryStorage",
    "PasswordStats",
    "StorageBackend",
    "VerifierStore",
    "get_storage",
]
