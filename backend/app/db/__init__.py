"""Database connections package."""

from app.db.object_storage import ObjectStorageClient, object_storage
from app.db.postgres import async_session, engine, get_session, init_db

__all__ = [
    "get_session",
    "init_db",
    "engine",
    "async_session",
    "object_storage",
    "ObjectStorageClient",
]
