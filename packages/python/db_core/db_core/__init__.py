"""Minimal database helpers shared across domain repositories.

Example usage in a domain repository:

    from db_core import get_db

    async def list_nodes():
        db = get_db()
        cursor = db["tree_nodes"].find({"parent_id": None}).sort("lft", 1)
        return await cursor.to_list(length=100)
"""

from .settings import MongoSettings, SqliteSettings, settings, sqlite_settings
from .mongo import get_mongo_client, get_db
from .sqlite import connect_sqlite
from .typing import Filter, MongoDocument, Record

__all__ = [
    "MongoSettings",
    "SqliteSettings",
    "settings",
    "sqlite_settings",
    "get_mongo_client",
    "get_db",
    "connect_sqlite",
    "Filter",
    "MongoDocument",
    "Record",
]
