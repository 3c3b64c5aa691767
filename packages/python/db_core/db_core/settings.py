"""Configuration helpers for database connections used by db_core.

Applications can create a new ``MongoSettings`` / ``SqliteSettings`` instance
at startup and assign it to ``db_core.settings`` / ``db_core.sqlite_settings``
before the first connection is opened to override the defaults. If not
overridden, the values below are read from the environment.
"""
from loguru import logger
import os

from pydantic import BaseModel, Field


class MongoSettings(BaseModel):
    """Basic MongoDB configuration that domain apps can extend if needed."""

    uri: str = Field(
        default_factory=lambda: os.getenv("MONGO_URI", "mongodb://localhost:27017")
    )
    db_name: str = Field(default_factory=lambda: os.getenv("MONGO_DB_NAME", "trees"))


class SqliteSettings(BaseModel):
    """Location and locking behaviour of the SQLite database file."""

    path: str = Field(default_factory=lambda: os.getenv("SQLITE_PATH", "tree.sqlite3"))
    busy_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("SQLITE_BUSY_TIMEOUT_SECONDS", "30"))
    )


def _default_settings() -> "MongoSettings":
    """Provide a factory to keep settings override logic simple in the future."""

    return MongoSettings()


settings: MongoSettings = _default_settings()
sqlite_settings: SqliteSettings = SqliteSettings()
logger.info(f"MongoSettings initialized with uri={settings.uri} db_name={settings.db_name}")
logger.info(f"SqliteSettings initialized with path={sqlite_settings.path}")
