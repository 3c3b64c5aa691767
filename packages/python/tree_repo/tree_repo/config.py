"""Settings for the nested-set tree repository."""

from __future__ import annotations

import os
from typing import Literal

from dotenv import find_dotenv, load_dotenv
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Search for the nearest .env so running from subdirectories still loads root config.
load_dotenv(find_dotenv(usecwd=True))


class TreeSettings(BaseModel):
    """Which backend holds the tree and under which table/collection name."""

    model_config = ConfigDict(validate_default=True)

    backend: Literal["sqlite", "mongo"] = Field(
        default_factory=lambda: os.getenv("TREE_BACKEND", "sqlite")
    )
    table_name: str = Field(default_factory=lambda: os.getenv("TREE_TABLE", "tree_nodes"))
    counters_collection: str = Field(
        default_factory=lambda: os.getenv("TREE_COUNTERS_COLLECTION", "counters")
    )

    @field_validator("table_name", "counters_collection")
    @classmethod
    def _identifier(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"{value!r} is not a valid table/collection name")
        return value


settings = TreeSettings()
logger.info(f"TreeSettings initialized with backend={settings.backend} table={settings.table_name}")
