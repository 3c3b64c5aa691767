"""Lightweight typing helpers shared by database-backed repositories."""

from typing import Any, Mapping, MutableMapping

# Filters are written MongoDB-style for every backend, e.g. ``{"lft": {"$gte": 4}}``.
Filter = Mapping[str, Any]

MongoDocument = Mapping[str, Any]

# Flat row as handed to / returned from a repository.
Record = MutableMapping[str, Any]
