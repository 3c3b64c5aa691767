"""Async MongoDB storage adapter built on Motor.

Each tree lives in its own collection. Node ids are integers kept in
``_id`` and generated from a counters collection, so ``id`` ordering follows
insertion order as it does for the relational backend. Every unit of work is
a multi-document transaction, which requires a replica set.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from loguru import logger
from motor.motor_asyncio import (
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from db_core import Filter, MongoDocument, Record, get_db

from .errors import StorageError
from .store import UPDATABLE_COLUMNS, Shift, check_column, split_condition

COLLECTION_NAME = "tree_nodes"
COUNTERS_COLLECTION = "counters"


def _field(column: str) -> str:
    return "_id" if column == "id" else column


def to_mongo_filter(where: Optional[Filter]) -> Dict[str, Any]:
    """Map a port filter onto a Mongo query (``id`` lives in ``_id``)."""

    query: Dict[str, Any] = {}
    for column, condition in (where or {}).items():
        check_column(column)
        parts = split_condition(condition)
        if set(parts) == {"$eq"}:
            query[_field(column)] = parts["$eq"]
        else:
            query[_field(column)] = parts
    return query


def to_mongo_update(
    shifts: Optional[Mapping[str, Shift]], values: Optional[Mapping[str, Any]]
) -> List[Dict[str, Any]]:
    """Render shifts and assignments as a single-stage pipeline update.

    One ``$set`` stage evaluates every expression against the document as it
    was before the update, matching the port's ``update_many`` contract.
    """

    stage: Dict[str, Any] = {}
    for column, shift in (shifts or {}).items():
        check_column(column, UPDATABLE_COLUMNS)
        expr: Any = f"${column}"
        if shift.scale != 1:
            expr = {"$multiply": [expr, shift.scale]}
        stage[column] = {"$add": [expr, shift.offset]}
    for column, value in (values or {}).items():
        check_column(column, UPDATABLE_COLUMNS)
        stage[column] = {"$literal": value}
    if not stage:
        raise StorageError("update_many called without shifts or values")
    return [{"$set": stage}]


def _doc_to_record(doc: MongoDocument) -> Record:
    record: Record = {key: value for key, value in doc.items() if key != "_id"}
    record["id"] = doc["_id"]
    return record


class MongoTreeSession:
    """Operations available inside one Mongo transaction."""

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        counters: AsyncIOMotorCollection,
        session: AsyncIOMotorClientSession,
    ):
        self._collection = collection
        self._counters = counters
        self._session = session

    async def select_one(self, where: Filter) -> Optional[Record]:
        try:
            doc = await self._collection.find_one(
                to_mongo_filter(where), session=self._session
            )
        except PyMongoError as exc:
            raise StorageError(f"find_one failed: {exc}") from exc
        return _doc_to_record(doc) if doc else None

    async def select_many(
        self, where: Optional[Filter] = None, order_by: str = "lft"
    ) -> List[Record]:
        check_column(order_by)
        sort = [(_field(order_by), ASCENDING)]
        if order_by != "id":
            sort.append(("_id", ASCENDING))
        try:
            cursor = self._collection.find(
                to_mongo_filter(where), session=self._session
            ).sort(sort)
            docs = [doc async for doc in cursor]
        except PyMongoError as exc:
            raise StorageError(f"find failed: {exc}") from exc
        return [_doc_to_record(doc) for doc in docs]

    async def max_value(self, column: str) -> Optional[int]:
        check_column(column)
        field = _field(column)
        try:
            doc = await self._collection.find_one(
                {}, sort=[(field, DESCENDING)], projection={field: 1}, session=self._session
            )
        except PyMongoError as exc:
            raise StorageError(f"max lookup failed: {exc}") from exc
        return doc.get(field) if doc else None

    async def _next_id(self) -> int:
        counter = await self._counters.find_one_and_update(
            {"_id": self._collection.name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=self._session,
        )
        return int(counter["seq"])

    async def insert(self, row: Mapping[str, Any]) -> int:
        doc = {key: value for key, value in row.items() if key not in ("id", "_id")}
        try:
            node_id = await self._next_id()
            doc["_id"] = node_id
            await self._collection.insert_one(doc, session=self._session)
        except PyMongoError as exc:
            raise StorageError(f"insert failed: {exc}") from exc
        return node_id

    async def update_many(
        self,
        where: Filter,
        shifts: Optional[Mapping[str, Shift]] = None,
        values: Optional[Mapping[str, Any]] = None,
    ) -> int:
        update = to_mongo_update(shifts, values)
        try:
            result = await self._collection.update_many(
                to_mongo_filter(where), update, session=self._session
            )
        except PyMongoError as exc:
            raise StorageError(f"update_many failed: {exc}") from exc
        return result.matched_count

    async def delete_many(self, where: Filter) -> int:
        try:
            result = await self._collection.delete_many(
                to_mongo_filter(where), session=self._session
            )
        except PyMongoError as exc:
            raise StorageError(f"delete_many failed: {exc}") from exc
        return result.deleted_count

    async def count(self, where: Optional[Filter] = None) -> int:
        try:
            return await self._collection.count_documents(
                to_mongo_filter(where), session=self._session
            )
        except PyMongoError as exc:
            raise StorageError(f"count failed: {exc}") from exc


class MongoTreeStore:
    """Motor-backed ``TreeStore``; defaults to ``db_core.get_db()``."""

    def __init__(
        self,
        database: Optional[AsyncIOMotorDatabase] = None,
        collection_name: str = COLLECTION_NAME,
        counters_collection: str = COUNTERS_COLLECTION,
    ):
        self._db = database if database is not None else get_db()
        self.collection_name = collection_name
        self._collection = self._db[collection_name]
        self._counters = self._db[counters_collection]

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("lft")
        await self._collection.create_index("rgt")
        await self._collection.create_index("parent_id")

    @asynccontextmanager
    async def _unit(
        self, read_concern: ReadConcern, write_concern: Optional[WriteConcern]
    ) -> AsyncIterator[MongoTreeSession]:
        try:
            async with await self._db.client.start_session() as session:
                async with session.start_transaction(
                    read_concern=read_concern, write_concern=write_concern
                ):
                    yield MongoTreeSession(self._collection, self._counters, session)
        except PyMongoError as exc:
            logger.warning(f"Mongo transaction on {self.collection_name} aborted: {exc}")
            raise StorageError(f"Transaction failed: {exc}") from exc

    def transaction(self):
        return self._unit(ReadConcern("snapshot"), WriteConcern("majority"))

    def snapshot(self):
        return self._unit(ReadConcern("snapshot"), None)
