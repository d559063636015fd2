"""
Store - the persistence contract the pipeline consumes, backed by Motor.

Only single-row atomicity is assumed. Every call is bounded by a timeout and
surfaces StoreUnavailable on expiry or on a transient connection error.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar, Union

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import ConnectionFailure, ExecutionTimeout

from talent_pipeline.errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (field, ascending)
OrderBy = Sequence[Tuple[str, bool]]
ConflictKey = Union[str, Sequence[str]]

TRANSIENT_ERRORS = (ConnectionFailure, ExecutionTimeout)


def build_query(filters: Optional[dict]) -> dict:
    """Translate plain filters into a Mongo query; collections mean membership"""
    query = {}
    for field, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set, frozenset)):
            query[field] = {"$in": list(value)}
        else:
            query[field] = value
    return query


def conflict_fields(conflict_key: ConflictKey) -> List[str]:
    if isinstance(conflict_key, str):
        return [conflict_key]
    return list(conflict_key)


class Store:
    """Interface of the relational store collaborator"""

    async def select_one(self, table: str, filters: dict) -> Optional[dict]:
        raise NotImplementedError

    async def select_many(self, table: str, filters: Optional[dict] = None, order_by: Optional[OrderBy] = None) -> List[dict]:
        raise NotImplementedError

    async def insert(self, table: str, row: dict) -> dict:
        raise NotImplementedError

    async def update(self, table: str, filters: dict, patch: dict) -> Optional[dict]:
        raise NotImplementedError

    async def delete(self, table: str, filters: dict) -> int:
        raise NotImplementedError

    async def upsert(self, table: str, row: dict, conflict_key: ConflictKey) -> dict:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MotorStore(Store):
    def __init__(self, database: AsyncIOMotorDatabase, timeout_seconds: float = 5.0, client: Optional[AsyncIOMotorClient] = None):
        self.db = database
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_url(cls, mongo_url: str, db_name: str, timeout_seconds: float = 5.0) -> "MotorStore":
        client = AsyncIOMotorClient(mongo_url)
        return cls(client[db_name], timeout_seconds=timeout_seconds, client=client)

    async def _run(self, table: str, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Store {operation} on '{table}' timed out after {self.timeout_seconds}s")
            raise StoreUnavailable(
                f"Store {operation} on '{table}' timed out",
                table=table,
                operation=operation,
            )
        except TRANSIENT_ERRORS as e:
            logger.error(f"Store {operation} on '{table}' failed: {e}")
            raise StoreUnavailable(
                f"Store {operation} on '{table}' failed",
                table=table,
                operation=operation,
            ) from e

    async def select_one(self, table: str, filters: dict) -> Optional[dict]:
        return await self._run(
            table, "select_one",
            self.db[table].find_one(build_query(filters), {"_id": 0}),
        )

    async def select_many(self, table: str, filters: Optional[dict] = None, order_by: Optional[OrderBy] = None) -> List[dict]:
        cursor = self.db[table].find(build_query(filters), {"_id": 0})
        if order_by:
            cursor = cursor.sort([(field, ASCENDING if ascending else DESCENDING) for field, ascending in order_by])
        return await self._run(table, "select_many", cursor.to_list(length=None))

    async def insert(self, table: str, row: dict) -> dict:
        # insert_one adds _id to the document it is given
        await self._run(table, "insert", self.db[table].insert_one(dict(row)))
        return dict(row)

    async def update(self, table: str, filters: dict, patch: dict) -> Optional[dict]:
        return await self._run(
            table, "update",
            self.db[table].find_one_and_update(
                build_query(filters),
                {"$set": patch},
                projection={"_id": 0},
                return_document=ReturnDocument.AFTER,
            ),
        )

    async def delete(self, table: str, filters: dict) -> int:
        result = await self._run(table, "delete", self.db[table].delete_many(build_query(filters)))
        return result.deleted_count

    async def upsert(self, table: str, row: dict, conflict_key: ConflictKey) -> dict:
        key_filter = {field: row[field] for field in conflict_fields(conflict_key)}
        return await self._run(
            table, "upsert",
            self.db[table].find_one_and_update(
                key_filter,
                {"$set": row},
                projection={"_id": 0},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            ),
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


async def retry_once(operation: Callable[..., Awaitable[T]], *args: Any, backoff: float = 0.2, **kwargs: Any) -> T:
    """Run operation, retrying exactly once with backoff if the store was unavailable"""
    try:
        return await operation(*args, **kwargs)
    except StoreUnavailable as e:
        logger.warning(f"Store unavailable ({e.message}), retrying once in {backoff}s")
        await asyncio.sleep(backoff)
        return await operation(*args, **kwargs)

