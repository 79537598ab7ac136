from datetime import datetime, timezone
from functools import lru_cache
from itertools import count
from typing import Any, Dict, List, Protocol, Tuple

import motor.motor_asyncio
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import PyMongoError

from app.models.ai_settings import StoreBackend, get_settings
from app.utils.exceptions import DatabaseError
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

RESUMES_COLLECTION = "resumes"
JDS_COLLECTION = "job_descriptions"


class CollectionStore(Protocol):
    """Keyed record store; records are plain dicts with an ``id`` field"""

    name: str

    async def fetch_all(self) -> List[Dict[str, Any]]: ...

    async def save(self, record: Dict[str, Any]) -> None: ...

    async def delete_all(self, ids: List[str]) -> int: ...

    async def clear_table(self) -> None: ...


class MongoCollectionStore:
    def __init__(self, collection):
        self.coll = collection
        self.name = collection.name

    async def fetch_all(self) -> List[Dict[str, Any]]:
        try:
            docs = await self.coll.find({}, {"_id": 0}).sort("created_at", DESCENDING).to_list(length=None)
        except PyMongoError as e:
            raise DatabaseError(f"Failed to load {self.name}: {e}", operation="fetch_all",
                                collection=self.name, cause=e) from e
        for d in docs:
            d.pop("created_at", None)
            d.pop("updated_at", None)
        return docs

    async def save(self, record: Dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        try:
            await self.coll.update_one(
                {"id": record["id"]},
                {"$set": {**record, "updated_at": now}, "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
        except PyMongoError as e:
            raise DatabaseError(f"Failed to save {record['id']} to {self.name}: {e}", operation="save",
                                collection=self.name, cause=e) from e

    async def delete_all(self, ids: List[str]) -> int:
        try:
            res = await self.coll.delete_many({"id": {"$in": list(ids)}})
        except PyMongoError as e:
            raise DatabaseError(f"Failed to delete from {self.name}: {e}", operation="delete_all",
                                collection=self.name, cause=e) from e
        return res.deleted_count

    async def clear_table(self) -> None:
        try:
            await self.coll.delete_many({})
        except PyMongoError as e:
            raise DatabaseError(f"Failed to clear {self.name}: {e}", operation="clear_table",
                                collection=self.name, cause=e) from e

    async def ensure_indexes(self):
        await self.coll.create_index([("id", ASCENDING)], unique=True)
        await self.coll.create_index([("created_at", DESCENDING)])


class InMemoryCollectionStore:
    """Process-local store with the same ordering rules as the Mongo one"""

    def __init__(self, name: str):
        self.name = name
        self._records: Dict[str, Tuple[int, Dict[str, Any]]] = {}
        self._seq = count()

    async def fetch_all(self) -> List[Dict[str, Any]]:
        ordered = sorted(self._records.values(), key=lambda item: item[0], reverse=True)
        return [dict(record) for _, record in ordered]

    async def save(self, record: Dict[str, Any]) -> None:
        # insertion order is stamped on first write only
        created = self._records[record["id"]][0] if record["id"] in self._records else next(self._seq)
        self._records[record["id"]] = (created, dict(record))

    async def delete_all(self, ids: List[str]) -> int:
        removed = 0
        for i in ids:
            if self._records.pop(i, None) is not None:
                removed += 1
        return removed

    async def clear_table(self) -> None:
        self._records.clear()


@lru_cache()
def get_database():
    settings = get_settings()
    logger.info(f"Initializing MongoDB connection to database: {settings.db_name}")
    client = motor.motor_asyncio.AsyncIOMotorClient(settings.mongo_details)
    return client[settings.db_name]


@lru_cache()
def get_stores() -> Tuple[CollectionStore, CollectionStore]:
    """(resume store, job description store) for the configured backend"""
    backend = get_settings().store_backend
    if backend == StoreBackend.MEMORY:
        logger.info("Using in-memory document stores")
        return InMemoryCollectionStore(RESUMES_COLLECTION), InMemoryCollectionStore(JDS_COLLECTION)
    db = get_database()
    return MongoCollectionStore(db[RESUMES_COLLECTION]), MongoCollectionStore(db[JDS_COLLECTION])


async def init_indexes():
    """Index initialization for collections."""
    stores = [s for s in get_stores() if isinstance(s, MongoCollectionStore)]
    if not stores:
        return
    logger.info("Starting database index initialization")
    for store in stores:
        try:
            await store.ensure_indexes()
            logger.debug(f"Indexes ready on {store.name}")
        except PyMongoError as e:
            if "already exists" in str(e).lower():
                logger.debug(f"Indexes on {store.name} already exist")
            else:
                logger.warning(f"Could not create indexes on {store.name}: {e}")
    logger.info("Database index initialization completed")
