"""
Rulebook - Query Log Store
===========================
Persists every incoming question verbatim to MongoDB via ``motor``.

Collection schema (``user_queries`` by default)::

    {
        "question": str,
        "created_at": datetime
    }

The RAG engine treats logging as fire-and-forget; failures are reported
through a ``SideEffectResult`` and never reach the caller's answer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import motor.motor_asyncio
from pymongo.errors import PyMongoError

from rulebook.config.settings import Settings
from rulebook.src.core.exceptions import StoreError
from rulebook.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class QueryLogRepository(Protocol):
    async def insert(self, question: str) -> None: ...


# ══════════════════════════════════════════════════════════════════════
#  MONGODB SINGLETON CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_clients: dict[str, motor.motor_asyncio.AsyncIOMotorClient] = {}


def _get_mongo_client(uri: str) -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client for *uri*."""
    if uri not in _mongo_clients:
        _mongo_clients[uri] = motor.motor_asyncio.AsyncIOMotorClient(uri)
        logger.info("Query-log MongoDB client created.")
    return _mongo_clients[uri]


class QueryLogStore:
    """
    Async append-only question log.

    Parameters
    ----------
    settings
        Supplies ``MONGO_URI``, ``MONGO_DB_NAME`` and ``QUERY_LOG_COLLECTION``.
    collection
        Optional pre-built collection; skips the shared client when given.
    """

    __slots__ = ("_collection",)

    def __init__(self, settings: Settings, collection: motor.motor_asyncio.AsyncIOMotorCollection | None = None) -> None:
        if collection is None:
            client = _get_mongo_client(settings.MONGO_URI.get_secret_value())
            collection = client[settings.MONGO_DB_NAME][settings.QUERY_LOG_COLLECTION]
        self._collection = collection


    async def insert(self, question: str) -> None:
        try:
            await self._collection.insert_one({"question": question, "created_at": datetime.now(timezone.utc)})
        except PyMongoError as exc:
            raise StoreError("Failed to log query", {"error": str(exc)}) from exc


    async def recent(self, limit: int = 20) -> list[dict[str, str | datetime]]:
        """Most recent questions, newest first."""
        try:
            cursor = self._collection.find({}, {"question": 1, "created_at": 1, "_id": 0}).sort("created_at", -1)
            return await cursor.to_list(length=limit)
        except PyMongoError as exc:
            raise StoreError("Failed to read query log", {"error": str(exc)}) from exc
