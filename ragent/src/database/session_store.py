"""
Ragent - Chat Session Store
============================
Async chat-history store backed by MongoDB via ``motor``.

Sessions are optional: the chat endpoint receives the full message list
on every request, so persistence only records exchanges for later
review.  The store is created only when ``settings.MONGO_URI`` is set.

Collection schema (``sessions``)::

    {
        "session_id": str,
        "agent_id": str,
        "messages": [{"role": str, "content": str}, ...],
        "created_at": datetime,
        "updated_at": datetime
    }
"""

from __future__ import annotations

from datetime import datetime, timezone

import motor.motor_asyncio

from ragent.config.settings import settings
from ragent.src.utils.logger import get_logger

logger = get_logger(__name__)

ChatMessage = dict[str, str]

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def _get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        if settings.MONGO_URI is None:
            raise RuntimeError("MONGO_URI is not configured.")
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


class MongoSessionStore:
    """
    Session-isolated message log.  Every query filters by
    ``session_id``.

    Parameters
    ----------
    collection
        Inject a collection (tests); defaults to
        ``<MONGO_DB_NAME>.<collection_name>`` on the shared client.
    """

    __slots__ = ("_collection",)

    def __init__(self, collection_name: str = "sessions", collection: object | None = None) -> None:
        if collection is None:
            collection = _get_mongo_client()[settings.MONGO_DB_NAME][collection_name]
        self._collection = collection


    async def get_history(self, session_id: str, limit: int | None = None) -> list[ChatMessage]:
        """Retrieve the last *limit* messages for a session."""
        limit = limit or settings.SESSION_HISTORY_LIMIT
        doc = await self._collection.find_one({"session_id": session_id}, {"messages": {"$slice": -limit}})
        if doc is None:
            return []
        return doc.get("messages", [])


    async def add_messages(self, session_id: str, agent_id: str, messages: list[ChatMessage]) -> None:
        """Append *messages* (upsert on first write)."""
        if not messages:
            return
        now = datetime.now(timezone.utc)
        await self._collection.update_one({"session_id": session_id}, {"$push": {"messages": {"$each": messages}}, "$set": {"updated_at": now, "agent_id": agent_id}, "$setOnInsert": {"created_at": now}}, upsert=True)
        logger.debug("[SESSION] %d message(s) appended to '%s'.", len(messages), session_id)


    async def clear_session(self, session_id: str) -> bool:
        """Delete a session entirely.  Returns True if removed."""
        result = await self._collection.delete_one({"session_id": session_id})
        return result.deleted_count > 0
