"""MongoDB storage implementation of VisitStorage.

The record lives in a single-document collection (``visits`` by default):

    {"_id": ObjectId(...), "count": 42}

Connection state is tracked by a server heartbeat listener. State transitions
are logged only; nothing reconnects or fails over programmatically.
"""

from __future__ import annotations

import structlog
from pymongo import AsyncMongoClient, monitoring
from pymongo.errors import PyMongoError

from visit_counter.core.models import VisitRecord
from visit_counter.errors import ConfigError, StoreError

log = structlog.get_logger()

DEFAULT_DATABASE = "visit_counter"

STATE_DISCONNECTED = "disconnected"
STATE_CONNECTING = "connecting"
STATE_CONNECTED = "connected"
STATE_ERROR = "error"


class ConnectionMonitor(monitoring.ServerHeartbeatListener):
    """Follows server heartbeats and logs connection state changes."""

    def __init__(self) -> None:
        self.state = STATE_DISCONNECTED

    def transition(self, state: str, **context) -> None:
        if state == self.state:
            return
        self.state = state
        if state == STATE_CONNECTED:
            log.info("mongodb_connected", **context)
        elif state == STATE_ERROR:
            log.error("mongodb_connection_error", **context)
        elif state == STATE_DISCONNECTED:
            log.info("mongodb_disconnected", **context)

    def started(self, event) -> None:
        pass

    def succeeded(self, event) -> None:
        self.transition(STATE_CONNECTED, address=str(event.connection_id))

    def failed(self, event) -> None:
        self.transition(STATE_ERROR, address=str(event.connection_id),
                        error=str(event.reply))


class MongoVisitStorage:
    """VisitStorage backed by a MongoDB collection."""

    def __init__(
        self,
        uri: str,
        collection: str = "visits",
        server_selection_timeout_ms: int = 5000,
    ) -> None:
        self._monitor = ConnectionMonitor()
        try:
            self._client: AsyncMongoClient = AsyncMongoClient(
                uri,
                connect=False,
                serverSelectionTimeoutMS=server_selection_timeout_ms,
                event_listeners=[self._monitor],
            )
        except PyMongoError as exc:
            raise ConfigError(f"invalid MongoDB connection string: {exc}") from exc
        database = self._client.get_default_database(default=DEFAULT_DATABASE)
        self._collection = database[collection]

    @property
    def state(self) -> str:
        return self._monitor.state

    @property
    def is_connected(self) -> bool:
        return self._monitor.state == STATE_CONNECTED

    async def connect(self) -> None:
        """Open the connection and verify it with a ping.

        Failures are logged and leave the store in the error state; the
        server keeps running and readiness reports the degraded store.
        """
        self._monitor.state = STATE_CONNECTING
        try:
            await self._client.admin.command("ping")
        except PyMongoError as exc:
            self._monitor.transition(STATE_ERROR, error=str(exc))
            return
        self._monitor.transition(STATE_CONNECTED)

    async def close(self) -> None:
        await self._client.close()
        self._monitor.transition(STATE_DISCONNECTED)

    async def find_record(self) -> VisitRecord | None:
        try:
            doc = await self._collection.find_one({})
        except PyMongoError as exc:
            raise StoreError(f"failed to read visit record: {exc}") from exc
        if doc is None:
            return None
        return VisitRecord(count=int(doc.get("count", 0)), id=doc["_id"])

    async def create_record(self, initial_count: int) -> VisitRecord:
        try:
            result = await self._collection.insert_one({"count": initial_count})
        except PyMongoError as exc:
            raise StoreError(f"failed to create visit record: {exc}") from exc
        log.debug("visit_record_created", id=str(result.inserted_id),
                  count=initial_count)
        return VisitRecord(count=initial_count, id=result.inserted_id)

    async def save_record(self, record: VisitRecord) -> VisitRecord:
        if record.id is None:
            return await self.create_record(record.count)
        try:
            await self._collection.update_one(
                {"_id": record.id},
                {"$set": {"count": record.count}},
                upsert=True,
            )
        except PyMongoError as exc:
            raise StoreError(f"failed to save visit record: {exc}") from exc
        return record
