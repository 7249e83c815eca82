# abuse.py
import asyncio
import logging
from typing import List

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from evote.config import ABUSE_WRITE_TIMEOUT_SECONDS
from evote.database.connection import abuse_log_collection
from evote.errors import StorageUnavailable
from evote.models.abuse_model import AbuseEvent, AbuseRecord
from evote.models.ballot_model import utcnow

logger = logging.getLogger(__name__)


class AbuseRecorder:
    """Append-only audit log of rejected duplicate attempts."""

    def __init__(self, db, write_timeout: float = ABUSE_WRITE_TIMEOUT_SECONDS):
        self.collection = abuse_log_collection(db)
        self.write_timeout = write_timeout
        self._pending = set()

    async def record(self, event: AbuseEvent) -> None:
        """
        Store one abuse record. Never raises on storage errors: by the time we
        get here the vote decision is final and must not change.
        """
        doc = event.model_dump(mode="json")
        doc["occurred_at"] = utcnow()
        try:
            await self.collection.insert_one(doc)
            logger.info(
                f"Abuse recorded: {event.reason_code.value} from {event.origin_address}"
            )
        except PyMongoError:
            logger.exception(f"Failed to record abuse event {event.reason_code.value}")

    async def record_soon(self, event: AbuseEvent) -> None:
        """
        Start the write in the background and wait for it at most
        `write_timeout` seconds. A slow write keeps going after we return.
        """
        task = asyncio.create_task(self.record(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self.write_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Abuse write for {event.reason_code.value} still pending after {self.write_timeout}s"
            )

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def list_records(self, limit: int = 100) -> List[AbuseRecord]:
        records = []
        try:
            cursor = self.collection.find({}, sort=[("occurred_at", DESCENDING)], limit=limit)
            async for doc in cursor:
                records.append(AbuseRecord.from_document(doc))
        except PyMongoError as e:
            logger.error(f"Error listing abuse records: {e}")
            raise StorageUnavailable(str(e)) from e
        return records
