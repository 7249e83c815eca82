# ledger.py
import logging
from typing import Optional, Dict, List

from pymongo.errors import DuplicateKeyError, PyMongoError

from evote.database.connection import ballot_collection
from evote.errors import StorageConflict, StorageUnavailable
from evote.models.ballot_model import Ballot, BallotDraft

logger = logging.getLogger(__name__)


class BallotLedger:
    """
    Durable store of accepted ballots.

    Uniqueness of (voter, position) and (biometric digest, position) is enforced
    by the unique_vote / unique_biometric indexes at insert time; the find_*
    helpers are only a fast path for friendly rejections.
    """

    def __init__(self, db):
        self.collection = ballot_collection(db)

    async def find_by_identity(self, position_id: str, voter_primary_key: str) -> Optional[Ballot]:
        try:
            doc = await self.collection.find_one(
                {"position_id": position_id, "voter_primary_key": voter_primary_key}
            )
        except PyMongoError as e:
            logger.error(f"Error looking up ballot by identity for position {position_id}: {e}")
            raise StorageUnavailable(str(e)) from e
        return Ballot.from_document(doc) if doc else None

    async def find_by_biometric(self, position_id: str, biometric_digest: str) -> Optional[Ballot]:
        try:
            doc = await self.collection.find_one(
                {"position_id": position_id, "biometric_digest": biometric_digest}
            )
        except PyMongoError as e:
            logger.error(f"Error looking up ballot by biometric for position {position_id}: {e}")
            raise StorageUnavailable(str(e)) from e
        return Ballot.from_document(doc) if doc else None

    async def insert(self, draft: BallotDraft) -> Ballot:
        """
        Write a ballot. Raises StorageConflict if either unique index fires,
        which is the authoritative "already voted" signal under concurrency.
        """
        doc = draft.to_document()
        try:
            result = await self.collection.insert_one(doc)
        except DuplicateKeyError as e:
            field = await self._conflict_field(e, draft)
            logger.warning(
                f"Ballot insert conflict on {field} for position {draft.position_id}"
            )
            raise StorageConflict(field) from e
        except PyMongoError as e:
            logger.error(f"Error inserting ballot for position {draft.position_id}: {e}")
            raise StorageUnavailable(str(e)) from e
        return Ballot(id=str(result.inserted_id), **draft.model_dump())

    async def _conflict_field(self, error: DuplicateKeyError, draft: BallotDraft) -> str:
        # Biometric wins when both would match, so ask the ledger first
        if draft.biometric_digest:
            try:
                if await self.find_by_biometric(draft.position_id, draft.biometric_digest):
                    return "biometric"
            except StorageUnavailable:
                pass
        details = error.details or {}
        key_pattern = details.get("keyPattern") or {}
        if "biometric_digest" in key_pattern or "unique_biometric" in str(error):
            return "biometric"
        return "identity"

    async def count_by_candidate(self, position_id: str) -> Dict[str, int]:
        pipeline = [
            {"$match": {"position_id": position_id}},
            {"$group": {"_id": "$candidate_id", "count": {"$sum": 1}}},
        ]
        counts = {}
        try:
            async for row in self.collection.aggregate(pipeline):
                counts[row["_id"]] = row["count"]
        except PyMongoError as e:
            logger.error(f"Error counting ballots for position {position_id}: {e}")
            raise StorageUnavailable(str(e)) from e
        return counts

    async def count_by_device(self, position_id: str, device_token: str) -> int:
        try:
            return await self.collection.count_documents(
                {"position_id": position_id, "device_token": device_token}
            )
        except PyMongoError as e:
            logger.error(f"Error counting device ballots for position {position_id}: {e}")
            raise StorageUnavailable(str(e)) from e

    async def list_ballots(self, position_id: Optional[str] = None) -> List[Ballot]:
        query = {"position_id": position_id} if position_id else {}
        ballots = []
        try:
            async for doc in self.collection.find(query):
                ballots.append(Ballot.from_document(doc))
        except PyMongoError as e:
            logger.error(f"Error listing ballots: {e}")
            raise StorageUnavailable(str(e)) from e
        return ballots
