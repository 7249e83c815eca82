# eligibility.py
import logging
from datetime import datetime
from typing import Optional, List, Tuple, Callable

from bson import ObjectId
from pymongo.errors import PyMongoError

from evote.database.connection import (
    election_collection,
    position_collection,
    candidate_collection,
)
from evote.errors import (
    IneligibleElection,
    UnknownReference,
    StorageUnavailable,
    UNKNOWN_POSITION,
    UNKNOWN_CANDIDATE,
)
from evote.models.ballot_model import utcnow
from evote.models.election_model import Election, ElectionStatus, Position, Candidate

logger = logging.getLogger(__name__)


def _id_forms(value: str) -> list:
    """Both spellings an id may be stored under: the plain string and its ObjectId."""
    if ObjectId.is_valid(value):
        return [value, ObjectId(value)]
    return [value]


def _match_id(value: str) -> dict:
    return {"$in": _id_forms(value)}


class ElectionDirectory:
    """Read-only view of the elections, positions and candidates the admin side manages."""

    def __init__(self, db):
        self.elections = election_collection(db)
        self.positions = position_collection(db)
        self.candidates = candidate_collection(db)

    async def _find_one(self, collection, query):
        try:
            return await collection.find_one(query)
        except PyMongoError as e:
            logger.error(f"Error reading {collection.name}: {e}")
            raise StorageUnavailable(str(e)) from e

    async def _find(self, collection, query) -> list:
        docs = []
        try:
            async for doc in collection.find(query):
                docs.append(doc)
        except PyMongoError as e:
            logger.error(f"Error reading {collection.name}: {e}")
            raise StorageUnavailable(str(e)) from e
        return docs

    async def get_active_election(self) -> Optional[Election]:
        doc = await self._find_one(self.elections, {"status": ElectionStatus.ACTIVE.value})
        return Election.from_document(doc) if doc else None

    async def get_election(self, election_id: str) -> Optional[Election]:
        doc = await self._find_one(self.elections, {"_id": _match_id(election_id)})
        return Election.from_document(doc) if doc else None

    async def get_position(self, position_id: str) -> Optional[Position]:
        doc = await self._find_one(self.positions, {"_id": _match_id(position_id)})
        return Position.from_document(doc) if doc else None

    async def get_candidate(self, candidate_id: str) -> Optional[Candidate]:
        doc = await self._find_one(self.candidates, {"_id": _match_id(candidate_id)})
        return Candidate.from_document(doc) if doc else None

    async def list_positions(self, election_id: str) -> List[Position]:
        docs = await self._find(self.positions, {"election_id": _match_id(election_id)})
        return [Position.from_document(doc) for doc in docs]

    async def list_candidates(self, position_ids: List[str]) -> List[Candidate]:
        forms = [form for position_id in position_ids for form in _id_forms(position_id)]
        docs = await self._find(self.candidates, {"position_id": {"$in": forms}})
        return [Candidate.from_document(doc) for doc in docs]


class EligibilityGate:
    """
    Decides whether a ballot for (position, candidate) may be admitted right now.
    The position must belong to the active election, that election must be inside
    its voting window, and the candidate must stand for that position.
    """

    def __init__(self, directory: ElectionDirectory, clock: Callable[[], datetime] = utcnow):
        self.directory = directory
        self.clock = clock

    async def check(self, position_id: str, candidate_id: str) -> Tuple[Election, Position, Candidate]:
        position = await self.directory.get_position(position_id)
        if position is None:
            raise UnknownReference(UNKNOWN_POSITION, "Position not found.")

        active = await self.directory.get_active_election()
        if active is None:
            raise IneligibleElection("No active election.")
        if position.election_id != active.id:
            raise IneligibleElection("Position does not belong to the active election.")
        if not active.is_admissible(self.clock()):
            raise IneligibleElection("Voting is not open.")

        candidate = await self.directory.get_candidate(candidate_id)
        if candidate is None or candidate.position_id != position.id:
            raise UnknownReference(UNKNOWN_CANDIDATE, "Candidate not found for this position.")

        return active, position, candidate
