import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from evote.abuse import AbuseRecorder
from evote.broadcaster import TallyBroadcaster
from evote.database.connection import ensure_indexes
from evote.eligibility import ElectionDirectory, EligibilityGate
from evote.ledger import BallotLedger
from evote.main import create_app
from evote.models.vote_model import VoteSubmission, ConnectionInfo
from evote.pipeline import VoteAdmissionPipeline
from evote.rate_limiter import AttemptLimiter

VOTER_A = "CSC/21/03/0001"
VOTER_B = "CSC/21/03/0002"
VOTER_C = "MTH/20/01/0007"


async def seed_reference_data(db):
    """
    E1 is the open election (P1: C1, C2; P2: C3). E2 is closed (PX: CX).
    """
    now = datetime.now(timezone.utc)
    await db["elections"].insert_many([
        {
            "_id": "E1",
            "title": "Students' Union 2026",
            "description": "General election",
            "status": "active",
            "start_time": now - timedelta(hours=1),
            "end_time": now + timedelta(hours=1),
        },
        {
            "_id": "E2",
            "title": "Students' Union 2025",
            "description": "Last year's election",
            "status": "closed",
            "start_time": now - timedelta(days=400),
            "end_time": now - timedelta(days=399),
        },
    ])
    await db["positions"].insert_many([
        {"_id": "P1", "election_id": "E1", "name": "President"},
        {"_id": "P2", "election_id": "E1", "name": "Secretary"},
        {"_id": "PX", "election_id": "E2", "name": "President"},
    ])
    await db["candidates"].insert_many([
        {"_id": "C1", "position_id": "P1", "name": "Ada", "manifesto": "Libraries open late"},
        {"_id": "C2", "position_id": "P1", "name": "Bola"},
        {"_id": "C3", "position_id": "P2", "name": "Chidi"},
        {"_id": "CX", "position_id": "PX", "name": "Dayo"},
    ])


def make_submission(voter=VOTER_A, position="P1", candidate="C1", kind="none",
                    payload=None, device="dev1"):
    return VoteSubmission(
        voter_primary_key=voter,
        biometric_kind=kind,
        biometric_payload=payload,
        device_token=device,
        position_id=position,
        candidate_id=candidate,
    )


CONN = ConnectionInfo(origin_address="10.0.0.5", user_agent="pytest")


async def eventually(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeObserver:
    """Stands in for a WebSocket."""

    def __init__(self, fail=False):
        self.messages = []
        self.closed = False
        self.fail = fail

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket gone")
        self.messages.append(message)

    async def close(self):
        self.closed = True

    def events(self, name):
        return [m["data"] for m in self.messages if m["event"] == name]


@pytest_asyncio.fixture
async def db():
    database = AsyncMongoMockClient()["evote_test"]
    await ensure_indexes(database)
    await seed_reference_data(database)
    return database


@pytest.fixture
def ledger(db):
    return BallotLedger(db)


@pytest.fixture
def directory(db):
    return ElectionDirectory(db)


@pytest.fixture
def recorder(db):
    return AbuseRecorder(db)


@pytest.fixture
def broadcaster(ledger, directory):
    return TallyBroadcaster(ledger, directory)


@pytest.fixture
def pipeline(ledger, directory, recorder, broadcaster):
    return VoteAdmissionPipeline(
        ledger=ledger,
        gate=EligibilityGate(directory),
        recorder=recorder,
        broadcaster=broadcaster,
    )


@pytest.fixture
def api_db():
    database = AsyncMongoMockClient()["evote_api_test"]
    asyncio.run(seed_reference_data(database))
    return database


@pytest.fixture
def client(api_db):
    app = create_app(db=api_db, limiter=AttemptLimiter(max_attempts=0))
    with TestClient(app) as c:
        yield c
