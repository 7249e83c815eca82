import asyncio
import logging

from pymongo.errors import AutoReconnect

from evote.abuse import AbuseRecorder
from evote.models.abuse_model import AbuseEvent, AbuseReason
from evote.models.ballot_model import BiometricKind

from conftest import VOTER_A, VOTER_B


def event(voter=VOTER_A, reason=AbuseReason.DUPLICATE_IDENTITY, **kwargs):
    return AbuseEvent(
        voter_primary_key=voter,
        origin_address="10.0.0.5",
        user_agent="pytest",
        reason_code=reason,
        **kwargs,
    )


class BrokenCollection:
    async def insert_one(self, *args, **kwargs):
        raise AutoReconnect("primary stepped down")


class StalledCollection:
    def __init__(self):
        self.release = asyncio.Event()
        self.docs = []

    async def insert_one(self, doc):
        await self.release.wait()
        self.docs.append(doc)


async def test_record_appends_document(recorder, db):
    await recorder.record(event(
        biometric_digest="ab" * 32,
        biometric_kind=BiometricKind.FINGERPRINT,
        reason=AbuseReason.DUPLICATE_BIOMETRIC,
    ))
    doc = await db["abuse_logs"].find_one({})
    assert doc["reason_code"] == "duplicate_biometric"
    assert doc["biometric_kind"] == "fingerprint"
    assert doc["voter_primary_key"] == VOTER_A
    assert doc["occurred_at"] is not None


async def test_list_records_newest_first(recorder):
    await recorder.record(event(voter=VOTER_A))
    await asyncio.sleep(0.01)
    await recorder.record(event(voter=VOTER_B))
    records = await recorder.list_records()
    assert [r.voter_primary_key for r in records] == [VOTER_B, VOTER_A]
    assert len(await recorder.list_records(limit=1)) == 1


async def test_record_failure_is_logged_not_raised(db, caplog):
    recorder = AbuseRecorder(db)
    recorder.collection = BrokenCollection()
    with caplog.at_level(logging.ERROR, logger="evote.abuse"):
        await recorder.record(event())
    assert "Failed to record abuse event duplicate_identity" in caplog.text


async def test_record_soon_stops_waiting_after_timeout(db):
    recorder = AbuseRecorder(db, write_timeout=0.05)
    stalled = StalledCollection()
    recorder.collection = stalled

    await recorder.record_soon(event())
    assert stalled.docs == []

    stalled.release.set()
    await recorder.drain()
    assert len(stalled.docs) == 1
