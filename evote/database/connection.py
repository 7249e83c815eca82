import logging

import motor.motor_asyncio
from pymongo import ASCENDING

from evote.config import (
    MONGO_URI,
    MONGO_DB,
    BALLOTS_COLLECTION_NAME,
    ABUSE_LOGS_COLLECTION_NAME,
    ELECTIONS_COLLECTION_NAME,
    POSITIONS_COLLECTION_NAME,
    CANDIDATES_COLLECTION_NAME,
)

logger = logging.getLogger(__name__)

_client = None


def get_database():
    """Return the shared motor database, connecting lazily on first use."""
    global _client
    if _client is None:
        _client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_URI)
        logger.info(f"Connected to MongoDB at {MONGO_URI}, database: {MONGO_DB}")
    return _client[MONGO_DB]


def close_database():
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("MongoDB connection closed")


def ballot_collection(db):
    return db[BALLOTS_COLLECTION_NAME]


def abuse_log_collection(db):
    return db[ABUSE_LOGS_COLLECTION_NAME]


def election_collection(db):
    return db[ELECTIONS_COLLECTION_NAME]


def position_collection(db):
    return db[POSITIONS_COLLECTION_NAME]


def candidate_collection(db):
    return db[CANDIDATES_COLLECTION_NAME]


async def ensure_indexes(db):
    """
    Create the indexes the voting core relies on.

    unique_vote and unique_biometric are what make a double vote impossible;
    ballots without a biometric digest leave the field out entirely so the
    partial filter skips them.
    """
    ballots = ballot_collection(db)
    await ballots.create_index(
        [("voter_primary_key", ASCENDING), ("position_id", ASCENDING)],
        name="unique_vote",
        unique=True,
    )
    await ballots.create_index(
        [("biometric_digest", ASCENDING), ("position_id", ASCENDING)],
        name="unique_biometric",
        unique=True,
        partialFilterExpression={"biometric_digest": {"$exists": True}},
    )
    await ballots.create_index(
        [("position_id", ASCENDING), ("candidate_id", ASCENDING)],
        name="tally",
    )
    await ballots.create_index(
        [("position_id", ASCENDING), ("device_token", ASCENDING)],
        name="device_usage",
    )
    await abuse_log_collection(db).create_index(
        [("occurred_at", ASCENDING)], name="occurred_at"
    )
    await position_collection(db).create_index(
        [("election_id", ASCENDING)], name="election_id"
    )
    await candidate_collection(db).create_index(
        [("position_id", ASCENDING)], name="position_id"
    )
    logger.info("Ledger indexes ensured")
