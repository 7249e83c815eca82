# pipeline.py
import asyncio
import logging
import re
from typing import Callable, Optional

from evote.abuse import AbuseRecorder
from evote.broadcaster import TallyBroadcaster
from evote.config import DEVICE_VOTE_LIMIT, MATRIC_PATTERN
from evote.eligibility import EligibilityGate
from evote.errors import (
    VoteRejected,
    MalformedSubmission,
    DuplicateVote,
    StorageConflict,
)
from evote.ledger import BallotLedger
from evote.models.abuse_model import AbuseEvent, AbuseReason
from evote.models.ballot_model import Ballot, BallotDraft, BiometricKind
from evote.models.vote_model import VoteSubmission, ConnectionInfo, TallyUpdate, Admission
from evote.security import digest

logger = logging.getLogger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class VoteAdmissionPipeline:
    """
    Takes one submission from Received to a terminal outcome:

        Received -> Validated -> Checked -> Accepted | Rejected(reason)

    The ledger lookups in the Checked stage only give an early, friendly
    rejection. What actually prevents a double vote is the ledger's unique
    indexes: a conflict on insert is mapped back to the same duplicate
    rejection, so the response always reflects what was persisted.
    """

    def __init__(
        self,
        ledger: BallotLedger,
        gate: EligibilityGate,
        recorder: AbuseRecorder,
        broadcaster: TallyBroadcaster,
        hasher: Callable[[str], str] = digest,
        device_vote_limit: int = DEVICE_VOTE_LIMIT,
        matric_pattern: str = MATRIC_PATTERN,
    ):
        self.ledger = ledger
        self.gate = gate
        self.recorder = recorder
        self.broadcaster = broadcaster
        self.hasher = hasher
        self.device_vote_limit = device_vote_limit
        self.matric_re = re.compile(matric_pattern)

    async def submit(self, submission: VoteSubmission, conn: ConnectionInfo) -> Admission:
        """
        Run one submission. Rejections come back as an Admission; only
        StorageUnavailable propagates, since then nothing was decided.
        """
        draft = None
        try:
            draft = self.validate(submission, conn)
            await self.gate.check(draft.position_id, draft.candidate_id)
            await self.check_duplicates(draft)
            ballot = await asyncio.shield(self._commit(draft))
        except StorageConflict as e:
            return await self._reject(DuplicateVote(e.reason), draft)
        except VoteRejected as e:
            return await self._reject(e, draft)

        logger.info(f"Ballot {ballot.id} accepted for position {ballot.position_id}")
        return Admission(
            accepted=True,
            status_code=200,
            message="Vote submitted successfully.",
            ballot=ballot,
        )

    def validate(self, submission: VoteSubmission, conn: ConnectionInfo) -> BallotDraft:
        """Received -> Validated: shape checks only, no I/O."""
        voter_primary_key = _clean(submission.voter_primary_key)
        position_id = _clean(submission.position_id)
        candidate_id = _clean(submission.candidate_id)
        device_token = _clean(submission.device_token)
        payload = submission.biometric_payload

        if not voter_primary_key or not position_id or not candidate_id:
            raise MalformedSubmission("Missing required fields.")
        if not self.matric_re.match(voter_primary_key):
            raise MalformedSubmission("Invalid matric format.")
        try:
            kind = BiometricKind(_clean(submission.biometric_kind))
        except ValueError:
            raise MalformedSubmission("Invalid biometric type.")
        if kind != BiometricKind.NONE and not payload:
            raise MalformedSubmission("Biometric payload is required.")
        if kind == BiometricKind.NONE and not device_token:
            raise MalformedSubmission("Device ID required without biometrics.")

        return BallotDraft(
            voter_primary_key=voter_primary_key,
            biometric_digest=self.hasher(payload) if kind != BiometricKind.NONE else None,
            biometric_kind=kind,
            device_token=device_token,
            position_id=position_id,
            candidate_id=candidate_id,
            origin_address=conn.origin_address,
            user_agent=conn.user_agent,
        )

    async def check_duplicates(self, draft: BallotDraft) -> None:
        """Validated -> Checked. Biometric match is reported ahead of identity."""
        if draft.biometric_digest:
            if await self.ledger.find_by_biometric(draft.position_id, draft.biometric_digest):
                raise DuplicateVote(AbuseReason.DUPLICATE_BIOMETRIC)
        if await self.ledger.find_by_identity(draft.position_id, draft.voter_primary_key):
            raise DuplicateVote(AbuseReason.DUPLICATE_IDENTITY)

        if (
            self.device_vote_limit > 0
            and draft.biometric_kind == BiometricKind.NONE
            and draft.device_token
        ):
            used = await self.ledger.count_by_device(draft.position_id, draft.device_token)
            if used >= self.device_vote_limit:
                raise DuplicateVote(AbuseReason.DEVICE_LIMIT_EXCEEDED)

    async def _commit(self, draft: BallotDraft) -> Ballot:
        # Shielded by the caller: once issued, the insert and its tally update finish
        async with self.broadcaster.committing():
            ballot = await self.ledger.insert(draft)
            self.broadcaster.publish(
                TallyUpdate(position_id=ballot.position_id, candidate_id=ballot.candidate_id, delta=1)
            )
        return ballot

    async def _reject(self, error: VoteRejected, draft: Optional[BallotDraft]) -> Admission:
        if error.abusive and draft is not None:
            logger.warning(
                f"Rejected {error.reason_code} for position {draft.position_id} "
                f"from {draft.origin_address}"
            )
            await self.recorder.record_soon(
                AbuseEvent(
                    voter_primary_key=draft.voter_primary_key,
                    biometric_digest=draft.biometric_digest,
                    biometric_kind=draft.biometric_kind,
                    device_token=draft.device_token,
                    origin_address=draft.origin_address,
                    user_agent=draft.user_agent,
                    reason_code=AbuseReason(error.reason_code),
                )
            )
        else:
            logger.info(f"Rejected submission: {error.reason_code} ({error.message})")
        return Admission(
            accepted=False,
            status_code=error.status_code,
            message=error.message,
            reason_code=error.reason_code,
        )
