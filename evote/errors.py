from typing import Optional

from evote.models.abuse_model import AbuseReason

MALFORMED_SUBMISSION = AbuseReason.MALFORMED_SUBMISSION.value
UNKNOWN_POSITION = "unknown_position"
UNKNOWN_CANDIDATE = "unknown_candidate"
INELIGIBLE_ELECTION = "ineligible_election"
TOO_MANY_ATTEMPTS = "too_many_attempts"
STORAGE_UNAVAILABLE = "storage_unavailable"


class VoteRejected(Exception):
    """A submission the pipeline refuses. Subclasses decide status and abuse logging."""
    status_code = 400
    abusive = False

    def __init__(self, reason_code: str, message: str):
        super().__init__(message)
        self.reason_code = reason_code
        self.message = message


class MalformedSubmission(VoteRejected):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(MALFORMED_SUBMISSION, message)


class UnknownReference(VoteRejected):
    status_code = 404


class IneligibleElection(VoteRejected):
    status_code = 403

    def __init__(self, message: str = "Voting is not open."):
        super().__init__(INELIGIBLE_ELECTION, message)


class DuplicateVote(VoteRejected):
    status_code = 403
    abusive = True

    def __init__(self, reason: AbuseReason, message: Optional[str] = None):
        super().__init__(reason.value, message or DUPLICATE_MESSAGES[reason])
        self.reason = reason


class TooManyAttempts(VoteRejected):
    status_code = 429

    def __init__(self, message: str = "Too many voting attempts. Please try again later."):
        super().__init__(TOO_MANY_ATTEMPTS, message)


DUPLICATE_MESSAGES = {
    AbuseReason.DUPLICATE_IDENTITY: "You have already voted for this position with this matric number.",
    AbuseReason.DUPLICATE_BIOMETRIC: "This biometric has already been used to vote for this position.",
    AbuseReason.DEVICE_LIMIT_EXCEEDED: "This device has reached its voting limit for this position.",
}


class StorageConflict(Exception):
    """The ledger's unique index rejected an insert. `field` is "identity" or "biometric"."""

    def __init__(self, field: str):
        super().__init__(f"ballot uniqueness violated on {field}")
        self.field = field

    @property
    def reason(self) -> AbuseReason:
        if self.field == "biometric":
            return AbuseReason.DUPLICATE_BIOMETRIC
        return AbuseReason.DUPLICATE_IDENTITY


class StorageUnavailable(Exception):
    """The ledger could not be reached. No ballot was written; the submission can be retried."""
