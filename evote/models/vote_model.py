from typing import Optional

from pydantic import BaseModel

from evote.models.ballot_model import Ballot
from evote.schemas import CamelModel


class VoteSubmission(CamelModel):
    """
    Raw vote as it arrives from the client.
    Everything is optional here; the pipeline validates it explicitly so a bad
    submission gets a malformed_submission rejection instead of a schema error.
    """
    voter_primary_key: Optional[str] = None
    biometric_kind: Optional[str] = None
    biometric_payload: Optional[str] = None
    device_token: Optional[str] = None
    position_id: Optional[str] = None
    candidate_id: Optional[str] = None


class ConnectionInfo(BaseModel):
    origin_address: Optional[str] = None
    user_agent: Optional[str] = None


class TallyUpdate(CamelModel):
    position_id: str
    candidate_id: str
    delta: int = 1


class Admission(BaseModel):
    """Terminal outcome of one submission."""
    accepted: bool
    status_code: int
    message: str
    reason_code: Optional[str] = None
    ballot: Optional[Ballot] = None
