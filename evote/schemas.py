from datetime import datetime
from typing import Optional, List, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VoteResult(CamelModel):
    accepted: bool
    message: str
    reason_code: Optional[str] = None
    ballot_id: Optional[str] = None


class CandidateOut(CamelModel):
    id: str
    name: str
    photo: Optional[str] = None
    manifesto: Optional[str] = None


class PositionOut(CamelModel):
    id: str
    name: str
    candidates: List[CandidateOut] = []


class ElectionOut(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    status: str
    start_time: datetime
    end_time: datetime


class PositionsWithCandidates(CamelModel):
    election: ElectionOut
    positions: List[PositionOut]


class TallyOut(CamelModel):
    election_id: str
    tally: Dict[str, Dict[str, int]]


class AbuseRecordOut(CamelModel):
    id: str
    voter_primary_key: Optional[str] = None
    biometric_digest: Optional[str] = None
    biometric_kind: Optional[str] = None
    device_token: Optional[str] = None
    origin_address: Optional[str] = None
    user_agent: Optional[str] = None
    reason_code: str
    occurred_at: datetime
