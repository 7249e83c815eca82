from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field


class ElectionStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    CLOSED = "closed"


def as_utc(value: datetime) -> datetime:
    # Mongo hands back naive datetimes that are UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _from_document(doc: Dict[str, Any], *refs: str) -> Dict[str, Any]:
    # Reference data may be keyed by ObjectId or by plain string ids
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    for ref in refs:
        if data.get(ref) is not None:
            data[ref] = str(data[ref])
    return data


class Election(BaseModel):
    id: str
    title: str = Field(..., examples=["Students' Union General Election"])
    description: Optional[str] = None
    status: ElectionStatus = ElectionStatus.UPCOMING
    start_time: datetime
    end_time: datetime

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Election":
        data = _from_document(doc)
        data["start_time"] = as_utc(data["start_time"])
        data["end_time"] = as_utc(data["end_time"])
        return cls(**data)

    def is_admissible(self, now: datetime) -> bool:
        """Active and `now` inside [start_time, end_time]."""
        if self.status != ElectionStatus.ACTIVE:
            return False
        return self.start_time <= as_utc(now) <= self.end_time


class Position(BaseModel):
    id: str
    election_id: str
    name: str = Field(..., examples=["President"])

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Position":
        return cls(**_from_document(doc, "election_id"))


class Candidate(BaseModel):
    id: str
    position_id: str
    name: str
    photo: Optional[str] = None
    manifesto: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Candidate":
        return cls(**_from_document(doc, "position_id"))
