from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field


class BiometricKind(str, Enum):
    NONE = "none"
    FACE = "face"
    FINGERPRINT = "fingerprint"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BallotDraft(BaseModel):
    voter_primary_key: str = Field(..., examples=["CSC/21/03/0042"])
    biometric_digest: Optional[str] = None
    biometric_kind: BiometricKind = BiometricKind.NONE
    device_token: Optional[str] = None
    position_id: str
    candidate_id: str
    origin_address: Optional[str] = None
    user_agent: Optional[str] = None
    cast_at: datetime = Field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump()
        doc["biometric_kind"] = self.biometric_kind.value
        # absent, not null: the unique_biometric partial index only sees real digests
        if doc["biometric_digest"] is None:
            doc.pop("biometric_digest")
        return doc


class Ballot(BallotDraft):
    id: str

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Ballot":
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        cast_at = data.get("cast_at")
        if isinstance(cast_at, datetime) and cast_at.tzinfo is None:
            data["cast_at"] = cast_at.replace(tzinfo=timezone.utc)
        return cls(**data)
