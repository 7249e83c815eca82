from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field

from evote.models.ballot_model import BiometricKind, utcnow


class AbuseReason(str, Enum):
    DUPLICATE_IDENTITY = "duplicate_identity"
    DUPLICATE_BIOMETRIC = "duplicate_biometric"
    DEVICE_LIMIT_EXCEEDED = "device_limit_exceeded"
    MALFORMED_SUBMISSION = "malformed_submission"


class AbuseEvent(BaseModel):
    voter_primary_key: Optional[str] = None
    biometric_digest: Optional[str] = None
    biometric_kind: Optional[BiometricKind] = None
    device_token: Optional[str] = None
    origin_address: Optional[str] = None
    user_agent: Optional[str] = None
    reason_code: AbuseReason


class AbuseRecord(AbuseEvent):
    id: str
    occurred_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "AbuseRecord":
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        occurred_at = data.get("occurred_at")
        if isinstance(occurred_at, datetime) and occurred_at.tzinfo is None:
            data["occurred_at"] = occurred_at.replace(tzinfo=timezone.utc)
        return cls(**data)
