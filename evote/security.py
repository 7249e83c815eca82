import hashlib
from typing import Union


# One-way and unsalted: digests must match ones stored by earlier processes
def digest(raw_payload: Union[bytes, str]) -> str:
    if isinstance(raw_payload, str):
        raw_payload = raw_payload.encode("utf-8")
    return hashlib.sha256(raw_payload).hexdigest()
