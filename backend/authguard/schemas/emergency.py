from datetime import datetime

from pydantic import BaseModel


class EmergencyCode(BaseModel):
    """Plaintext code returned once to the requester. Never persisted."""

    code: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"EmergencyCode(code='***', expires_at={self.expires_at!r})"

    __str__ = __repr__
