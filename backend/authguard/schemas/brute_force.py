from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class AttemptType(str, Enum):
    IP = "IP"
    USER = "USER"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class DenialReason(str, Enum):
    LOCKED_OUT = "LOCKED_OUT"
    RATE_LIMITED = "RATE_LIMITED"


class AttemptResult(BaseModel):
    """Outcome of a pre-authentication check."""

    allowed: bool
    reason: DenialReason | None = None
    lockout_expires_at: datetime | None = None
    attempts_remaining: int
    risk_level: RiskLevel

    def public_view(self) -> dict[str, Any]:
        """Fields safe to return to the client. Counts and risk stay internal."""
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "lockout_expires_at": self.lockout_expires_at.isoformat() if self.lockout_expires_at else None,
        }


class LockoutStatus(BaseModel):
    identifier: str
    lockout_type: AttemptType
    locked: bool
    expires_at: datetime | None = None
    remaining_seconds: int = 0
    requires_manual_unlock: bool = False
