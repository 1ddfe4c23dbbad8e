"""
Login attempt log for brute-force protection.

Append-only: one row per authentication attempt, per tracked dimension
(IP or USER). Rows are never updated or deleted.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, Enum as SAEnum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authguard.db.base import Base, JSONType, UTCDateTime
from authguard.schemas.brute_force import AttemptType


class LoginAttempt(Base):
    """A single authentication attempt."""

    __tablename__ = "login_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Account identifier or IP address, depending on attempt_type
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    attempt_type: Mapped[AttemptType] = mapped_column(
        SAEnum(AttemptType, name="attempttype", native_enum=False, length=8), nullable=False
    )
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    additional_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        Index("ix_login_attempts_identifier_type_ts", "identifier", "attempt_type", "timestamp"),
        Index("ix_login_attempts_ip_ts", "ip_address", "timestamp"),
    )

    def __repr__(self) -> str:
        outcome = "success" if self.success else "failure"
        return f"<LoginAttempt {self.attempt_type} {self.identifier} {outcome} at {self.timestamp}>"
