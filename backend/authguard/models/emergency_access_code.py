"""
One-time emergency access codes.

Only the bcrypt hash of a code is stored. Rows are kept after use or
expiry as an audit trail.
"""

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String, Text, and_
from sqlalchemy.ext.hybrid import hybrid_method
from sqlalchemy.orm import Mapped, mapped_column

from authguard.db.base import Base, UTCDateTime


class EmergencyAccessCode(Base):
    __tablename__ = "emergency_access_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    code_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_emergency_access_codes_user_used_expires", "user_id", "used", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<EmergencyAccessCode(user_id={self.user_id}, used={self.used}, expires={self.expires_at})>"

    @hybrid_method
    def is_redeemable(self, now: datetime) -> bool:
        return not self.used and self.expires_at > now

    @is_redeemable.expression
    def is_redeemable(cls, now: datetime):
        return and_(cls.used.is_(False), cls.expires_at > now)
