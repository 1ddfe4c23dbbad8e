"""
Account and IP lockouts.

Rows are deactivated, never deleted, so lockout history stays available
for escalation and audit.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Enum as SAEnum, Index, Integer, String, and_, text
from sqlalchemy.ext.hybrid import hybrid_method
from sqlalchemy.orm import Mapped, mapped_column

from authguard.db.base import Base, UTCDateTime
from authguard.schemas.brute_force import AttemptType

LOCKOUT_REASON_BRUTE_FORCE = "BRUTE_FORCE_PROTECTION"

# Stored expiry for lockouts that only an administrator can lift
PERMANENT_LOCKOUT_EXPIRY = datetime(2099, 12, 31, tzinfo=timezone.utc)


class AccountLockout(Base):
    __tablename__ = "account_lockouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    lockout_type: Mapped[AttemptType] = mapped_column(
        SAEnum(AttemptType, name="attempttype", native_enum=False, length=8), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(64), nullable=False, default=LOCKOUT_REASON_BRUTE_FORCE)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    # IP that triggered the lockout; differs from identifier for USER lockouts
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    requires_manual_unlock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        # At most one active lockout per (identifier, lockout_type)
        Index(
            "uq_account_lockouts_active",
            "identifier",
            "lockout_type",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active"),
        ),
        Index("ix_account_lockouts_identifier_type_created", "identifier", "lockout_type", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AccountLockout(identifier={self.identifier}, type={self.lockout_type}, "
            f"active={self.is_active}, expires={self.expires_at})>"
        )

    @hybrid_method
    def is_in_force(self, now: datetime) -> bool:
        """Active and not yet expired at `now`. Also usable as a query filter."""
        return self.is_active and self.expires_at > now

    @is_in_force.expression
    def is_in_force(cls, now: datetime):
        return and_(cls.is_active.is_(True), cls.expires_at > now)
