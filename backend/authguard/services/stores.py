"""
Persistence for login attempts, lockouts and emergency access codes.

Each store is a Protocol plus a SQLAlchemy implementation built from an
async_sessionmaker. Every database failure surfaces as StorageError so the
authentication flow can fail closed.

Usage:
    from authguard.services.stores import SqlAttemptStore
    attempts = SqlAttemptStore(async_session_maker)
    failed = await attempts.count_failed("alice", AttemptType.USER, since)
"""

import logging
from datetime import datetime
from typing import Protocol

from sqlalchemy import func, insert, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authguard.core.exceptions import StorageError
from authguard.models.account_lockout import AccountLockout
from authguard.models.emergency_access_code import EmergencyAccessCode
from authguard.models.login_attempt import LoginAttempt
from authguard.schemas.brute_force import AttemptType

logger = logging.getLogger(__name__)

_ON_CONFLICT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class AttemptStore(Protocol):
    async def append(self, attempt: LoginAttempt) -> None: ...

    async def count_failed(self, identifier: str, attempt_type: AttemptType, since: datetime) -> int: ...

    async def recent_failed_by_ip(self, ip_address: str, since: datetime) -> list[LoginAttempt]: ...

    async def last_success_at(self, identifier: str, attempt_type: AttemptType) -> datetime | None: ...


class LockoutStore(Protocol):
    async def find_active(self, identifier: str, lockout_type: AttemptType, now: datetime) -> AccountLockout | None: ...

    async def create(
        self,
        identifier: str,
        lockout_type: AttemptType,
        reason: str,
        expires_at: datetime,
        ip_address: str,
        created_at: datetime,
        requires_manual_unlock: bool = False,
    ) -> bool: ...

    async def deactivate(self, identifier: str, lockout_type: AttemptType) -> int: ...

    async def count_recent(self, identifier: str, lockout_type: AttemptType, since: datetime) -> int: ...


class EmergencyCodeStore(Protocol):
    async def create(
        self,
        user_id: str,
        code_hash: str,
        reason: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> EmergencyAccessCode: ...

    async def find_unused_unexpired(self, user_id: str, now: datetime) -> list[EmergencyAccessCode]: ...

    async def mark_used(self, code_id: int, used_at: datetime) -> bool: ...


class SqlAttemptStore:
    """LoginAttempt rows via SQLAlchemy."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def append(self, attempt: LoginAttempt) -> None:
        try:
            async with self.session_maker() as session:
                session.add(attempt)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError("append_attempt", str(e)) from e

    async def count_failed(self, identifier: str, attempt_type: AttemptType, since: datetime) -> int:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(func.count()).select_from(LoginAttempt).where(
                        LoginAttempt.identifier == identifier,
                        LoginAttempt.attempt_type == attempt_type,
                        LoginAttempt.success.is_(False),
                        LoginAttempt.timestamp >= since,
                    )
                )
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise StorageError("count_failed_attempts", str(e)) from e

    async def recent_failed_by_ip(self, ip_address: str, since: datetime) -> list[LoginAttempt]:
        """Failed attempts of either type from the IP since `since`, newest first."""
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(LoginAttempt).where(
                        LoginAttempt.ip_address == ip_address,
                        LoginAttempt.success.is_(False),
                        LoginAttempt.timestamp >= since,
                    ).order_by(LoginAttempt.timestamp.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("recent_failed_by_ip", str(e)) from e

    async def last_success_at(self, identifier: str, attempt_type: AttemptType) -> datetime | None:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(func.max(LoginAttempt.timestamp)).where(
                        LoginAttempt.identifier == identifier,
                        LoginAttempt.attempt_type == attempt_type,
                        LoginAttempt.success.is_(True),
                    )
                )
                return result.scalar()
        except SQLAlchemyError as e:
            raise StorageError("last_success_at", str(e)) from e


class SqlLockoutStore:
    """AccountLockout rows via SQLAlchemy.

    Lockout creation relies on the partial unique index
    uq_account_lockouts_active so that concurrent creators insert at most
    one active row.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def find_active(self, identifier: str, lockout_type: AttemptType, now: datetime) -> AccountLockout | None:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(AccountLockout).where(
                        AccountLockout.identifier == identifier,
                        AccountLockout.lockout_type == lockout_type,
                        AccountLockout.is_in_force(now),
                    ).order_by(AccountLockout.created_at.desc()).limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("find_active_lockout", str(e)) from e

    async def create(
        self,
        identifier: str,
        lockout_type: AttemptType,
        reason: str,
        expires_at: datetime,
        ip_address: str,
        created_at: datetime,
        requires_manual_unlock: bool = False,
    ) -> bool:
        """Insert an active lockout. Returns False if one was already active."""
        values = {
            "identifier": identifier,
            "lockout_type": lockout_type,
            "reason": reason,
            "created_at": created_at,
            "expires_at": expires_at,
            "ip_address": ip_address,
            "is_active": True,
            "requires_manual_unlock": requires_manual_unlock,
        }
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    # Expired rows still flagged active would block the unique index
                    await session.execute(
                        update(AccountLockout).where(
                            AccountLockout.identifier == identifier,
                            AccountLockout.lockout_type == lockout_type,
                            AccountLockout.is_active.is_(True),
                            AccountLockout.expires_at <= created_at,
                        ).values(is_active=False)
                    )
                    return await self._insert_if_absent(session, values)
        except SQLAlchemyError as e:
            raise StorageError("create_lockout", str(e)) from e

    async def _insert_if_absent(self, session: AsyncSession, values: dict) -> bool:
        dialect = session.get_bind().dialect.name
        insert_fn = _ON_CONFLICT_INSERTS.get(dialect)

        if insert_fn is not None:
            stmt = insert_fn(AccountLockout).values(**values).on_conflict_do_nothing(
                index_elements=["identifier", "lockout_type"],
                index_where=text("is_active"),
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

        # Other dialects: let the unique index reject the duplicate
        try:
            async with session.begin_nested():
                await session.execute(insert(AccountLockout).values(**values))
        except IntegrityError:
            logger.debug("Active lockout already exists for %s", values["identifier"])
            return False
        return True

    async def deactivate(self, identifier: str, lockout_type: AttemptType) -> int:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(AccountLockout).where(
                        AccountLockout.identifier == identifier,
                        AccountLockout.lockout_type == lockout_type,
                        AccountLockout.is_active.is_(True),
                    ).values(is_active=False)
                )
                await session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            raise StorageError("deactivate_lockout", str(e)) from e

    async def count_recent(self, identifier: str, lockout_type: AttemptType, since: datetime) -> int:
        """Lockouts created since `since`, active or not."""
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(func.count()).select_from(AccountLockout).where(
                        AccountLockout.identifier == identifier,
                        AccountLockout.lockout_type == lockout_type,
                        AccountLockout.created_at >= since,
                    )
                )
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise StorageError("count_recent_lockouts", str(e)) from e


class SqlEmergencyCodeStore:
    """EmergencyAccessCode rows via SQLAlchemy."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def create(
        self,
        user_id: str,
        code_hash: str,
        reason: str,
        expires_at: datetime,
        created_at: datetime,
    ) -> EmergencyAccessCode:
        row = EmergencyAccessCode(
            user_id=user_id,
            code_hash=code_hash,
            reason=reason,
            created_at=created_at,
            expires_at=expires_at,
            used=False,
        )
        try:
            async with self.session_maker() as session:
                session.add(row)
                await session.commit()
                return row
        except SQLAlchemyError as e:
            raise StorageError("create_emergency_code", str(e)) from e

    async def find_unused_unexpired(self, user_id: str, now: datetime) -> list[EmergencyAccessCode]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(EmergencyAccessCode).where(
                        EmergencyAccessCode.user_id == user_id,
                        EmergencyAccessCode.is_redeemable(now),
                    ).order_by(EmergencyAccessCode.created_at.desc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("find_emergency_codes", str(e)) from e

    async def mark_used(self, code_id: int, used_at: datetime) -> bool:
        """Consume a code. False if another request consumed it first."""
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(EmergencyAccessCode).where(
                        EmergencyAccessCode.id == code_id,
                        EmergencyAccessCode.used.is_(False),
                    ).values(used=True, used_at=used_at)
                )
                await session.commit()
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise StorageError("mark_emergency_code_used", str(e)) from e
