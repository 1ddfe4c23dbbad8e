"""Pytest fixtures for backend tests.

Guard and emergency-access tests run against in-memory stores and a frozen
clock. Store tests run the SQLAlchemy implementations on in-memory SQLite.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import authguard.models  # noqa: F401
from authguard.core.config import BruteForcePolicy, EmergencyAccessPolicy
from authguard.core.exceptions import AuditWriteError
from authguard.db.base import Base
from authguard.models.account_lockout import AccountLockout
from authguard.models.emergency_access_code import EmergencyAccessCode
from authguard.models.login_attempt import LoginAttempt
from authguard.schemas.audit import AuditAction, AuditEvent
from authguard.schemas.brute_force import AttemptType
from authguard.services.brute_force import BruteForceGuard
from authguard.services.emergency_access import EmergencyAccessManager

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, start: datetime = START):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class InMemoryAttemptStore:
    def __init__(self):
        self.attempts: list[LoginAttempt] = []

    async def append(self, attempt: LoginAttempt) -> None:
        self.attempts.append(attempt)

    async def count_failed(self, identifier, attempt_type, since) -> int:
        return sum(
            1 for a in self.attempts
            if a.identifier == identifier
            and a.attempt_type == attempt_type
            and not a.success
            and a.timestamp >= since
        )

    async def recent_failed_by_ip(self, ip_address, since) -> list[LoginAttempt]:
        return [
            a for a in self.attempts
            if a.ip_address == ip_address and not a.success and a.timestamp >= since
        ]

    async def last_success_at(self, identifier, attempt_type):
        times = [
            a.timestamp for a in self.attempts
            if a.identifier == identifier and a.attempt_type == attempt_type and a.success
        ]
        return max(times) if times else None


class InMemoryLockoutStore:
    def __init__(self):
        self.lockouts: list[AccountLockout] = []

    def _matching(self, identifier, lockout_type):
        return [lo for lo in self.lockouts if lo.identifier == identifier and lo.lockout_type == lockout_type]

    async def find_active(self, identifier, lockout_type, now):
        active = [lo for lo in self._matching(identifier, lockout_type) if lo.is_in_force(now)]
        return active[-1] if active else None

    async def create(
        self,
        identifier,
        lockout_type,
        reason,
        expires_at,
        ip_address,
        created_at,
        requires_manual_unlock=False,
    ) -> bool:
        for lockout in self._matching(identifier, lockout_type):
            if lockout.is_active and lockout.expires_at <= created_at:
                lockout.is_active = False
        if any(lo.is_active for lo in self._matching(identifier, lockout_type)):
            return False
        self.lockouts.append(
            AccountLockout(
                identifier=identifier,
                lockout_type=lockout_type,
                reason=reason,
                created_at=created_at,
                expires_at=expires_at,
                ip_address=ip_address,
                is_active=True,
                requires_manual_unlock=requires_manual_unlock,
            )
        )
        return True

    async def deactivate(self, identifier, lockout_type) -> int:
        cleared = 0
        for lockout in self._matching(identifier, lockout_type):
            if lockout.is_active:
                lockout.is_active = False
                cleared += 1
        return cleared

    async def count_recent(self, identifier, lockout_type, since) -> int:
        return sum(1 for lo in self._matching(identifier, lockout_type) if lo.created_at >= since)

    def seed(self, identifier, lockout_type, created_at, expires_at, active=False):
        self.lockouts.append(
            AccountLockout(
                identifier=identifier,
                lockout_type=lockout_type,
                reason="BRUTE_FORCE_PROTECTION",
                created_at=created_at,
                expires_at=expires_at,
                ip_address="198.51.100.1",
                is_active=active,
                requires_manual_unlock=False,
            )
        )


class InMemoryEmergencyCodeStore:
    def __init__(self):
        self.codes: list[EmergencyAccessCode] = []

    async def create(self, user_id, code_hash, reason, expires_at, created_at) -> EmergencyAccessCode:
        row = EmergencyAccessCode(
            id=len(self.codes) + 1,
            user_id=user_id,
            code_hash=code_hash,
            reason=reason,
            created_at=created_at,
            expires_at=expires_at,
            used=False,
            used_at=None,
        )
        self.codes.append(row)
        return row

    async def find_unused_unexpired(self, user_id, now) -> list[EmergencyAccessCode]:
        return [c for c in self.codes if c.user_id == user_id and c.is_redeemable(now)]

    async def mark_used(self, code_id, used_at) -> bool:
        for row in self.codes:
            if row.id == code_id and not row.used:
                row.used = True
                row.used_at = used_at
                return True
        return False


class RecordingAuditSink:
    def __init__(self, fail: bool = False):
        self.events: list[AuditEvent] = []
        self.fail = fail

    async def record(self, event: AuditEvent) -> None:
        if self.fail:
            raise AuditWriteError(event.action.value, "sink offline")
        self.events.append(event)

    def actions(self) -> list[AuditAction]:
        return [e.action for e in self.events]


class RecordingDelivery:
    name = "recording"

    def __init__(self):
        self.sent: list[tuple[str, str, datetime]] = []

    async def send(self, user_id, code, expires_at) -> None:
        self.sent.append((user_id, code, expires_at))


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def attempt_store() -> InMemoryAttemptStore:
    return InMemoryAttemptStore()


@pytest.fixture
def lockout_store() -> InMemoryLockoutStore:
    return InMemoryLockoutStore()


@pytest.fixture
def code_store() -> InMemoryEmergencyCodeStore:
    return InMemoryEmergencyCodeStore()


@pytest.fixture
def audit_sink() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def policy() -> BruteForcePolicy:
    return BruteForcePolicy()


@pytest.fixture
def guard(attempt_store, lockout_store, audit_sink, clock, policy) -> BruteForceGuard:
    return BruteForceGuard(
        attempt_store=attempt_store,
        lockout_store=lockout_store,
        audit_sink=audit_sink,
        clock=clock,
        policy=policy,
    )


@pytest.fixture
def emergency_manager(code_store, delivery, audit_sink, clock) -> EmergencyAccessManager:
    # Minimum bcrypt cost keeps the suite fast
    return EmergencyAccessManager(
        code_store=code_store,
        delivery=delivery,
        audit_sink=audit_sink,
        clock=clock,
        policy=EmergencyAccessPolicy(bcrypt_rounds=4),
    )


@pytest.fixture
def record_failures(guard, clock):
    """Record `count` failed attempts one second apart."""

    async def _record(identifier, count, attempt_type=AttemptType.USER, ip_address="203.0.113.10"):
        for _ in range(count):
            await guard.record_attempt(identifier, attempt_type, False, ip_address)
            clock.advance(seconds=1)

    return _record


@pytest_asyncio.fixture(scope="function")
async def session_maker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
