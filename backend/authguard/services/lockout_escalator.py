"""
Lockout duration escalation.

Each lockout created for the same identifier within the history window
moves one step up the ladder. After the last step the lockout can only be
lifted by an administrator.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from authguard.core.clock import Clock, SystemClock
from authguard.core.config import BruteForcePolicy
from authguard.models.account_lockout import PERMANENT_LOCKOUT_EXPIRY
from authguard.schemas.brute_force import AttemptType
from authguard.services.stores import LockoutStore


@dataclass(frozen=True)
class TemporaryLockout:
    minutes: int


@dataclass(frozen=True)
class ManualUnlockRequired:
    pass


LockoutDuration = TemporaryLockout | ManualUnlockRequired


def duration_for_history(prior_lockouts: int, ladder_minutes: list[int]) -> LockoutDuration:
    """Pick the ladder step for the number of lockouts already in the window."""
    if prior_lockouts < len(ladder_minutes):
        return TemporaryLockout(ladder_minutes[max(prior_lockouts, 0)])
    return ManualUnlockRequired()


def lockout_expiry(duration: LockoutDuration, now: datetime) -> datetime:
    if isinstance(duration, TemporaryLockout):
        return now + timedelta(minutes=duration.minutes)
    return PERMANENT_LOCKOUT_EXPIRY


class LockoutEscalator:
    """Computes the next lockout duration from an identifier's history."""

    def __init__(
        self,
        lockout_store: LockoutStore,
        clock: Clock | None = None,
        policy: BruteForcePolicy | None = None,
    ):
        self.lockout_store = lockout_store
        self.clock = clock or SystemClock()
        self.policy = policy or BruteForcePolicy()

    async def calculate_lockout_duration(self, identifier: str, lockout_type: AttemptType) -> LockoutDuration:
        since = self.clock.now() - timedelta(hours=self.policy.lockout_history_hours)
        prior = await self.lockout_store.count_recent(identifier, lockout_type, since)
        return duration_for_history(prior, self.policy.lockout_ladder_minutes)
