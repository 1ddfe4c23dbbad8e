"""
Brute-force protection for the authentication flow.

Call order per login:
    result = await guard.check_login(username, ip)      # before verifying credentials
    if not result.allowed: deny
    ... verify credentials ...
    await guard.record_login(username, ip, success)     # after, regardless of outcome

A StorageError from any call must be treated as a denial by the caller.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from authguard.core.clock import Clock, SystemClock
from authguard.core.config import BruteForcePolicy
from authguard.models.account_lockout import LOCKOUT_REASON_BRUTE_FORCE, AccountLockout
from authguard.models.login_attempt import LoginAttempt
from authguard.schemas.audit import AuditAction, AuditEvent, AuditSeverity, ResourceType
from authguard.schemas.brute_force import (
    AttemptResult,
    AttemptType,
    DenialReason,
    LockoutStatus,
    RiskLevel,
)
from authguard.services.attack_patterns import AttackPatternAnalyzer
from authguard.services.audit import AuditSink, record_best_effort
from authguard.services.lockout_escalator import (
    LockoutEscalator,
    ManualUnlockRequired,
    TemporaryLockout,
    lockout_expiry,
)
from authguard.services.risk import classify_risk
from authguard.services.stores import AttemptStore, LockoutStore

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_REASON = "INVALID_CREDENTIALS"


class BruteForceGuard:
    """Rate limiting and escalating lockouts per identifier.

    Holds no state of its own between calls; everything lives in the stores.
    """

    def __init__(
        self,
        attempt_store: AttemptStore,
        lockout_store: LockoutStore,
        audit_sink: AuditSink,
        clock: Clock | None = None,
        policy: BruteForcePolicy | None = None,
        escalator: LockoutEscalator | None = None,
        analyzer: AttackPatternAnalyzer | None = None,
    ):
        self.attempt_store = attempt_store
        self.lockout_store = lockout_store
        self.audit_sink = audit_sink
        self.clock = clock or SystemClock()
        self.policy = policy or BruteForcePolicy()
        self.escalator = escalator or LockoutEscalator(lockout_store, self.clock, self.policy)
        self.analyzer = analyzer or AttackPatternAnalyzer(attempt_store, audit_sink, self.clock, self.policy)

    async def check_attempt(
        self,
        identifier: str,
        attempt_type: AttemptType,
        ip_address: str,
    ) -> AttemptResult:
        """
        Gate called before credential verification.

        Creates a lockout the moment the failed-attempt limit is reached.
        """
        now = self.clock.now()

        active = await self.lockout_store.find_active(identifier, attempt_type, now)
        if active:
            return _denied(DenialReason.LOCKED_OUT, active.expires_at)

        failed = await self._count_failed(identifier, attempt_type, now)
        max_attempts = self.policy.max_attempts(attempt_type)

        if failed >= max_attempts:
            expires_at = await self._lock(identifier, attempt_type, ip_address, now)
            return _denied(DenialReason.RATE_LIMITED, expires_at)

        return AttemptResult(
            allowed=True,
            attempts_remaining=max(0, max_attempts - failed),
            risk_level=classify_risk(failed, max_attempts),
        )

    async def record_attempt(
        self,
        identifier: str,
        attempt_type: AttemptType,
        success: bool,
        ip_address: str,
        additional_data: dict[str, Any] | None = None,
        *,
        user_agent: str | None = None,
        failure_reason: str | None = None,
        analyze_patterns: bool = True,
    ) -> None:
        """Append the attempt, clear USER lockouts on success, analyse failures."""
        now = self.clock.now()

        await self.attempt_store.append(
            LoginAttempt(
                identifier=identifier,
                attempt_type=attempt_type,
                success=success,
                ip_address=ip_address,
                user_agent=user_agent,
                timestamp=now,
                failure_reason=None if success else (failure_reason or DEFAULT_FAILURE_REASON),
                additional_data=additional_data,
            )
        )

        # A correct password must not launder an IP lockout
        if success and attempt_type == AttemptType.USER:
            cleared = await self.lockout_store.deactivate(identifier, attempt_type)
            if cleared:
                logger.info("Cleared %d lockout(s) for user %s after successful login", cleared, identifier)
                await record_best_effort(
                    self.audit_sink,
                    AuditEvent(
                        user_id=identifier,
                        action=AuditAction.LOCKOUT_CLEARED,
                        resource_type=ResourceType.ACCOUNT,
                        resource_id=identifier,
                        success=True,
                        ip_address=ip_address,
                        user_agent=user_agent,
                        metadata={"lockout_type": attempt_type.value, "cleared": cleared},
                    ),
                )

        if not success and analyze_patterns:
            await self.analyzer.analyze(ip_address)

    async def check_login(self, username: str, ip_address: str) -> AttemptResult:
        """Check the IP dimension, then the USER dimension. First denial wins."""
        ip_result = await self.check_attempt(ip_address, AttemptType.IP, ip_address)
        if not ip_result.allowed:
            return ip_result

        user_result = await self.check_attempt(username, AttemptType.USER, ip_address)
        if not user_result.allowed:
            return user_result

        # Report whichever dimension is closer to its limit
        if _RISK_ORDER[ip_result.risk_level] > _RISK_ORDER[user_result.risk_level]:
            return ip_result
        return user_result

    async def record_login(
        self,
        username: str,
        ip_address: str,
        success: bool,
        additional_data: dict[str, Any] | None = None,
        *,
        user_agent: str | None = None,
        failure_reason: str | None = None,
    ) -> None:
        """Record one login against both dimensions.

        Patterns are analysed once, after both rows are written.
        """
        await self.record_attempt(
            ip_address,
            AttemptType.IP,
            success,
            ip_address,
            additional_data,
            user_agent=user_agent,
            failure_reason=failure_reason,
            analyze_patterns=False,
        )
        await self.record_attempt(
            username,
            AttemptType.USER,
            success,
            ip_address,
            additional_data,
            user_agent=user_agent,
            failure_reason=failure_reason,
        )

    async def is_locked_out(self, identifier: str, attempt_type: AttemptType) -> bool:
        return await self.lockout_store.find_active(identifier, attempt_type, self.clock.now()) is not None

    async def get_remaining_lockout_time(self, identifier: str, attempt_type: AttemptType) -> int:
        """Seconds until the active lockout expires, 0 if not locked."""
        now = self.clock.now()
        lockout = await self.lockout_store.find_active(identifier, attempt_type, now)
        if not lockout:
            return 0
        return _remaining_seconds(lockout, now)

    async def get_lockout_status(self, identifier: str, attempt_type: AttemptType) -> LockoutStatus:
        now = self.clock.now()
        lockout = await self.lockout_store.find_active(identifier, attempt_type, now)
        if not lockout:
            return LockoutStatus(identifier=identifier, lockout_type=attempt_type, locked=False)
        return LockoutStatus(
            identifier=identifier,
            lockout_type=attempt_type,
            locked=True,
            expires_at=lockout.expires_at,
            remaining_seconds=_remaining_seconds(lockout, now),
            requires_manual_unlock=lockout.requires_manual_unlock,
        )

    async def unlock(
        self,
        identifier: str,
        attempt_type: AttemptType,
        actor_id: str,
        ip_address: str | None = None,
    ) -> bool:
        """
        Administrative unlock, the only way out of a permanent lockout.

        Returns:
            True if an active lockout was lifted
        """
        cleared = await self.lockout_store.deactivate(identifier, attempt_type)
        if not cleared:
            return False

        logger.info("Lockout on %s %s lifted by %s", attempt_type.value, identifier, actor_id)
        await record_best_effort(
            self.audit_sink,
            AuditEvent(
                user_id=actor_id,
                action=AuditAction.LOCKOUT_UNLOCKED,
                resource_type=ResourceType.ACCOUNT if attempt_type == AttemptType.USER else ResourceType.SYSTEM,
                resource_id=identifier,
                success=True,
                ip_address=ip_address,
                metadata={"lockout_type": attempt_type.value, "identifier": identifier, "cleared": cleared},
            ),
        )
        return True

    async def _count_failed(self, identifier: str, attempt_type: AttemptType, now: datetime) -> int:
        since = now - timedelta(minutes=self.policy.attempt_window_minutes)

        # A successful login resets the user-level counter, never the IP one
        if attempt_type == AttemptType.USER:
            last_success = await self.attempt_store.last_success_at(identifier, attempt_type)
            if last_success and last_success > since:
                since = last_success

        return await self.attempt_store.count_failed(identifier, attempt_type, since)

    async def _lock(
        self,
        identifier: str,
        attempt_type: AttemptType,
        ip_address: str,
        now: datetime,
    ) -> datetime:
        """Create the escalated lockout and return its expiry."""
        duration = await self.escalator.calculate_lockout_duration(identifier, attempt_type)
        expires_at = lockout_expiry(duration, now)
        manual = isinstance(duration, ManualUnlockRequired)

        created = await self.lockout_store.create(
            identifier,
            attempt_type,
            LOCKOUT_REASON_BRUTE_FORCE,
            expires_at,
            ip_address,
            now,
            requires_manual_unlock=manual,
        )
        if not created:
            # A concurrent request won the insert; report its lockout
            existing = await self.lockout_store.find_active(identifier, attempt_type, now)
            return existing.expires_at if existing else expires_at

        logger.warning(
            "Locked out %s %s from %s (%s)",
            attempt_type.value,
            identifier,
            ip_address,
            "manual unlock required" if manual else f"{duration.minutes} minutes",
        )
        await record_best_effort(
            self.audit_sink,
            AuditEvent(
                user_id=identifier if attempt_type == AttemptType.USER else None,
                action=AuditAction.LOCKOUT_CREATED,
                resource_type=ResourceType.SYSTEM,
                resource_id=identifier,
                success=True,
                severity=AuditSeverity.WARNING,
                ip_address=ip_address,
                metadata={
                    "lockout_type": attempt_type.value,
                    "identifier": identifier,
                    "duration_minutes": duration.minutes if isinstance(duration, TemporaryLockout) else None,
                    "requires_manual_unlock": manual,
                    "expires_at": expires_at.isoformat(),
                    "reason": LOCKOUT_REASON_BRUTE_FORCE,
                },
            ),
        )
        return expires_at


_RISK_ORDER = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


def _denied(reason: DenialReason, expires_at: datetime) -> AttemptResult:
    return AttemptResult(
        allowed=False,
        reason=reason,
        lockout_expires_at=expires_at,
        attempts_remaining=0,
        risk_level=RiskLevel.CRITICAL,
    )


def _remaining_seconds(lockout: AccountLockout, now: datetime) -> int:
    return max(0, int((lockout.expires_at - now).total_seconds()))
