"""
Attack pattern detection over recent failed attempts from one IP.

Detection only: alerts are written to the audit sink, and blocking is left
to the per-identifier lockout path. Shared NAT addresses would otherwise be
blocked for every user behind them.
"""

import logging
from datetime import timedelta
from enum import Enum

from authguard.core.clock import Clock, SystemClock
from authguard.core.config import BruteForcePolicy
from authguard.schemas.audit import AuditAction, AuditEvent, AuditSeverity, ResourceType
from authguard.services.audit import AuditSink, record_best_effort
from authguard.services.stores import AttemptStore

logger = logging.getLogger(__name__)


class AttackPattern(str, Enum):
    DISTRIBUTED_BRUTE_FORCE = "DISTRIBUTED_BRUTE_FORCE"
    CREDENTIAL_STUFFING = "CREDENTIAL_STUFFING"


class AttackPatternAnalyzer:
    def __init__(
        self,
        attempt_store: AttemptStore,
        audit_sink: AuditSink,
        clock: Clock | None = None,
        policy: BruteForcePolicy | None = None,
    ):
        self.attempt_store = attempt_store
        self.audit_sink = audit_sink
        self.clock = clock or SystemClock()
        self.policy = policy or BruteForcePolicy()

    async def analyze(self, ip_address: str) -> list[AttackPattern]:
        """
        Evaluate both heuristics for an IP and raise an alert for each match.

        Every failed attempt from the IP in the window counts, IP and USER
        rows alike, so one failed login contributes two attempts.

        Args:
            ip_address: Source of the failed attempt that triggered analysis

        Returns:
            Patterns detected, possibly both
        """
        window = self.policy.pattern_window_minutes
        since = self.clock.now() - timedelta(minutes=window)
        attempts = await self.attempt_store.recent_failed_by_ip(ip_address, since)

        total = len(attempts)
        unique_targets = len({a.identifier for a in attempts})
        detected: list[AttackPattern] = []

        if total >= self.policy.distributed_brute_force_threshold:
            detected.append(AttackPattern.DISTRIBUTED_BRUTE_FORCE)
            await self._alert(
                AttackPattern.DISTRIBUTED_BRUTE_FORCE,
                ip_address,
                {
                    "attempt_count": total,
                    "time_window_minutes": window,
                    "unique_targets": unique_targets,
                },
            )

        if (
            unique_targets >= self.policy.credential_stuffing_min_identifiers
            and total >= self.policy.credential_stuffing_min_attempts
        ):
            detected.append(AttackPattern.CREDENTIAL_STUFFING)
            await self._alert(
                AttackPattern.CREDENTIAL_STUFFING,
                ip_address,
                {
                    "unique_identifiers": unique_targets,
                    "total_attempts": total,
                    "time_window_minutes": window,
                },
            )

        return detected

    async def _alert(self, pattern: AttackPattern, ip_address: str, data: dict) -> None:
        logger.warning("Security alert %s from %s: %s", pattern.value, ip_address, data)
        await record_best_effort(
            self.audit_sink,
            AuditEvent(
                action=AuditAction.SECURITY_ALERT,
                resource_type=ResourceType.SYSTEM,
                success=True,
                severity=AuditSeverity.SECURITY_ALERT,
                ip_address=ip_address,
                metadata={
                    "alert_type": pattern.value,
                    "security_threat": True,
                    "ip_address": ip_address,
                    **data,
                },
            ),
        )
