"""
Emergency access codes.

Handles issuing, delivering and redeeming single-use bypass codes.

Per code: ISSUED -> USED on the first matching validation, or
ISSUED -> EXPIRED once the clock passes expires_at. Both are terminal.
"""

import logging
import secrets
import string
from datetime import timedelta

from passlib.context import CryptContext

from authguard.core.clock import Clock, SystemClock
from authguard.core.config import EmergencyAccessPolicy
from authguard.core.exceptions import DeliveryError
from authguard.schemas.audit import AuditAction, AuditEvent, AuditSeverity, ResourceType
from authguard.schemas.emergency import EmergencyCode
from authguard.services.audit import AuditSink, record_best_effort
from authguard.services.delivery import CodeDeliveryChannel
from authguard.services.stores import EmergencyCodeStore

logger = logging.getLogger(__name__)

# 36 symbols: A-Z and 0-9
CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_code(length: int = 8) -> str:
    """
    Generate an emergency code.

    Args:
        length: Number of characters

    Returns:
        Upper-case alphanumeric code
    """
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


class EmergencyAccessManager:
    def __init__(
        self,
        code_store: EmergencyCodeStore,
        delivery: CodeDeliveryChannel,
        audit_sink: AuditSink,
        clock: Clock | None = None,
        policy: EmergencyAccessPolicy | None = None,
    ):
        self.code_store = code_store
        self.delivery = delivery
        self.audit_sink = audit_sink
        self.clock = clock or SystemClock()
        self.policy = policy or EmergencyAccessPolicy()
        self.crypt_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=self.policy.bcrypt_rounds,
        )

    async def generate_emergency_code(
        self,
        user_id: str,
        reason: str,
        ip_address: str | None = None,
    ) -> EmergencyCode:
        """
        Issue a code, deliver it out of band and return it to the caller.

        Raises:
            DeliveryError: If no channel accepted the code
            StorageError: If the code could not be stored
        """
        now = self.clock.now()
        code = generate_code(self.policy.code_length)
        expires_at = now + timedelta(minutes=self.policy.code_ttl_minutes)

        row = await self.code_store.create(
            user_id=user_id,
            code_hash=self.crypt_context.hash(code),
            reason=reason,
            expires_at=expires_at,
            created_at=now,
        )

        try:
            await self.delivery.send(user_id, code, expires_at)
        except DeliveryError as e:
            logger.error("Emergency code for user %s could not be delivered: %s", user_id, e)
            await record_best_effort(
                self.audit_sink,
                AuditEvent(
                    user_id=user_id,
                    action=AuditAction.EMERGENCY_CODE_ISSUED,
                    resource_type=ResourceType.ACCOUNT,
                    resource_id=str(row.id),
                    success=False,
                    severity=AuditSeverity.WARNING,
                    ip_address=ip_address,
                    metadata={"emergency_access": True, "reason": reason, "delivery_error": e.reason},
                ),
            )
            raise

        await record_best_effort(
            self.audit_sink,
            AuditEvent(
                user_id=user_id,
                action=AuditAction.EMERGENCY_CODE_ISSUED,
                resource_type=ResourceType.ACCOUNT,
                resource_id=str(row.id),
                success=True,
                severity=AuditSeverity.WARNING,
                ip_address=ip_address,
                metadata={
                    "emergency_access": True,
                    "reason": reason,
                    "expires_at": expires_at.isoformat(),
                },
            ),
        )
        return EmergencyCode(code=code, expires_at=expires_at)

    async def validate_emergency_code(
        self,
        user_id: str,
        code: str,
        ip_address: str | None = None,
    ) -> bool:
        """
        Redeem a code.

        Wrong, expired, already used and concurrently consumed codes all
        return False.
        """
        if not code:
            return False

        now = self.clock.now()
        candidate = normalize_code(code)

        for row in await self.code_store.find_unused_unexpired(user_id, now):
            if not self.crypt_context.verify(candidate, row.code_hash):
                continue

            if not await self.code_store.mark_used(row.id, now):
                logger.warning("Emergency code %s for user %s was consumed concurrently", row.id, user_id)
                return False

            await record_best_effort(
                self.audit_sink,
                AuditEvent(
                    user_id=user_id,
                    action=AuditAction.EMERGENCY_LOGIN,
                    resource_type=ResourceType.ACCOUNT,
                    resource_id=str(row.id),
                    success=True,
                    severity=AuditSeverity.WARNING,
                    ip_address=ip_address,
                    metadata={
                        "access_type": "EMERGENCY",
                        "reason": row.reason,
                        "emergency_code_used": True,
                    },
                ),
            )
            return True

        logger.info("Emergency code validation failed for user %s", user_id)
        return False
