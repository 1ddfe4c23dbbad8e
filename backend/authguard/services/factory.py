"""Build the guard, the emergency access manager and the global limiter from settings."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authguard.core.clock import Clock, SystemClock
from authguard.core.config import Settings, settings as default_settings
from authguard.core.redis import get_redis
from authguard.services.audit import AuditSink, DatabaseAuditSink
from authguard.services.brute_force import BruteForceGuard
from authguard.services.delivery import CodeDeliveryChannel, MultiChannelDelivery, WebhookDeliveryChannel
from authguard.services.emergency_access import EmergencyAccessManager
from authguard.services.global_rate_limit import GlobalRateLimiter
from authguard.services.stores import SqlAttemptStore, SqlEmergencyCodeStore, SqlLockoutStore


def create_brute_force_guard(
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    audit_sink: AuditSink | None = None,
    clock: Clock | None = None,
) -> BruteForceGuard:
    settings = settings or default_settings
    clock = clock or SystemClock()
    return BruteForceGuard(
        attempt_store=SqlAttemptStore(session_maker),
        lockout_store=SqlLockoutStore(session_maker),
        audit_sink=audit_sink or DatabaseAuditSink(session_maker, clock),
        clock=clock,
        policy=settings.brute_force_policy(),
    )


def create_emergency_access_manager(
    session_maker: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    delivery: CodeDeliveryChannel | None = None,
    audit_sink: AuditSink | None = None,
    clock: Clock | None = None,
) -> EmergencyAccessManager:
    """
    Raises:
        ValueError: If no delivery channel is given and none is configured
    """
    settings = settings or default_settings
    clock = clock or SystemClock()
    if delivery is None:
        channels = [WebhookDeliveryChannel(url) for url in settings.EMERGENCY_CODE_WEBHOOK_URLS]
        delivery = MultiChannelDelivery(channels)
    return EmergencyAccessManager(
        code_store=SqlEmergencyCodeStore(session_maker),
        delivery=delivery,
        audit_sink=audit_sink or DatabaseAuditSink(session_maker, clock),
        clock=clock,
        policy=settings.emergency_access_policy(),
    )


async def create_global_rate_limiter(settings: Settings | None = None) -> GlobalRateLimiter:
    settings = settings or default_settings
    return GlobalRateLimiter(
        await get_redis(),
        max_requests=settings.BRUTE_FORCE_GLOBAL_MAX_PER_MINUTE,
        window_seconds=60,
    )
