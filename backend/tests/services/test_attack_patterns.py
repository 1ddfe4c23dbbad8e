"""Tests for attack pattern detection."""

import pytest

from authguard.schemas.audit import AuditAction, AuditSeverity
from authguard.schemas.brute_force import AttemptType
from authguard.services.attack_patterns import AttackPattern, AttackPatternAnalyzer

IP = "198.51.100.23"


@pytest.fixture
def analyzer(attempt_store, audit_sink, clock, policy):
    return AttackPatternAnalyzer(attempt_store, audit_sink, clock, policy)


@pytest.fixture
def add_failures(guard, clock):
    """Failed USER attempts from IP, without triggering analysis."""

    async def _add(identifiers, each=1, ip_address=IP):
        for identifier in identifiers:
            for _ in range(each):
                await guard.record_attempt(identifier, AttemptType.USER, False, ip_address, analyze_patterns=False)
                clock.advance(seconds=1)

    return _add


@pytest.mark.asyncio
async def test_below_thresholds_detects_nothing(analyzer, add_failures, audit_sink):
    await add_failures(["alice"], each=24)

    assert await analyzer.analyze(IP) == []
    assert audit_sink.events == []


@pytest.mark.asyncio
async def test_distributed_brute_force_at_threshold(analyzer, add_failures, audit_sink):
    await add_failures(["alice", "bob"], each=12)
    await add_failures(["carol"])

    detected = await analyzer.analyze(IP)

    assert detected == [AttackPattern.DISTRIBUTED_BRUTE_FORCE]
    event = audit_sink.events[0]
    assert event.action == AuditAction.SECURITY_ALERT
    assert event.severity == AuditSeverity.SECURITY_ALERT
    assert event.ip_address == IP
    assert event.metadata["alert_type"] == "DISTRIBUTED_BRUTE_FORCE"
    assert event.metadata["attempt_count"] == 25
    assert event.metadata["unique_targets"] == 3
    assert event.metadata["time_window_minutes"] == 10


@pytest.mark.asyncio
async def test_credential_stuffing_needs_identifiers_and_volume(analyzer, add_failures, audit_sink):
    await add_failures([f"user{i}" for i in range(5)], each=3)
    assert await analyzer.analyze(IP) == []

    await add_failures(["user0"], each=5)
    detected = await analyzer.analyze(IP)

    assert detected == [AttackPattern.CREDENTIAL_STUFFING]
    assert audit_sink.events[0].metadata == {
        "alert_type": "CREDENTIAL_STUFFING",
        "security_threat": True,
        "ip_address": IP,
        "unique_identifiers": 5,
        "total_attempts": 20,
        "time_window_minutes": 10,
    }


@pytest.mark.asyncio
async def test_many_identifiers_with_few_attempts_is_not_stuffing(analyzer, add_failures):
    await add_failures([f"user{i}" for i in range(19)])

    assert await analyzer.analyze(IP) == []


@pytest.mark.asyncio
async def test_both_patterns_can_fire(analyzer, add_failures, audit_sink):
    await add_failures([f"user{i}" for i in range(25)])

    detected = await analyzer.analyze(IP)

    assert detected == [AttackPattern.DISTRIBUTED_BRUTE_FORCE, AttackPattern.CREDENTIAL_STUFFING]
    assert len(audit_sink.events) == 2


@pytest.mark.asyncio
async def test_attempts_outside_window_ignored(analyzer, add_failures, clock):
    await add_failures([f"user{i}" for i in range(20)])
    clock.advance(minutes=11)
    await add_failures(["alice"], each=5)

    assert await analyzer.analyze(IP) == []


@pytest.mark.asyncio
async def test_other_ips_not_counted(analyzer, add_failures):
    await add_failures([f"user{i}" for i in range(30)], ip_address="192.0.2.1")

    assert await analyzer.analyze(IP) == []


@pytest.mark.asyncio
async def test_detection_never_blocks(analyzer, add_failures, guard):
    await add_failures([f"user{i}" for i in range(30)])

    await analyzer.analyze(IP)

    assert not await guard.is_locked_out(IP, AttemptType.IP)
    assert (await guard.check_attempt("newuser", AttemptType.USER, IP)).allowed


@pytest.mark.asyncio
async def test_guard_runs_analysis_on_failure(guard, add_failures, audit_sink):
    await add_failures([f"user{i}" for i in range(24)])

    await guard.record_attempt("user24", AttemptType.USER, False, IP)

    assert AuditAction.SECURITY_ALERT in audit_sink.actions()


def _alerts(audit_sink, pattern):
    return [
        e for e in audit_sink.events
        if e.action == AuditAction.SECURITY_ALERT and e.metadata["alert_type"] == pattern.value
    ]


@pytest.mark.asyncio
async def test_ip_and_user_rows_count_together(analyzer, add_failures, guard, clock, audit_sink):
    await add_failures(["alice"], each=13)
    for _ in range(12):
        await guard.record_attempt(IP, AttemptType.IP, False, IP, analyze_patterns=False)
        clock.advance(seconds=1)

    detected = await analyzer.analyze(IP)

    assert detected == [AttackPattern.DISTRIBUTED_BRUTE_FORCE]
    alert = _alerts(audit_sink, AttackPattern.DISTRIBUTED_BRUTE_FORCE)[0]
    assert alert.metadata["attempt_count"] == 25
    # The IP's own rows count as a target alongside alice
    assert alert.metadata["unique_targets"] == 2


@pytest.mark.asyncio
async def test_failed_logins_raise_distributed_alert_at_thirteenth(guard, clock, audit_sink):
    for _ in range(12):
        await guard.record_login("alice", IP, False)
        clock.advance(seconds=1)
    assert _alerts(audit_sink, AttackPattern.DISTRIBUTED_BRUTE_FORCE) == []

    await guard.record_login("alice", IP, False)

    alerts = _alerts(audit_sink, AttackPattern.DISTRIBUTED_BRUTE_FORCE)
    assert len(alerts) == 1
    assert alerts[0].metadata["attempt_count"] == 26


@pytest.mark.asyncio
async def test_failed_logins_across_accounts_raise_stuffing_alert(guard, clock, audit_sink):
    usernames = [f"user{i}" for i in range(5)]
    for username in usernames + usernames[:4]:
        await guard.record_login(username, IP, False)
        clock.advance(seconds=1)
    assert _alerts(audit_sink, AttackPattern.CREDENTIAL_STUFFING) == []

    await guard.record_login(usernames[4], IP, False)

    alerts = _alerts(audit_sink, AttackPattern.CREDENTIAL_STUFFING)
    assert len(alerts) == 1
    assert alerts[0].metadata["total_attempts"] == 20
    assert alerts[0].metadata["unique_identifiers"] == 6
    assert _alerts(audit_sink, AttackPattern.DISTRIBUTED_BRUTE_FORCE) == []


@pytest.mark.asyncio
async def test_ip_attempt_can_trigger_stuffing(guard, add_failures, clock, audit_sink):
    await add_failures([f"user{i}" for i in range(4)], each=4)
    for _ in range(4):
        await guard.record_attempt(IP, AttemptType.IP, False, IP)
        clock.advance(seconds=1)

    alerts = _alerts(audit_sink, AttackPattern.CREDENTIAL_STUFFING)
    assert len(alerts) == 1
    assert alerts[0].metadata["unique_identifiers"] == 5
    assert alerts[0].metadata["total_attempts"] == 20
