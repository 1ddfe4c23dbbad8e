"""Risk tier for an identifier's recent failed attempts."""

from authguard.schemas.brute_force import RiskLevel


def classify_risk(failed_count: int, max_attempts: int) -> RiskLevel:
    """
    Map failed attempts against the allowed maximum to a risk tier.

    ratio < 0.3 is LOW, < 0.6 MEDIUM, < 0.9 HIGH, anything else CRITICAL.
    """
    if max_attempts <= 0:
        return RiskLevel.CRITICAL

    ratio = failed_count / max_attempts

    if ratio < 0.3:
        return RiskLevel.LOW
    if ratio < 0.6:
        return RiskLevel.MEDIUM
    if ratio < 0.9:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL
