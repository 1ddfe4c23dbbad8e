from authguard.models.account_lockout import AccountLockout
from authguard.models.audit_log import AuditLog
from authguard.models.emergency_access_code import EmergencyAccessCode
from authguard.models.login_attempt import LoginAttempt

__all__ = [
    "AccountLockout",
    "AuditLog",
    "EmergencyAccessCode",
    "LoginAttempt",
]
