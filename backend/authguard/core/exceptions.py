"""Custom exceptions for authguard."""


class AuthGuardError(Exception):
    """Base class for authguard errors."""


class StorageError(AuthGuardError):
    """Raised when the attempt, lockout, code or rate-limit store fails.

    Callers on the authentication path must treat this as a denial.
    """

    def __init__(self, operation: str, reason: str = "unknown"):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage operation '{operation}' failed: {reason}")


class AuditWriteError(AuthGuardError):
    """Raised by an audit sink when an event could not be persisted."""

    def __init__(self, action: str, reason: str = "unknown"):
        self.action = action
        self.reason = reason
        super().__init__(f"Audit write for '{action}' failed: {reason}")


class DeliveryError(AuthGuardError):
    """Raised when an emergency code could not be delivered out of band."""

    def __init__(self, channel: str, reason: str = "unknown"):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Emergency code delivery via {channel} failed: {reason}")
