from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    LOCKOUT_CREATED = "security.lockout_created"
    LOCKOUT_CLEARED = "security.lockout_cleared"
    LOCKOUT_UNLOCKED = "security.lockout_unlocked"
    SECURITY_ALERT = "security.alert"
    EMERGENCY_CODE_ISSUED = "emergency_access.code_issued"
    EMERGENCY_LOGIN = "emergency_access.login"


class ResourceType(str, Enum):
    SYSTEM = "system"
    ACCOUNT = "account"


class AuditSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    SECURITY_ALERT = "security_alert"


class AuditEvent(BaseModel):
    """Immutable security event handed to an audit sink."""

    model_config = {"frozen": True}

    user_id: str | None = None
    action: AuditAction
    resource_type: ResourceType
    resource_id: str | None = None
    success: bool
    severity: AuditSeverity = AuditSeverity.INFO
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
