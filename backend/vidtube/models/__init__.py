from vidtube.models.user import User
from vidtube.models.audit_log import AuditLog

__all__ = [
    "User",
    "AuditLog",
]
