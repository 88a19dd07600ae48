"""Audit event type definitions."""

from enum import Enum


class EventType(str, Enum):
    """Audit event types."""

    # Credential events
    CRED_CREATE = "credential.create"
    CRED_READ = "credential.read"
    CRED_DELETE = "credential.delete"
    CRED_LIST = "credential.list"

    # Active selection events
    CRED_ACTIVATE = "credential.activate"
    CRED_DEACTIVATE = "credential.deactivate"
    CRED_STATUS = "credential.status"

    # Index events
    INDEX_CHECK = "index.check"
