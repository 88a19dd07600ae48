"""Exception hierarchy for aws-keychain."""

from typing import Optional


class KeychainError(Exception):
    """Base exception for all aws-keychain failures."""


class UsageError(KeychainError):
    """Raised when an operation is called with bad arguments."""


class CredentialStoreError(KeychainError):
    """Base exception for secret store operations.

    Args:
        message: Human readable description.
        diagnostic: Raw output of the underlying store, if any.
    """

    def __init__(self, message: str, diagnostic: Optional[str] = None):
        super().__init__(message)
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        message = super().__str__()
        if self.diagnostic:
            return f"{message}\n{self.diagnostic.strip()}"
        return message


class StoreWriteError(CredentialStoreError):
    """The secret store rejected a write."""


class StoreDeleteError(CredentialStoreError):
    """The secret store rejected a delete, including deleting a missing record."""


class CredentialNotFound(CredentialStoreError):
    """No usable credential is stored under the requested name."""


class IncompleteRecord(CredentialNotFound):
    """A record exists but its access key ID or secret could not be read."""


class MalformedActiveFile(KeychainError):
    """The active credentials file exists but has no readable access key ID."""


class ActiveKeyNotFound(KeychainError):
    """The active access key ID matches no stored credential."""
