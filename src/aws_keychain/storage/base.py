"""Base interfaces and types for secret storage."""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field, SecretStr
import structlog

from ..errors import (
    CredentialNotFound,
    CredentialStoreError,
    IncompleteRecord,
    StoreDeleteError,
    StoreWriteError,
)

logger = structlog.get_logger(__name__)

# Tags applied to every record so ours can be told apart from other secrets.
APPLICATION = "aws-keychain"
RECORD_TYPE = "access-key"


class AccessKey(BaseModel):
    """A named AWS access key pair as held in the secret store."""

    name: str
    access_key_id: str = Field(min_length=1)
    secret_access_key: SecretStr

    def get_secret(self) -> str:
        """Get the secret access key."""
        return self.secret_access_key.get_secret_value()


class SecretStore(ABC):
    """Abstract base class for platform secret store backends."""

    application: str = APPLICATION
    record_type: str = RECORD_TYPE

    @abstractmethod
    def add_credential(
        self, name: str, access_key_id: str, secret_access_key: str
    ) -> None:
        """Create or overwrite the record stored under ``name``.

        Args:
            name: Logical credential name.
            access_key_id: AWS access key ID, stored as a searchable attribute.
            secret_access_key: AWS secret access key, stored as the secret.

        Raises:
            StoreWriteError: If the store rejects the write.
        """
        ...

    @abstractmethod
    def find_credential_by_name(self, name: str) -> AccessKey:
        """Retrieve a credential by name.

        Raises:
            CredentialNotFound: If no record exists under ``name``.
            IncompleteRecord: If a record exists but a field is unreadable.
        """
        ...

    @abstractmethod
    def find_name_by_access_key_id(self, access_key_id: str) -> Optional[str]:
        """Reverse lookup of a credential name among this application's records.

        Returns:
            The credential name, or None when nothing matches.
        """
        ...

    @abstractmethod
    def delete_credential(self, name: str) -> None:
        """Delete the record stored under ``name``.

        Raises:
            StoreDeleteError: If deletion fails, including when nothing is stored.
        """
        ...

    def _build_access_key(
        self,
        name: str,
        access_key_id: Optional[str],
        secret_access_key: Optional[str],
        diagnostic: Optional[str] = None,
    ) -> AccessKey:
        """Validate the fields read from a present record."""
        if not access_key_id or not secret_access_key:
            logger.warning("incomplete_record", name=name, backend=type(self).__name__)
            raise IncompleteRecord(
                f"Credential '{name}' is incomplete in the secret store", diagnostic
            )
        return AccessKey(
            name=name,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
        )


__all__ = [
    "APPLICATION",
    "RECORD_TYPE",
    "AccessKey",
    "SecretStore",
    "CredentialStoreError",
    "CredentialNotFound",
    "IncompleteRecord",
    "StoreDeleteError",
    "StoreWriteError",
]
