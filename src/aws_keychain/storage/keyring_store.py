"""Secret storage through the ``keyring`` library.

Used on Windows (Credential Manager) and anywhere else keyring has a
backend. keyring has no attribute search, so each credential is written
twice: the payload under the credential name, and a JSON list of names under
its access key ID in a second service that stands in for a searchable
attribute. Several names may share one access key ID.
"""

import json
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError
import structlog

from .base import (
    AccessKey,
    CredentialNotFound,
    CredentialStoreError,
    IncompleteRecord,
    SecretStore,
    StoreDeleteError,
    StoreWriteError,
)

logger = structlog.get_logger(__name__)


class KeyringStore(SecretStore):
    """Secret store implementation using the active keyring backend."""

    def __init__(self, service: Optional[str] = None):
        """Initialize the store.

        Args:
            service: Optional service name, defaults to the application tag.
        """
        self._service = service or self.application
        self._id_service = f"{self._service}:access-key-id"

    def _read_payload(self, name: str) -> Optional[dict]:
        try:
            raw = keyring.get_password(self._service, name)
        except KeyringError as e:
            raise CredentialStoreError(f"Failed to read credential '{name}'", str(e)) from e
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise IncompleteRecord(
                f"Credential '{name}' is not a readable record", str(e)
            ) from e
        if not isinstance(payload, dict):
            raise IncompleteRecord(f"Credential '{name}' is not a readable record")
        if (
            payload.get("application") != self.application
            or payload.get("type") != self.record_type
        ):
            raise IncompleteRecord(
                f"Credential '{name}' was not written by {self.application}",
                f"application={payload.get('application')!r} type={payload.get('type')!r}",
            )
        return payload

    def add_credential(
        self, name: str, access_key_id: str, secret_access_key: str
    ) -> None:
        """Store a credential and its reverse lookup entry.

        The reverse entry is written before the payload. A failed payload
        write leaves only a pointer that :meth:`find_name_by_access_key_id`
        rejects because the record disagrees with it.
        """
        logger.info("storing_credential", name=name, backend="keyring")
        payload = {
            "application": self.application,
            "type": self.record_type,
            "access_key_id": access_key_id,
            "secret_access_key": secret_access_key,
        }
        try:
            previous = keyring.get_password(self._service, name)
            names = self._read_names(access_key_id)
            if name not in names:
                self._write_names(access_key_id, names + [name])
            keyring.set_password(self._service, name, json.dumps(payload))
        except KeyringError as e:
            raise StoreWriteError(f"Failed to store credential '{name}'", str(e)) from e

        if previous is None:
            return
        try:
            previous_id = json.loads(previous).get("access_key_id")
        except (json.JSONDecodeError, AttributeError):
            return
        if previous_id and previous_id != access_key_id:
            try:
                self._forget_access_key_id(previous_id, name)
            except KeyringError as e:
                raise StoreWriteError(
                    f"Stored credential '{name}' but failed to drop its old access key ID",
                    str(e),
                ) from e

    def _read_names(self, access_key_id: str) -> list[str]:
        """Names recorded under an access key ID, oldest first."""
        raw = keyring.get_password(self._id_service, access_key_id)
        if raw is None:
            return []
        try:
            names = json.loads(raw)
        except json.JSONDecodeError:
            # Single bare name
            return [raw]
        if not isinstance(names, list):
            return [raw]
        return [n for n in names if isinstance(n, str)]

    def _write_names(self, access_key_id: str, names: list[str]) -> None:
        if names:
            keyring.set_password(self._id_service, access_key_id, json.dumps(names))
            return
        try:
            keyring.delete_password(self._id_service, access_key_id)
        except PasswordDeleteError:
            logger.debug("reverse_entry_missing", access_key_id=access_key_id)

    def _forget_access_key_id(self, access_key_id: str, name: str) -> None:
        """Drop ``name`` from the reverse entry, keeping any other names."""
        names = self._read_names(access_key_id)
        if name in names:
            self._write_names(access_key_id, [n for n in names if n != name])

    def find_credential_by_name(self, name: str) -> AccessKey:
        """Retrieve a credential from the keyring."""
        payload = self._read_payload(name)
        if payload is None:
            raise CredentialNotFound(f"No credential named '{name}'")
        missing = [
            field
            for field in ("access_key_id", "secret_access_key")
            if not payload.get(field)
        ]
        return self._build_access_key(
            name,
            payload.get("access_key_id"),
            payload.get("secret_access_key"),
            f"missing fields: {', '.join(missing)}" if missing else None,
        )

    def find_name_by_access_key_id(self, access_key_id: str) -> Optional[str]:
        """Reverse lookup through the access key ID service.

        Returns the first recorded name whose record still carries the ID.
        """
        try:
            names = self._read_names(access_key_id)
            for name in names:
                # The reverse entry is only a pointer; the record itself must agree.
                try:
                    payload = self._read_payload(name)
                except IncompleteRecord:
                    continue
                if payload is not None and payload.get("access_key_id") == access_key_id:
                    return name
        except KeyringError as e:
            raise CredentialStoreError("Failed to search credentials", str(e)) from e
        return None

    def delete_credential(self, name: str) -> None:
        """Delete a credential and its reverse lookup entry."""
        logger.info("deleting_credential", name=name, backend="keyring")
        try:
            payload = self._read_payload(name)
        except IncompleteRecord:
            payload = None
        try:
            keyring.delete_password(self._service, name)
            if payload and payload.get("access_key_id"):
                self._forget_access_key_id(payload["access_key_id"], name)
        except KeyringError as e:
            raise StoreDeleteError(f"Failed to delete credential '{name}'", str(e)) from e
