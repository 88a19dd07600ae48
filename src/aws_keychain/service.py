"""Credential operations across the secret store, name index and active file."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel
import structlog

from .active import ActiveCredentialsFile, render_credentials_file
from .errors import (
    ActiveKeyNotFound,
    CredentialNotFound,
    IncompleteRecord,
    UsageError,
)
from .index import NameIndex
from .storage import AccessKey, SecretStore

logger = structlog.get_logger(__name__)


class StatusState(str, Enum):
    """Outcome of a status query that is not an error."""

    NONE = "none"
    ACTIVE = "active"


class ActiveStatus(BaseModel):
    """Result of :meth:`CredentialService.status`."""

    state: StatusState
    name: Optional[str] = None
    access_key_id: Optional[str] = None


class EntryState(str, Enum):
    """Whether an index entry resolves in the secret store."""

    OK = "ok"
    MISSING = "missing"
    INCOMPLETE = "incomplete"


class IndexEntryReport(BaseModel):
    """One row of :meth:`CredentialService.check`."""

    name: str
    state: EntryState
    access_key_id: Optional[str] = None


def render_exports(access_key_id: str, secret_access_key: str) -> str:
    """Render a key pair as shell export statements."""
    return (
        f'export AWS_ACCESS_KEY_ID="{access_key_id}"\n'
        f'export AWS_SECRET_ACCESS_KEY="{secret_access_key}"\n'
    )


def _require(label: str, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise UsageError(f"{label} must not be empty")
    if "\n" in value or "\r" in value:
        raise UsageError(f"{label} must be a single line")
    if value != value.strip():
        raise UsageError(f"{label} must not start or end with whitespace")


class CredentialService:
    """Orchestrates named AWS access keys.

    The secret store is authoritative, the name index is advisory and the
    active file is derived. Nothing here reconciles them: drift is reported
    by :meth:`status` and :meth:`check`, never repaired.
    """

    def __init__(
        self,
        store: SecretStore,
        index: NameIndex,
        active_file: ActiveCredentialsFile,
    ):
        self.store = store
        self.index = index
        self.active_file = active_file

    def add(self, name: str, access_key_id: str, secret_access_key: str) -> None:
        """Store a credential, overwriting any credential of the same name.

        The index is only touched once the store write succeeded. If the
        index write then fails, the credential exists but is not listed.
        """
        _require("name", name)
        _require("access key ID", access_key_id)
        _require("secret access key", secret_access_key)
        self.store.add_credential(name, access_key_id, secret_access_key)
        self.index.record(name)
        logger.info("credential_added", name=name, access_key_id=access_key_id)

    def get(self, name: str) -> AccessKey:
        """Look up a credential by name.

        Raises:
            CredentialNotFound: If it is absent or incomplete in the store.
        """
        _require("name", name)
        return self.store.find_credential_by_name(name)

    def export(self, name: str) -> str:
        """Render a credential as shell export statements."""
        key = self.get(name)
        return render_exports(key.access_key_id, key.get_secret())

    def show(self, name: str) -> str:
        """Render a credential in the credentials file format."""
        key = self.get(name)
        return render_credentials_file(key.access_key_id, key.get_secret())

    def activate(self, name: str) -> AccessKey:
        """Make a stored credential the active one."""
        key = self.get(name)
        self.active_file.write(key.access_key_id, key.get_secret())
        logger.info("credential_activated", name=name, access_key_id=key.access_key_id)
        return key

    def deactivate(self) -> None:
        """Clear the active selection. Safe to call when nothing is active."""
        self.active_file.clear()

    def list(self) -> list[str]:
        """Names from the index. Not checked against the store."""
        return self.index.list()

    def remove(self, name: str) -> None:
        """Delete a credential, then its index entry.

        A failure after the store delete leaves a stale index entry behind.
        """
        _require("name", name)
        self.store.delete_credential(name)
        self.index.forget(name)
        logger.info("credential_removed", name=name)

    def status(self) -> ActiveStatus:
        """Resolve the active credential.

        Raises:
            MalformedActiveFile: If the active file has no readable key ID.
            ActiveKeyNotFound: If no stored credential has the active key ID.
        """
        access_key_id = self.active_file.read_active_access_key_id()
        if access_key_id is None:
            return ActiveStatus(state=StatusState.NONE)

        name = self.store.find_name_by_access_key_id(access_key_id)
        if name is None:
            raise ActiveKeyNotFound(
                f"Active access key {access_key_id} matches no stored credential"
            )
        return ActiveStatus(
            state=StatusState.ACTIVE, name=name, access_key_id=access_key_id
        )

    def check(self) -> List[IndexEntryReport]:
        """Report whether each indexed name resolves in the secret store."""
        reports = []
        for name in self.index.list():
            try:
                key = self.store.find_credential_by_name(name)
            except IncompleteRecord:
                reports.append(IndexEntryReport(name=name, state=EntryState.INCOMPLETE))
            except CredentialNotFound:
                reports.append(IndexEntryReport(name=name, state=EntryState.MISSING))
            else:
                reports.append(
                    IndexEntryReport(
                        name=name, state=EntryState.OK, access_key_id=key.access_key_id
                    )
                )
        return reports
