"""macOS secret storage using the login keychain via ``security``."""

import re
import shutil
import subprocess
from typing import Optional

import structlog

from .base import (
    AccessKey,
    CredentialNotFound,
    CredentialStoreError,
    SecretStore,
    StoreDeleteError,
    StoreWriteError,
)

logger = structlog.get_logger(__name__)

# Exit status of security for errSecItemNotFound
ITEM_NOT_FOUND = 44

# Matches attribute lines such as:  "acct"<blob>="work"
_ATTRIBUTE_LINE = re.compile(r'^\s*"(?P<key>[^"]+)"<\w+>=(?:"(?P<value>.*)"|<NULL>)$')


def parse_keychain_attributes(output: str) -> dict[str, str]:
    """Parse ``security find-generic-password`` output into an attribute mapping.

    Four-letter keychain attribute codes are kept as keys (``acct``, ``svce``,
    ``desc``, ``icmt``); ``<NULL>`` values are dropped.
    """
    attributes = {}
    for line in output.splitlines():
        match = _ATTRIBUTE_LINE.match(line)
        if match and match.group("value") is not None:
            attributes[match.group("key")] = match.group("value")
    return attributes


class KeychainStore(SecretStore):
    """Secret store implementation using the macOS keychain.

    Records are generic passwords with account = credential name,
    service = application, kind = record type and comment = access key ID.
    """

    def __init__(self):
        """Initialize the store."""
        if shutil.which("security") is None:
            raise CredentialStoreError("The macOS 'security' tool was not found.")

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["security", *args],
            capture_output=True,
            text=True,
            check=False,
        )

    def _tags(self) -> list[str]:
        return ["-s", self.application, "-D", self.record_type]

    def add_credential(
        self, name: str, access_key_id: str, secret_access_key: str
    ) -> None:
        """Store a credential in the keychain, updating any existing item."""
        logger.info("storing_credential", name=name, backend="keychain")
        result = self._run(
            "add-generic-password",
            "-U",
            "-a",
            name,
            *self._tags(),
            "-j",
            access_key_id,
            "-l",
            f"{self.application}: {name}",
            "-w",
            secret_access_key,
        )
        if result.returncode != 0:
            raise StoreWriteError(
                f"Failed to store credential '{name}'", result.stderr
            )

    def find_credential_by_name(self, name: str) -> AccessKey:
        """Retrieve a credential from the keychain."""
        found = self._run("find-generic-password", "-a", name, *self._tags())
        if found.returncode == ITEM_NOT_FOUND:
            raise CredentialNotFound(
                f"No credential named '{name}'", found.stderr
            )
        if found.returncode != 0:
            raise CredentialStoreError(
                f"Failed to read credential '{name}'", found.stderr
            )

        attributes = parse_keychain_attributes(found.stdout)
        secret = self._run(
            "find-generic-password", "-a", name, *self._tags(), "-w"
        )
        if secret.returncode not in (0, ITEM_NOT_FOUND):
            raise CredentialStoreError(
                f"Failed to read credential '{name}'", secret.stderr
            )
        return self._build_access_key(
            name,
            attributes.get("icmt"),
            secret.stdout.rstrip("\n") if secret.returncode == 0 else None,
            found.stdout + secret.stderr,
        )

    def find_name_by_access_key_id(self, access_key_id: str) -> Optional[str]:
        """Reverse lookup by the comment attribute."""
        found = self._run(
            "find-generic-password", *self._tags(), "-j", access_key_id
        )
        if found.returncode == ITEM_NOT_FOUND:
            return None
        if found.returncode != 0:
            raise CredentialStoreError("Failed to search credentials", found.stderr)
        return parse_keychain_attributes(found.stdout).get("acct")

    def delete_credential(self, name: str) -> None:
        """Delete a credential from the keychain."""
        logger.info("deleting_credential", name=name, backend="keychain")
        result = self._run("delete-generic-password", "-a", name, *self._tags())
        if result.returncode != 0:
            raise StoreDeleteError(
                f"Failed to delete credential '{name}'", result.stderr
            )
