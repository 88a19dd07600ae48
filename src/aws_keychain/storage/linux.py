"""Linux secret storage using libsecret's secret-tool."""

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


def parse_search_output(output: str) -> list[dict[str, str]]:
    """Parse ``secret-tool search`` output into one attribute mapping per item.

    Items start with a ``[/org/freedesktop/secrets/...]`` header followed by
    ``key = value`` lines; ``attribute.`` prefixes are stripped.
    """
    items: list[dict[str, str]] = []
    current: Optional[dict[str, str]] = None
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("[") and line.endswith("]"):
            current = {}
            items.append(current)
            continue
        if current is None or " = " not in line:
            continue
        key, value = line.split(" = ", 1)
        if key.startswith("attribute."):
            current[key[len("attribute."):]] = value
    return items


class LibSecretStore(SecretStore):
    """Secret store implementation using libsecret."""

    def __init__(self):
        """Initialize the store."""
        self._check_libsecret()

    def _check_libsecret(self) -> None:
        """Check if secret-tool is available."""
        if shutil.which("secret-tool") is None:
            raise CredentialStoreError(
                "libsecret not found. Please install libsecret-tools."
            )

    def _attributes(self, **extra: str) -> list[str]:
        attributes = {
            "application": self.application,
            "type": self.record_type,
            **extra,
        }
        return [part for pair in attributes.items() for part in pair]

    def _run(
        self, *args: str, secret: Optional[str] = None
    ) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["secret-tool", *args],
            input=secret,
            capture_output=True,
            text=True,
            check=False,
        )

    def _search(self, **attributes: str) -> list[dict[str, str]]:
        result = self._run("search", "--all", *self._attributes(**attributes))
        # secret-tool exits non-zero without a message when nothing matched.
        if result.returncode != 0 and result.stderr.strip():
            raise CredentialStoreError("Failed to search credentials", result.stderr)
        return parse_search_output(result.stdout)

    def add_credential(
        self, name: str, access_key_id: str, secret_access_key: str
    ) -> None:
        """Store a credential using libsecret.

        The new item is stored before any item with an older access key ID
        is cleared, so a rejected write leaves the previous credential intact.
        """
        logger.info("storing_credential", name=name, backend="secret-service")
        stale_ids = {
            item["access_key_id"]
            for item in self._search(name=name)
            if item.get("access_key_id") and item["access_key_id"] != access_key_id
        }
        result = self._run(
            "store",
            "--label",
            f"{self.application}: {name}",
            *self._attributes(name=name, access_key_id=access_key_id),
            secret=secret_access_key,
        )
        if result.returncode != 0:
            raise StoreWriteError(
                f"Failed to store credential '{name}'", result.stderr
            )

        # secret-tool only replaces items with identical attributes.
        for stale_id in sorted(stale_ids):
            cleared = self._run(
                "clear", *self._attributes(name=name, access_key_id=stale_id)
            )
            if cleared.returncode != 0:
                raise StoreWriteError(
                    f"Stored credential '{name}' but failed to remove its old item",
                    cleared.stderr,
                )

    def find_credential_by_name(self, name: str) -> AccessKey:
        """Retrieve a credential using libsecret."""
        items = self._search(name=name)
        if not items:
            raise CredentialNotFound(f"No credential named '{name}'")

        lookup = self._run("lookup", *self._attributes(name=name))
        if lookup.returncode != 0 and lookup.stderr.strip():
            raise CredentialStoreError(
                f"Failed to read credential '{name}'", lookup.stderr
            )
        diagnostic = "\n".join(
            f"{key} = {value}" for key, value in sorted(items[0].items())
        )
        return self._build_access_key(
            name,
            items[0].get("access_key_id"),
            lookup.stdout.rstrip("\n") if lookup.returncode == 0 else None,
            diagnostic,
        )

    def find_name_by_access_key_id(self, access_key_id: str) -> Optional[str]:
        """Reverse lookup by the access_key_id attribute."""
        for item in self._search(access_key_id=access_key_id):
            if item.get("name"):
                return item["name"]
        return None

    def delete_credential(self, name: str) -> None:
        """Delete a credential."""
        logger.info("deleting_credential", name=name, backend="secret-service")
        # secret-tool clear succeeds even when nothing matched.
        if not self._search(name=name):
            raise StoreDeleteError(f"No credential named '{name}' to delete")
        result = self._run("clear", *self._attributes(name=name))
        if result.returncode != 0:
            raise StoreDeleteError(
                f"Failed to delete credential '{name}'", result.stderr
            )
