"""Cross-platform secret storage."""

import platform
from typing import Optional

from .base import (
    APPLICATION,
    RECORD_TYPE,
    AccessKey,
    CredentialNotFound,
    CredentialStoreError,
    IncompleteRecord,
    SecretStore,
    StoreDeleteError,
    StoreWriteError,
)
from .keyring_store import KeyringStore
from .linux import LibSecretStore
from .macos import KeychainStore

BACKENDS = {
    "keychain": KeychainStore,
    "secret-service": LibSecretStore,
    "keyring": KeyringStore,
}


def get_platform_store(backend: Optional[str] = None) -> SecretStore:
    """Get the appropriate secret store for the current platform.

    Args:
        backend: Optional backend name overriding platform detection.

    Returns:
        SecretStore: Platform-specific secret store instance.

    Raises:
        RuntimeError: If the backend name or the platform is unsupported.
    """
    if backend is not None:
        try:
            return BACKENDS[backend]()
        except KeyError:
            raise RuntimeError(f"Unknown secret store backend: {backend}") from None

    system = platform.system().lower()
    if system == "linux":
        return LibSecretStore()
    elif system == "darwin":
        return KeychainStore()
    elif system == "windows":
        return KeyringStore()
    else:
        raise RuntimeError(f"Unsupported platform: {system}")


__all__ = [
    "APPLICATION",
    "BACKENDS",
    "RECORD_TYPE",
    "AccessKey",
    "CredentialNotFound",
    "CredentialStoreError",
    "IncompleteRecord",
    "KeychainStore",
    "KeyringStore",
    "LibSecretStore",
    "SecretStore",
    "StoreDeleteError",
    "StoreWriteError",
    "get_platform_store",
]
