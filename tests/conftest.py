"""Shared fixtures."""

from pathlib import Path

import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.errors import PasswordDeleteError

from aws_keychain.active import ActiveCredentialsFile
from aws_keychain.audit import reset_logger, setup_logging
from aws_keychain.index import NameIndex
from aws_keychain.service import CredentialService
from aws_keychain.storage import KeyringStore


class MemoryKeyring(KeyringBackend):
    """Keyring backend holding passwords in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.passwords.get((service, username))

    def set_password(self, service, username, password):
        self.passwords[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found") from None


@pytest.fixture(autouse=True)
def log_dir(tmp_path: Path):
    """Send logs to a temporary directory and reset logging afterwards."""
    path = tmp_path / "logs"
    setup_logging(base_dir=path)
    yield path
    reset_logger()


@pytest.fixture
def memory_keyring() -> MemoryKeyring:
    """Install an in-memory keyring backend."""
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    return backend


@pytest.fixture
def credential_file(tmp_path: Path) -> Path:
    return tmp_path / "aws" / "credential-file"


@pytest.fixture
def index_file(tmp_path: Path) -> Path:
    return tmp_path / "config" / "names"


@pytest.fixture
def service(memory_keyring, credential_file, index_file) -> CredentialService:
    """A service backed by the in-memory keyring and temporary files."""
    return CredentialService(
        store=KeyringStore(),
        index=NameIndex(index_file),
        active_file=ActiveCredentialsFile(credential_file),
    )
