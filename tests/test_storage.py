"""Tests for secret store backends."""

import json
import subprocess
from unittest.mock import patch

import pytest

from aws_keychain.storage import (
    CredentialNotFound,
    CredentialStoreError,
    IncompleteRecord,
    KeychainStore,
    KeyringStore,
    LibSecretStore,
    StoreDeleteError,
    StoreWriteError,
    get_platform_store,
)
from aws_keychain.storage.linux import parse_search_output
from aws_keychain.storage.macos import parse_keychain_attributes


def completed(stdout: str = "", returncode: int = 0, stderr: str = ""):
    return subprocess.CompletedProcess(
        args=[], returncode=returncode, stdout=stdout, stderr=stderr
    )


SECRET_TOOL_SEARCH = """\
[/org/freedesktop/secrets/collection/login/12]
label = aws-keychain: work
secret = secretYYY
created = 2024-01-01 00:00:00
modified = 2024-01-01 00:00:00
schema = org.freedesktop.Secret.Generic
attribute.application = aws-keychain
attribute.type = access-key
attribute.name = work
attribute.access_key_id = AKIAXXXX
"""

SECURITY_FIND = """\
keychain: "/Users/me/Library/Keychains/login.keychain-db"
version: 512
class: "genp"
attributes:
    0x00000007 <blob>="aws-keychain: work"
    0x00000008 <blob>=<NULL>
    "acct"<blob>="work"
    "cdat"<timedate>=0x32303234303130313030303030305A00  "20240101000000Z\\000"
    "desc"<blob>="access-key"
    "gena"<blob>=<NULL>
    "icmt"<blob>="AKIAXXXX"
    "svce"<blob>="aws-keychain"
"""

NOT_IN_KEYCHAIN = (
    "security: SecKeychainSearchCopyNext: "
    "The specified item could not be found in the keychain.\n"
)


# KeyringStore


@pytest.fixture
def keyring_store(memory_keyring) -> KeyringStore:
    return KeyringStore()


def test_keyring_store_and_retrieve(keyring_store: KeyringStore, memory_keyring):
    keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")

    key = keyring_store.find_credential_by_name("work")
    assert key.name == "work"
    assert key.access_key_id == "AKIAXXXX"
    assert key.get_secret() == "secretYYY"

    payload = json.loads(memory_keyring.passwords[("aws-keychain", "work")])
    assert payload["application"] == "aws-keychain"
    assert payload["type"] == "access-key"
    assert json.loads(memory_keyring.passwords[("aws-keychain:access-key-id", "AKIAXXXX")]) == ["work"]


def test_keyring_secret_hidden_in_repr(keyring_store: KeyringStore):
    keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")
    assert "secretYYY" not in repr(keyring_store.find_credential_by_name("work"))


def test_keyring_not_found(keyring_store: KeyringStore):
    with pytest.raises(CredentialNotFound) as excinfo:
        keyring_store.find_credential_by_name("ghost")
    assert not isinstance(excinfo.value, IncompleteRecord)


def test_keyring_missing_field_is_incomplete(keyring_store: KeyringStore, memory_keyring):
    memory_keyring.set_password(
        "aws-keychain",
        "work",
        json.dumps({"application": "aws-keychain", "type": "access-key", "access_key_id": "AKIAXXXX"}),
    )

    with pytest.raises(IncompleteRecord) as excinfo:
        keyring_store.find_credential_by_name("work")
    assert "secret_access_key" in str(excinfo.value)


def test_keyring_reverse_lookup(keyring_store: KeyringStore):
    keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")

    assert keyring_store.find_name_by_access_key_id("AKIAXXXX") == "work"
    assert keyring_store.find_name_by_access_key_id("AKIAOTHER") is None


def test_keyring_reverse_lookup_ignores_stale_pointer(keyring_store: KeyringStore, memory_keyring):
    """Test a reverse entry whose record disagrees does not match."""
    keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")
    memory_keyring.set_password("aws-keychain:access-key-id", "AKIASTALE", json.dumps(["work"]))

    assert keyring_store.find_name_by_access_key_id("AKIASTALE") is None


def test_keyring_delete(keyring_store: KeyringStore, memory_keyring):
    keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")

    keyring_store.delete_credential("work")

    assert memory_keyring.passwords == {}
    with pytest.raises(CredentialNotFound):
        keyring_store.find_credential_by_name("work")


def test_keyring_delete_missing(keyring_store: KeyringStore):
    with pytest.raises(StoreDeleteError):
        keyring_store.delete_credential("ghost")


def test_keyring_write_failure(keyring_store: KeyringStore):
    from keyring.errors import PasswordSetError

    with patch("keyring.set_password", side_effect=PasswordSetError("locked")):
        with pytest.raises(StoreWriteError) as excinfo:
            keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")
    assert excinfo.value.diagnostic == "locked"


def test_keyring_shared_access_key_id(keyring_store: KeyringStore, memory_keyring):
    """Test two names holding the same key survive removal of either."""
    keyring_store.add_credential("a", "AKIASAME", "secret")
    keyring_store.add_credential("b", "AKIASAME", "secret")

    assert json.loads(memory_keyring.passwords[("aws-keychain:access-key-id", "AKIASAME")]) == ["a", "b"]

    keyring_store.delete_credential("a")

    assert keyring_store.find_name_by_access_key_id("AKIASAME") == "b"
    keyring_store.delete_credential("b")
    assert memory_keyring.passwords == {}


def test_keyring_rekey_keeps_other_names(keyring_store: KeyringStore):
    keyring_store.add_credential("a", "AKIASAME", "secret")
    keyring_store.add_credential("b", "AKIASAME", "secret")

    keyring_store.add_credential("b", "AKIANEW", "new-secret")

    assert keyring_store.find_name_by_access_key_id("AKIASAME") == "a"
    assert keyring_store.find_name_by_access_key_id("AKIANEW") == "b"


def test_keyring_reverse_lookup_reads_bare_name(keyring_store: KeyringStore, memory_keyring):
    keyring_store.add_credential("work", "AKIAXXXX", "secretYYY")
    memory_keyring.set_password("aws-keychain:access-key-id", "AKIAXXXX", "work")

    assert keyring_store.find_name_by_access_key_id("AKIAXXXX") == "work"


def test_keyring_failed_payload_write_keeps_previous(keyring_store: KeyringStore, memory_keyring):
    """Test a rejected payload write leaves the stored credential usable."""
    from keyring.errors import PasswordSetError

    keyring_store.add_credential("work", "AKIAOLD", "old-secret")
    set_password = memory_keyring.set_password

    def reject_payload(service, username, password):
        if service == "aws-keychain":
            raise PasswordSetError("locked")
        set_password(service, username, password)

    with patch.object(memory_keyring, "set_password", side_effect=reject_payload):
        with pytest.raises(StoreWriteError):
            keyring_store.add_credential("work", "AKIANEW", "new-secret")

    key = keyring_store.find_credential_by_name("work")
    assert key.access_key_id == "AKIAOLD"
    assert key.get_secret() == "old-secret"
    assert keyring_store.find_name_by_access_key_id("AKIAOLD") == "work"
    assert keyring_store.find_name_by_access_key_id("AKIANEW") is None


def test_keyring_reverse_entry_errors_are_wrapped(keyring_store: KeyringStore, memory_keyring):
    from keyring.errors import KeyringError

    keyring_store.add_credential("work", "AKIAOLD", "old-secret")
    get_password = memory_keyring.get_password

    def fail_reverse(service, username):
        if service == "aws-keychain:access-key-id":
            raise KeyringError("backend unavailable")
        return get_password(service, username)

    with patch.object(memory_keyring, "get_password", side_effect=fail_reverse):
        with pytest.raises(StoreWriteError) as excinfo:
            keyring_store.add_credential("work", "AKIANEW", "new-secret")
        assert excinfo.value.diagnostic == "backend unavailable"

        with pytest.raises(StoreDeleteError):
            keyring_store.delete_credential("work")

        with pytest.raises(CredentialStoreError):
            keyring_store.find_name_by_access_key_id("AKIAOLD")


# LibSecretStore


@pytest.fixture
def libsecret_store() -> LibSecretStore:
    with patch("aws_keychain.storage.linux.shutil.which", return_value="/usr/bin/secret-tool"):
        return LibSecretStore()


def test_libsecret_missing_tool():
    with patch("aws_keychain.storage.linux.shutil.which", return_value=None):
        with pytest.raises(CredentialStoreError):
            LibSecretStore()


def test_parse_search_output():
    items = parse_search_output(SECRET_TOOL_SEARCH)
    assert items == [
        {
            "application": "aws-keychain",
            "type": "access-key",
            "name": "work",
            "access_key_id": "AKIAXXXX",
        }
    ]
    assert parse_search_output("") == []


def test_libsecret_add(libsecret_store: LibSecretStore):
    with patch("subprocess.run", return_value=completed()) as run:
        libsecret_store.add_credential("work", "AKIAXXXX", "secretYYY")

    search_call, store_call = run.call_args_list
    assert search_call.args[0] == [
        "secret-tool", "search", "--all",
        "application", "aws-keychain", "type", "access-key", "name", "work",
    ]
    assert store_call.args[0] == [
        "secret-tool", "store", "--label", "aws-keychain: work",
        "application", "aws-keychain", "type", "access-key",
        "name", "work", "access_key_id", "AKIAXXXX",
    ]
    assert store_call.kwargs["input"] == "secretYYY"


def test_libsecret_add_failure(libsecret_store: LibSecretStore):
    results = [completed(), completed(returncode=1, stderr="Cannot create an item in a locked collection")]
    with patch("subprocess.run", side_effect=results) as run:
        with pytest.raises(StoreWriteError) as excinfo:
            libsecret_store.add_credential("work", "AKIAXXXX", "secretYYY")
    assert "locked collection" in str(excinfo.value)
    assert [c.args[0][1] for c in run.call_args_list] == ["search", "store"]


def test_libsecret_find(libsecret_store: LibSecretStore):
    results = [completed(SECRET_TOOL_SEARCH), completed("secretYYY")]
    with patch("subprocess.run", side_effect=results) as run:
        key = libsecret_store.find_credential_by_name("work")

    assert key.access_key_id == "AKIAXXXX"
    assert key.get_secret() == "secretYYY"
    assert run.call_args_list[1].args[0][:2] == ["secret-tool", "lookup"]


def test_libsecret_find_missing(libsecret_store: LibSecretStore):
    with patch("subprocess.run", return_value=completed(returncode=1)) as run:
        with pytest.raises(CredentialNotFound):
            libsecret_store.find_credential_by_name("ghost")
    run.assert_called_once()


def test_libsecret_find_incomplete(libsecret_store: LibSecretStore):
    search = SECRET_TOOL_SEARCH.replace("attribute.access_key_id = AKIAXXXX\n", "")
    results = [completed(search), completed("secretYYY")]
    with patch("subprocess.run", side_effect=results):
        with pytest.raises(IncompleteRecord) as excinfo:
            libsecret_store.find_credential_by_name("work")
    assert "name = work" in str(excinfo.value)


def test_libsecret_reverse_lookup(libsecret_store: LibSecretStore):
    with patch("subprocess.run", return_value=completed(SECRET_TOOL_SEARCH)) as run:
        assert libsecret_store.find_name_by_access_key_id("AKIAXXXX") == "work"
    assert run.call_args.args[0][-2:] == ["access_key_id", "AKIAXXXX"]

    with patch("subprocess.run", return_value=completed(returncode=1)):
        assert libsecret_store.find_name_by_access_key_id("AKIAOTHER") is None


def test_libsecret_delete(libsecret_store: LibSecretStore):
    results = [completed(SECRET_TOOL_SEARCH), completed()]
    with patch("subprocess.run", side_effect=results) as run:
        libsecret_store.delete_credential("work")
    assert run.call_args.args[0][:2] == ["secret-tool", "clear"]


def test_libsecret_delete_missing(libsecret_store: LibSecretStore):
    with patch("subprocess.run", return_value=completed(returncode=1)) as run:
        with pytest.raises(StoreDeleteError):
            libsecret_store.delete_credential("ghost")
    run.assert_called_once()


def test_libsecret_rekey_clears_old_item_after_store(libsecret_store: LibSecretStore):
    old = SECRET_TOOL_SEARCH.replace("AKIAXXXX", "AKIAOLD")
    results = [completed(old), completed(), completed()]
    with patch("subprocess.run", side_effect=results) as run:
        libsecret_store.add_credential("work", "AKIANEW", "new-secret")

    search_call, store_call, clear_call = run.call_args_list
    assert store_call.args[0][1] == "store"
    assert clear_call.args[0] == [
        "secret-tool", "clear",
        "application", "aws-keychain", "type", "access-key",
        "name", "work", "access_key_id", "AKIAOLD",
    ]


def test_libsecret_rejected_overwrite_keeps_existing(libsecret_store: LibSecretStore):
    """Test a failed store never clears the credential it was replacing."""
    old = SECRET_TOOL_SEARCH.replace("AKIAXXXX", "AKIAOLD")
    results = [completed(old), completed(returncode=1, stderr="Prompt dismissed")]
    with patch("subprocess.run", side_effect=results) as run:
        with pytest.raises(StoreWriteError):
            libsecret_store.add_credential("work", "AKIANEW", "new-secret")

    assert [c.args[0][1] for c in run.call_args_list] == ["search", "store"]


def test_libsecret_service_unavailable(libsecret_store: LibSecretStore):
    """Test a store failure is reported with its diagnostic, not as a miss."""
    failure = completed(returncode=1, stderr="Cannot autolaunch D-Bus without X11 $DISPLAY")
    with patch("subprocess.run", return_value=failure):
        with pytest.raises(CredentialStoreError) as excinfo:
            libsecret_store.find_credential_by_name("work")
        assert not isinstance(excinfo.value, CredentialNotFound)
        assert "autolaunch D-Bus" in str(excinfo.value)

        with pytest.raises(CredentialStoreError) as excinfo:
            libsecret_store.find_name_by_access_key_id("AKIAXXXX")
        assert "autolaunch D-Bus" in excinfo.value.diagnostic

        with pytest.raises(CredentialStoreError) as excinfo:
            libsecret_store.delete_credential("work")
        assert not isinstance(excinfo.value, StoreDeleteError)


def test_libsecret_lookup_failure(libsecret_store: LibSecretStore):
    results = [completed(SECRET_TOOL_SEARCH), completed(returncode=1, stderr="Collection is locked")]
    with patch("subprocess.run", side_effect=results):
        with pytest.raises(CredentialStoreError) as excinfo:
            libsecret_store.find_credential_by_name("work")
    assert not isinstance(excinfo.value, CredentialNotFound)
    assert excinfo.value.diagnostic == "Collection is locked"


# KeychainStore


@pytest.fixture
def keychain_store() -> KeychainStore:
    with patch("aws_keychain.storage.macos.shutil.which", return_value="/usr/bin/security"):
        return KeychainStore()


def test_parse_keychain_attributes():
    assert parse_keychain_attributes(SECURITY_FIND) == {
        "acct": "work",
        "desc": "access-key",
        "icmt": "AKIAXXXX",
        "svce": "aws-keychain",
    }


def test_keychain_add(keychain_store: KeychainStore):
    with patch("subprocess.run", return_value=completed()) as run:
        keychain_store.add_credential("work", "AKIAXXXX", "secretYYY")

    args = run.call_args.args[0]
    assert args[:3] == ["security", "add-generic-password", "-U"]
    assert args[args.index("-a") + 1] == "work"
    assert args[args.index("-s") + 1] == "aws-keychain"
    assert args[args.index("-D") + 1] == "access-key"
    assert args[args.index("-j") + 1] == "AKIAXXXX"
    assert args[args.index("-w") + 1] == "secretYYY"


def test_keychain_add_failure(keychain_store: KeychainStore):
    failure = completed(returncode=51, stderr="User interaction is not allowed.")
    with patch("subprocess.run", return_value=failure):
        with pytest.raises(StoreWriteError):
            keychain_store.add_credential("work", "AKIAXXXX", "secretYYY")


def test_keychain_find(keychain_store: KeychainStore):
    results = [completed(SECURITY_FIND), completed("secretYYY\n")]
    with patch("subprocess.run", side_effect=results) as run:
        key = keychain_store.find_credential_by_name("work")

    assert key.access_key_id == "AKIAXXXX"
    assert key.get_secret() == "secretYYY"
    assert run.call_args.args[0][-1] == "-w"


def test_keychain_find_missing(keychain_store: KeychainStore):
    with patch("subprocess.run", return_value=completed(returncode=44, stderr=NOT_IN_KEYCHAIN)):
        with pytest.raises(CredentialNotFound) as excinfo:
            keychain_store.find_credential_by_name("ghost")
    assert "could not be found" in excinfo.value.diagnostic


def test_keychain_find_incomplete(keychain_store: KeychainStore):
    attributes = SECURITY_FIND.replace('"icmt"<blob>="AKIAXXXX"', '"icmt"<blob>=<NULL>')
    results = [completed(attributes), completed("secretYYY\n")]
    with patch("subprocess.run", side_effect=results):
        with pytest.raises(IncompleteRecord):
            keychain_store.find_credential_by_name("work")


def test_keychain_reverse_lookup(keychain_store: KeychainStore):
    with patch("subprocess.run", return_value=completed(SECURITY_FIND)) as run:
        assert keychain_store.find_name_by_access_key_id("AKIAXXXX") == "work"
    args = run.call_args.args[0]
    assert args[args.index("-s") + 1] == "aws-keychain"
    assert args[args.index("-j") + 1] == "AKIAXXXX"

    with patch("subprocess.run", return_value=completed(returncode=44, stderr=NOT_IN_KEYCHAIN)):
        assert keychain_store.find_name_by_access_key_id("AKIAOTHER") is None


def test_keychain_delete_missing(keychain_store: KeychainStore):
    with patch("subprocess.run", return_value=completed(returncode=44, stderr=NOT_IN_KEYCHAIN)):
        with pytest.raises(StoreDeleteError):
            keychain_store.delete_credential("ghost")


def test_keychain_locked(keychain_store: KeychainStore):
    """Test a locked keychain is a store failure rather than a missing item."""
    locked = completed(returncode=36, stderr="User interaction is not allowed.")
    with patch("subprocess.run", return_value=locked):
        with pytest.raises(CredentialStoreError) as excinfo:
            keychain_store.find_credential_by_name("work")
        assert not isinstance(excinfo.value, CredentialNotFound)
        assert "not allowed" in excinfo.value.diagnostic

        with pytest.raises(CredentialStoreError) as excinfo:
            keychain_store.find_name_by_access_key_id("AKIAXXXX")
        assert "not allowed" in excinfo.value.diagnostic


def test_keychain_secret_read_denied(keychain_store: KeychainStore):
    results = [completed(SECURITY_FIND), completed(returncode=128, stderr="User canceled the operation.")]
    with patch("subprocess.run", side_effect=results):
        with pytest.raises(CredentialStoreError) as excinfo:
            keychain_store.find_credential_by_name("work")
    assert not isinstance(excinfo.value, CredentialNotFound)


# Platform selection


@pytest.mark.parametrize(
    "system, expected",
    [("Linux", LibSecretStore), ("Darwin", KeychainStore), ("Windows", KeyringStore)],
)
def test_platform_store_selection(system, expected):
    with patch("aws_keychain.storage.platform.system", return_value=system), patch(
        "shutil.which", return_value="/usr/bin/tool"
    ):
        assert isinstance(get_platform_store(), expected)


def test_platform_store_unsupported():
    with patch("aws_keychain.storage.platform.system", return_value="Plan9"):
        with pytest.raises(RuntimeError):
            get_platform_store()


def test_platform_store_explicit_backend():
    assert isinstance(get_platform_store("keyring"), KeyringStore)
    with pytest.raises(RuntimeError):
        get_platform_store("bogus")
