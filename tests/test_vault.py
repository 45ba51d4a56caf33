import pytest

import security
from errors import VaultError, VaultLockedError, VaultNotInitializedError
from models import ServerConfig
from storage import MemoryStore
from vault import VAULT_DATA_KEY, VAULT_SALT_KEY, VaultService

ITERATIONS = 1000


def _vault(persistent=None):
    return VaultService(persistent or MemoryStore(), MemoryStore(), iterations=ITERATIONS)


def _servers():
    return [
        ServerConfig(name="seedbox", type="qbittorrent", hostname="https://seed:8080",
                     username="admin", password="s3cret"),
        ServerConfig(name="nas", type="synology", hostname="http://nas:5000"),
    ]


def test_fresh_vault_is_uninitialized_and_locked():
    vault = _vault()
    assert not vault.is_initialized()
    assert vault.is_locked()
    with pytest.raises(VaultNotInitializedError):
        vault.get_servers()
    with pytest.raises(VaultNotInitializedError):
        vault.unlock("pw")


def test_initialize_then_read_back():
    vault = _vault()
    vault.initialize("pw", _servers())
    assert vault.is_initialized()
    assert not vault.is_locked()
    assert vault.get_servers() == _servers()
    assert vault.get_servers()[0].password == "s3cret"


def test_initialize_twice_is_refused():
    vault = _vault()
    vault.initialize("pw")
    with pytest.raises(VaultError):
        vault.initialize("other")


def test_plaintext_never_reaches_storage():
    store = MemoryStore()
    _vault(store).initialize("pw", _servers())
    record = store.get(VAULT_DATA_KEY)
    assert set(record) == {"iv", "ciphertext"}
    assert len(record["iv"]) == security.IV_LENGTH
    assert len(store.get(VAULT_SALT_KEY)) == security.SALT_LENGTH
    assert b"s3cret" not in bytes(record["ciphertext"])


def test_lock_and_unlock_with_correct_passphrase():
    store = MemoryStore()
    _vault(store).initialize("pw", _servers())
    vault = _vault(store)
    assert vault.is_locked()
    with pytest.raises(VaultLockedError):
        vault.get_servers()
    vault.unlock("pw")
    assert vault.get_servers() == _servers()
    vault.lock()
    assert vault.is_locked()


def test_wrong_passphrase_leaves_vault_locked():
    store = MemoryStore()
    _vault(store).initialize("pw", _servers())
    vault = _vault(store)
    with pytest.raises(VaultError) as exc:
        vault.unlock("wrong")
    assert str(exc.value) == "Invalid password or corrupted data"
    assert vault.is_locked()


def test_every_save_uses_a_new_iv():
    store = MemoryStore()
    vault = _vault(store)
    vault.initialize("pw", _servers())
    first = store.get(VAULT_DATA_KEY)["iv"]
    vault.save_servers(_servers())
    second = store.get(VAULT_DATA_KEY)["iv"]
    assert first != second


def test_save_while_locked_fails():
    vault = _vault()
    vault.initialize("pw")
    vault.lock()
    with pytest.raises(VaultLockedError):
        vault.save_servers(_servers())


def test_tampered_ciphertext_is_rejected():
    store = MemoryStore()
    _vault(store).initialize("pw", _servers())
    record = store.get(VAULT_DATA_KEY)
    record["ciphertext"][0] ^= 0xFF
    store.set(VAULT_DATA_KEY, record)
    with pytest.raises(VaultError):
        _vault(store).unlock("pw")


def test_change_passphrase_rotates_salt():
    store = MemoryStore()
    vault = _vault(store)
    vault.initialize("old", _servers())
    salt = store.get(VAULT_SALT_KEY)
    vault.change_passphrase("old", "new")
    assert store.get(VAULT_SALT_KEY) != salt

    reopened = _vault(store)
    with pytest.raises(VaultError):
        reopened.unlock("old")
    reopened.unlock("new")
    assert len(reopened.get_servers()) == 2


def test_change_passphrase_with_wrong_old_passphrase():
    store = MemoryStore()
    vault = _vault(store)
    vault.initialize("old", _servers())
    salt = store.get(VAULT_SALT_KEY)
    with pytest.raises(VaultError):
        vault.change_passphrase("nope", "new")
    assert store.get(VAULT_SALT_KEY) == salt


def test_migrate_legacy_servers_keeps_other_settings():
    store = MemoryStore()
    store.set("options", {
        "servers": [s.to_dict() for s in _servers()],
        "poll_interval": 9,
    })
    vault = _vault(store)
    assert vault.has_legacy_data()
    assert vault.migrate_legacy_data("pw") == 2
    assert store.get("options") == {"servers": [], "poll_interval": 9}
    assert not vault.has_legacy_data()
    assert [s.name for s in vault.get_servers()] == ["seedbox", "nas"]


def test_migrate_without_legacy_data_is_noop():
    vault = _vault()
    assert vault.migrate_legacy_data("pw") == 0
    assert not vault.is_initialized()


def test_session_locks_on_exit():
    store = MemoryStore()
    _vault(store).initialize("pw", _servers())
    vault = _vault(store)
    with vault.session("pw") as unlocked:
        assert not unlocked.is_locked()
        assert len(unlocked.get_servers()) == 2
    assert vault.is_locked()


def test_session_store_shared_between_services():
    store, session = MemoryStore(), MemoryStore()
    VaultService(store, session, iterations=ITERATIONS).initialize("pw", _servers())
    other = VaultService(store, session, iterations=ITERATIONS)
    assert not other.is_locked()
    assert len(other.get_servers()) == 2
