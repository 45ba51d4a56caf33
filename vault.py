"""Encrypted-at-rest storage for server configurations.

States: uninitialized -> (initialize) -> unlocked -> (lock) -> locked ->
(unlock) -> unlocked. ``is_initialized`` means a salt is persisted;
``is_locked`` means no session key is held.
"""

from __future__ import annotations

import contextlib
import json
import logging
import threading
from typing import Iterator, List, Optional, Sequence

import security
from errors import VaultError, VaultLockedError, VaultNotInitializedError
from models import ServerConfig
from storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

VAULT_SALT_KEY = "vaultSalt"
VAULT_DATA_KEY = "vaultData"
LEGACY_OPTIONS_KEY = "options"


def _serialize(servers: Sequence[ServerConfig]) -> str:
    return json.dumps([server.to_dict() for server in servers])


def _deserialize(plaintext: str) -> List[ServerConfig]:
    try:
        items = json.loads(plaintext)
    except ValueError as exc:
        raise VaultError(security.DECRYPT_FAILED) from exc
    if not isinstance(items, list):
        raise VaultError(security.DECRYPT_FAILED)
    return [ServerConfig.from_dict(item) for item in items if isinstance(item, dict)]


class VaultService:
    def __init__(
        self,
        persistent: KeyValueStore,
        session: Optional[KeyValueStore] = None,
        iterations: int = security.PBKDF2_ITERATIONS,
    ) -> None:
        self.persistent = persistent
        self.keys = security.KeyManager(session if session is not None else MemoryStore())
        self.iterations = iterations
        self._lock = threading.RLock()

    def is_initialized(self) -> bool:
        return self.persistent.get(VAULT_SALT_KEY) is not None

    def is_locked(self) -> bool:
        return not self.keys.has_session_key()

    def _salt(self) -> bytes:
        salt = self.persistent.get(VAULT_SALT_KEY)
        if salt is None:
            raise VaultNotInitializedError()
        return bytes(salt)

    def _derive(self, passphrase: str, salt: bytes) -> bytes:
        return security.derive_key(passphrase, salt, self.iterations)

    def _read(self, key: bytes) -> List[ServerConfig]:
        record = security.EncryptedRecord.from_dict(self.persistent.get(VAULT_DATA_KEY))
        return _deserialize(security.decrypt(record, key))

    def initialize(self, passphrase: str, initial_configs: Optional[Sequence[ServerConfig]] = None) -> None:
        """Create the vault, encrypt ``initial_configs`` and leave it unlocked."""
        with self._lock:
            if self.is_initialized():
                raise VaultError("Vault already initialized")
            salt = security.generate_salt()
            key = self._derive(passphrase, salt)
            record = security.encrypt(_serialize(initial_configs or []), key)
            self.persistent.update({
                VAULT_DATA_KEY: record.to_dict(),
                VAULT_SALT_KEY: list(salt),
            })
            self.keys.set_session_key(key)
        logger.info("Vault initialized with %d server(s)", len(initial_configs or []))

    def unlock(self, passphrase: str) -> None:
        """Raises VaultError without changing state when the passphrase is wrong."""
        with self._lock:
            key = self._derive(passphrase, self._salt())
            try:
                self._read(key)
            except VaultError:
                logger.warning("Vault unlock failed")
                raise
            self.keys.set_session_key(key)
        logger.info("Vault unlocked")

    def lock(self) -> None:
        self.keys.clear_session_key()
        logger.info("Vault locked")

    def _session_key(self) -> bytes:
        if not self.is_initialized():
            raise VaultNotInitializedError()
        key = self.keys.get_session_key()
        if key is None:
            raise VaultLockedError()
        return key

    def get_servers(self) -> List[ServerConfig]:
        with self._lock:
            return self._read(self._session_key())

    def save_servers(self, servers: Sequence[ServerConfig]) -> None:
        # Last write wins; every write gets a new IV.
        with self._lock:
            record = security.encrypt(_serialize(servers), self._session_key())
            self.persistent.set(VAULT_DATA_KEY, record.to_dict())
        logger.debug("Saved %d server(s) to vault", len(servers))

    def change_passphrase(self, old_passphrase: str, new_passphrase: str) -> None:
        """Re-encrypt everything under a fresh salt and a key from ``new_passphrase``."""
        with self._lock:
            servers = self._read(self._derive(old_passphrase, self._salt()))
            salt = security.generate_salt()
            key = self._derive(new_passphrase, salt)
            record = security.encrypt(_serialize(servers), key)
            self.persistent.update({
                VAULT_DATA_KEY: record.to_dict(),
                VAULT_SALT_KEY: list(salt),
            })
            self.keys.set_session_key(key)
        logger.info("Vault passphrase changed")

    def has_legacy_data(self) -> bool:
        settings = self.persistent.get(LEGACY_OPTIONS_KEY)
        return isinstance(settings, dict) and bool(settings.get("servers"))

    def migrate_legacy_data(self, passphrase: str) -> int:
        """Move plaintext servers from the legacy options record into a new vault.

        Other legacy settings are kept. Returns the number of servers moved.
        """
        with self._lock:
            settings = self.persistent.get(LEGACY_OPTIONS_KEY)
            if not isinstance(settings, dict) or not settings.get("servers"):
                return 0
            servers = [ServerConfig.from_dict(s) for s in settings["servers"] if isinstance(s, dict)]
            self.initialize(passphrase, servers)
            settings["servers"] = []
            self.persistent.set(LEGACY_OPTIONS_KEY, settings)
        logger.info("Migrated %d legacy server(s) into the vault", len(servers))
        return len(servers)

    @contextlib.contextmanager
    def session(self, passphrase: str) -> Iterator["VaultService"]:
        """Unlock for the duration of a ``with`` block and lock again on exit."""
        self.unlock(passphrase)
        try:
            yield self
        finally:
            self.lock()
