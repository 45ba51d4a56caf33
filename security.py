"""
Key derivation and authenticated encryption for the credential vault.

PBKDF2-HMAC-SHA256 turns a passphrase and a 16-byte salt into a 256-bit key;
AES-256-GCM encrypts with a fresh 12-byte IV per message. Records are
persisted as ``{"iv": [...], "ciphertext": [...]}`` byte arrays.
"""

from __future__ import annotations

import base64
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from errors import VaultError
from storage import KeyValueStore

logger = logging.getLogger(__name__)

SALT_LENGTH = 16
IV_LENGTH = 12
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 300_000

SESSION_KEY_KEY = "encryptionKey"

DECRYPT_FAILED = "Invalid password or corrupted data"


def generate_salt() -> bytes:
    return os.urandom(SALT_LENGTH)


def derive_key(passphrase: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _to_bytes(values: Any, field: str) -> bytes:
    if not isinstance(values, list):
        raise VaultError(DECRYPT_FAILED)
    try:
        return bytes(values)
    except (TypeError, ValueError) as exc:
        logger.debug("Stored %s is not a byte array", field)
        raise VaultError(DECRYPT_FAILED) from exc


@dataclass(frozen=True)
class EncryptedRecord:
    """An IV and the ciphertext it produced. Never handled separately."""

    iv: bytes
    ciphertext: bytes

    def to_dict(self) -> Dict[str, List[int]]:
        return {"iv": list(self.iv), "ciphertext": list(self.ciphertext)}

    @classmethod
    def from_dict(cls, data: Any) -> "EncryptedRecord":
        if not isinstance(data, dict) or "iv" not in data or "ciphertext" not in data:
            raise VaultError(DECRYPT_FAILED)
        iv = _to_bytes(data["iv"], "iv")
        if len(iv) != IV_LENGTH:
            raise VaultError(DECRYPT_FAILED)
        return cls(iv=iv, ciphertext=_to_bytes(data["ciphertext"], "ciphertext"))


def encrypt(plaintext: str, key: bytes) -> EncryptedRecord:
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    return EncryptedRecord(iv=iv, ciphertext=ciphertext)


def decrypt(record: EncryptedRecord, key: bytes) -> str:
    try:
        plaintext = AESGCM(key).decrypt(record.iv, record.ciphertext, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, ValueError) as exc:
        raise VaultError(DECRYPT_FAILED) from exc


class KeyManager:
    """Holds the derived key in a session-scoped store.

    The key is exported as base64 text so the store only sees JSON values.
    """

    def __init__(self, session_store: KeyValueStore) -> None:
        self.session_store = session_store

    def set_session_key(self, key: bytes) -> None:
        self.session_store.set(SESSION_KEY_KEY, base64.b64encode(key).decode("ascii"))

    def get_session_key(self) -> Optional[bytes]:
        exported = self.session_store.get(SESSION_KEY_KEY)
        if not exported:
            return None
        return base64.b64decode(exported)

    def has_session_key(self) -> bool:
        return bool(self.session_store.get(SESSION_KEY_KEY))

    def clear_session_key(self) -> None:
        self.session_store.remove(SESSION_KEY_KEY)
