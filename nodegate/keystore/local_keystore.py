"""
Encrypted on-disk keystore.

Directory layout:
    keystore/
        keystore.json                 metadata (version, kdf parameters, check token)
        636f7264d43593c715fd...       one entry per key: hex(key_type) + hex(public_key)

An entry holds the seed phrase its keypair was generated from, never the
private key. Private keys are regenerated from the phrase on demand.

When a secret is supplied at bootstrap, every entry is sealed with
AES-256-GCM under a key stretched from the secret with scrypt, and a check
token in the metadata lets ``open`` tell a wrong secret apart from a
missing one.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from nodegate.exceptions import (
    IncorrectOrMissingPassword,
    KeystoreCreationFailed,
    KeystoreError,
    KeystoreNotFound,
)

logger = logging.getLogger(__name__)

METADATA_FILE = "keystore.json"
KEYSTORE_VERSION = 1

# scrypt work factors
SCRYPT_N = 2 ** 14
SCRYPT_R = 8
SCRYPT_P = 1

_AAD = b"nodegate/keystore/v1"
_CHECK_PLAINTEXT = b"nodegate-keystore-check"


def _derive_cipher_key(secret: str, salt: bytes, n: int = SCRYPT_N, r: int = SCRYPT_R, p: int = SCRYPT_P) -> bytes:
    kdf = Scrypt(salt=salt, length=32, n=n, r=r, p=p)
    return kdf.derive(secret.encode("utf-8"))


def _seal(cipher_key: bytes, plaintext: bytes) -> dict:
    nonce = os.urandom(12)
    ciphertext = AESGCM(cipher_key).encrypt(nonce, plaintext, _AAD)
    return {"nonce": nonce.hex(), "ct": ciphertext.hex()}


def _open_sealed(cipher_key: bytes, envelope: dict) -> bytes:
    """Raises InvalidTag when the key does not match."""
    return AESGCM(cipher_key).decrypt(
        bytes.fromhex(envelope["nonce"]),
        bytes.fromhex(envelope["ct"]),
        _AAD,
    )


class LocalKeystore:
    """
    Filesystem keystore mapping (key type, seed phrase) -> public key.

    Use ``bootstrap`` on first run and ``open`` afterwards; the
    constructor does not touch the disk.
    """

    def __init__(self, path: Path, cipher_key: Optional[bytes] = None):
        self.path = Path(path)
        self._cipher_key = cipher_key

    def __repr__(self) -> str:
        return f"LocalKeystore(path={str(self.path)!r}, encrypted={self.encrypted})"

    @property
    def encrypted(self) -> bool:
        return self._cipher_key is not None

    @classmethod
    def bootstrap(cls, path: Union[str, Path], secret: Optional[str] = None) -> "LocalKeystore":
        """
        Create a new keystore at ``path``.

        Args:
            path: Keystore directory (created if missing)
            secret: Optional secret used to encrypt every entry

        Raises:
            KeystoreCreationFailed: path is not writable or already holds a keystore
        """
        path = Path(path)
        metadata_path = path / METADATA_FILE
        if metadata_path.exists():
            raise KeystoreCreationFailed(f"A keystore already exists at {path}")

        if secret is None:
            logger.info("⚠️  No secret provided. Setting up the keystore without encryption.")

        metadata = {"version": KEYSTORE_VERSION, "encrypted": secret is not None}
        cipher_key = None
        try:
            path.mkdir(parents=True, exist_ok=True)
            if secret is not None:
                salt = os.urandom(16)
                cipher_key = _derive_cipher_key(secret, salt)
                metadata["kdf"] = {
                    "name": "scrypt",
                    "n": SCRYPT_N,
                    "r": SCRYPT_R,
                    "p": SCRYPT_P,
                    "salt": salt.hex(),
                }
                metadata["check"] = _seal(cipher_key, _CHECK_PLAINTEXT)
            metadata_path.write_text(json.dumps(metadata, indent=2), encoding="utf-8")
        except OSError as e:
            raise KeystoreCreationFailed(f"Failed to create keystore at {path}: {e}") from e

        logger.info(f"Created keystore at {path} (encrypted: {cipher_key is not None})")
        return cls(path, cipher_key)

    @classmethod
    def open(cls, path: Union[str, Path], secret: Optional[str] = None) -> "LocalKeystore":
        """
        Open an existing keystore.

        Raises:
            KeystoreNotFound: path does not exist or holds no keystore
            IncorrectOrMissingPassword: the secret is required but missing,
                wrong, or supplied for an unencrypted keystore
        """
        path = Path(path)
        metadata_path = path / METADATA_FILE
        if not path.exists() or not metadata_path.exists():
            raise KeystoreNotFound(path)

        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise KeystoreError(f"Keystore metadata at {metadata_path} is unreadable: {e}") from e

        if not metadata.get("encrypted"):
            if secret is not None:
                raise IncorrectOrMissingPassword(
                    "❌ Keystore is not encrypted. Restart without --secret.",
                    secret_supplied=True,
                )
            return cls(path)

        if secret is None:
            raise IncorrectOrMissingPassword(
                "❌ Keystore is password-protected. Please provide a password using --secret.",
                secret_supplied=False,
            )

        try:
            kdf = metadata["kdf"]
            cipher_key = _derive_cipher_key(
                secret, bytes.fromhex(kdf["salt"]), n=kdf["n"], r=kdf["r"], p=kdf["p"]
            )
            _open_sealed(cipher_key, metadata["check"])
        except InvalidTag:
            raise IncorrectOrMissingPassword(
                "❌ Failed to open keystore. Incorrect secret provided. Please verify and try again.",
                secret_supplied=True,
            ) from None
        except (KeyError, TypeError, ValueError) as e:
            raise KeystoreError(f"Keystore metadata at {metadata_path} is malformed: {e}") from e

        return cls(path, cipher_key)

    def _entry_path(self, key_type: bytes, public_key: bytes) -> Path:
        return self.path / (key_type.hex() + public_key.hex())

    def insert(self, key_type: bytes, suri: str, public_key: bytes) -> None:
        """Store ``suri`` under (key_type, public_key)."""
        if self._cipher_key is None:
            payload = suri
        else:
            payload = _seal(self._cipher_key, suri.encode("utf-8"))

        entry_path = self._entry_path(key_type, public_key)
        try:
            entry_path.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as e:
            raise KeystoreError(f"Failed to insert key into keystore: {e}") from e

        # entries contain the seed phrase
        os.chmod(entry_path, 0o600)
        logger.debug(f"Inserted {key_type.decode()} key {public_key.hex()[:16]}...")

    def public_keys(self, key_type: bytes) -> List[bytes]:
        """All public keys stored for ``key_type``, in sorted order."""
        prefix = key_type.hex()
        keys = []
        for name in sorted(os.listdir(self.path)):
            if not name.startswith(prefix) or name == METADATA_FILE:
                continue
            try:
                keys.append(bytes.fromhex(name[len(prefix):]))
            except ValueError:
                continue
        return keys

    def key_phrase(self, key_type: bytes, public_key: bytes) -> Optional[str]:
        """
        Return the seed phrase stored for (key_type, public_key).

        Returns None when no entry exists or the entry cannot be read
        with this keystore's secret.
        """
        entry_path = self._entry_path(key_type, public_key)
        if not entry_path.exists():
            return None

        try:
            payload = json.loads(entry_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable keystore entry {entry_path.name}: {e}")
            return None

        if self._cipher_key is None:
            return payload if isinstance(payload, str) else None

        if not isinstance(payload, dict):
            return None
        try:
            return _open_sealed(self._cipher_key, payload).decode("utf-8")
        except (InvalidTag, KeyError, ValueError):
            logger.warning(f"Keystore entry {entry_path.name} cannot be decrypted")
            return None
