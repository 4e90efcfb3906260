"""
Node keystore: chain and node-identity keypairs under one seed phrase.

The same seed phrase produces two keypairs:

    b"cord" -> sr25519 keypair, signs transactions for the chain account
    b"node" -> ed25519 keypair, used only to derive the node secret seed

The node secret seed is BLAKE2b-256(public_key || signature), where the
signature is the ed25519 signature of DERIVATION_PAYLOAD. ed25519
signatures are deterministic, so the same keystore always yields the same
seed and therefore the same P2P node identity.
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Optional, Tuple, Union

from substrateinterface import Keypair, KeypairType
from substrateinterface.constants import DEV_PHRASE
from substrateinterface.key import extract_derive_path

from nodegate.exceptions import InvalidSeedPhrase, PublicKeyNotFound, SigningFailed
from nodegate.keystore.local_keystore import LocalKeystore

logger = logging.getLogger(__name__)

CHAIN_KEY_TYPE = b"cord"
NODE_IDENTITY_KEY_TYPE = b"node"

DERIVATION_PAYLOAD = b"node_identity_key_derivation"

KEY_SCHEMES = {
    CHAIN_KEY_TYPE: KeypairType.SR25519,
    NODE_IDENTITY_KEY_TYPE: KeypairType.ED25519,
}

_SCHEME_NAMES = {
    KeypairType.SR25519: "sr25519",
    KeypairType.ED25519: "ed25519",
}

SURI_PATTERN = re.compile(r"^(?P<phrase>[^/]+)(?P<path>(?://?[^/]+)*)(?:///(?P<password>.*))?$")

# SCALE-encoded "Ed25519HDKD": compact length prefix (11 << 2) then the bytes
_ED25519_HDKD = bytes([11 << 2]) + b"Ed25519HDKD"


def keypair_from_suri(suri: str, crypto_type: int, ss58_format: int = 42) -> Keypair:
    """
    Build a keypair from a secret URI.

    Accepts ``<phrase><path>`` where the phrase is a ``0x``-prefixed
    32-byte hex seed or a BIP39 mnemonic, and the optional path is a list
    of ``//hard`` and ``/soft`` junctions. A URI starting with ``/`` is
    derived from the development phrase, as in ``//Alice``. ed25519 keys
    only accept hard junctions.

    Raises:
        InvalidSeedPhrase: phrase cannot be turned into a keypair
    """
    scheme = _SCHEME_NAMES.get(crypto_type, str(crypto_type))
    phrase = suri.strip()
    if not phrase:
        raise InvalidSeedPhrase(scheme, "seed phrase is empty")

    try:
        if crypto_type == KeypairType.ED25519:
            seed = ed25519_seed_from_suri(phrase)
            return Keypair.create_from_seed(seed, ss58_format=ss58_format, crypto_type=crypto_type)
        if phrase.startswith("0x"):
            return Keypair.create_from_seed(phrase, ss58_format=ss58_format, crypto_type=crypto_type)
        return Keypair.create_from_uri(phrase, ss58_format=ss58_format, crypto_type=crypto_type)
    except Exception as e:
        # the sr25519/ed25519/bip39 bindings raise a mix of exception types
        raise InvalidSeedPhrase(scheme, str(e) or type(e).__name__) from e


def blake2_256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def ed25519_seed_from_suri(suri: str) -> bytes:
    """
    Resolve a secret URI to the 32-byte ed25519 seed it names.

    Each ``//junction`` replaces the seed with
    BLAKE2b-256(SCALE("Ed25519HDKD") || seed || chain_code).

    Raises:
        ValueError: malformed URI, soft junction or SURI password
    """
    if suri.startswith("/"):
        suri = DEV_PHRASE + suri

    match = SURI_PATTERN.match(suri)
    if match is None:
        raise ValueError("Malformed secret URI")
    if match.group("password") is not None:
        raise ValueError("Passwords in secret URIs are not supported")

    phrase = match.group("phrase").strip()
    if phrase.startswith("0x"):
        seed = bytes.fromhex(phrase[2:])
        if len(seed) != 32:
            raise ValueError(f"Hex seed must be 32 bytes, got {len(seed)}")
    else:
        seed_hex = Keypair.create_from_mnemonic(phrase, crypto_type=KeypairType.ED25519).seed_hex
        seed = bytes.fromhex(seed_hex.replace("0x", "")) if isinstance(seed_hex, str) else bytes(seed_hex)

    path = match.group("path")
    for junction in extract_derive_path(path) if path else ():
        if not junction.is_hard:
            raise ValueError("ed25519 keys only support hard (//) derivation junctions")
        seed = blake2_256(_ED25519_HDKD + seed + bytes(junction.chain_code))
    return seed


class NodeKeystore:
    """
    Keystore holding the chain and node-identity keypairs.

    WHEN TO USE:
        ``bootstrap`` + ``initialize_keypairs`` on the first run,
        ``open`` on every restart.
    """

    def __init__(self, keystore: LocalKeystore):
        self._keystore = keystore

    def __repr__(self) -> str:
        return f"NodeKeystore({self._keystore!r})"

    @classmethod
    def bootstrap(cls, path: Union[str, Path], secret: Optional[str] = None) -> "NodeKeystore":
        return cls(LocalKeystore.bootstrap(path, secret))

    @classmethod
    def open(cls, path: Union[str, Path], secret: Optional[str] = None) -> "NodeKeystore":
        return cls(LocalKeystore.open(path, secret))

    @property
    def inner(self) -> LocalKeystore:
        return self._keystore

    def initialize_keypairs(self, seed_phrase: str) -> Tuple[bytes, bytes]:
        """
        Derive both keypairs from ``seed_phrase`` and store them.

        Only the seed phrase and the public keys are written.

        Returns:
            (chain_public_key, node_identity_public_key)

        Raises:
            InvalidSeedPhrase: phrase is rejected by either scheme
        """
        suri = seed_phrase.strip()

        # derive both before inserting so a rejected phrase leaves no entries
        chain_pair = keypair_from_suri(suri, KEY_SCHEMES[CHAIN_KEY_TYPE])
        node_pair = keypair_from_suri(suri, KEY_SCHEMES[NODE_IDENTITY_KEY_TYPE])

        self._keystore.insert(CHAIN_KEY_TYPE, suri, chain_pair.public_key)
        self._keystore.insert(NODE_IDENTITY_KEY_TYPE, suri, node_pair.public_key)

        logger.info(f"Stored chain key 0x{chain_pair.public_key.hex()[:16]}...")
        logger.info(f"Stored node identity key 0x{node_pair.public_key.hex()[:16]}...")
        return chain_pair.public_key, node_pair.public_key

    def _first_public_key(self, key_type: bytes, key_name: str) -> bytes:
        keys = self._keystore.public_keys(key_type)
        if not keys:
            raise PublicKeyNotFound(key_name)
        return keys[0]

    def get_chain_public_key(self) -> bytes:
        return self._first_public_key(CHAIN_KEY_TYPE, "Chain")

    def get_node_identity_public_key(self) -> bytes:
        return self._first_public_key(NODE_IDENTITY_KEY_TYPE, "Node identity")

    def sign(self, key_type: bytes, public_key: bytes, payload: bytes) -> Optional[bytes]:
        """
        Sign ``payload`` with the private key behind ``public_key``.

        The private key is regenerated from the stored seed phrase and
        dropped after signing. Returns None when the keystore holds no
        matching private key.
        """
        suri = self._keystore.key_phrase(key_type, public_key)
        if suri is None:
            return None

        try:
            keypair = keypair_from_suri(suri, KEY_SCHEMES[key_type])
        except InvalidSeedPhrase as e:
            logger.warning(f"Stored seed phrase for {key_type.decode()} key is unusable: {e}")
            return None

        if keypair.public_key != public_key:
            return None
        return keypair.sign(payload)

    def derive_node_secret_seed(self, node_identity_public_key: bytes) -> bytes:
        """
        Derive the 32-byte secret seed for the P2P endpoint.

        Raises:
            SigningFailed: no private key for ``node_identity_public_key``
        """
        signature = self.sign(NODE_IDENTITY_KEY_TYPE, node_identity_public_key, DERIVATION_PAYLOAD)
        if signature is None:
            raise SigningFailed()

        return blake2_256(bytes(node_identity_public_key) + bytes(signature))
