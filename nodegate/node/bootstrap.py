"""
Bootstrap / restart orchestration.

    Start -> validate arguments -> Bootstrap | Restart -> NodeSetup

The startup mode is decided once from the command line and never
re-evaluated. Bootstrap creates the data directory:

    <path>/
        password        hex BLAKE2b-256 of the node password
        keystore/       encrypted keystore (see nodegate.keystore)

Restart requires that layout and the same password. Both flows finish by
deriving the node secret seed from the node-identity key, so a node keeps
its network identity across restarts without storing a private key.
"""

import hashlib
import hmac
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from nodegate.exceptions import (
    DirectoryAlreadyConfigured,
    DirectoryNotConfigured,
    IncorrectPassword,
    MissingPassword,
    MissingSeedPhrase,
    SeedPhraseNotAllowedOnRestart,
)
from nodegate.keystore.node_keystore import NodeKeystore
from nodegate.keystore.signer import ChainSigner, DEFAULT_SS58_FORMAT

logger = logging.getLogger(__name__)

PASSWORD_FILE = "password"
KEYSTORE_DIR = "keystore"


@dataclass(frozen=True)
class Bootstrap:
    """First run: create the node from a seed phrase."""
    seed_phrase: str = field(repr=False)
    secondary_secret: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class Restart:
    """Subsequent run: reopen an existing node."""
    secondary_secret: Optional[str] = field(default=None, repr=False)


StartupMode = Union[Bootstrap, Restart]


@dataclass
class NodeSetup:
    """Everything the node needs once the keystore is ready."""
    secret_seed: bytes = field(repr=False)
    chain_public_key: bytes
    node_identity_public_key: bytes
    signer: ChainSigner
    keystore: NodeKeystore


def resolve_startup_mode(
    password: Optional[str],
    bootstrap: bool,
    seed_phrase: Optional[str] = None,
    secret: Optional[str] = None,
) -> StartupMode:
    """
    Validate command-line input and pick the startup mode.

    Raises:
        MissingPassword: no password supplied
        SeedPhraseNotAllowedOnRestart: seed phrase without --bootstrap
        MissingSeedPhrase: --bootstrap without a seed phrase
    """
    if not password:
        raise MissingPassword()

    if not bootstrap:
        if seed_phrase is not None:
            raise SeedPhraseNotAllowedOnRestart()
        return Restart(secondary_secret=secret)

    if not seed_phrase or not seed_phrase.strip():
        raise MissingSeedPhrase()
    return Bootstrap(seed_phrase=seed_phrase, secondary_secret=secret)


def hash_password(password: str) -> str:
    return hashlib.blake2b(password.encode("utf-8"), digest_size=32).hexdigest()


def verify_password(path: Path, password: str) -> None:
    """
    Compare ``password`` against the stored hash.

    Raises:
        DirectoryNotConfigured: no password marker at ``path``
        IncorrectPassword: hash mismatch
    """
    password_file = path / PASSWORD_FILE
    if not password_file.exists():
        raise DirectoryNotConfigured(path)

    stored_hash = password_file.read_text(encoding="utf-8").strip()
    if not hmac.compare_digest(stored_hash, hash_password(password)):
        raise IncorrectPassword()


def bootstrap_node(
    path: Union[str, Path],
    password: str,
    mode: Bootstrap,
    ss58_format: int = DEFAULT_SS58_FORMAT,
) -> NodeSetup:
    """
    First-run setup.

    Raises:
        DirectoryAlreadyConfigured: ``path`` already exists
    """
    path = Path(path)
    if path.exists():
        raise DirectoryAlreadyConfigured(path)

    logger.info(f"Bootstrapping node at {path}")
    path.mkdir(parents=True)
    try:
        (path / PASSWORD_FILE).write_text(hash_password(password), encoding="utf-8")

        keystore_path = path / KEYSTORE_DIR
        keystore_path.mkdir()
        keystore = NodeKeystore.bootstrap(keystore_path, mode.secondary_secret)

        chain_public, node_public = keystore.initialize_keypairs(mode.seed_phrase)
        secret_seed = keystore.derive_node_secret_seed(node_public)
    except Exception:
        # leave nothing behind so the operator can retry the bootstrap
        shutil.rmtree(path, ignore_errors=True)
        raise

    logger.info("✅ Node bootstrapped")
    return NodeSetup(
        secret_seed=secret_seed,
        chain_public_key=chain_public,
        node_identity_public_key=node_public,
        signer=ChainSigner(keystore, chain_public, ss58_format=ss58_format),
        keystore=keystore,
    )


def restart_node(
    path: Union[str, Path],
    password: str,
    mode: Restart,
    ss58_format: int = DEFAULT_SS58_FORMAT,
) -> NodeSetup:
    """
    Subsequent-run setup.

    Raises:
        DirectoryNotConfigured: ``path`` was never bootstrapped
        IncorrectPassword: password does not match the stored hash
    """
    path = Path(path)
    if not path.exists():
        raise DirectoryNotConfigured(path)

    verify_password(path, password)

    logger.info(f"Restarting node from {path}")
    keystore = NodeKeystore.open(path / KEYSTORE_DIR, mode.secondary_secret)
    node_public = keystore.get_node_identity_public_key()
    chain_public = keystore.get_chain_public_key()
    secret_seed = keystore.derive_node_secret_seed(node_public)

    logger.info("✅ Node keystore unlocked")
    return NodeSetup(
        secret_seed=secret_seed,
        chain_public_key=chain_public,
        node_identity_public_key=node_public,
        signer=ChainSigner(keystore, chain_public, ss58_format=ss58_format),
        keystore=keystore,
    )


def setup_node(
    path: Union[str, Path],
    password: str,
    mode: StartupMode,
    ss58_format: int = DEFAULT_SS58_FORMAT,
) -> NodeSetup:
    """Run the flow selected by ``mode``."""
    if not password:
        raise MissingPassword()

    if isinstance(mode, Bootstrap):
        return bootstrap_node(path, password, mode, ss58_format=ss58_format)
    if isinstance(mode, Restart):
        return restart_node(path, password, mode, ss58_format=ss58_format)
    raise TypeError(f"Unknown startup mode: {mode!r}")
