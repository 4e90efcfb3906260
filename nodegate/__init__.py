"""
NodeGate - identity bootstrap and access control for a peer-to-peer node

Quick Start:
    >>> from nodegate import Bootstrap, Restart, setup_node, NodeIdentity
    >>>
    >>> # First run: create the keystore from a seed phrase
    >>> setup = setup_node("./node_data", "password", Bootstrap(seed_phrase="0x..."))
    >>>
    >>> # Later runs: same password, same node identity
    >>> again = setup_node("./node_data", "password", Restart())
    >>> assert again.secret_seed == setup.secret_seed
    >>>
    >>> NodeIdentity.from_seed(again.secret_seed).node_id

Features:
    - Password-gated bootstrap / restart of the node data directory
    - Encrypted keystore holding only seed phrases and public keys
    - Deterministic P2P node identity derived from the keystore
    - Write-through allowlists of peer node ids and browser origins
    - FastAPI gateway checking every request's nodeId / Origin headers
"""

from nodegate.auth import AccessControlState, normalize_domain
from nodegate.keystore import ChainSigner, NodeKeystore
from nodegate.node import (
    Bootstrap,
    NodeIdentity,
    NodeSetup,
    Restart,
    resolve_startup_mode,
    setup_node,
)

__version__ = "1.0.0"
__author__ = "NodeGate Team"

__all__ = [
    "AccessControlState",
    "normalize_domain",
    "ChainSigner",
    "NodeKeystore",
    "Bootstrap",
    "Restart",
    "NodeSetup",
    "NodeIdentity",
    "resolve_startup_mode",
    "setup_node",
]
