"""
NodeGate keystore

Encrypted storage for the chain and node-identity keypairs, plus the
deterministic node secret seed derivation.
"""

from .local_keystore import LocalKeystore
from .node_keystore import (
    CHAIN_KEY_TYPE,
    NODE_IDENTITY_KEY_TYPE,
    DERIVATION_PAYLOAD,
    NodeKeystore,
    keypair_from_suri,
)
from .signer import ChainSigner, DEFAULT_SS58_FORMAT

__all__ = [
    "LocalKeystore",
    "NodeKeystore",
    "ChainSigner",
    "CHAIN_KEY_TYPE",
    "NODE_IDENTITY_KEY_TYPE",
    "DERIVATION_PAYLOAD",
    "DEFAULT_SS58_FORMAT",
    "keypair_from_suri",
]
