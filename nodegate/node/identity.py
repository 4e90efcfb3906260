"""
P2P node identity.

The P2P endpoint is keyed by an ed25519 secret built from the 32-byte node
secret seed. Its node id is the lowercase hex encoding of the matching
public key, so the same seed always maps to the same node id.
"""

import re
import logging

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

logger = logging.getLogger(__name__)

NODE_ID_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def is_valid_node_id(node_id: str) -> bool:
    """Check ``node_id`` is a hex-encoded ed25519 public key."""
    return bool(NODE_ID_PATTERN.match(node_id.strip().lower()))


class NodeIdentity:
    """
    Identity handed to the P2P endpoint.

    Built from the secret seed produced by the bootstrap/restart flow;
    never generated randomly and never written to disk.
    """

    def __init__(self, private_key: ed25519.Ed25519PrivateKey):
        self._private_key = private_key
        self.public_key = private_key.public_key()
        self.node_id = self._compute_node_id(self.public_key)

    def __repr__(self) -> str:
        return f"NodeIdentity({self.node_id[:16]}...)"

    @classmethod
    def from_seed(cls, seed: bytes) -> "NodeIdentity":
        if len(seed) != 32:
            raise ValueError(f"Node secret seed must be 32 bytes, got {len(seed)}")
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(bytes(seed)))

    @staticmethod
    def _compute_node_id(public_key: ed25519.Ed25519PublicKey) -> str:
        pub_bytes = public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        return pub_bytes.hex()

    def secret_key_bytes(self) -> bytes:
        """Raw 32-byte secret for the P2P endpoint constructor."""
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message)
