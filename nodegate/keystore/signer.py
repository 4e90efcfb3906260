"""
Chain signer backed by the node keystore.

Holds only the chain public key; every signature is produced inside the
keystore so the private key never reaches the caller.
"""

import logging

from substrateinterface import Keypair, KeypairType

from nodegate.exceptions import SigningFailed
from nodegate.keystore.node_keystore import CHAIN_KEY_TYPE, NodeKeystore

logger = logging.getLogger(__name__)

# CORD network address format
DEFAULT_SS58_FORMAT = 29


class ChainSigner:
    """Signs chain payloads with the keystore's sr25519 chain keypair."""

    def __init__(self, keystore: NodeKeystore, public_key: bytes, ss58_format: int = DEFAULT_SS58_FORMAT):
        self.keystore = keystore
        self.public_key = public_key
        self.ss58_format = ss58_format
        self._verifier = Keypair(
            public_key=public_key,
            ss58_format=ss58_format,
            crypto_type=KeypairType.SR25519,
        )

    def __repr__(self) -> str:
        return f"ChainSigner(account={self.ss58_address})"

    @property
    def ss58_address(self) -> str:
        return self._verifier.ss58_address

    def sign(self, payload: bytes) -> bytes:
        """
        Sign ``payload`` with the chain keypair.

        Raises:
            SigningFailed: keystore holds no private key for this account
        """
        signature = self.keystore.sign(CHAIN_KEY_TYPE, self.public_key, payload)
        if signature is None:
            raise SigningFailed(f"No private key found for chain account {self.ss58_address}.")
        return signature

    def verify(self, payload: bytes, signature: bytes) -> bool:
        return self._verifier.verify(payload, signature)
