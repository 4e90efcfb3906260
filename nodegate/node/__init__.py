"""
NodeGate node setup

Bootstrap/restart orchestration and the P2P node identity derived from
the keystore.
"""

from .bootstrap import (
    Bootstrap,
    Restart,
    StartupMode,
    NodeSetup,
    resolve_startup_mode,
    setup_node,
    bootstrap_node,
    restart_node,
    hash_password,
)
from .identity import NodeIdentity, is_valid_node_id

__all__ = [
    "Bootstrap",
    "Restart",
    "StartupMode",
    "NodeSetup",
    "resolve_startup_mode",
    "setup_node",
    "bootstrap_node",
    "restart_node",
    "hash_password",
    "NodeIdentity",
    "is_valid_node_id",
]
