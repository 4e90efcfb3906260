"""
NodeGate Access Control Module

Gates every external-facing request on two allowlists:
- Node ids: peers identified by the nodeId header
- Domains: browser origins identified by the Origin header
"""

from .access_control import (
    AccessControlState,
    NODE_ID_HEADER,
    ORIGIN_HEADER,
    AUTHOR_ID_HEADER,
    normalize_domain,
    normalize_node_id,
    is_valid_domain,
    get_author_id,
    verify_gateway_access,
)
from .storage import (
    NODE_IDS_FILE,
    DOMAINS_FILE,
    init_access_control,
    load_set,
    save_set,
)

__all__ = [
    "AccessControlState",
    "NODE_ID_HEADER",
    "ORIGIN_HEADER",
    "AUTHOR_ID_HEADER",
    "NODE_IDS_FILE",
    "DOMAINS_FILE",
    "normalize_domain",
    "normalize_node_id",
    "is_valid_domain",
    "get_author_id",
    "verify_gateway_access",
    "init_access_control",
    "load_set",
    "save_set",
]
