"""
NodeGate Access Control - peer and origin allowlists

Every external-facing request must carry exactly one of:

    nodeId: <hex node id>     checked against allowed_node_ids.json
    Origin: <browser origin>  normalized, checked against allowed_domains.json

A request carrying both headers must pass both checks.

The allowlists live in one AccessControlState constructed at startup and
attached to the FastAPI app; handlers reach it through the request.
Mutations are write-through: the in-memory set and the file on disk agree
once add/remove returns, and a failed write is rolled back.
"""

import asyncio
import logging
import re
import threading
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Mapping, Optional, Set, Union

from fastapi import HTTPException, Request

from nodegate.auth.storage import DOMAINS_FILE, NODE_IDS_FILE, init_access_control, save_set
from nodegate.exceptions import (
    AllowlistWriteFailed,
    AuthorizationError,
    BadRequest,
    Forbidden,
    Unauthorized,
)

logger = logging.getLogger(__name__)

NODE_ID_HEADER = "nodeId"
ORIGIN_HEADER = "Origin"
AUTHOR_ID_HEADER = "author-id"

DOMAIN_PATTERN = re.compile(r"^(https?://)?([a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}$")


def normalize_domain(value: str) -> Optional[str]:
    """
    Reduce an origin or domain to its allowlist key.

    Strips the http(s) scheme and any path, lower-cases the rest:
    ``"https://Example.com/path"`` -> ``"example.com"``.

    Returns None if nothing usable remains.
    """
    candidate = value.strip().lower()
    for scheme in ("https://", "http://"):
        if candidate.startswith(scheme):
            candidate = candidate[len(scheme):]
            break

    host = candidate.split("/", 1)[0]
    if not host or any(c.isspace() for c in host):
        return None
    return host


def is_valid_domain(value: str) -> bool:
    """Check a domain submitted for the allowlist, scheme optional."""
    return bool(DOMAIN_PATTERN.match(value.strip()))


def normalize_node_id(value: str) -> str:
    """Allowlist key for a node id: hex is compared case-insensitively."""
    return value.strip().lower()


class AccessControlState:
    """
    Allowed node ids and domains for this node.

    Reads and in-memory mutations share one short-held lock. Disk writes
    run on a worker thread after that lock is released; only the worker
    threads writing the same file wait on each other, and each takes its
    snapshot once it holds the file, so an older snapshot never lands
    after a newer one.

    An added entry is not honored by ``is_node_allowed`` or
    ``is_domain_allowed`` until the write that carries it has finished.
    """

    def __init__(
        self,
        storage_dir: Union[str, Path],
        node_ids: Optional[Set[str]] = None,
        domains: Optional[Set[str]] = None,
    ):
        self._storage_dir = Path(storage_dir)
        self._node_ids: Set[str] = {normalize_node_id(n) for n in node_ids or ()}
        self._domains: Set[str] = set(domains or ())
        self._lock = threading.Lock()
        self._file_locks = {
            NODE_IDS_FILE: threading.Lock(),
            DOMAINS_FILE: threading.Lock(),
        }
        # additions whose write has not completed yet
        self._unsaved: Dict[str, Set[str]] = {
            NODE_IDS_FILE: set(),
            DOMAINS_FILE: set(),
        }

    @classmethod
    def load(cls, storage_dir: Union[str, Path]) -> "AccessControlState":
        """Build the state from the allowlist files in ``storage_dir``."""
        node_ids, domains = init_access_control(storage_dir)
        return cls(storage_dir, node_ids, domains)

    @property
    def storage_dir(self) -> Path:
        return self._storage_dir

    @property
    def node_ids(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._node_ids)

    @property
    def domains(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._domains)

    def is_node_allowed(self, node_id: str) -> bool:
        node_id = normalize_node_id(node_id)
        with self._lock:
            return node_id in self._node_ids and node_id not in self._unsaved[NODE_IDS_FILE]

    def is_domain_allowed(self, domain: str) -> bool:
        with self._lock:
            return domain in self._domains and domain not in self._unsaved[DOMAINS_FILE]

    async def ensure_self_registered(self, own_node_id: str) -> bool:
        """
        Allow this node's own id on the very first run.

        Only acts while the node-id allowlist is empty, so an operator who
        removed the self entry later does not get it back on restart.

        Returns:
            True if the id was added
        """
        with self._lock:
            first_run = not self._node_ids
        if not first_run:
            return False

        await self.add_node(own_node_id)
        logger.info(
            f"🟢 First run: added this node's own NodeId ({own_node_id}) to the allowed list. "
            "To allow other nodes to interact with your data, add their NodeIds using the gateway API."
        )
        return True

    async def add_node(self, node_id: str) -> bool:
        return await self._update(self._node_ids, NODE_IDS_FILE, normalize_node_id(node_id), add=True)

    async def remove_node(self, node_id: str) -> bool:
        return await self._update(self._node_ids, NODE_IDS_FILE, normalize_node_id(node_id), add=False)

    async def add_domain(self, domain: str) -> bool:
        return await self._update(self._domains, DOMAINS_FILE, self._domain_key(domain), add=True)

    async def remove_domain(self, domain: str) -> bool:
        return await self._update(self._domains, DOMAINS_FILE, self._domain_key(domain), add=False)

    @staticmethod
    def _domain_key(domain: str) -> str:
        normalized = normalize_domain(domain)
        if normalized is None:
            raise BadRequest(f"Invalid domain format: {domain!r}")
        return normalized

    async def _update(self, target: Set[str], filename: str, value: str, add: bool) -> bool:
        """
        Apply one mutation and persist the full set.

        Returns:
            True if the set changed

        Raises:
            AllowlistWriteFailed: the file could not be written; the
                in-memory change has been undone
        """
        unsaved = self._unsaved[filename]
        with self._lock:
            changed = (value not in target) if add else (value in target)
            if add:
                target.add(value)
                if changed:
                    unsaved.add(value)
            else:
                target.discard(value)

        def undo():
            if not changed:
                return
            if add:
                target.discard(value)
            else:
                target.add(value)

        try:
            await asyncio.to_thread(self._write_through, target, filename, undo)
        except OSError as e:
            raise AllowlistWriteFailed(self._storage_dir / filename, str(e)) from e
        finally:
            if add and changed:
                with self._lock:
                    unsaved.discard(value)

        action = "Allowed" if add else "Revoked"
        logger.info(f"{action} {value[:32]} ({filename})")
        return changed

    def _write_through(self, target: Set[str], filename: str, undo: Callable[[], None]) -> None:
        """
        Write the current contents of ``target`` to ``filename``.

        Runs on a worker thread. A failed write is undone before the file
        is released, so the next writer never persists the failed change.
        """
        with self._file_locks[filename]:
            with self._lock:
                snapshot = set(target)
            try:
                save_set(self._storage_dir, filename, snapshot)
            except OSError:
                with self._lock:
                    undo()
                raise

    def authorize(self, node_id: Optional[str], origin: Optional[str]) -> None:
        """
        Check a request's nodeId / Origin headers.

        Raises:
            Unauthorized: neither header present
            BadRequest: Origin cannot be normalized
            Forbidden: node id or domain not allowed
        """
        if node_id is None and origin is None:
            raise Unauthorized("Missing both nodeId and Origin headers")

        if node_id is not None and not self.is_node_allowed(node_id):
            raise Forbidden("Access denied for this nodeId")

        if origin is not None:
            domain = normalize_domain(origin)
            if domain is None:
                raise BadRequest("Invalid Origin header format")
            if not self.is_domain_allowed(domain):
                raise Forbidden(f"Access denied for domain: {domain}")


def get_author_id(headers: Mapping[str, str]) -> str:
    """
    Read the calling author from the ``author-id`` header.

    Raises:
        Unauthorized: header missing or empty
    """
    author_id = headers.get(AUTHOR_ID_HEADER)
    if not author_id:
        raise Unauthorized("Missing or invalid author-id header")
    return author_id


# Dependency injection for FastAPI
async def verify_gateway_access(request: Request) -> None:
    """
    Dependency: gate a route on the nodeId / Origin allowlists.

    Requires ``request.app.state.access_control`` to be set before the
    server accepts connections.
    """
    access_control: AccessControlState = request.app.state.access_control
    try:
        access_control.authorize(
            request.headers.get(NODE_ID_HEADER),
            request.headers.get(ORIGIN_HEADER),
        )
    except AuthorizationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
