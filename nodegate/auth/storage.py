"""
Allowlist persistence.

Each allowlist is a pretty-printed JSON array of strings in the node data
directory. Writes go to a temporary file in the same directory, are
fsync'ed, then atomically renamed over the old file, so readers never see
a torn file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Set, Tuple, Union

from nodegate.exceptions import CorruptedAllowlist

logger = logging.getLogger(__name__)

NODE_IDS_FILE = "allowed_node_ids.json"
DOMAINS_FILE = "allowed_domains.json"


def init_access_control(directory: Union[str, Path]) -> Tuple[Set[str], Set[str]]:
    """
    Create ``directory`` if needed and load both allowlists.

    Missing files load as empty sets.

    Returns:
        (allowed_node_ids, allowed_domains)

    Raises:
        CorruptedAllowlist: a file exists but is not a JSON array of strings
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    node_ids = load_set(directory / NODE_IDS_FILE)
    domains = load_set(directory / DOMAINS_FILE)

    logger.info(f"Loaded access control from {directory}: {len(node_ids)} node ids, {len(domains)} domains")
    return node_ids, domains


def load_set(file_path: Path) -> Set[str]:
    """Load a set of strings from a JSON array file."""
    if not file_path.exists():
        return set()

    try:
        content = json.loads(file_path.read_text(encoding="utf-8"))
    except ValueError as e:
        raise CorruptedAllowlist(file_path, str(e)) from e

    if not isinstance(content, list) or not all(isinstance(item, str) for item in content):
        raise CorruptedAllowlist(file_path, "expected a JSON array of strings")

    return set(content)


def save_set(directory: Union[str, Path], filename: str, values: Iterable[str]) -> None:
    """
    Atomically replace ``directory/filename`` with ``values``.

    Raises:
        OSError: the file could not be written
    """
    directory = Path(directory)
    file_path = directory / filename

    fd, tmp = tempfile.mkstemp(prefix=f".{filename}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(sorted(values), f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, file_path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)

    logger.debug(f"Persisted {file_path}")
