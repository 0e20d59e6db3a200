"""
Filesystem asset store adapter - Implements AssetStore protocol.

Assets are files below a root directory, addressed by a relative key such
as "memomi/memomi.html". Keys that resolve outside the root are treated as
missing.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class FileSystemAssetStore:
    """Implements AssetStore protocol by reading files from disk."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def fetch(self, key: str) -> bytes | None:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            logger.warning("Rejected asset key outside download root: %s", key)
            return None
        if not path.is_file():
            return None
        return path.read_bytes()
