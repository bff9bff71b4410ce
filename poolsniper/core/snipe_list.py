"""
Snipe List Loader

Newline-delimited file of pool ids the bot is allowed to buy. Lines are
trimmed and blank lines dropped. The file is re-read on a timer, so ids can
be added while the bot runs.

Usage:
    snipe_list = SnipeListLoader("snipe-list.txt")
    if snipe_list.contains(pool_id):
        ...
"""

from pathlib import Path
from typing import FrozenSet

from poolsniper.core.logger import get_logger


logger = get_logger(__name__)


class SnipeListLoader:
    """In-memory allow-list of pool ids with O(1) lookup"""

    def __init__(self, path: str):
        """
        Args:
            path: Path to the snipe list file
        """
        self.path = Path(path)
        self._ids: FrozenSet[str] = frozenset()

    def reload(self) -> int:
        """
        Re-read the file

        A missing or unreadable file keeps the previous list.

        Returns:
            Number of ids loaded
        """
        try:
            text = self.path.read_text(encoding='utf-8')
        except OSError as e:
            logger.warning("snipe_list_unreadable", path=str(self.path), error=str(e))
            return len(self._ids)

        ids = frozenset(line.strip() for line in text.splitlines() if line.strip())
        previous = len(self._ids)
        self._ids = ids

        if len(ids) != previous:
            logger.info("snipe_list_loaded", count=len(ids))
        return len(ids)

    def contains(self, pool_id) -> bool:
        return str(pool_id) in self._ids

    def __len__(self) -> int:
        return len(self._ids)
