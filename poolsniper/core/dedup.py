"""
Deduplication Store
Remembers every pool and market id the listener has already dispatched
"""

from typing import Set


class SeenSet:
    """
    Grow-only set of account ids

    There is no eviction, memory grows with the number of distinct ids seen
    during the process lifetime.
    """

    def __init__(self):
        self._seen: Set[str] = set()

    def has_seen(self, key: str) -> bool:
        return str(key) in self._seen

    def mark_seen(self, key: str) -> None:
        self._seen.add(str(key))

    def check_and_mark(self, key: str) -> bool:
        """
        Mark key as seen

        Returns:
            True if this is the first time the key was seen
        """
        key = str(key)
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __len__(self) -> int:
        return len(self._seen)


class DeduplicationStore:
    """Independent seen-sets for pools and markets"""

    def __init__(self):
        self.pools = SeenSet()
        self.markets = SeenSet()
