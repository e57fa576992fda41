"""
Pool Registry - First-seen dedup for discovery events.

The discovery feed is at-least-once; a pool may be announced many times.
Entries are never evicted during a run.
"""

import logging
import time

logger = logging.getLogger(__name__)


class PoolRegistry:
    """Set of pool ids admitted for processing."""

    def __init__(self):
        self._seen: dict[str, float] = {}  # pool_id -> first seen timestamp

    def admit(self, pool_id: str) -> bool:
        """True exactly once per pool id; False on every repeat."""
        if pool_id in self._seen:
            return False
        self._seen[pool_id] = time.time()
        logger.debug(f"Admitted pool {pool_id} ({len(self._seen)} tracked)")
        return True

    def first_seen(self, pool_id: str):
        return self._seen.get(pool_id)

    def __contains__(self, pool_id: str) -> bool:
        return pool_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)
