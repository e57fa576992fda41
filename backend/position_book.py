"""
Position Book - Single owner of open positions, keyed by token.

All mutations go through an asyncio.Lock. A buy first reserves a slot so
that the concurrency ceiling counts positions whose orders are still in
flight; the slot becomes a position on success or is released on failure.
"""

import asyncio
import logging
from typing import Optional

from strategy_base import Position

logger = logging.getLogger(__name__)


class PositionBook:
    def __init__(self):
        self._positions: dict[str, Position] = {}
        self._pending: set[str] = set()
        self._recently_closed: set[str] = set()
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def reserve(self, token: str, ceiling: int) -> bool:
        """
        Claim a slot for token.

        Fails if token is already held, pending, closed during this tick,
        or if open + pending positions have reached ceiling.
        """
        async with self._lock:
            if token in self._positions or token in self._pending or token in self._recently_closed:
                return False
            if len(self._positions) + len(self._pending) >= ceiling:
                return False
            self._pending.add(token)
            return True

    async def release(self, token: str):
        """Drop a reservation whose order did not settle."""
        async with self._lock:
            self._pending.discard(token)

    async def open(self, position: Position) -> bool:
        """
        Insert a position. Returns False if one already exists for the token
        or if it has no amount or entry price; the reservation is dropped
        either way.
        """
        async with self._lock:
            self._pending.discard(position.token)
            if position.amount <= 0 or position.entry_price <= 0:
                logger.error(
                    f"Refusing position {position.token}: amount={position.amount} entry_price={position.entry_price}"
                )
                return False
            if position.token in self._positions:
                logger.error(f"Refusing duplicate position for {position.token}")
                return False
            self._positions[position.token] = position
            logger.info(f"Opened position {position.token} ({len(self._positions)} open)")
            return True

    async def close(self, token: str) -> Optional[Position]:
        """Remove and return the position. Blocks re-entry until the next tick."""
        async with self._lock:
            position = self._positions.pop(token, None)
            if position is not None:
                self._recently_closed.add(token)
                logger.info(f"Closed position {token} ({len(self._positions)} open)")
            return position

    async def begin_tick(self) -> list[Position]:
        """Start a monitoring tick: clear the re-entry block and snapshot positions."""
        async with self._lock:
            self._recently_closed.clear()
            return list(self._positions.values())

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get(self, token: str) -> Optional[Position]:
        return self._positions.get(token)

    def snapshot(self) -> list[Position]:
        return list(self._positions.values())

    def is_pending(self, token: str) -> bool:
        return token in self._pending

    def is_recently_closed(self, token: str) -> bool:
        return token in self._recently_closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def __contains__(self, token: str) -> bool:
        return token in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def to_list(self) -> list[dict]:
        return [p.to_dict() for p in self._positions.values()]
