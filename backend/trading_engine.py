"""
Trading Engine - Discovery-driven buys and interval-driven exits.

Two independent schedules share one PositionBook:
- Discovery: feed -> PoolRegistry dedup -> bounded queue -> N workers ->
  buy gates -> buy task -> PositionBook.open
- Monitoring: every tick, a snapshot of open positions -> price -> exit
  decision -> sell task -> PositionBook.close

Each order runs as its own task so a slow confirmation never stalls the
schedules. One token's failure is logged and reported as an event, never
propagated to the loops.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from config import BotConfig
from executor import ExecutionClient
from market_data import MarketDataSource
from pool_feed import PoolDiscoveryFeed
from pool_registry import PoolRegistry
from position_book import PositionBook
from snipe_list import SnipeList
from strategy_base import PoolSnapshot, Position
from strategy_manager import StrategyManager

logger = logging.getLogger(__name__)
trade_logger = logging.getLogger("trades")

MAX_EVENTS = 200


class EventKind(Enum):
    SKIP = "skip"
    BUY_ATTEMPT = "buy_attempt"
    BUY_CONFIRMED = "buy_confirmed"
    BUY_FAILED = "buy_failed"
    SELL_ATTEMPT = "sell_attempt"
    SELL_CONFIRMED = "sell_confirmed"
    SELL_FAILED = "sell_failed"
    ERROR = "error"


class SkipReason(Enum):
    QUEUE_FULL = "queue_full"
    POOL_UNAVAILABLE = "pool_unavailable"
    ALREADY_HELD = "already_held"
    RECENTLY_CLOSED = "recently_closed"
    POSITION_LIMIT = "position_limit"
    NOT_IN_SNIPE_LIST = "not_in_snipe_list"
    LOW_LIQUIDITY = "low_liquidity"
    STRATEGY_DECLINED = "strategy_declined"
    PRICE_UNAVAILABLE = "price_unavailable"


@dataclass
class TradeEvent:
    """Observable record of a trade attempt, outcome or skip."""
    kind: EventKind
    token: Optional[str]
    pool_id: Optional[str]
    reason: str
    details: dict = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "token": self.token,
            "pool_id": self.pool_id,
            "reason": self.reason,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class TradingEngine:
    def __init__(
        self,
        config: BotConfig,
        manager: StrategyManager,
        executor: ExecutionClient,
        market_data: MarketDataSource,
        registry: Optional[PoolRegistry] = None,
        book: Optional[PositionBook] = None,
        snipe_list: Optional[SnipeList] = None,
        on_event: Optional[Callable[[TradeEvent], None]] = None,
    ):
        self.config = config
        self.manager = manager
        self.executor = executor
        self.market_data = market_data
        self.registry = registry or PoolRegistry()
        self.book = book or PositionBook()
        self.snipe_list = snipe_list
        self.on_event = on_event

        self.feed: Optional[PoolDiscoveryFeed] = None
        self.running = False
        self.started_at: Optional[float] = None
        self.events: deque[TradeEvent] = deque(maxlen=MAX_EVENTS)
        self.stats = {
            "pools_discovered": 0,
            "buys": 0,
            "buys_failed": 0,
            "sells": 0,
            "sells_failed": 0,
            "errors": 0,
            "skips": {},
        }

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=config.discovery_queue_size)
        self._loops: list[asyncio.Task] = []
        self._order_tasks: dict[str, asyncio.Task] = {}  # "buy:<mint>" / "sell:<mint>" -> task

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _emit(
        self,
        kind: EventKind,
        token: Optional[str],
        pool_id: Optional[str],
        reason: str,
        **details,
    ) -> TradeEvent:
        event = TradeEvent(kind=kind, token=token, pool_id=pool_id, reason=reason, details=details)
        self.events.append(event)

        if kind == EventKind.SKIP:
            skips = self.stats["skips"]
            skips[reason] = skips.get(reason, 0) + 1
            logger.debug(f"Skip {token or pool_id}: {reason} {details or ''}")
        else:
            trade_logger.info(f"{kind.value.upper()} | {token} | pool={pool_id} | {reason} | {details}")

        if self.on_event:
            try:
                self.on_event(event)
            except Exception as e:
                logger.error(f"Event callback error: {e}")
        return event

    def _skip(self, snapshot: Optional[PoolSnapshot], pool_id: str, reason: SkipReason, **details):
        token = snapshot.base_mint if snapshot else None
        self._emit(EventKind.SKIP, token, pool_id, reason.value, **details)

    def recent_events(self, limit: int = 50) -> list[dict]:
        return [e.to_dict() for e in list(self.events)[-limit:]]

    # -------------------------------------------------------------------------
    # Discovery
    # -------------------------------------------------------------------------

    def on_pool_discovered(self, pool_id: str) -> bool:
        """Feed callback. Admits each pool once and queues it for a worker."""
        if not self.registry.admit(pool_id):
            return False

        self.stats["pools_discovered"] += 1
        try:
            self._queue.put_nowait(pool_id)
        except asyncio.QueueFull:
            logger.warning(f"Discovery queue full, dropping pool {pool_id}")
            self._skip(None, pool_id, SkipReason.QUEUE_FULL)
            return False

        logger.info(f"New pool detected: {pool_id}")
        return True

    async def _discovery_worker(self, worker_id: int):
        while True:
            pool_id = await self._queue.get()
            try:
                await self.process_pool(pool_id)
            except Exception as e:
                self.stats["errors"] += 1
                logger.error(f"[worker {worker_id}] Error processing pool {pool_id}: {e}")
                self._emit(EventKind.ERROR, None, pool_id, f"{type(e).__name__}: {e}")
            finally:
                self._queue.task_done()

    async def process_pool(self, pool_id: str) -> bool:
        """
        Run the buy gates for a pool and dispatch the buy.

        Returns True if a buy task was started.
        """
        snapshot = await self.executor.get_pool(pool_id)
        if snapshot is None:
            logger.warning(f"Failed to fetch pool info for {pool_id}")
            self._skip(None, pool_id, SkipReason.POOL_UNAVAILABLE)
            return False

        skip = self.check_buy_gates(snapshot)
        if skip is not None:
            self._skip(snapshot, pool_id, skip)
            return False

        token = snapshot.base_mint
        facts = await self.market_data.fetch(token) if self.manager.needs_market_data else None
        decision = self.manager.evaluate_buy(snapshot, facts)
        if not decision:
            self._skip(snapshot, pool_id, SkipReason.STRATEGY_DECLINED, detail=decision.reason)
            return False

        # Atomic re-check: another worker may have taken the last slot meanwhile
        if not await self.book.reserve(token, self.config.max_positions):
            self._skip(snapshot, pool_id, self.check_buy_gates(snapshot) or SkipReason.POSITION_LIMIT)
            return False

        amount = min(self.manager.size_position(snapshot), self.config.quote_amount_units())
        self._spawn(f"buy:{token}", self._execute_buy(snapshot, amount, decision.reason))
        return True

    def check_buy_gates(self, snapshot: PoolSnapshot) -> Optional[SkipReason]:
        """Pre-strategy gates in order. None if the pool may be evaluated."""
        token = snapshot.base_mint

        if token in self.book or self.book.is_pending(token):
            return SkipReason.ALREADY_HELD
        if self.book.is_recently_closed(token):
            return SkipReason.RECENTLY_CLOSED

        if len(self.book) + self.book.pending_count >= self.config.max_positions:
            return SkipReason.POSITION_LIMIT

        if self.snipe_list is not None and not self.snipe_list.allows(token):
            return SkipReason.NOT_IN_SNIPE_LIST

        if not self.executor.has_minimum_liquidity(snapshot, self.config.min_pool_size):
            return SkipReason.LOW_LIQUIDITY

        return None

    async def _execute_buy(self, snapshot: PoolSnapshot, amount: int, reason: str):
        token, pool_id = snapshot.base_mint, snapshot.pool_id
        self._emit(EventKind.BUY_ATTEMPT, token, pool_id, reason, amount_in=str(amount))

        try:
            outcome = await self.executor.buy(snapshot, amount)
        except Exception as e:
            await self.book.release(token)
            self.stats["errors"] += 1
            logger.error(f"Buy error for {token}: {e}")
            self._emit(EventKind.ERROR, token, pool_id, f"{type(e).__name__}: {e}")
            return

        if not outcome.success:
            await self.book.release(token)
            self.stats["buys_failed"] += 1
            self._emit(EventKind.BUY_FAILED, token, pool_id, outcome.error or "failed", failure=outcome.failure.value)
            return

        entry_price = None
        try:
            entry_price = await self.executor.get_current_price(pool_id)
        except Exception as e:
            logger.warning(f"Entry price re-fetch failed for {token}: {e}")
        if not entry_price:
            entry_price = outcome.fill_price

        position = Position(
            token=token,
            pool_id=pool_id,
            entry_price=entry_price,
            amount=outcome.amount_out,
            entry_value=amount,
            opened_at=time.time(),
            strategy=self.manager.active_strategy,
            entry_signature=outcome.signature,
        )
        if not await self.book.open(position):
            self.stats["buys_failed"] += 1
            self._emit(
                EventKind.BUY_FAILED,
                token,
                pool_id,
                "settled position refused",
                signature=outcome.signature,
                entry_price=entry_price,
                amount=str(outcome.amount_out),
            )
            return
        self.stats["buys"] += 1
        self._emit(
            EventKind.BUY_CONFIRMED,
            token,
            pool_id,
            reason,
            signature=outcome.signature,
            entry_price=entry_price,
            amount=str(outcome.amount_out),
        )

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    async def monitor_tick(self) -> int:
        """
        One monitoring pass over a snapshot of open positions.

        Returns the number of exit evaluations dispatched.
        """
        positions = await self.book.begin_tick()
        dispatched = 0
        for position in positions:
            key = f"sell:{position.token}"
            if key in self._order_tasks:
                continue
            # Closed since the snapshot was taken
            if self.book.get(position.token) is not position:
                continue
            self._spawn(key, self._evaluate_exit(position))
            dispatched += 1
        return dispatched

    async def _current_price(self, position: Position):
        facts = await self.market_data.fetch(position.token)
        if facts is not None and facts.price > 0:
            return facts.price, facts
        return await self.executor.get_current_price(position.pool_id), facts

    async def _evaluate_exit(self, position: Position):
        token, pool_id = position.token, position.pool_id
        try:
            price, facts = await self._current_price(position)
            if price is None:
                self._skip(None, pool_id, SkipReason.PRICE_UNAVAILABLE, token=token)
                return

            decision = self.manager.evaluate_sell(position, price, facts)
            if not decision:
                return

            snapshot = await self.executor.get_pool(pool_id)
            if snapshot is None:
                self._skip(None, pool_id, SkipReason.POOL_UNAVAILABLE, token=token)
                return

            self._emit(EventKind.SELL_ATTEMPT, token, pool_id, decision.reason, price=price)
            outcome = await self.executor.sell(snapshot, position.amount)
            if not outcome.success:
                # Position stays open and is re-evaluated next tick
                self.stats["sells_failed"] += 1
                self._emit(EventKind.SELL_FAILED, token, pool_id, outcome.error or "failed", failure=outcome.failure.value)
                return

            await self.book.close(token)
            self.manager.on_position_closed(token)
            self.stats["sells"] += 1
            self._emit(
                EventKind.SELL_CONFIRMED,
                token,
                pool_id,
                decision.reason,
                signature=outcome.signature,
                exit_price=price,
                profit_pct=round(position.profit_pct(price), 2),
                proceeds=str(outcome.amount_out),
                hold_seconds=round(position.hold_seconds(), 1),
            )
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"Error monitoring position {token}: {e}")
            self._emit(EventKind.ERROR, token, pool_id, f"{type(e).__name__}: {e}")

    async def _monitor_loop(self):
        while True:
            try:
                await self.monitor_tick()
            except Exception as e:
                logger.error(f"Monitoring tick failed: {e}")
            await asyncio.sleep(self.config.monitor_interval_sec)

    # -------------------------------------------------------------------------
    # Task tracking
    # -------------------------------------------------------------------------

    def _spawn(self, key: str, coro) -> asyncio.Task:
        task = asyncio.create_task(coro, name=key)
        self._order_tasks[key] = task

        def _done(t: asyncio.Task):
            if self._order_tasks.get(key) is t:
                del self._order_tasks[key]

        task.add_done_callback(_done)
        return task

    @property
    def in_flight(self) -> list[str]:
        return list(self._order_tasks)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight order tasks. False if some were still running at timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        while self._order_tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                return False
            await asyncio.wait(list(self._order_tasks.values()), timeout=remaining)
        return True

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self, feed: Optional[PoolDiscoveryFeed] = None):
        """Start workers, monitoring, allow-list refresh, status log and the feed."""
        if self.running:
            return
        self.running = True
        self.started_at = time.time()

        for i in range(self.config.discovery_workers):
            self._loops.append(asyncio.create_task(self._discovery_worker(i)))

        if self.config.auto_sell:
            logger.info("Starting position monitoring...")
            self._loops.append(asyncio.create_task(self._monitor_loop()))

        if self.snipe_list is not None and self.snipe_list.enabled:
            self.snipe_list.load()
            self._loops.append(asyncio.create_task(self.snipe_list.run(self.config.snipe_list_refresh_sec)))

        self._loops.append(asyncio.create_task(self._status_loop()))

        if feed is not None:
            self.feed = feed
            self._loops.append(asyncio.create_task(feed.start()))

        logger.info(
            f"Engine started: strategy={self.manager.active_strategy.value} mode={self.config.mode} "
            f"max_positions={self.config.max_positions} auto_sell={self.config.auto_sell}"
        )

    async def stop(self):
        """Stop scheduling new work, then let in-flight orders settle."""
        if not self.running:
            return
        self.running = False
        logger.info("Shutting down engine...")

        if self.feed is not None:
            self.feed.stop()
        for task in self._loops:
            task.cancel()
        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops.clear()

        if self._order_tasks:
            logger.info(f"Waiting for {len(self._order_tasks)} in-flight orders...")
            if not await self.wait_idle(self.config.shutdown_grace_sec):
                logger.warning(f"Orders still in flight at shutdown: {self.in_flight}")

        await self.executor.close()
        await self.market_data.close()
        logger.info("Engine stopped")

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "mode": self.config.mode,
            "uptime_sec": round(time.time() - self.started_at, 1) if self.started_at else 0,
            "active_strategy": self.manager.active_strategy.value,
            "active_positions": len(self.book),
            "pending_positions": self.book.pending_count,
            "max_positions": self.config.max_positions,
            "tracked_pools": len(self.registry),
            "queue_depth": self._queue.qsize(),
            "in_flight_orders": self.in_flight,
            "stats": self.stats,
        }

    async def _status_loop(self):
        while True:
            await asyncio.sleep(self.config.status_interval_sec)
            status = self.get_status()
            logger.info(
                f"Bot Status: positions={status['active_positions']} pending={status['pending_positions']} "
                f"pools={status['tracked_pools']} strategy={status['active_strategy']} "
                f"in_flight={len(status['in_flight_orders'])}"
            )
