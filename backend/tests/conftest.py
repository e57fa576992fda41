"""
Pytest fixtures for the test suite.
"""
import pytest
import sys
import os
import time
from typing import Optional

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import BotConfig
from executor import ExecutionClient, PaperTransport
from market_data import MarketDataSource, PoolSource
from pool_registry import PoolRegistry
from position_book import PositionBook
from strategy_base import PoolSnapshot, MarketFacts, Position, StrategyType
from strategy_manager import StrategyManager
from trading_engine import TradingEngine

WSOL = "So11111111111111111111111111111111111111112"
SOL = 10 ** 9


def make_snapshot(
    pool_id: str = "pool1",
    base_mint: str = "mint1",
    base_reserve: int = 1_000_000 * 10 ** 6,
    quote_reserve: int = 100 * SOL,
    discovered_at: Optional[float] = None,
) -> PoolSnapshot:
    """1M base tokens (6 decimals) against 100 WSOL: price 0.0001 WSOL per token."""
    return PoolSnapshot(
        pool_id=pool_id,
        base_mint=base_mint,
        quote_mint=WSOL,
        base_reserve=base_reserve,
        quote_reserve=quote_reserve,
        base_decimals=6,
        quote_decimals=9,
        discovered_at=discovered_at if discovered_at is not None else time.time() - 2 * 86400,
    )


def make_position(
    token: str = "mint1",
    entry_price: float = 1.0,
    opened_at: Optional[float] = None,
    pool_id: str = "pool1",
    amount: int = 1_000_000,
) -> Position:
    return Position(
        token=token,
        pool_id=pool_id,
        entry_price=entry_price,
        amount=amount,
        entry_value=SOL // 10,
        opened_at=opened_at if opened_at is not None else time.time(),
        strategy=StrategyType.MOMENTUM,
    )


class FakePoolSource(PoolSource):
    """In-memory pools. Missing ids read as unavailable."""

    def __init__(self, snapshots=None):
        self.snapshots = {s.pool_id: s for s in (snapshots or [])}
        self.calls = []

    def add(self, snapshot: PoolSnapshot):
        self.snapshots[snapshot.pool_id] = snapshot

    async def fetch_pool(self, pool_id: str):
        self.calls.append(pool_id)
        return self.snapshots.get(pool_id)


class FakeMarketData(MarketDataSource):
    """In-memory facts per token. Missing tokens read as unavailable."""

    def __init__(self):
        self.facts = {}
        self.closed = False

    def set_price(self, token: str, price: float, **kwargs):
        self.facts[token] = MarketFacts(token=token, price=price, **kwargs)

    async def fetch(self, token: str):
        return self.facts.get(token)

    async def close(self):
        self.closed = True


@pytest.fixture
def snapshot():
    return make_snapshot()


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def position_factory():
    return make_position


@pytest.fixture
def bot_config(tmp_path):
    """Paper config with a ceiling of 2 and a strategy file in tmp_path."""
    return BotConfig(
        mode="paper",
        quote_mint="WSOL",
        quote_amount=0.5,
        max_positions=2,
        min_pool_size=1.0,
        strategy="liquidity",
        strategy_config_path=str(tmp_path / "strategy_config.json"),
        monitor_interval_sec=0.01,
        status_interval_sec=60,
        discovery_workers=2,
        discovery_queue_size=10,
        shutdown_grace_sec=1,
    ).validate()


@pytest.fixture
def pool_source():
    return FakePoolSource()


@pytest.fixture
def market_data():
    return FakeMarketData()


@pytest.fixture
def paper_transport():
    return PaperTransport()


@pytest.fixture
def execution_client(paper_transport, pool_source):
    return ExecutionClient(
        transport=paper_transport,
        pool_source=pool_source,
        slippage_bps=500,
        confirm_timeout_sec=1,
    )


@pytest.fixture
def strategy_manager(bot_config):
    return StrategyManager(bot_config.strategy, bot_config.strategy_config_path)


@pytest.fixture
def engine(bot_config, strategy_manager, execution_client, market_data):
    """Engine wired to in-memory pools and market data with paper settlement."""
    return TradingEngine(
        config=bot_config,
        manager=strategy_manager,
        executor=execution_client,
        market_data=market_data,
        registry=PoolRegistry(),
        book=PositionBook(),
    )
