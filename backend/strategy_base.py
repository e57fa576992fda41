"""
Strategy Base Classes

Provides a standardized interface for all trading strategies.
Strategies ONLY make decisions - they never execute trades directly.
Execution is handled by the ExecutionClient.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict, field
from enum import Enum, IntEnum
from typing import Optional


class PoolState(IntEnum):
    """Coarse pool lifecycle state"""
    UNINITIALIZED = 0
    INITIALIZED = 1
    ACTIVE = 2
    PAUSED = 3
    CLOSED = 4


class StrategyType(Enum):
    """Available trading policies"""
    MOMENTUM = "momentum"
    VOLUME = "volume"
    LIQUIDITY = "liquidity"


@dataclass(frozen=True)
class PoolSnapshot:
    """Immutable view of a pool at fetch time. Re-fetch to refresh."""
    pool_id: str
    base_mint: str
    quote_mint: str
    base_reserve: int              # Smallest units
    quote_reserve: int             # Smallest units
    base_decimals: int
    quote_decimals: int
    state: PoolState = PoolState.ACTIVE
    discovered_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if self.base_reserve < 0 or self.quote_reserve < 0:
            raise ValueError(f"Pool {self.pool_id} has negative reserves")
        for decimals in (self.base_decimals, self.quote_decimals):
            if not 0 <= decimals <= 18:
                raise ValueError(f"Pool {self.pool_id} has invalid decimals {decimals}")

    @property
    def quote_liquidity(self) -> float:
        """Quote reserve in quote units."""
        return self.quote_reserve / (10 ** self.quote_decimals)

    @property
    def age_sec(self) -> float:
        return time.time() - self.discovered_at

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "state": self.state.name.lower(),
            # Reserves can exceed JSON-safe integer range
            "base_reserve": str(self.base_reserve),
            "quote_reserve": str(self.quote_reserve),
        }


@dataclass
class MarketFacts:
    """Point-in-time market data for a token. Missing fields read as 0."""
    token: str
    price: float                   # Quote units per base unit
    volume_h1: float = 0.0         # USD
    volume_h6: float = 0.0
    volume_h24: float = 0.0
    liquidity_usd: float = 0.0
    price_change_h1: float = 0.0   # Percent
    fetched_at: float = field(default_factory=time.time)

    @property
    def avg_hourly_volume_h6(self) -> float:
        return self.volume_h6 / 6

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Position:
    """An open position. Owned by PositionBook."""
    token: str
    pool_id: str
    entry_price: float             # Quote per base, decimal-adjusted
    amount: int                    # Base token smallest units held
    entry_value: int               # Quote smallest units committed
    opened_at: float
    strategy: StrategyType
    entry_signature: Optional[str] = None

    def profit_pct(self, current_price: float) -> float:
        """Unrealized P&L in percent at current_price."""
        return (current_price - self.entry_price) / self.entry_price * 100

    def hold_seconds(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.opened_at

    def to_dict(self) -> dict:
        return {
            **asdict(self),
            "strategy": self.strategy.value,
            "amount": str(self.amount),
            "entry_value": str(self.entry_value),
        }


@dataclass
class StrategyDecision:
    """Transient decision with rationale. Logged, never persisted."""
    decision: bool
    reason: str

    def __bool__(self) -> bool:
        return self.decision


class Strategy(ABC):
    """
    Base class for all trading policies.

    Policies may keep per-token auxiliary state (price history) but must
    not hold on to Position or PoolSnapshot objects after a call returns.
    """

    type: StrategyType
    description: str = "Base strategy class"
    needs_market_data: bool = True  # Whether evaluate_buy consults MarketFacts

    def __init__(self, config):
        self.config = config

    @abstractmethod
    def evaluate_buy(self, snapshot: PoolSnapshot, facts: Optional[MarketFacts]) -> StrategyDecision:
        """Decide whether to enter a newly discovered pool."""

    @abstractmethod
    def evaluate_sell(
        self,
        position: Position,
        current_price: float,
        facts: Optional[MarketFacts] = None,
    ) -> StrategyDecision:
        """Decide whether to exit an open position."""

    @abstractmethod
    def size_position(self, snapshot: PoolSnapshot) -> int:
        """Quote amount (smallest unit) to commit, derived from reserves only."""

    def on_position_closed(self, token: str) -> None:
        """Called when a position in token is closed."""

    def on_config_changed(self) -> None:
        """Called after self.config is replaced at runtime."""

    def exit_on_targets(self, position: Position, current_price: float) -> Optional[StrategyDecision]:
        """Shared take-profit / stop-loss check. None if neither fired."""
        change = position.profit_pct(current_price)
        if change >= self.config.take_profit_pct:
            return StrategyDecision(True, f"take profit {change:+.1f}%")
        if change <= -self.config.stop_loss_pct:
            return StrategyDecision(True, f"stop loss {change:+.1f}%")
        return None

    def apply_overrides(self, take_profit: Optional[float] = None, stop_loss: Optional[float] = None) -> None:
        if take_profit is not None:
            self.config.take_profit_pct = take_profit
        if stop_loss is not None:
            self.config.stop_loss_pct = stop_loss

    def get_status(self) -> dict:
        return {
            "type": self.type.value,
            "description": self.description,
            "config": self.config.to_dict(),
        }


def quote_units(snapshot: PoolSnapshot, ui_amount: float) -> int:
    """Convert a quote-unit amount to the snapshot's smallest unit."""
    return int(round(ui_amount * (10 ** snapshot.quote_decimals)))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))
