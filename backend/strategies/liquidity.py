"""
Liquidity Strategy - Conservative entries into deep, balanced pools.

Tighter profit targets plus a time-boxed exit for positions that stall.
"""

import time
from dataclasses import dataclass, asdict
from typing import Optional

from amm import calculate_price_impact
from config import FEE_BPS
from strategy_base import (
    Strategy,
    StrategyType,
    StrategyDecision,
    PoolSnapshot,
    MarketFacts,
    Position,
    quote_units,
    clamp,
)

NEW_POOL_AGE_SEC = 24 * 60 * 60


@dataclass
class LiquidityConfig:
    """
    Liquidity Strategy Configuration.

    Entry Signal:
        IF: quote reserve >= min_liquidity (x2 for pools younger than 24h)
        AND: price impact of a probe_trade buy <= max_price_impact_pct
        AND: min_reserve_ratio < quote/base reserve ratio < max_reserve_ratio
        THEN: Buy

    Exit Signal:
        Take profit, stop loss, or held longer than max_hold_sec
        without reaching min_hold_profit_pct.
    """
    min_liquidity: float = 10.0  # Quote units
    max_price_impact_pct: float = 2.0
    probe_trade: float = 0.1  # Quote units
    fee_bps: int = FEE_BPS
    min_reserve_ratio: float = 0.001
    max_reserve_ratio: float = 1000.0
    take_profit_pct: float = 30.0
    stop_loss_pct: float = 20.0
    max_hold_sec: float = 60 * 60
    min_hold_profit_pct: float = 5.0
    reserve_divisor: int = 200  # Size = 0.5% of quote reserve
    min_position: float = 0.01  # Quote units
    max_position: float = 0.5

    def __post_init__(self):
        if self.reserve_divisor < 1:
            raise ValueError("reserve_divisor must be at least 1")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LiquidityConfig":
        return cls(**data)


class LiquidityStrategy(Strategy):
    """Reserve-based policy. Needs no external market data to buy."""

    type = StrategyType.LIQUIDITY
    description = "Buy deep, balanced pools with low price impact; exit stalled positions after 1h"
    needs_market_data = False

    def __init__(self, config: Optional[LiquidityConfig] = None):
        super().__init__(config or LiquidityConfig())

    def evaluate_buy(self, snapshot: PoolSnapshot, facts: Optional[MarketFacts] = None) -> StrategyDecision:
        if snapshot.base_reserve <= 0 or snapshot.quote_reserve <= 0:
            return StrategyDecision(False, "empty pool")

        liquidity = snapshot.quote_liquidity
        if liquidity < self.config.min_liquidity:
            return StrategyDecision(False, f"liquidity {liquidity:.2f} below floor")

        impact = calculate_price_impact(
            quote_units(snapshot, self.config.probe_trade),
            snapshot.quote_reserve,
            snapshot.base_reserve,
            self.config.fee_bps,
        )
        if impact > self.config.max_price_impact_pct:
            return StrategyDecision(False, f"price impact {impact:.2f}% too high")

        if snapshot.age_sec < NEW_POOL_AGE_SEC and liquidity < self.config.min_liquidity * 2:
            return StrategyDecision(False, f"new pool needs {self.config.min_liquidity * 2:.2f} liquidity")

        ratio = snapshot.quote_reserve / snapshot.base_reserve
        if not self.config.min_reserve_ratio < ratio < self.config.max_reserve_ratio:
            return StrategyDecision(False, f"degenerate reserve ratio {ratio:.6g}")

        return StrategyDecision(True, f"liquidity {liquidity:.2f}, impact {impact:.2f}%")

    def evaluate_sell(
        self,
        position: Position,
        current_price: float,
        facts: Optional[MarketFacts] = None,
    ) -> StrategyDecision:
        if position.entry_price <= 0 or current_price <= 0:
            return StrategyDecision(False, "invalid price")

        target = self.exit_on_targets(position, current_price)
        if target:
            return target

        change = position.profit_pct(current_price)
        if position.hold_seconds(time.time()) > self.config.max_hold_sec and change < self.config.min_hold_profit_pct:
            return StrategyDecision(True, f"time exit at {change:+.1f}%")

        return StrategyDecision(False, f"holding at {change:+.1f}%")

    def size_position(self, snapshot: PoolSnapshot) -> int:
        size = snapshot.quote_reserve // self.config.reserve_divisor
        return clamp(
            size,
            quote_units(snapshot, self.config.min_position),
            quote_units(snapshot, self.config.max_position),
        )
