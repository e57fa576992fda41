"""
Volume Strategy - Buy tokens with high and rising trading volume.

Sells on profit targets, volume decline, or a high-volume sell-off.
"""

from dataclasses import dataclass, asdict
from typing import Optional

from config import DEFAULT_STOP_LOSS_PERCENT, DEFAULT_TAKE_PROFIT_PERCENT
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


@dataclass
class VolumeConfig:
    """
    Volume Strategy Configuration.

    Entry Signal:
        IF: 24h volume >= min_volume_24h
        AND: liquidity >= min_liquidity_usd
        AND: 1h volume > volume_surge_multiplier x hourly average of the last 6h
        AND: 1h price change > 0
        THEN: Buy
    """
    min_volume_24h: float = 10_000.0  # USD
    min_liquidity_usd: float = 5_000.0
    volume_surge_multiplier: float = 1.5
    take_profit_pct: float = DEFAULT_TAKE_PROFIT_PERCENT
    stop_loss_pct: float = DEFAULT_STOP_LOSS_PERCENT
    volume_decline_pct: float = 50.0  # 1h volume this far below the 6h hourly average triggers exit
    selloff_price_change_pct: float = -5.0
    reserve_divisor: int = 50  # Size = 2% of quote reserve
    min_position: float = 0.01  # Quote units
    max_position: float = 1.0

    def __post_init__(self):
        if self.reserve_divisor < 1:
            raise ValueError("reserve_divisor must be at least 1")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "VolumeConfig":
        return cls(**data)


class VolumeStrategy(Strategy):
    """Volume-confirmation policy driven by market data."""

    type = StrategyType.VOLUME
    description = "Buy on rising volume with positive price action, exit on volume decline"

    def __init__(self, config: Optional[VolumeConfig] = None):
        super().__init__(config or VolumeConfig())

    def evaluate_buy(self, snapshot: PoolSnapshot, facts: Optional[MarketFacts]) -> StrategyDecision:
        if facts is None:
            return StrategyDecision(False, "no market data")

        if facts.volume_h24 < self.config.min_volume_24h:
            return StrategyDecision(False, f"24h volume ${facts.volume_h24:,.0f} below floor")

        if facts.liquidity_usd < self.config.min_liquidity_usd:
            return StrategyDecision(False, f"liquidity ${facts.liquidity_usd:,.0f} below floor")

        avg_hourly = facts.avg_hourly_volume_h6
        if facts.volume_h1 <= avg_hourly * self.config.volume_surge_multiplier:
            return StrategyDecision(False, "volume not rising")

        if facts.price_change_h1 <= 0:
            return StrategyDecision(False, f"1h price change {facts.price_change_h1:+.1f}%")

        return StrategyDecision(
            True,
            f"1h volume ${facts.volume_h1:,.0f} vs avg ${avg_hourly:,.0f}, price {facts.price_change_h1:+.1f}%",
        )

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

        if facts is not None:
            avg_hourly = facts.avg_hourly_volume_h6

            if facts.volume_h1 < avg_hourly * (1 - self.config.volume_decline_pct / 100):
                return StrategyDecision(True, "volume declined")

            if facts.price_change_h1 < self.config.selloff_price_change_pct and facts.volume_h1 > avg_hourly:
                return StrategyDecision(True, f"high-volume sell-off {facts.price_change_h1:+.1f}%")

        return StrategyDecision(False, f"holding at {position.profit_pct(current_price):+.1f}%")

    def size_position(self, snapshot: PoolSnapshot) -> int:
        size = snapshot.quote_reserve // self.config.reserve_divisor
        return clamp(
            size,
            quote_units(snapshot, self.config.min_position),
            quote_units(snapshot, self.config.max_position),
        )
