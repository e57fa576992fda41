"""
Momentum Strategy - Buy tokens showing strong upward price momentum.

Sells when targets are hit or momentum reverses while still in profit.
"""

from collections import OrderedDict, deque
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
)


@dataclass
class MomentumConfig:
    """
    Momentum Strategy Configuration.

    Entry Signal:
        IF: (latest - oldest) / oldest over the price window >= momentum_threshold_pct
        AND: the last step is still rising
        THEN: Buy

    Exit Signal:
        Take profit, stop loss, or the last 3 prices strictly falling while in profit.
    """
    momentum_threshold_pct: float = 10.0
    lookback_period: int = 5  # Price points kept per token
    max_tracked_tokens: int = 500  # Least recently priced tokens are evicted past this
    take_profit_pct: float = DEFAULT_TAKE_PROFIT_PERCENT
    stop_loss_pct: float = DEFAULT_STOP_LOSS_PERCENT
    reserve_divisor: int = 100  # Size = 1% of quote reserve
    min_position: float = 0.01  # Quote units

    def __post_init__(self):
        if self.lookback_period < 2:
            raise ValueError("lookback_period must be at least 2")
        if self.max_tracked_tokens < 1:
            raise ValueError("max_tracked_tokens must be at least 1")
        if self.reserve_divisor < 1:
            raise ValueError("reserve_divisor must be at least 1")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MomentumConfig":
        return cls(**data)


class MomentumStrategy(Strategy):
    """Price-momentum policy with a bounded per-token price window."""

    type = StrategyType.MOMENTUM
    description = "Buy on >=10% momentum over the last 5 prices, exit on targets or reversal"

    def __init__(self, config: Optional[MomentumConfig] = None):
        super().__init__(config or MomentumConfig())
        self._price_history: OrderedDict[str, deque] = OrderedDict()

    def record_price(self, token: str, price: float) -> list[float]:
        history = self._price_history.get(token)
        if history is None:
            history = deque(maxlen=self.config.lookback_period)
            self._price_history[token] = history
        else:
            self._price_history.move_to_end(token)
        history.append(price)
        self._evict()
        return list(history)

    def _evict(self):
        while len(self._price_history) > self.config.max_tracked_tokens:
            self._price_history.popitem(last=False)

    def on_config_changed(self) -> None:
        """Re-window existing histories to the current lookback_period."""
        lookback = self.config.lookback_period
        for token, history in list(self._price_history.items()):
            if history.maxlen != lookback:
                self._price_history[token] = deque(history, maxlen=lookback)
        self._evict()

    def get_history(self, token: str) -> list[float]:
        return list(self._price_history.get(token, ()))

    def evaluate_buy(self, snapshot: PoolSnapshot, facts: Optional[MarketFacts]) -> StrategyDecision:
        if facts is None or facts.price <= 0:
            return StrategyDecision(False, "no price available")

        history = self.record_price(snapshot.base_mint, facts.price)

        # Need at least 2 data points to calculate momentum
        if len(history) < 2:
            return StrategyDecision(False, "insufficient price history")

        oldest, previous, latest = history[0], history[-2], history[-1]
        momentum = (latest - oldest) / oldest * 100
        if momentum < self.config.momentum_threshold_pct:
            return StrategyDecision(False, f"momentum {momentum:+.1f}% below threshold")

        # Trend must not already be reversing
        if latest <= previous:
            return StrategyDecision(False, f"momentum {momentum:+.1f}% but last step not rising")

        return StrategyDecision(True, f"momentum {momentum:+.1f}% and rising")

    def evaluate_sell(
        self,
        position: Position,
        current_price: float,
        facts: Optional[MarketFacts] = None,
    ) -> StrategyDecision:
        if position.entry_price <= 0 or current_price <= 0:
            return StrategyDecision(False, "invalid price")

        history = self.record_price(position.token, current_price)

        target = self.exit_on_targets(position, current_price)
        if target:
            return target

        change = position.profit_pct(current_price)
        if len(history) >= 3:
            last3 = history[-3:]
            falling = last3[0] > last3[1] > last3[2]
            if falling and change > 0:
                return StrategyDecision(True, f"momentum reversal, locking {change:+.1f}%")

        return StrategyDecision(False, f"holding at {change:+.1f}%")

    def size_position(self, snapshot: PoolSnapshot) -> int:
        size = snapshot.quote_reserve // self.config.reserve_divisor
        return max(size, quote_units(snapshot, self.config.min_position))

    def on_position_closed(self, token: str) -> None:
        self._price_history.pop(token, None)

    def get_status(self) -> dict:
        status = super().get_status()
        status["tracked_tokens"] = len(self._price_history)
        return status
