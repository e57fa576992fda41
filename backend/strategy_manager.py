"""
Strategy Manager - Holds the active trading policy and isolates its faults.

Provides:
- One active policy at a time, switchable by name at runtime
- Fail-closed delegation of buy / sell / sizing decisions
- Per-strategy settings loaded from a JSON file
"""

import json
import logging
import math
import os
from dataclasses import fields
from typing import Optional, Union

from strategy_base import (
    Strategy,
    StrategyType,
    StrategyDecision,
    PoolSnapshot,
    MarketFacts,
    Position,
    quote_units,
)
from strategies import (
    MomentumStrategy,
    MomentumConfig,
    VolumeStrategy,
    VolumeConfig,
    LiquidityStrategy,
    LiquidityConfig,
)

logger = logging.getLogger(__name__)

# Fallback size when even the snapshot cannot be read (0.01 SOL)
DEFAULT_MIN_POSITION_UNITS = 10_000_000

STRATEGY_CLASSES = {
    StrategyType.MOMENTUM: (MomentumStrategy, MomentumConfig),
    StrategyType.VOLUME: (VolumeStrategy, VolumeConfig),
    StrategyType.LIQUIDITY: (LiquidityStrategy, LiquidityConfig),
}


def check_settings(config_cls, settings: dict) -> dict:
    """
    Type-check setting overrides against config_cls fields.

    Every strategy setting is numeric: int fields take non-negative whole
    numbers, float fields any finite number. Raises ValueError on the first
    bad key.
    """
    field_types = {f.name: f.type for f in fields(config_cls)}
    checked = {}
    for key, value in settings.items():
        expected = field_types.get(key)
        if expected is None:
            raise ValueError(f"unknown setting '{key}'")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValueError(f"{key} must be a number, got {value!r}")
        if expected is int:
            if value != int(value) or value < 0:
                raise ValueError(f"{key} must be a non-negative integer, got {value!r}")
            value = int(value)
        else:
            value = float(value)
        checked[key] = value
    return checked


class StrategyManager:
    """
    Routes decisions to the active policy.

    Any exception or invalid value coming out of a policy is logged and
    replaced by the fail-closed default: no buy, no sell, minimum size.
    """

    def __init__(
        self,
        initial_strategy: Union[StrategyType, str] = StrategyType.MOMENTUM,
        config_path: Optional[str] = None,
    ):
        self.config_path = config_path
        self.strategies: dict[StrategyType, Strategy] = {}
        self._load_config()
        self.active_strategy = StrategyType(
            initial_strategy.value if isinstance(initial_strategy, StrategyType) else initial_strategy.lower()
        )

    def _load_config(self):
        """Build every policy, applying settings from the JSON file if present"""
        settings: dict = {}
        if self.config_path:
            if not os.path.exists(self.config_path):
                logger.warning(f"Strategy config not found at {self.config_path}, using defaults")
            else:
                try:
                    with open(self.config_path, "r") as f:
                        settings = json.load(f).get("strategies", {})
                    logger.info(f"Loaded strategy settings from {self.config_path}")
                except (OSError, ValueError, AttributeError) as e:
                    logger.error(f"Failed to load strategy config: {e}")
                    settings = {}

        for strategy_type, (strategy_cls, config_cls) in STRATEGY_CLASSES.items():
            overrides = settings.get(strategy_type.value, {})
            try:
                config = config_cls.from_dict({**config_cls().to_dict(), **check_settings(config_cls, overrides)})
            except (TypeError, ValueError, AttributeError) as e:
                logger.error(f"Invalid settings for {strategy_type.value}: {e}, using defaults")
                config = config_cls()
            self.strategies[strategy_type] = strategy_cls(config)

    def save_config(self):
        """Save current per-strategy settings to the JSON file"""
        if not self.config_path:
            return

        data = {
            "strategies": {
                strategy_type.value: strategy.config.to_dict()
                for strategy_type, strategy in self.strategies.items()
            }
        }
        try:
            with open(self.config_path, "w") as f:
                json.dump(data, f, indent=2)
            logger.info(f"Saved strategy config to {self.config_path}")
        except OSError as e:
            logger.error(f"Failed to save strategy config: {e}")

    # -------------------------------------------------------------------------
    # Active Strategy
    # -------------------------------------------------------------------------

    def get_active_strategy(self) -> Strategy:
        return self.strategies[self.active_strategy]

    def set_active_strategy(self, name: Union[StrategyType, str]) -> bool:
        """Switch the active policy. Returns False for unknown names."""
        try:
            strategy_type = name if isinstance(name, StrategyType) else StrategyType(name.lower())
        except ValueError:
            logger.warning(f"Strategy not found: {name}")
            return False

        if strategy_type not in self.strategies:
            logger.warning(f"Strategy not found: {name}")
            return False

        self.active_strategy = strategy_type
        logger.info(f"Active strategy changed to {strategy_type.value}")
        return True

    @property
    def needs_market_data(self) -> bool:
        return self.get_active_strategy().needs_market_data

    def available_strategies(self) -> list[str]:
        return [t.value for t in self.strategies]

    def apply_overrides(self, take_profit: Optional[float] = None, stop_loss: Optional[float] = None):
        """Apply take-profit / stop-loss overrides to every policy"""
        for strategy in self.strategies.values():
            strategy.apply_overrides(take_profit, stop_loss)

    def update_strategy_settings(self, name: str, settings: dict) -> bool:
        """Replace a policy's settings at runtime. Unknown keys and non-numeric values are rejected."""
        try:
            strategy_type = StrategyType(name.lower())
        except ValueError:
            return False

        _, config_cls = STRATEGY_CLASSES[strategy_type]
        strategy = self.strategies[strategy_type]
        try:
            config = config_cls.from_dict({**strategy.config.to_dict(), **check_settings(config_cls, settings)})
        except (TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Rejected settings for {name}: {e}")
            return False

        strategy.config = config
        strategy.on_config_changed()
        self.save_config()
        logger.info(f"Strategy {name} settings updated")
        return True

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def evaluate_buy(self, snapshot: PoolSnapshot, facts: Optional[MarketFacts]) -> StrategyDecision:
        """Ask the active policy whether to buy. Never raises."""
        strategy = self.get_active_strategy()
        try:
            decision = strategy.evaluate_buy(snapshot, facts)
        except Exception as e:
            logger.error(f"[{strategy.type.value}] Error evaluating buy for {snapshot.base_mint}: {e}")
            return StrategyDecision(False, f"strategy error: {type(e).__name__}")

        if not isinstance(decision, StrategyDecision) or not isinstance(decision.decision, bool):
            logger.error(f"[{strategy.type.value}] Invalid buy decision {decision!r}")
            return StrategyDecision(False, "strategy returned invalid decision")

        logger.debug(
            f"[{strategy.type.value}] Buy decision {snapshot.base_mint}: {decision.decision} ({decision.reason})"
        )
        return decision

    def evaluate_sell(
        self,
        position: Position,
        current_price: float,
        facts: Optional[MarketFacts] = None,
    ) -> StrategyDecision:
        """Ask the active policy whether to sell. Never raises, never forces an exit on error."""
        strategy = self.get_active_strategy()
        try:
            decision = strategy.evaluate_sell(position, current_price, facts)
        except Exception as e:
            logger.error(f"[{strategy.type.value}] Error evaluating sell for {position.token}: {e}")
            return StrategyDecision(False, f"strategy error: {type(e).__name__}")

        if not isinstance(decision, StrategyDecision) or not isinstance(decision.decision, bool):
            logger.error(f"[{strategy.type.value}] Invalid sell decision {decision!r}")
            return StrategyDecision(False, "strategy returned invalid decision")

        logger.debug(
            f"[{strategy.type.value}] Sell decision {position.token} @ {current_price:.10g} "
            f"(entry {position.entry_price:.10g}): {decision.decision} ({decision.reason})"
        )
        return decision

    def size_position(self, snapshot: PoolSnapshot) -> int:
        """Quote amount to commit. Falls back to the minimum size on policy faults."""
        strategy = self.get_active_strategy()
        try:
            size = strategy.size_position(snapshot)
        except Exception as e:
            logger.error(f"[{strategy.type.value}] Error calculating position size: {e}")
            return self._minimum_size(snapshot)

        if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
            logger.error(f"[{strategy.type.value}] Invalid position size {size!r}")
            return self._minimum_size(snapshot)

        logger.debug(f"[{strategy.type.value}] Position size for {snapshot.base_mint}: {size}")
        return size

    def _minimum_size(self, snapshot: PoolSnapshot) -> int:
        try:
            return max(1, quote_units(snapshot, 0.01))
        except (AttributeError, TypeError, OverflowError):
            return DEFAULT_MIN_POSITION_UNITS

    def on_position_closed(self, token: str) -> None:
        """Release per-token state held by any policy."""
        for strategy in self.strategies.values():
            try:
                strategy.on_position_closed(token)
            except Exception as e:
                logger.error(f"[{strategy.type.value}] Error releasing state for {token}: {e}")

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict:
        return {
            "active_strategy": self.active_strategy.value,
            "available_strategies": self.available_strategies(),
            "total_strategies": len(self.strategies),
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses"""
        return {
            **self.get_stats(),
            "strategies": {
                strategy_type.value: strategy.get_status()
                for strategy_type, strategy in self.strategies.items()
            },
        }
