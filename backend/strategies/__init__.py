"""
Trading Strategies Package

All strategies inherit from strategy_base.Strategy and ONLY make decisions.
Execution is handled by the ExecutionClient.
"""

from .momentum import MomentumStrategy, MomentumConfig
from .volume import VolumeStrategy, VolumeConfig
from .liquidity import LiquidityStrategy, LiquidityConfig

__all__ = [
    "MomentumStrategy",
    "MomentumConfig",
    "VolumeStrategy",
    "VolumeConfig",
    "LiquidityStrategy",
    "LiquidityConfig",
]
