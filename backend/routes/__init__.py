"""
Route modules for the PumpSwap trading bot API.

- bot: status, positions, events, orders and strategy control
"""

from .bot import router as bot_router

__all__ = [
    "bot_router",
]
