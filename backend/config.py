"""
Configuration for the PumpSwap Trading Bot
Contains venue constants, quote token registry, and runtime parameters.
"""

import os
from dataclasses import dataclass, asdict
from typing import Optional

from strategy_base import StrategyType


class ConfigError(ValueError):
    """Invalid startup configuration. The bot must not start."""


# ============================================================================
# VENUE CONSTANTS
# ============================================================================

PUMPSWAP_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
POOL_ACCOUNT_SIZE = 256  # dataSize filter for programSubscribe

FEE_BPS = 25  # 0.25% swap fee
BPS_DENOMINATOR = 10_000
MAX_SLIPPAGE_BPS = 500  # 5%

MAX_CONCURRENT_POSITIONS = 5
DEFAULT_TAKE_PROFIT_PERCENT = 50.0
DEFAULT_STOP_LOSS_PERCENT = 30.0

COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")
TRADING_MODES = ("paper", "live")


# ============================================================================
# QUOTE TOKENS
# ============================================================================

@dataclass(frozen=True)
class QuoteToken:
    symbol: str
    mint: str
    decimals: int


QUOTE_TOKENS = {
    "WSOL": QuoteToken("WSOL", "So11111111111111111111111111111111111111112", 9),
    "USDC": QuoteToken("USDC", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


# ============================================================================
# BOT PARAMETERS
# ============================================================================

@dataclass
class BotConfig:
    # Connectivity
    rpc_endpoint: str = "https://api.mainnet-beta.solana.com"
    rpc_websocket_endpoint: str = "wss://api.mainnet-beta.solana.com"
    commitment: str = "confirmed"
    mode: str = "paper"

    # Quote asset and sizing
    quote_mint: str = "WSOL"
    quote_amount: float = 0.1  # Per-trade cap in quote units
    slippage_bps: int = MAX_SLIPPAGE_BPS

    # Strategy
    strategy: str = "momentum"
    strategy_config_path: str = "strategy_config.json"
    take_profit: Optional[float] = None  # Overrides active strategy if set
    stop_loss: Optional[float] = None

    # Gates
    max_positions: int = MAX_CONCURRENT_POSITIONS
    min_pool_size: float = 1.0  # Quote units
    use_snipe_list: bool = False
    snipe_list_path: str = "snipe-list.txt"
    snipe_list_refresh_sec: float = 30.0

    # Scheduling
    auto_sell: bool = True
    monitor_interval_sec: float = 5.0
    status_interval_sec: float = 60.0
    confirm_timeout_sec: float = 60.0
    shutdown_grace_sec: float = 60.0
    discovery_workers: int = 4
    discovery_queue_size: int = 100

    # Snapshot conversion for pools that report UI amounts
    base_decimals: int = 6

    @property
    def quote_token(self) -> QuoteToken:
        token = QUOTE_TOKENS.get(self.quote_mint.upper())
        if token is None:
            raise ConfigError(
                f'Unsupported quote mint "{self.quote_mint}". Supported values are USDC and WSOL'
            )
        return token

    def quote_amount_units(self) -> int:
        """Per-trade quote amount in the quote token's smallest unit."""
        return int(round(self.quote_amount * (10 ** self.quote_token.decimals)))

    def validate(self) -> "BotConfig":
        """Raise ConfigError on any configuration fault."""
        # Resolves the quote token, raising on unknown mints
        _ = self.quote_token

        try:
            StrategyType(self.strategy.lower())
        except ValueError:
            valid = ", ".join(t.value for t in StrategyType)
            raise ConfigError(f'Unknown strategy "{self.strategy}". Expected one of: {valid}')

        if self.quote_amount <= 0:
            raise ConfigError(f"QUOTE_AMOUNT must be positive, got {self.quote_amount}")
        if self.commitment not in COMMITMENT_LEVELS:
            raise ConfigError(f"COMMITMENT_LEVEL must be one of {COMMITMENT_LEVELS}")
        if self.mode not in TRADING_MODES:
            raise ConfigError(f"TRADING_MODE must be one of {TRADING_MODES}")
        if self.max_positions < 1:
            raise ConfigError("MAX_CONCURRENT_POSITIONS must be at least 1")
        if self.min_pool_size < 0:
            raise ConfigError("MIN_POOL_SIZE cannot be negative")
        if not 0 <= self.slippage_bps <= BPS_DENOMINATOR:
            raise ConfigError(f"SLIPPAGE_BPS must be within 0..{BPS_DENOMINATOR}")
        for name in ("take_profit", "stop_loss"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name.upper()} must be positive")
        for name in ("monitor_interval_sec", "confirm_timeout_sec", "snipe_list_refresh_sec"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.discovery_workers < 1 or self.discovery_queue_size < 1:
            raise ConfigError("Discovery worker pool bounds must be at least 1")
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "BotConfig":
        return cls(**data)

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Load config from environment variables"""
        defaults = cls()
        try:
            refresh_ms = os.getenv("SNIPE_LIST_REFRESH_INTERVAL")
            return cls(
                rpc_endpoint=os.getenv("RPC_ENDPOINT", defaults.rpc_endpoint),
                rpc_websocket_endpoint=os.getenv("RPC_WEBSOCKET_ENDPOINT", defaults.rpc_websocket_endpoint),
                commitment=os.getenv("COMMITMENT_LEVEL", defaults.commitment).lower(),
                mode=os.getenv("TRADING_MODE", defaults.mode).lower(),
                quote_mint=os.getenv("QUOTE_MINT", defaults.quote_mint),
                quote_amount=float(os.getenv("QUOTE_AMOUNT", defaults.quote_amount)),
                slippage_bps=int(os.getenv("SLIPPAGE_BPS", defaults.slippage_bps)),
                strategy=os.getenv("TRADING_STRATEGY", defaults.strategy).lower(),
                strategy_config_path=os.getenv("STRATEGY_CONFIG_PATH", defaults.strategy_config_path),
                take_profit=_env_float("TAKE_PROFIT"),
                stop_loss=_env_float("STOP_LOSS"),
                max_positions=int(os.getenv("MAX_CONCURRENT_POSITIONS", defaults.max_positions)),
                min_pool_size=float(os.getenv("MIN_POOL_SIZE", defaults.min_pool_size)),
                use_snipe_list=_env_bool("USE_SNIPE_LIST", defaults.use_snipe_list),
                snipe_list_path=os.getenv("SNIPE_LIST_PATH", defaults.snipe_list_path),
                snipe_list_refresh_sec=(
                    float(refresh_ms) / 1000 if refresh_ms else defaults.snipe_list_refresh_sec
                ),
                auto_sell=_env_bool("AUTO_SELL", defaults.auto_sell),
                monitor_interval_sec=float(os.getenv("MONITOR_INTERVAL_SEC", defaults.monitor_interval_sec)),
                confirm_timeout_sec=float(os.getenv("CONFIRM_TIMEOUT_SEC", defaults.confirm_timeout_sec)),
                discovery_workers=int(os.getenv("DISCOVERY_WORKERS", defaults.discovery_workers)),
                discovery_queue_size=int(os.getenv("DISCOVERY_QUEUE_SIZE", defaults.discovery_queue_size)),
            )
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigError):
                raise
            raise ConfigError(f"Invalid configuration value: {e}") from e
