#!/usr/bin/env python3
"""
API server for the PumpSwap trading bot.
Wires config, strategies, execution and discovery together and serves
status and control endpoints.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from config import BotConfig, ConfigError
from executor import ExecutionClient, OrderTransport, PaperTransport
from market_data import DexScreenerClient
from pool_feed import PoolDiscoveryFeed
from pool_registry import PoolRegistry
from position_book import PositionBook
from routes import bot_router
from routes.deps import set_state
from snipe_list import SnipeList
from solana_transport import build_transport
from strategy_manager import StrategyManager
from trading_engine import TradingEngine

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(message)s'


# ============================================================================
# LOGGING SETUP
# ============================================================================

def setup_logging(log_dir: str = "logs", level: int = logging.INFO) -> logging.Logger:
    """Console + daily file logs, plus a trade-only audit log"""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    today = datetime.now().strftime('%Y%m%d')

    root = logging.getLogger()
    if getattr(root, "_bot_configured", False):
        return root
    root.setLevel(logging.DEBUG)

    # File handler - all logs
    file_handler = logging.FileHandler(f"{log_dir}/bot_{today}.log")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Trade-specific log
    trade_handler = logging.FileHandler(f"{log_dir}/trades_{today}.log")
    trade_handler.setLevel(logging.INFO)
    trade_handler.setFormatter(logging.Formatter('%(asctime)s | %(message)s'))
    logging.getLogger("trades").addHandler(trade_handler)

    root._bot_configured = True
    return root


# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="PumpSwap Trading Bot API",
    description="Pool discovery, strategy-driven trading and position monitoring",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bot_router)

# ============================================================================
# GLOBAL STATE
# ============================================================================

engine: Optional[TradingEngine] = None


def build_engine(config: BotConfig, transport: Optional[OrderTransport] = None) -> TradingEngine:
    """Construct the engine and its collaborators from a validated config"""
    quote = config.quote_token

    manager = StrategyManager(config.strategy, config.strategy_config_path)
    manager.apply_overrides(config.take_profit, config.stop_loss)

    market_data = DexScreenerClient(base_decimals=config.base_decimals, quote_decimals=quote.decimals)

    if transport is None:
        if config.mode == "live":
            transport = build_transport(config.rpc_endpoint, config.commitment)
        else:
            transport = PaperTransport()

    executor = ExecutionClient(
        transport=transport,
        pool_source=market_data,
        slippage_bps=config.slippage_bps,
        confirm_timeout_sec=config.confirm_timeout_sec,
        mode=config.mode,
    )

    snipe_list = SnipeList(config.snipe_list_path) if config.use_snipe_list else None

    logger.info("PumpSwap bot configuration:")
    logger.info(f"   Mode: {config.mode}")
    logger.info(f"   Quote: {config.quote_amount} {quote.symbol}")
    logger.info(f"   Strategy: {manager.active_strategy.value}")
    logger.info(f"   Max positions: {config.max_positions}")
    logger.info(f"   Min pool size: {config.min_pool_size} {quote.symbol}")
    logger.info(f"   Auto sell: {config.auto_sell}")
    logger.info(f"   Snipe list: {config.use_snipe_list}")

    return TradingEngine(
        config=config,
        manager=manager,
        executor=executor,
        market_data=market_data,
        registry=PoolRegistry(),
        book=PositionBook(),
        snipe_list=snipe_list,
    )


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup():
    """Validate config and start the engine"""
    global engine

    setup_logging()
    config = BotConfig.from_env().validate()

    engine = build_engine(config)
    feed = PoolDiscoveryFeed(
        config.rpc_websocket_endpoint,
        engine.on_pool_discovered,
        commitment=config.commitment,
    )
    set_state("engine", engine)
    await engine.start(feed)
    logger.info("Listening for new pools on PumpSwap...")


@app.on_event("shutdown")
async def shutdown():
    """Let in-flight orders settle, then close connections"""
    if engine:
        await engine.stop()
    set_state("engine", None)
    logger.info("Shutdown complete")


@app.get("/")
async def root():
    return {"name": "pumpswap-bot", "running": bool(engine and engine.running)}


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Validate configuration, then run the server"""
    setup_logging()
    try:
        BotConfig.from_env().validate()
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}")
        sys.exit(1)

    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()
