"""
Market Data - Point-in-time price, volume and liquidity facts.

Sources may fail or return stale data; every lookup returns None when
data is unavailable so callers can skip the decision instead of
fabricating a value.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from amm import to_base_units
from config import QUOTE_TOKENS
from retry import HTTP_RETRY_CONFIG, retry_http_request
from strategy_base import MarketFacts, PoolSnapshot, PoolState

logger = logging.getLogger(__name__)


class DexScreenerAPI:
    BASE = "https://api.dexscreener.com/latest/dex"
    TOKENS = f"{BASE}/tokens"
    PAIRS = f"{BASE}/pairs"
    CHAIN = "solana"


class MarketDataSource(ABC):
    """Supplies MarketFacts for a token address."""

    @abstractmethod
    async def fetch(self, token: str) -> Optional[MarketFacts]:
        """Return current facts for token, or None if unavailable."""

    async def close(self):
        pass


class PoolSource(ABC):
    """Supplies fresh PoolSnapshots by pool id."""

    @abstractmethod
    async def fetch_pool(self, pool_id: str) -> Optional[PoolSnapshot]:
        """Return a fresh snapshot of the pool, or None if unavailable."""


def _num(value, default: float = 0.0) -> float:
    """Parse API numbers that may be strings, null or missing."""
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def select_pair(pairs: Optional[list], chain: str = DexScreenerAPI.CHAIN) -> Optional[dict]:
    """First pair on the given chain."""
    for pair in pairs or []:
        if isinstance(pair, dict) and pair.get("chainId") == chain:
            return pair
    return None


def parse_market_facts(token: str, pair: dict) -> Optional[MarketFacts]:
    """Build MarketFacts from a DexScreener pair. None if it carries no usable price."""
    price = _num(pair.get("priceNative"))
    if price <= 0:
        return None

    volume = pair.get("volume") or {}
    liquidity = pair.get("liquidity") or {}
    price_change = pair.get("priceChange") or {}

    return MarketFacts(
        token=token,
        price=price,
        volume_h1=_num(volume.get("h1")),
        volume_h6=_num(volume.get("h6")),
        volume_h24=_num(volume.get("h24")),
        liquidity_usd=_num(liquidity.get("usd")),
        price_change_h1=_num(price_change.get("h1")),
    )


def parse_pool_snapshot(
    pool_id: str,
    pair: dict,
    base_decimals: int,
    default_quote_decimals: int,
) -> Optional[PoolSnapshot]:
    """
    Build a PoolSnapshot from a DexScreener pair.

    DexScreener reports pooled amounts in UI units, so they are converted
    back to smallest units with the known quote decimals and the configured
    base decimals.
    """
    base_mint = (pair.get("baseToken") or {}).get("address")
    quote_mint = (pair.get("quoteToken") or {}).get("address")
    if not base_mint or not quote_mint:
        return None

    quote_decimals = default_quote_decimals
    for token in QUOTE_TOKENS.values():
        if token.mint == quote_mint:
            quote_decimals = token.decimals
            break

    liquidity = pair.get("liquidity") or {}
    created_ms = pair.get("pairCreatedAt")

    try:
        return PoolSnapshot(
            pool_id=pool_id,
            base_mint=base_mint,
            quote_mint=quote_mint,
            base_reserve=to_base_units(max(_num(liquidity.get("base")), 0.0), base_decimals),
            quote_reserve=to_base_units(max(_num(liquidity.get("quote")), 0.0), quote_decimals),
            base_decimals=base_decimals,
            quote_decimals=quote_decimals,
            state=PoolState.ACTIVE,
            discovered_at=created_ms / 1000 if isinstance(created_ms, (int, float)) else time.time(),
        )
    except ValueError as e:
        logger.warning(f"Invalid pool data for {pool_id}: {e}")
        return None


class DexScreenerClient(MarketDataSource, PoolSource):
    """
    DexScreener-backed market data and pool snapshots.

    One aiohttp session is shared for the client's lifetime; call close()
    on shutdown.
    """

    def __init__(
        self,
        base_decimals: int = 6,
        quote_decimals: int = 9,
        timeout_sec: float = 10.0,
    ):
        self.base_decimals = base_decimals
        self.quote_decimals = quote_decimals
        self.timeout = aiohttp.ClientTimeout(total=timeout_sec)
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(timeout=self.timeout)
            return self._session

    async def _get_json(self, url: str) -> Optional[dict]:
        session = await self._get_session()
        try:
            resp = await retry_http_request(session, "GET", url, config=HTTP_RETRY_CONFIG)
            async with resp:
                if resp.status != 200:
                    logger.warning(f"DexScreener returned {resp.status} for {url}")
                    return None
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"DexScreener request failed for {url}: {type(e).__name__}: {e}")
            return None

    async def fetch(self, token: str) -> Optional[MarketFacts]:
        data = await self._get_json(f"{DexScreenerAPI.TOKENS}/{token}")
        if not data:
            return None
        pair = select_pair(data.get("pairs"))
        if pair is None:
            return None
        return parse_market_facts(token, pair)

    async def fetch_pool(self, pool_id: str) -> Optional[PoolSnapshot]:
        data = await self._get_json(f"{DexScreenerAPI.PAIRS}/{DexScreenerAPI.CHAIN}/{pool_id}")
        if not data:
            return None
        pair = data.get("pair") or select_pair(data.get("pairs"))
        if pair is None:
            return None
        return parse_pool_snapshot(pool_id, pair, self.base_decimals, self.quote_decimals)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
