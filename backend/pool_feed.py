"""
Pool Discovery Feed - Streams PumpSwap pool accounts over Solana RPC WebSocket.

Uses the JSON-RPC `programSubscribe` method with a dataSize filter and
hands each notified account pubkey to a callback. Delivery is
at-least-once: the same pool is announced again on every account write,
and again after each reconnect.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from config import POOL_ACCOUNT_SIZE, PUMPSWAP_PROGRAM_ID

logger = logging.getLogger(__name__)

PoolCallback = Callable[[str], Union[None, Awaitable[None]]]

MAX_RECONNECT_DELAY = 30


def build_subscribe_request(
    program_id: str = PUMPSWAP_PROGRAM_ID,
    commitment: str = "confirmed",
    data_size: int = POOL_ACCOUNT_SIZE,
    request_id: int = 1,
) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "programSubscribe",
        "params": [
            program_id,
            {
                "encoding": "base64",
                "commitment": commitment,
                "filters": [{"dataSize": data_size}],
            },
        ],
    }


def parse_notification(message: Union[str, bytes, dict]) -> Optional[str]:
    """Pool pubkey from a programNotification, or None for anything else."""
    if isinstance(message, (str, bytes)):
        try:
            message = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    if not isinstance(message, dict) or message.get("method") != "programNotification":
        return None

    try:
        pubkey = message["params"]["result"]["value"]["pubkey"]
    except (KeyError, TypeError):
        return None
    return pubkey if isinstance(pubkey, str) and pubkey else None


class PoolDiscoveryFeed:
    """programSubscribe client with auto-reconnect."""

    def __init__(
        self,
        ws_url: str,
        on_pool: PoolCallback,
        program_id: str = PUMPSWAP_PROGRAM_ID,
        commitment: str = "confirmed",
        data_size: int = POOL_ACCOUNT_SIZE,
    ):
        self.ws_url = ws_url
        self.on_pool = on_pool
        self.program_id = program_id
        self.commitment = commitment
        self.data_size = data_size
        self.running = False
        self.subscription_id: Optional[int] = None
        self.notifications = 0
        self._reconnect_delay = 1

    async def start(self):
        """Connect and listen until stop() is called"""
        self.running = True

        while self.running:
            try:
                await self._connect_and_listen()
            except asyncio.CancelledError:
                raise
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.warning(f"Discovery feed connection error: {type(e).__name__}: {e}")

            self.subscription_id = None
            if self.running:
                logger.info(f"Discovery feed reconnecting in {self._reconnect_delay}s...")
                await asyncio.sleep(self._reconnect_delay)
                self._reconnect_delay = min(self._reconnect_delay * 2, MAX_RECONNECT_DELAY)

    def stop(self):
        self.running = False

    async def _connect_and_listen(self):
        logger.info(f"Connecting to {self.ws_url}...")

        async with websockets.connect(self.ws_url, ping_interval=20, ping_timeout=20) as ws:
            request = build_subscribe_request(self.program_id, self.commitment, self.data_size)
            await ws.send(json.dumps(request))
            self._reconnect_delay = 1

            async for message in ws:
                if not self.running:
                    break
                await self._handle_message(message)

    async def _handle_message(self, message: Union[str, bytes]):
        try:
            data = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.debug(f"Non-JSON message: {str(message)[:50]}")
            return

        # Subscription ack: {"jsonrpc": "2.0", "result": <id>, "id": 1}
        if isinstance(data, dict) and "result" in data and "id" in data:
            self.subscription_id = data["result"]
            logger.info(f"Subscribed to PumpSwap pools: {self.subscription_id}")
            return

        if isinstance(data, dict) and "error" in data:
            logger.error(f"Subscription error: {data['error']}")
            return

        pool_id = parse_notification(data)
        if pool_id is None:
            return

        self.notifications += 1
        try:
            result = self.on_pool(pool_id)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Pool callback error for {pool_id}: {e}")
