"""
Solana Transport - Live order settlement over Solana JSON-RPC.

The swap instruction encoding is supplied by an injected builder
`(order, blockhash) -> bytes` returning a signed, serialized transaction.
This module only sends, retries transient faults, and watches the
signature until it lands.
"""

import asyncio
import logging
from typing import Callable, Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from executor import Confirmation, OrderRejected, OrderTransport, SwapOrder
from retry import TRANSPORT_RETRY_CONFIG, TransportError, async_retry

logger = logging.getLogger(__name__)

TxBuilder = Callable[[SwapOrder, Hash], bytes]

POLL_INTERVAL_SEC = 0.5

# Confirmation statuses that satisfy each commitment level
_ACCEPTED_STATUSES = {
    "processed": (
        TransactionConfirmationStatus.Processed,
        TransactionConfirmationStatus.Confirmed,
        TransactionConfirmationStatus.Finalized,
    ),
    "confirmed": (
        TransactionConfirmationStatus.Confirmed,
        TransactionConfirmationStatus.Finalized,
    ),
    "finalized": (
        TransactionConfirmationStatus.Finalized,
    ),
}


class SolanaTransport(OrderTransport):
    """Sends raw transactions with bounded retries and polls their status."""

    def __init__(
        self,
        client: AsyncClient,
        tx_builder: TxBuilder,
        commitment: str = "confirmed",
        skip_preflight: bool = False,
        max_rpc_retries: int = 3,
    ):
        self.client = client
        self.tx_builder = tx_builder
        self.commitment = commitment
        self.skip_preflight = skip_preflight
        self.max_rpc_retries = max_rpc_retries

    @classmethod
    def from_endpoint(cls, endpoint: str, tx_builder: TxBuilder, commitment: str = "confirmed") -> "SolanaTransport":
        return cls(AsyncClient(endpoint, commitment=commitment), tx_builder, commitment=commitment)

    @async_retry(config=TRANSPORT_RETRY_CONFIG)
    async def _latest_blockhash(self) -> Hash:
        try:
            resp = await self.client.get_latest_blockhash(self.commitment)
        except SolanaRpcException as e:
            raise TransportError(f"get_latest_blockhash: {e}") from e
        return resp.value.blockhash

    @async_retry(config=TRANSPORT_RETRY_CONFIG)
    async def _send(self, raw_tx: bytes) -> str:
        opts = TxOpts(
            skip_preflight=self.skip_preflight,
            preflight_commitment=self.commitment,
            max_retries=self.max_rpc_retries,
        )
        try:
            resp = await self.client.send_raw_transaction(raw_tx, opts=opts)
        except RPCException as e:
            # Preflight simulation failed: the venue refuses the order as built
            raise OrderRejected(str(e)) from e
        except SolanaRpcException as e:
            raise TransportError(f"send_raw_transaction: {e}") from e
        return str(resp.value)

    async def submit(self, order: SwapOrder) -> str:
        blockhash = await self._latest_blockhash()
        raw_tx = self.tx_builder(order, blockhash)
        signature = await self._send(raw_tx)
        logger.info(f"Sent {order.side.value} {order.base_mint}: {signature}")
        return signature

    async def _status(self, signature: str):
        try:
            resp = await self.client.get_signature_statuses([Signature.from_string(signature)])
        except SolanaRpcException as e:
            logger.debug(f"Status poll failed for {signature}: {e}")
            return None
        return resp.value[0] if resp.value else None

    async def await_confirmation(self, signature: str, timeout: float) -> Confirmation:
        accepted = _ACCEPTED_STATUSES.get(self.commitment, _ACCEPTED_STATUSES["confirmed"])
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while loop.time() < deadline:
            status = await self._status(signature)
            if status is not None:
                if status.err is not None:
                    logger.warning(f"Transaction {signature} failed on-chain: {status.err}")
                    return Confirmation(confirmed=False, rejected=True, error=str(status.err))
                if status.confirmation_status in accepted:
                    return Confirmation(confirmed=True)
            await asyncio.sleep(POLL_INTERVAL_SEC)

        logger.warning(f"Transaction {signature} not confirmed after {timeout:.0f}s")
        return Confirmation(confirmed=False, error=f"not confirmed after {timeout:.0f}s")

    async def close(self):
        await self.client.close()


def unconfigured_builder(order: SwapOrder, blockhash: Hash) -> bytes:
    """Default builder for live mode when no swap encoder is installed."""
    raise OrderRejected("no transaction builder configured for live trading")


def build_transport(endpoint: str, commitment: str, tx_builder: Optional[TxBuilder] = None) -> SolanaTransport:
    return SolanaTransport.from_endpoint(endpoint, tx_builder or unconfigured_builder, commitment)
