"""
Tests for the live Solana transport with a mocked RPC client.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

import retry
import solana_transport
from executor import ExecutionClient, FailureKind, OrderRejected, OrderSide
from retry import TransportError
from solana_transport import SolanaTransport, unconfigured_builder

SIG = str(Signature.default())


def rpc_client(statuses=None):
    client = MagicMock()
    client.get_latest_blockhash = AsyncMock(return_value=MagicMock(value=MagicMock(blockhash="blockhash1")))
    client.send_raw_transaction = AsyncMock(return_value=MagicMock(value=SIG))
    client.get_signature_statuses = AsyncMock(
        side_effect=[MagicMock(value=[s]) for s in (statuses or [])]
    )
    client.close = AsyncMock()
    return client


def status(confirmation_status=TransactionConfirmationStatus.Confirmed, err=None):
    return MagicMock(confirmation_status=confirmation_status, err=err)


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(retry, "calculate_delay", lambda attempt, config: 0)
    monkeypatch.setattr(solana_transport, "POLL_INTERVAL_SEC", 0.001)


@pytest.fixture
def order(execution_client, snapshot):
    return execution_client.build_order(snapshot, OrderSide.BUY, 10 ** 8)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_builds_with_blockhash_and_sends(self, order):
        client = rpc_client()
        builder = MagicMock(return_value=b"raw-tx")
        transport = SolanaTransport(client, builder)

        signature = await transport.submit(order)

        assert signature == SIG
        builder.assert_called_once_with(order, "blockhash1")
        args, kwargs = client.send_raw_transaction.call_args
        assert args[0] == b"raw-tx"
        assert kwargs["opts"].max_retries == 3

    @pytest.mark.asyncio
    async def test_preflight_failure_is_rejection(self, order, no_backoff):
        client = rpc_client()
        client.send_raw_transaction.side_effect = RPCException("simulation failed")
        transport = SolanaTransport(client, MagicMock(return_value=b"raw"))

        with pytest.raises(OrderRejected):
            await transport.submit(order)
        assert client.send_raw_transaction.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_failure_retried_then_raised(self, order, no_backoff):
        client = rpc_client()
        client.send_raw_transaction.side_effect = SolanaRpcException.__new__(SolanaRpcException)
        transport = SolanaTransport(client, MagicMock(return_value=b"raw"))

        with pytest.raises(TransportError):
            await transport.submit(order)
        assert client.send_raw_transaction.call_count == retry.TRANSPORT_RETRY_CONFIG.max_retries + 1

    @pytest.mark.asyncio
    async def test_missing_builder_rejects(self, order):
        transport = SolanaTransport(rpc_client(), unconfigured_builder)
        with pytest.raises(OrderRejected):
            await transport.submit(order)


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_confirmed(self, no_backoff):
        client = rpc_client([None, status(TransactionConfirmationStatus.Processed), status()])
        confirmation = await SolanaTransport(client, MagicMock()).await_confirmation(SIG, timeout=5)
        assert confirmation.confirmed is True
        assert client.get_signature_statuses.call_count == 3

    @pytest.mark.asyncio
    async def test_on_chain_error(self, no_backoff):
        client = rpc_client([status(err="InstructionError")])
        confirmation = await SolanaTransport(client, MagicMock()).await_confirmation(SIG, timeout=5)
        assert confirmation.confirmed is False
        assert confirmation.rejected is True

    @pytest.mark.asyncio
    async def test_finalized_commitment_waits(self, no_backoff):
        client = rpc_client([status(), status(TransactionConfirmationStatus.Finalized)])
        transport = SolanaTransport(client, MagicMock(), commitment="finalized")
        confirmation = await transport.await_confirmation(SIG, timeout=5)
        assert confirmation.confirmed is True
        assert client.get_signature_statuses.call_count == 2

    @pytest.mark.asyncio
    async def test_timeout(self, no_backoff):
        client = rpc_client()
        client.get_signature_statuses = AsyncMock(return_value=MagicMock(value=[None]))
        confirmation = await SolanaTransport(client, MagicMock()).await_confirmation(SIG, timeout=0.05)
        assert confirmation.confirmed is False
        assert confirmation.rejected is False


class TestLiveExecution:
    @pytest.mark.asyncio
    async def test_buy_through_live_transport(self, snapshot, pool_source, no_backoff):
        client = rpc_client([status()])
        transport = SolanaTransport(client, MagicMock(return_value=b"raw"))
        outcome = await ExecutionClient(transport, pool_source, mode="live").buy(snapshot, 10 ** 8)
        assert outcome.success is True
        assert outcome.signature == SIG
        # Live transport does not report settled amounts
        assert outcome.amount_out == outcome.order.expected_out

    @pytest.mark.asyncio
    async def test_on_chain_failure_through_client(self, snapshot, pool_source, no_backoff):
        client = rpc_client([status(err="slippage exceeded")])
        transport = SolanaTransport(client, MagicMock(return_value=b"raw"))
        outcome = await ExecutionClient(transport, pool_source).buy(snapshot, 10 ** 8)
        assert outcome.failure == FailureKind.REJECTED
