"""
Executor Module - Builds, submits and confirms swap orders.

Order lifecycle:
    BUILDING -> SUBMITTED -> CONFIRMED
    BUILDING -> SUBMITTED -> FAILED
    BUILDING -> FAILED (order could not be built)

The ExecutionClient never loops on its own. Transient I/O retries belong
to the transport; venue rejections are final. Every failure comes back as
an OrderOutcome with success=False, which callers treat as "no balance
change happened".
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from amm import calculate_swap_output, min_amount_out, spot_price, to_ui_amount
from config import FEE_BPS, MAX_SLIPPAGE_BPS
from market_data import PoolSource
from retry import TransportError
from strategy_base import PoolSnapshot

logger = logging.getLogger(__name__)

# Slack over the transport's own confirmation timeout
CONFIRM_GRACE_SEC = 5.0


class OrderSide(Enum):
    BUY = "buy"    # quote -> base
    SELL = "sell"  # base -> quote


class OrderStatus(Enum):
    BUILDING = "building"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class FailureKind(Enum):
    REJECTED = "rejected"
    NOT_CONFIRMED = "not_confirmed"
    TRANSPORT_ERROR = "transport_error"


class OrderRejected(Exception):
    """The venue refused the order given current on-chain state. Never retried."""


_TRANSITIONS = {
    OrderStatus.BUILDING: {OrderStatus.SUBMITTED, OrderStatus.FAILED},
    OrderStatus.SUBMITTED: {OrderStatus.CONFIRMED, OrderStatus.FAILED},
    OrderStatus.CONFIRMED: set(),
    OrderStatus.FAILED: set(),
}


@dataclass
class SwapOrder:
    """An exact-input swap against one pool, guarded by a minimum output."""
    id: str
    side: OrderSide
    pool_id: str
    base_mint: str
    quote_mint: str
    amount_in: int
    expected_out: int
    min_amount_out: int
    base_reserve: int
    quote_reserve: int
    base_decimals: int
    quote_decimals: int
    slippage_bps: int
    fee_bps: int = FEE_BPS
    status: OrderStatus = OrderStatus.BUILDING
    created_at: float = field(default_factory=time.time)
    signature: Optional[str] = None
    error: Optional[str] = None

    @property
    def reserve_in(self) -> int:
        return self.quote_reserve if self.side == OrderSide.BUY else self.base_reserve

    @property
    def reserve_out(self) -> int:
        return self.base_reserve if self.side == OrderSide.BUY else self.quote_reserve

    @property
    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.CONFIRMED, OrderStatus.FAILED)

    def transition(self, status: OrderStatus):
        if status not in _TRANSITIONS[self.status]:
            raise ValueError(f"Order {self.id}: illegal transition {self.status.value} -> {status.value}")
        self.status = status

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "side": self.side.value,
            "pool_id": self.pool_id,
            "base_mint": self.base_mint,
            "quote_mint": self.quote_mint,
            "amount_in": str(self.amount_in),
            "expected_out": str(self.expected_out),
            "min_amount_out": str(self.min_amount_out),
            "slippage_bps": self.slippage_bps,
            "status": self.status.value,
            "created_at": self.created_at,
            "signature": self.signature,
            "error": self.error,
        }


@dataclass
class Confirmation:
    """What a transport observed for a submitted settlement."""
    confirmed: bool
    rejected: bool = False  # Landed with an on-chain error
    amount_out: Optional[int] = None  # Settled output, when the transport knows it
    error: Optional[str] = None


@dataclass
class OrderOutcome:
    """Terminal result of an order. success=False means no balance change."""
    order: SwapOrder
    success: bool
    signature: Optional[str] = None
    amount_out: int = 0
    failure: Optional[FailureKind] = None
    error: Optional[str] = None

    @property
    def fill_price(self) -> float:
        """Executed price in quote units per base unit. 0 if nothing settled."""
        order = self.order
        if order.side == OrderSide.BUY:
            base, quote = self.amount_out, order.amount_in
        else:
            base, quote = order.amount_in, self.amount_out
        if base <= 0:
            return 0.0
        return to_ui_amount(quote, order.quote_decimals) / to_ui_amount(base, order.base_decimals)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "success": self.success,
            "signature": self.signature,
            "amount_out": str(self.amount_out),
            "failure": self.failure.value if self.failure else None,
            "error": self.error,
        }


# ============================================================================
# TRANSPORTS
# ============================================================================

class OrderTransport(ABC):
    """
    External settlement layer.

    submit() raises OrderRejected for venue refusals and TransportError for
    transient faults that survived the transport's own bounded retry.
    """

    @abstractmethod
    async def submit(self, order: SwapOrder) -> str:
        """Send the order; return its settlement id."""

    @abstractmethod
    async def await_confirmation(self, signature: str, timeout: float) -> Confirmation:
        """Wait up to timeout seconds for the settlement to land."""

    async def close(self):
        pass


class PaperTransport(OrderTransport):
    """Simulated settlement against the order's own reserves. No real trades."""

    def __init__(self, latency_sec: float = 0.0):
        self.latency_sec = latency_sec
        self._settlements: dict[str, int] = {}

    async def submit(self, order: SwapOrder) -> str:
        if self.latency_sec:
            await asyncio.sleep(self.latency_sec)

        amount_out = calculate_swap_output(order.amount_in, order.reserve_in, order.reserve_out, order.fee_bps)
        if amount_out <= 0:
            raise OrderRejected("swap produces no output")
        if amount_out < order.min_amount_out:
            raise OrderRejected(f"output {amount_out} below minimum {order.min_amount_out}")

        signature = f"paper-{uuid.uuid4().hex}"
        self._settlements[signature] = amount_out
        return signature

    async def await_confirmation(self, signature: str, timeout: float) -> Confirmation:
        amount_out = self._settlements.pop(signature, None)
        if amount_out is None:
            return Confirmation(confirmed=False, error="unknown settlement")
        return Confirmation(confirmed=True, amount_out=amount_out)


# ============================================================================
# EXECUTION CLIENT
# ============================================================================

class ExecutionClient:
    """
    Facade over chain I/O: order building, submission, confirmation and
    fresh price reads.
    """

    def __init__(
        self,
        transport: OrderTransport,
        pool_source: PoolSource,
        slippage_bps: int = MAX_SLIPPAGE_BPS,
        confirm_timeout_sec: float = 60.0,
        fee_bps: int = FEE_BPS,
        mode: str = "paper",
        on_order: Optional[Callable[[SwapOrder], None]] = None,
    ):
        self.transport = transport
        self.pool_source = pool_source
        self.slippage_bps = slippage_bps
        self.confirm_timeout_sec = confirm_timeout_sec
        self.fee_bps = fee_bps
        self.mode = mode
        self.on_order = on_order
        self.order_history: deque[SwapOrder] = deque(maxlen=100)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def build_order(self, snapshot: PoolSnapshot, side: OrderSide, amount_in: int) -> SwapOrder:
        """Assemble an exact-input order from the snapshot's reserves."""
        order = SwapOrder(
            id=str(uuid.uuid4())[:8],
            side=side,
            pool_id=snapshot.pool_id,
            base_mint=snapshot.base_mint,
            quote_mint=snapshot.quote_mint,
            amount_in=amount_in,
            expected_out=0,
            min_amount_out=0,
            base_reserve=snapshot.base_reserve,
            quote_reserve=snapshot.quote_reserve,
            base_decimals=snapshot.base_decimals,
            quote_decimals=snapshot.quote_decimals,
            slippage_bps=self.slippage_bps,
            fee_bps=self.fee_bps,
        )
        order.expected_out = calculate_swap_output(amount_in, order.reserve_in, order.reserve_out, self.fee_bps)
        order.min_amount_out = min_amount_out(order.expected_out, self.slippage_bps)
        return order

    async def buy(self, snapshot: PoolSnapshot, amount_in: int) -> OrderOutcome:
        """Spend amount_in quote units on the pool's base token."""
        return await self.execute(self.build_order(snapshot, OrderSide.BUY, amount_in))

    async def sell(self, snapshot: PoolSnapshot, amount: int) -> OrderOutcome:
        """Sell amount base units back to the quote token."""
        return await self.execute(self.build_order(snapshot, OrderSide.SELL, amount))

    async def execute(self, order: SwapOrder) -> OrderOutcome:
        """Drive an order to a terminal state."""
        self.order_history.append(order)

        if order.amount_in <= 0 or order.expected_out <= 0:
            return self._fail(order, FailureKind.REJECTED, "order produces no output")

        logger.info(
            f"{order.side.value.upper()} {order.base_mint} in={order.amount_in} "
            f"expected={order.expected_out} min={order.min_amount_out} ({self.mode})"
        )

        try:
            signature = await self.transport.submit(order)
        except OrderRejected as e:
            return self._fail(order, FailureKind.REJECTED, str(e))
        except (TransportError, OSError, asyncio.TimeoutError) as e:
            return self._fail(order, FailureKind.TRANSPORT_ERROR, f"{type(e).__name__}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected transport error submitting order {order.id}")
            return self._fail(order, FailureKind.TRANSPORT_ERROR, f"{type(e).__name__}: {e}")

        order.signature = signature
        order.transition(OrderStatus.SUBMITTED)
        self._notify(order)
        logger.info(f"Order {order.id} submitted: {signature}")

        try:
            confirmation = await asyncio.wait_for(
                self.transport.await_confirmation(signature, self.confirm_timeout_sec),
                timeout=self.confirm_timeout_sec + CONFIRM_GRACE_SEC,
            )
        except asyncio.TimeoutError:
            return self._fail(order, FailureKind.NOT_CONFIRMED, "confirmation timed out")
        except (TransportError, OSError) as e:
            return self._fail(order, FailureKind.NOT_CONFIRMED, f"{type(e).__name__}: {e}")
        except Exception as e:
            # The transaction may still land; outcome is unknown, not rejected
            logger.exception(f"Unexpected error awaiting confirmation of {signature}")
            return self._fail(order, FailureKind.NOT_CONFIRMED, f"{type(e).__name__}: {e}")

        if confirmation.rejected:
            return self._fail(order, FailureKind.REJECTED, confirmation.error or "rejected on-chain")
        if not confirmation.confirmed:
            return self._fail(order, FailureKind.NOT_CONFIRMED, confirmation.error or "not confirmed in time")

        order.transition(OrderStatus.CONFIRMED)
        self._notify(order)
        amount_out = confirmation.amount_out if confirmation.amount_out is not None else order.expected_out
        logger.info(f"Order {order.id} confirmed: {signature} out={amount_out}")
        return OrderOutcome(order=order, success=True, signature=signature, amount_out=amount_out)

    def _fail(self, order: SwapOrder, kind: FailureKind, error: str) -> OrderOutcome:
        order.error = error
        order.transition(OrderStatus.FAILED)
        self._notify(order)
        logger.warning(f"Order {order.id} {order.side.value} {order.base_mint} failed ({kind.value}): {error}")
        return OrderOutcome(order=order, success=False, signature=order.signature, failure=kind, error=error)

    def _notify(self, order: SwapOrder):
        if self.on_order:
            try:
                self.on_order(order)
            except Exception as e:
                logger.error(f"Order callback error: {e}")

    # -------------------------------------------------------------------------
    # Pool reads
    # -------------------------------------------------------------------------

    async def get_pool(self, pool_id: str) -> Optional[PoolSnapshot]:
        """Fresh snapshot. Never cached."""
        return await self.pool_source.fetch_pool(pool_id)

    async def get_current_price(self, pool_id: str) -> Optional[float]:
        """Fresh quote-per-base price, or None if the pool cannot be read."""
        snapshot = await self.get_pool(pool_id)
        if snapshot is None:
            return None
        price = spot_price(
            snapshot.base_reserve,
            snapshot.quote_reserve,
            snapshot.base_decimals,
            snapshot.quote_decimals,
        )
        return price if price > 0 else None

    @staticmethod
    def has_minimum_liquidity(snapshot: PoolSnapshot, min_quote: float) -> bool:
        return snapshot.quote_liquidity >= min_quote

    def get_order_history(self, limit: int = 50) -> list[dict]:
        return [o.to_dict() for o in list(self.order_history)[-limit:]]

    async def close(self):
        await self.transport.close()
