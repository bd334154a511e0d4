"""
orders
======

Order definitions and the order lifecycle.

The flow of an order is the same for every broker implementation::

    INITIAL -> ACCEPTED -> COMPLETED | CANCELLED | EXPIRED
    INITIAL -> REJECTED

At any time an order is either open or closed.  Once closed it cannot
be opened again and will not be processed any further.
:class:`OrderState` is where that rule is enforced.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

import numpy as np

from errors import InvalidTransitionError
from models import Asset

__all__ = ["OrderStatus", "OrderType", "Order", "OrderState", "VALID_TRANSITIONS"]


class OrderStatus(Enum):
    """The status an order can be in."""
    # Just created, waiting to be accepted or rejected by the broker.
    INITIAL = "INITIAL"
    # Validated and accepted; stays here until one of the end-states.
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    # Normally the result of a cancel request.
    CANCELLED = "CANCELLED"
    # Normally triggered by the time-in-force of the order.
    EXPIRED = "EXPIRED"
    # Invalid order, not enough buying power, or short selling not allowed.
    REJECTED = "REJECTED"

    @property
    def open(self) -> bool:
        """True for INITIAL and ACCEPTED."""
        return self in (OrderStatus.INITIAL, OrderStatus.ACCEPTED)

    @property
    def closed(self) -> bool:
        """True once the order reached an end-state that allows no more trading."""
        return self in (
            OrderStatus.COMPLETED,
            OrderStatus.CANCELLED,
            OrderStatus.EXPIRED,
            OrderStatus.REJECTED,
        )

    @property
    def aborted(self) -> bool:
        """True for the end-states other than COMPLETED."""
        return self in (OrderStatus.CANCELLED, OrderStatus.EXPIRED, OrderStatus.REJECTED)


VALID_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.INITIAL: frozenset({OrderStatus.ACCEPTED, OrderStatus.REJECTED}),
    OrderStatus.ACCEPTED: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.EXPIRED}
    ),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.EXPIRED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}


class OrderType(Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"


@dataclass
class Order:
    """An instruction to buy (positive quantity) or sell (negative quantity)."""
    asset: Asset
    quantity: float
    order_type: OrderType = OrderType.MARKET
    # Required for LIMIT orders: worst price we accept.
    limit_price: Optional[float] = None
    # Good-till-date; None means good-till-cancelled.
    expires_at: Optional[dt.datetime] = None
    # Free text the caller can use to recognise its orders.
    tag: str = ""
    # Assigned by the broker when the order is placed.
    order_id: Optional[int] = None

    @property
    def buy(self) -> bool:
        return self.quantity > 0

    @property
    def sell(self) -> bool:
        return self.quantity < 0

    def is_executable(self, price: float) -> bool:
        """Can this order trade at ``price``?"""
        if self.order_type == OrderType.MARKET:
            return True
        if self.buy:
            return price <= self.limit_price
        return price >= self.limit_price


@dataclass
class OrderState:
    """Lifecycle state of a single order, owned by the broker."""
    order: Order
    status: OrderStatus = OrderStatus.INITIAL
    filled_quantity: float = 0.0
    opened_at: Optional[dt.datetime] = None
    closed_at: Optional[dt.datetime] = None
    # Why the order was rejected, cancelled or expired.
    reason: str = ""
    history: list = field(default_factory=list)

    @property
    def order_id(self) -> Optional[int]:
        return self.order.order_id

    @property
    def open(self) -> bool:
        return self.status.open

    @property
    def closed(self) -> bool:
        return self.status.closed

    @property
    def remaining(self) -> float:
        """Signed quantity that still has to be filled."""
        return self.order.quantity - self.filled_quantity

    @property
    def fully_filled(self) -> bool:
        # Partial fills are summed in floating point.
        return bool(np.isclose(self.filled_quantity, self.order.quantity, rtol=1e-12, atol=1e-12))

    def transition(
        self,
        status: OrderStatus,
        time: Optional[dt.datetime] = None,
        reason: str = "",
    ) -> None:
        """Move the order to ``status``.

        Raises
        ------
        InvalidTransitionError
            If the lifecycle does not allow the move, which includes any
            move out of a closed state.
        """
        if status not in VALID_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status, status)
        self.history.append((self.status, status, time))
        self.status = status
        if status == OrderStatus.ACCEPTED:
            self.opened_at = time
        if status.closed:
            self.closed_at = time
            self.reason = reason

    def fill(self, quantity: float) -> None:
        """Register a (partial) fill of ``quantity`` units."""
        if self.status != OrderStatus.ACCEPTED:
            # Only accepted orders trade; the status itself stays as it is.
            raise InvalidTransitionError(
                self.status,
                self.status,
                f"Cannot fill order {self.order_id} while it is {self.status.name}",
            )
        if np.sign(quantity) != np.sign(self.order.quantity) or abs(quantity) > abs(self.remaining):
            raise ValueError(
                f"Fill of {quantity} does not fit order {self.order_id} with "
                f"{self.remaining} remaining"
            )
        self.filled_quantity += quantity
