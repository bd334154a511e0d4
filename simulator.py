"""
simulator
=========

This module implements a simulated broker.  It mimics the key behaviours
of a real brokerage account: accepting or rejecting orders, executing
them against incoming prices, tracking positions and accounting for
cash and realised PnL.  Prices come either from a
:class:`data_loader.MarketDataLoader` or are pushed in by the caller.
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
from typing import Dict, List, Mapping, Optional

import numpy as np

from account import Account
from data_loader import MarketDataLoader
from models import Asset, Position, Trade
from orders import Order, OrderState, OrderStatus, OrderType

__all__ = ["Simulator"]

logger = logging.getLogger(__name__)


class Simulator:
    """Simulated broker that owns the positions and the order lifecycle.

    Parameters
    ----------
    data_loader : MarketDataLoader, optional
        Source of prices when :meth:`on_price` is called without prices.
    starting_cash : float
        Initial cash balance.
    slippage : float
        Proportional slippage applied against the trader on every fill.
    allow_short : bool
        Reject orders that would leave a short position when False.
    max_fill_quantity : float, optional
        Maximum number of units filled per order per price step.  Larger
        orders are filled partially over several steps.
    """

    def __init__(
        self,
        data_loader: Optional[MarketDataLoader] = None,
        starting_cash: float = 1_000_000.0,
        slippage: float = 0.0,
        allow_short: bool = True,
        max_fill_quantity: Optional[float] = None,
    ) -> None:
        if max_fill_quantity is not None and not (np.isfinite(max_fill_quantity) and max_fill_quantity > 0):
            raise ValueError(f"max_fill_quantity must be positive, got {max_fill_quantity!r}")
        self.data_loader = data_loader
        self.starting_cash = starting_cash
        self.cash = starting_cash
        self.slippage = slippage
        self.allow_short = allow_short
        self.max_fill_quantity = max_fill_quantity
        self.realized_pnl = 0.0
        self.order_id_counter = 1
        # Orders by id, positions by asset and the fills in arrival order.
        self.orders: Dict[int, OrderState] = {}
        self.positions: Dict[Asset, Position] = {}
        self.trade_log: List[Trade] = []
        self.last_prices: Dict[str, float] = {}
        self.time: Optional[dt.datetime] = None
        # Fills are read-modify-write on positions and cash.
        self._lock = threading.RLock()

    # Order API
    def place_order(self, order: Order, time: Optional[dt.datetime] = None) -> OrderState:
        """Submit ``order`` and return its state, either ACCEPTED or REJECTED."""
        with self._lock:
            order.order_id = self.order_id_counter
            self.order_id_counter += 1
            state = OrderState(order)
            self.orders[order.order_id] = state
            reason = self._validate(order)
            if reason:
                state.transition(OrderStatus.REJECTED, time, reason)
                logger.info("Rejected order %s for %s: %s", order.order_id, order.asset.symbol, reason)
            else:
                state.transition(OrderStatus.ACCEPTED, time)
                logger.debug(
                    "Accepted order %s: %s %g", order.order_id, order.asset.symbol, order.quantity
                )
            return state

    def _validate(self, order: Order) -> str:
        if not np.isfinite(order.quantity) or order.quantity == 0:
            return f"invalid quantity {order.quantity}"
        if order.order_type == OrderType.LIMIT:
            if order.limit_price is None or not np.isfinite(order.limit_price) or order.limit_price <= 0:
                return f"invalid limit price {order.limit_price}"
        # Orders that are accepted but not yet filled count as if they were.
        current = self._projected_quantity(order.asset, exclude=order)
        if not self.allow_short and current + order.quantity < 0:
            return "short selling not allowed"
        if order.buy:
            # Only the part of a buy that opens or grows a long position needs
            # cash: buying back a short first covers it, the rest goes long.
            opening = max(0.0, current + order.quantity) - max(0.0, current)
            price = self._estimate_price(order)
            if opening > 0 and not np.isnan(price):
                required = opening * order.asset.multiplier * price * (1 + self.slippage)
                available = self.cash - self._reserved_cash(exclude=order)
                if required > available:
                    return f"insufficient cash: {available:.2f} < {required:.2f}"
        return ""

    def _projected_quantity(self, asset: Asset, exclude: Optional[Order] = None) -> float:
        """Filled quantity plus whatever the open orders on ``asset`` still have to fill."""
        position = self.positions.get(asset)
        quantity = position.quantity if position is not None else 0.0
        for state in self.open_orders():
            if state.order is not exclude and state.order.asset == asset:
                quantity += state.remaining
        return quantity

    def _estimate_price(self, order: Order) -> float:
        # A limit order never pays more than its limit, market orders the last price.
        if order.order_type == OrderType.LIMIT:
            return order.limit_price
        return self._last_price(order.asset)

    def _reserved_cash(self, exclude: Optional[Order] = None) -> float:
        """Cash committed to open buy orders that have not filled yet."""
        reserved = 0.0
        for state in self.open_orders():
            order = state.order
            if order is exclude or not order.buy:
                continue
            price = self._estimate_price(order)
            # Without any known price there is nothing sensible to reserve.
            if np.isnan(price):
                continue
            reserved += state.remaining * order.asset.multiplier * price * (1 + self.slippage)
        return reserved

    def _last_price(self, asset: Asset) -> float:
        price = self.last_prices.get(asset.symbol)
        if price is None and self.data_loader is not None and self.time is not None:
            price = self.data_loader.get_price(asset.symbol, self.time)
        return np.nan if price is None else price

    def cancel_order(self, order_id: int, time: Optional[dt.datetime] = None) -> OrderState:
        """Cancel an open order.  Cancelling a closed order raises InvalidTransitionError."""
        with self._lock:
            state = self.orders[order_id]
            state.transition(OrderStatus.CANCELLED, time or self.time, "cancelled")
            logger.info("Cancelled order %s", order_id)
            return state

    def open_orders(self) -> List[OrderState]:
        return [state for state in self.orders.values() if state.open]

    def closed_orders(self) -> List[OrderState]:
        return [state for state in self.orders.values() if state.closed]

    # Market data API
    def on_price(self, time: dt.datetime, prices: Optional[Mapping[str, float]] = None) -> None:
        """Process one price step: mark positions, expire and execute orders."""
        if prices is None:
            if self.data_loader is None:
                raise ValueError("No prices given and no data loader configured")
            prices = self.data_loader.prices_at(time)
        with self._lock:
            self.time = time
            step: Dict[str, float] = {}
            for symbol, price in prices.items():
                if not np.isfinite(price):
                    logger.warning("Skipping invalid price %r for %s at %s", price, symbol, time)
                    continue
                step[symbol] = float(price)
            self.last_prices.update(step)

            # Marks come first so positions carry this step's price even when
            # no order trades.
            for asset, position in self.positions.items():
                if asset.symbol in step:
                    position.mark(step[asset.symbol], time)

            # Orders are processed in the order they were placed.  Expiry is
            # checked before execution: an order past its expiry never trades
            # on the price of the step that expires it.
            for state in self.open_orders():
                order = state.order
                if order.expires_at is not None and time > order.expires_at:
                    state.transition(OrderStatus.EXPIRED, time, "expired")
                    logger.info("Order %s expired at %s", order.order_id, time)
                    continue
                price = step.get(order.asset.symbol)
                if price is not None:
                    self._execute(state, price, time)

    def _execute(self, state: OrderState, price: float, time: dt.datetime) -> None:
        order = state.order
        # Slippage always works against the trader.
        slip = self.slippage * price
        fill_price = price + slip if order.buy else price - slip
        if not order.is_executable(fill_price):
            return
        # Fill what is left, capped by the liquidity available per step; the
        # rest stays ACCEPTED and trades on later steps.
        quantity = state.remaining
        if self.max_fill_quantity is not None and abs(quantity) > self.max_fill_quantity:
            quantity = float(np.sign(quantity)) * self.max_fill_quantity
        self._apply_fill(state, quantity, fill_price, price, time)
        if state.fully_filled:
            state.transition(OrderStatus.COMPLETED, time)

    def _apply_fill(
        self,
        state: OrderState,
        quantity: float,
        fill_price: float,
        market_price: float,
        time: dt.datetime,
    ) -> None:
        asset = state.order.asset
        # The order validates the fill size, so it goes first and a refused
        # fill leaves the position untouched.
        state.fill(quantity)
        position = self.positions.get(asset)
        if position is None:
            position = Position.empty(asset)
            self.positions[asset] = position
        pnl = position.update(Position(asset, quantity, fill_price))
        position.mark(market_price, time)
        # Buys pay cash, sells receive it, scaled by the contract multiplier.
        self.cash -= quantity * asset.multiplier * fill_price
        self.realized_pnl += pnl
        self.trade_log.append(Trade(time, asset, quantity, fill_price, pnl, state.order_id))
        logger.debug(
            "Filled %g %s at %.4f for order %s, realised %.2f",
            quantity, asset.symbol, fill_price, state.order_id, pnl,
        )

    # Position management
    def get_positions(self) -> Dict[Asset, Position]:
        """Open positions by asset."""
        return {asset: pos for asset, pos in self.positions.items() if pos.open}

    def close_all(self, time: Optional[dt.datetime] = None) -> List[OrderState]:
        """Place market orders that flatten every position, net of pending orders."""
        with self._lock:
            states = []
            assets = set(self.positions) | {s.order.asset for s in self.open_orders()}
            for asset in sorted(assets, key=lambda a: a.symbol):
                # Closing orders already pending count, so calling this twice
                # does not flip the book.
                quantity = self._projected_quantity(asset)
                if quantity == 0:
                    continue
                states.append(self.place_order(Order(asset, -quantity, tag="close"), time))
            return states

    def account(self, time: Optional[dt.datetime] = None) -> Account:
        with self._lock:
            return Account(
                time=time or self.time,
                cash=self.cash,
                realized_pnl=self.realized_pnl,
                positions={asset: pos.copy() for asset, pos in self.positions.items()},
                open_orders=len(self.open_orders()),
            )
