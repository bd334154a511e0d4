"""
models
======

This module defines the data containers for assets, positions and trade
log entries.  :class:`Position` is the accounting core of the package: it
keeps the signed quantity and average cost of one asset and computes the
realised PnL of every fill applied to it.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Optional

import numpy as np

from errors import InvalidFillError

__all__ = ["Asset", "Position", "Trade", "empty_position"]


@dataclass(frozen=True)
class Asset:
    """A tradable instrument."""
    symbol: str
    # STOCK, FUTURE, OPTION, CRYPTO ... only used for reporting.
    asset_type: str = "STOCK"
    # Currency that costs and prices of this asset are denoted in.
    currency: str = "USD"
    # Contract multiplier, for example 100 for most option contracts.
    multiplier: float = 1.0


class Position:
    """Position of an asset in the portfolio.

    The quantity excludes the contract multiplier of the asset and is
    signed: positive for long, negative for short and zero for flat.
    ``cost`` is the average cost per unit and ``price`` the last known
    market price, both in the currency of the asset.

    ``quantity`` and ``cost`` can only change through :meth:`update`;
    ``price`` and ``last_update`` through :meth:`mark`.

    Parameters
    ----------
    asset : Asset
        The instrument held.
    quantity : float
        Signed number of units.
    cost : float
        Average cost per unit.
    price : float, optional
        Last known market price, defaults to ``cost``.
    last_update : datetime, optional
        When ``price`` was observed.
    """

    __slots__ = ("asset", "_quantity", "_cost", "_price", "_last_update")

    def __init__(
        self,
        asset: Asset,
        quantity: float = 0.0,
        cost: float = 0.0,
        price: Optional[float] = None,
        last_update: Optional[dt.datetime] = None,
    ) -> None:
        self.asset = asset
        self._quantity = float(quantity)
        self._cost = float(cost)
        self._price = self._cost if price is None else float(price)
        self._last_update = last_update

    @classmethod
    def empty(cls, asset: Asset) -> "Position":
        """Create a flat position for ``asset``."""
        return cls(asset, 0.0, 0.0, 0.0)

    @property
    def quantity(self) -> float:
        return self._quantity

    @property
    def cost(self) -> float:
        return self._cost

    @property
    def price(self) -> float:
        return self._price

    @property
    def last_update(self) -> Optional[dt.datetime]:
        return self._last_update

    def mark(self, price: float, time: Optional[dt.datetime] = None) -> None:
        """Record the last known market price of the asset."""
        if not np.isfinite(price):
            raise ValueError(f"Invalid market price {price!r} for {self.asset.symbol}")
        self._price = float(price)
        self._last_update = time

    def update(self, fill: "Position") -> float:
        """Apply ``fill`` to this position and return the PnL it realised.

        ``fill.quantity`` is the signed size of the trade and ``fill.cost``
        its execution price.
        """
        self._check_fill(fill)
        new_quantity = self._quantity + fill.quantity
        pnl = 0.0

        if np.sign(self._quantity) != np.sign(new_quantity):
            # The old position is closed out completely, whatever is left
            # over starts a new cost basis at the fill price.
            pnl = self.total_size * (fill.cost - self._cost)
            self._cost = fill.cost
        elif abs(new_quantity) > abs(self._quantity):
            # Adding in the same direction: nothing is realised, the cost
            # becomes the size-weighted average of old and new units.
            self._cost = (self._cost * self._quantity + fill.cost * fill.quantity) / new_quantity
        else:
            # Reducing: the closed units realise against the existing cost,
            # which stays the basis of what is left.
            pnl = fill.quantity * self.asset.multiplier * (self._cost - fill.cost)

        self._quantity = new_quantity
        return pnl

    def _check_fill(self, fill: "Position") -> None:
        if fill.asset != self.asset:
            raise InvalidFillError(
                f"Fill for {fill.asset.symbol} cannot update position in {self.asset.symbol}"
            )
        if not np.isfinite(fill.quantity) or not np.isfinite(fill.cost):
            raise InvalidFillError(
                f"Fill for {self.asset.symbol} has non-finite values: "
                f"quantity={fill.quantity}, cost={fill.cost}"
            )

    @property
    def total_size(self) -> float:
        """Quantity times the contract multiplier of the asset."""
        return self._quantity * self.asset.multiplier

    @property
    def short(self) -> bool:
        return self._quantity < 0

    @property
    def long(self) -> bool:
        return self._quantity > 0

    @property
    def open(self) -> bool:
        return self._quantity != 0

    @property
    def pnl(self) -> float:
        """Unrealised PnL at the last known market price."""
        return self.total_size * (self._price - self._cost)

    @property
    def value(self) -> float:
        """Market value, negative for short positions."""
        return self.total_size * self._price

    @property
    def exposure(self) -> float:
        """Gross exposure, positive for long and short positions alike."""
        return abs(self.total_size) * self._price

    @property
    def total_cost(self) -> float:
        return self.total_size * self._cost

    def copy(self) -> "Position":
        return Position(self.asset, self._quantity, self._cost, self._price, self._last_update)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Position):
            return NotImplemented
        return (
            self.asset == other.asset
            and self._quantity == other._quantity
            and self._cost == other._cost
            and self._price == other._price
            and self._last_update == other._last_update
        )

    def __repr__(self) -> str:
        return (
            f"Position({self.asset.symbol}, quantity={self._quantity:g}, "
            f"cost={self._cost:.4f}, price={self._price:.4f})"
        )


def empty_position(asset: Asset) -> Position:
    """Return a zero-initialised position for ``asset``."""
    return Position.empty(asset)


@dataclass
class Trade:
    """Record of a single fill for reporting purposes."""
    time: Optional[dt.datetime]
    asset: Asset
    # Signed quantity of the fill and its execution price.
    quantity: float
    price: float
    # PnL realised on the position by this fill.
    pnl: float
    order_id: int
