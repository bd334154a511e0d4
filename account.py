"""
account
=======

Read-only view of the simulated brokerage account.  The simulator builds
an :class:`Account` snapshot on request; reporting code reads PnL, value
and exposure from it without being able to touch the live positions.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Dict, Optional

import pandas as pd

from models import Asset, Position

__all__ = ["Account"]

POSITION_COLUMNS = ["symbol", "quantity", "cost", "price", "value", "exposure", "pnl"]


@dataclass(frozen=True)
class Account:
    """Snapshot of cash, realised PnL and open positions."""
    time: Optional[dt.datetime]
    cash: float
    realized_pnl: float
    # Copies of the positions held when the snapshot was taken.
    positions: Dict[Asset, Position] = field(default_factory=dict)
    open_orders: int = 0

    @property
    def unrealized_pnl(self) -> float:
        return sum(pos.pnl for pos in self.positions.values())

    @property
    def market_value(self) -> float:
        return sum(pos.value for pos in self.positions.values())

    @property
    def exposure(self) -> float:
        return sum(pos.exposure for pos in self.positions.values())

    @property
    def equity(self) -> float:
        # Short positions carry a negative value, so this also holds for them.
        return self.cash + self.market_value

    def positions_frame(self) -> pd.DataFrame:
        """Return one row per open position."""
        rows = [
            {
                "symbol": asset.symbol,
                "quantity": pos.quantity,
                "cost": pos.cost,
                "price": pos.price,
                "value": pos.value,
                "exposure": pos.exposure,
                "pnl": pos.pnl,
            }
            for asset, pos in self.positions.items()
            if pos.open
        ]
        return pd.DataFrame(rows, columns=POSITION_COLUMNS)

    def summary(self) -> Dict[str, float]:
        return {
            "cash": self.cash,
            "equity": self.equity,
            "market_value": self.market_value,
            "exposure": self.exposure,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
        }
