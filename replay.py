"""
replay
======

This module provides a command line entry point that replays a file of
orders against historic prices through the :class:`simulator.Simulator`.
It wires together the data loader and the simulator, steps through the
price timeline and reports the resulting trade log and account.

Example::

    python -m replay \
      --assets-file data/assets.csv \
      --prices-file data/prices.csv \
      --orders-file data/orders.csv \
      --debug
"""

from __future__ import annotations

import argparse
import logging
from typing import Iterable, List, Optional

import pandas as pd

from account import Account
from data_loader import MarketDataLoader
from orders import Order, OrderType
from simulator import Simulator

__all__ = ["load_orders", "run_replay", "parse_args", "main"]

logger = logging.getLogger(__name__)


def load_orders(path: str) -> pd.DataFrame:
    """Read the orders file, sorted by submission time."""
    try:
        df = pd.read_csv(path)
    except (OSError, pd.errors.ParserError) as e:
        raise ValueError(f"Failed to load orders from {path}: {e}") from e
    required = {"time", "symbol", "quantity"}
    if not required.issubset(df.columns):
        raise ValueError(f"Unexpected order format in {path}: expected columns {sorted(required)}")
    df["time"] = pd.to_datetime(df["time"])
    if "expires_at" in df.columns:
        df["expires_at"] = pd.to_datetime(df["expires_at"])
    # A stable sort keeps file order for orders submitted at the same time.
    return df.sort_values("time", kind="stable").reset_index(drop=True)


def _to_order(row: dict, loader: MarketDataLoader, source: str = "<orders>", line: int = 0) -> Order:
    raw_type = row.get("order_type")
    try:
        order_type = OrderType.MARKET if pd.isna(raw_type) else OrderType(str(raw_type).strip().upper())
    except ValueError as e:
        raise ValueError(
            f"Unknown order_type {raw_type!r} in {source} (order {line}): "
            f"expected one of {[t.value for t in OrderType]}"
        ) from e
    limit_price = row.get("limit_price")
    expires_at = row.get("expires_at")
    return Order(
        asset=loader.get_asset(str(row["symbol"])),
        quantity=float(row["quantity"]),
        order_type=order_type,
        limit_price=None if pd.isna(limit_price) else float(limit_price),
        expires_at=None if pd.isna(expires_at) else expires_at,
    )


def run_replay(
    price_file: str,
    order_file: str,
    asset_file: Optional[str] = None,
    starting_cash: float = 1_000_000.0,
    slippage: float = 0.0,
    allow_short: bool = True,
    max_fill_quantity: Optional[float] = None,
) -> Account:
    """Replay ``order_file`` against ``price_file`` and return the final account."""
    loader = MarketDataLoader(asset_file, price_file)
    orders = load_orders(order_file)
    sim = Simulator(
        loader,
        starting_cash=starting_cash,
        slippage=slippage,
        allow_short=allow_short,
        max_fill_quantity=max_fill_quantity,
    )
    records: List[dict] = orders.to_dict("records")
    # Orders are sorted by time, so one cursor walks them alongside the timeline.
    cursor = 0
    for time in loader.timeline():
        # Submit everything stamped at or before this bar, then let it trade.
        while cursor < len(records) and records[cursor]["time"] <= time:
            sim.place_order(_to_order(records[cursor], loader, order_file, cursor + 1), time)
            cursor += 1
        sim.on_price(time)
    if cursor < len(records):
        logger.warning(
            "%d orders are stamped after the last price and were not submitted", len(records) - cursor
        )

    account = sim.account()
    print("Trade log:")
    for trade in sim.trade_log:
        print(
            f"{trade.time} | order {trade.order_id} | {trade.asset.symbol} | "
            f"{trade.quantity:+g} @ {trade.price:.2f} | PnL: {trade.pnl:.2f}"
        )
    aborted = [s for s in sim.closed_orders() if s.status.aborted]
    for state in aborted:
        print(f"Order {state.order_id} {state.status.value}: {state.reason}")
    print("\nOpen positions:")
    print(account.positions_frame().to_string(index=False))
    print("\nAccount:")
    for key, value in account.summary().items():
        print(f"{key:>15}: {value:,.2f}")
    return account


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay orders against historic prices")
    parser.add_argument("--prices-file", required=True, help="CSV with time,symbol,close columns")
    parser.add_argument("--orders-file", required=True, help="CSV with time,symbol,quantity columns")
    parser.add_argument("--assets-file", default=None, help="CSV with symbol and optional multiplier")
    parser.add_argument("--starting-cash", type=float, default=1_000_000.0, help="Initial cash")
    parser.add_argument("--slippage", type=float, default=0.0, help="Proportional slippage per fill")
    parser.add_argument("--no-short", action="store_true", help="Reject orders that go short")
    parser.add_argument(
        "--max-fill-quantity", type=float, default=None, help="Cap on units filled per order per bar"
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose logging")
    return parser.parse_args(argv)


def main(argv: Optional[Iterable[str]] = None) -> Account:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return run_replay(
        price_file=args.prices_file,
        order_file=args.orders_file,
        asset_file=args.assets_file,
        starting_cash=args.starting_cash,
        slippage=args.slippage,
        allow_short=not args.no_short,
        max_fill_quantity=args.max_fill_quantity,
    )


if __name__ == "__main__":
    main()
