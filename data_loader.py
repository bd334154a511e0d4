"""
data_loader
===========

This module contains the :class:`MarketDataLoader` responsible for reading
asset metadata and historic price bars from disk.  Separating data
loading into its own module keeps the simulator independent from file
format details and eases testing.
"""

from __future__ import annotations

import datetime as dt
import logging
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

from models import Asset

__all__ = ["MarketDataLoader"]

logger = logging.getLogger(__name__)

PRICE_FIELDS = ["open", "high", "low", "close"]


class MarketDataLoader:
    """Load asset definitions and price bars, and answer price queries."""

    def __init__(self, asset_path: Optional[str] = None, price_path: Optional[str] = None) -> None:
        self.asset_path = asset_path
        self.price_path = price_path
        # Load everything up front so the simulator never has to hit disk.
        self.assets: Dict[str, Asset] = self._load_assets(asset_path) if asset_path else {}
        self.data_by_symbol: Dict[str, pd.DataFrame] = (
            self._split_prices(self._read_prices(price_path)) if price_path else {}
        )

    @classmethod
    def from_frames(
        cls, prices: pd.DataFrame, assets: Optional[Iterable[Asset]] = None
    ) -> "MarketDataLoader":
        """Build a loader from an in-memory price table in the file layout."""
        loader = cls()
        loader.assets = {asset.symbol: asset for asset in assets or []}
        loader.data_by_symbol = cls._split_prices(cls._normalise_prices(prices, "<frame>"))
        return loader

    @staticmethod
    def _load_assets(path: str) -> Dict[str, Asset]:
        try:
            df = pd.read_csv(path)
        except (OSError, pd.errors.ParserError) as e:
            raise ValueError(f"Failed to load assets from {path}: {e}") from e
        if "symbol" not in df.columns:
            raise ValueError(f"Asset file {path} has no 'symbol' column")
        assets: Dict[str, Asset] = {}
        for row in df.to_dict("records"):
            # Optional columns fall back to the Asset defaults.
            kwargs = {
                key: row[key]
                for key in ("asset_type", "currency", "multiplier")
                if key in row and not pd.isna(row[key])
            }
            if "multiplier" in kwargs:
                kwargs["multiplier"] = float(kwargs["multiplier"])
            symbol = str(row["symbol"])
            assets[symbol] = Asset(symbol=symbol, **kwargs)
        return assets

    @classmethod
    def _read_prices(cls, path: str) -> pd.DataFrame:
        try:
            df = pd.read_csv(path)
        except (OSError, pd.errors.ParserError) as e:
            raise ValueError(f"Failed to load prices from {path}: {e}") from e
        return cls._normalise_prices(df, path)

    @staticmethod
    def _normalise_prices(df: pd.DataFrame, source: str) -> pd.DataFrame:
        required = {"time", "symbol", "close"}
        if not required.issubset(df.columns):
            raise ValueError(
                f"Unexpected price format in {source}: expected columns {sorted(required)}"
            )
        df = df.copy()
        df["time"] = pd.to_datetime(df["time"])
        df["symbol"] = df["symbol"].astype(str)
        return df

    @staticmethod
    def _split_prices(df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        fields = [f for f in PRICE_FIELDS if f in df.columns]
        data: Dict[str, pd.DataFrame] = {}
        for symbol, group in df.groupby("symbol"):
            data[symbol] = group.set_index("time")[fields].sort_index()
        return data

    def get_asset(self, symbol: str) -> Asset:
        # Symbols missing from the asset file trade as plain stocks.
        asset = self.assets.get(symbol)
        if asset is None:
            asset = Asset(symbol)
            self.assets[symbol] = asset
        return asset

    def get_price(self, symbol: str, time: dt.datetime) -> float:
        """Last close at or before ``time``, NaN when there is none."""
        df = self.data_by_symbol.get(symbol)
        if df is None:
            return np.nan
        closes = df.loc[:time, "close"]
        if closes.empty:
            return np.nan
        return float(closes.iloc[-1])

    def prices_at(self, time: dt.datetime) -> Dict[str, float]:
        """Latest known close of every symbol that has one at ``time``."""
        prices = {}
        for symbol in self.data_by_symbol:
            price = self.get_price(symbol, time)
            if np.isnan(price):
                logger.debug("No price for %s at %s", symbol, time)
                continue
            prices[symbol] = price
        return prices

    def timeline(self) -> pd.DatetimeIndex:
        """Sorted union of all bar timestamps."""
        index = pd.DatetimeIndex([])
        for df in self.data_by_symbol.values():
            index = index.union(df.index)
        return index.sort_values()
