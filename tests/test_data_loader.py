"""Tests for loading assets and prices."""

import datetime as dt

import numpy as np
import pandas as pd
import pytest

from data_loader import MarketDataLoader
from models import Asset

PRICES = """time,symbol,open,high,low,close
2024-01-02 09:31,AAPL,100,101,99,100.5
2024-01-02 09:31,SPY240119C00470000,2.0,2.2,1.9,2.1
2024-01-02 09:32,AAPL,100.5,102,100,101.5
2024-01-02 09:34,AAPL,101.5,103,101,102.5
"""

ASSETS = """symbol,asset_type,currency,multiplier
AAPL,STOCK,USD,1
SPY240119C00470000,OPTION,USD,100
"""


@pytest.fixture
def loader(tmp_path):
    prices = tmp_path / "prices.csv"
    prices.write_text(PRICES)
    assets = tmp_path / "assets.csv"
    assets.write_text(ASSETS)
    return MarketDataLoader(str(assets), str(prices))


def test_assets_are_loaded(loader):
    option = loader.get_asset("SPY240119C00470000")
    assert option == Asset("SPY240119C00470000", "OPTION", "USD", 100.0)
    assert loader.get_asset("AAPL").multiplier == 1.0


def test_unknown_symbol_gets_default_asset(loader):
    asset = loader.get_asset("MSFT")
    assert asset == Asset("MSFT")
    assert loader.get_asset("MSFT") is asset


def test_price_lookup_uses_last_close(loader):
    assert loader.get_price("AAPL", dt.datetime(2024, 1, 2, 9, 31)) == 100.5
    assert loader.get_price("AAPL", dt.datetime(2024, 1, 2, 9, 33)) == 101.5
    assert np.isnan(loader.get_price("AAPL", dt.datetime(2024, 1, 2, 9, 30)))
    assert np.isnan(loader.get_price("MSFT", dt.datetime(2024, 1, 2, 9, 33)))


def test_prices_at_skips_missing_symbols(loader):
    prices = loader.prices_at(dt.datetime(2024, 1, 2, 9, 34))
    assert prices == {"AAPL": 102.5, "SPY240119C00470000": 2.1}
    assert loader.prices_at(dt.datetime(2024, 1, 2, 9, 0)) == {}


def test_timeline_is_sorted_union(loader):
    timeline = loader.timeline()
    assert list(timeline) == list(
        pd.to_datetime(["2024-01-02 09:31", "2024-01-02 09:32", "2024-01-02 09:34"])
    )


def test_from_frames():
    frame = pd.DataFrame({"time": ["2024-01-02 09:31"], "symbol": ["X"], "close": [3.0]})
    loader = MarketDataLoader.from_frames(frame, [Asset("X", multiplier=50.0)])
    assert loader.get_asset("X").multiplier == 50.0
    assert loader.get_price("X", dt.datetime(2024, 1, 3)) == 3.0


def test_bad_price_file(tmp_path):
    path = tmp_path / "prices.csv"
    path.write_text("when,ticker,last\n2024-01-02,AAPL,1\n")
    with pytest.raises(ValueError, match="Unexpected price format"):
        MarketDataLoader(price_path=str(path))


def test_missing_file(tmp_path):
    with pytest.raises(ValueError, match="Failed to load prices"):
        MarketDataLoader(price_path=str(tmp_path / "missing.csv"))
