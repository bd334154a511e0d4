"""Tests for the account view."""

import pytest

from account import POSITION_COLUMNS, Account
from models import Asset, Position

LONG = Asset("LONG")
SHORT = Asset("SHORT", multiplier=10.0)
FLAT = Asset("FLAT")


@pytest.fixture
def account():
    positions = {
        LONG: Position(LONG, 10, 100, price=110),
        SHORT: Position(SHORT, -2, 50, price=40),
        FLAT: Position.empty(FLAT),
    }
    return Account(time=None, cash=5_000.0, realized_pnl=75.0, positions=positions)


def test_aggregates(account):
    assert account.market_value == pytest.approx(1_100 - 800)
    assert account.exposure == pytest.approx(1_100 + 800)
    assert account.unrealized_pnl == pytest.approx(100 + 200)
    assert account.equity == pytest.approx(5_000 + 300)


def test_positions_frame_skips_flat_positions(account):
    frame = account.positions_frame()
    assert list(frame.columns) == POSITION_COLUMNS
    assert sorted(frame["symbol"]) == ["LONG", "SHORT"]
    short = frame.set_index("symbol").loc["SHORT"]
    assert short["value"] == pytest.approx(-800)
    assert short["pnl"] == pytest.approx(200)


def test_empty_account():
    account = Account(time=None, cash=1_000.0, realized_pnl=0.0)
    assert account.equity == 1_000
    assert account.positions_frame().empty
    assert account.summary()["exposure"] == 0


def test_summary(account):
    summary = account.summary()
    assert summary["cash"] == 5_000
    assert summary["realized_pnl"] == 75
    assert summary["equity"] == pytest.approx(5_300)
