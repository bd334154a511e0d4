"""Tests for order statuses and the order lifecycle."""

import datetime as dt

import pytest

from errors import InvalidTransitionError
from models import Asset
from orders import VALID_TRANSITIONS, Order, OrderState, OrderStatus, OrderType

ASSET = Asset("MSFT")
CLOSED = [OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.EXPIRED, OrderStatus.REJECTED]


def test_open_and_closed_partition_statuses():
    for status in OrderStatus:
        assert status.open != status.closed
    assert {s for s in OrderStatus if s.open} == {OrderStatus.INITIAL, OrderStatus.ACCEPTED}
    assert {s for s in OrderStatus if s.closed} == set(CLOSED)


def test_aborted_is_closed_minus_completed():
    aborted = {s for s in OrderStatus if s.aborted}
    assert aborted == {OrderStatus.CANCELLED, OrderStatus.EXPIRED, OrderStatus.REJECTED}
    assert all(s.closed for s in aborted)
    assert not OrderStatus.COMPLETED.aborted


def test_closed_statuses_have_no_transitions():
    for status in CLOSED:
        assert VALID_TRANSITIONS[status] == frozenset()


def test_happy_path():
    state = OrderState(Order(ASSET, 10))
    opened = dt.datetime(2024, 1, 2, 9, 30)
    closed = dt.datetime(2024, 1, 2, 9, 31)
    state.transition(OrderStatus.ACCEPTED, opened)
    state.fill(10)
    state.transition(OrderStatus.COMPLETED, closed)
    assert state.closed
    assert state.opened_at == opened
    assert state.closed_at == closed
    assert len(state.history) == 2


def test_rejected_from_initial():
    state = OrderState(Order(ASSET, 10))
    state.transition(OrderStatus.REJECTED, reason="no cash")
    assert state.status.aborted
    assert state.reason == "no cash"


@pytest.mark.parametrize("target", [OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.EXPIRED])
def test_initial_cannot_skip_acceptance(target):
    state = OrderState(Order(ASSET, 10))
    with pytest.raises(InvalidTransitionError):
        state.transition(target)
    assert state.status == OrderStatus.INITIAL


@pytest.mark.parametrize("closed", CLOSED)
@pytest.mark.parametrize("target", list(OrderStatus))
def test_nothing_leaves_a_closed_state(closed, target):
    state = OrderState(Order(ASSET, 10), status=closed)
    with pytest.raises(InvalidTransitionError):
        state.transition(target)
    assert state.status == closed


def test_partial_fills_track_remaining():
    state = OrderState(Order(ASSET, -10))
    state.transition(OrderStatus.ACCEPTED)
    state.fill(-4)
    assert state.remaining == -6
    assert not state.fully_filled
    state.fill(-6)
    assert state.fully_filled


def test_fill_must_fit_the_order():
    state = OrderState(Order(ASSET, 10))
    with pytest.raises(InvalidTransitionError):
        state.fill(5)
    state.transition(OrderStatus.ACCEPTED)
    with pytest.raises(ValueError):
        state.fill(11)
    with pytest.raises(ValueError):
        state.fill(-1)


def test_limit_order_executability():
    buy = Order(ASSET, 5, OrderType.LIMIT, limit_price=100)
    sell = Order(ASSET, -5, OrderType.LIMIT, limit_price=100)
    assert buy.is_executable(99.5)
    assert not buy.is_executable(100.5)
    assert sell.is_executable(100.5)
    assert not sell.is_executable(99.5)
    assert Order(ASSET, 5).is_executable(1e9)


def test_fill_on_unaccepted_order_names_the_fill():
    state = OrderState(Order(ASSET, 10))
    with pytest.raises(InvalidTransitionError, match="Cannot fill order"):
        state.fill(5)
    assert state.status == OrderStatus.INITIAL
