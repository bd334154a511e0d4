"""
errors
======

Exceptions raised by the position ledger and the order state machine.
Both derive from :class:`ValueError` so callers that already guard
against bad input keep working.
"""

from __future__ import annotations

__all__ = ["InvalidFillError", "InvalidTransitionError"]


class InvalidFillError(ValueError):
    """A fill that cannot be applied to a position (wrong asset, NaN size or price)."""


class InvalidTransitionError(ValueError):
    """An order status change that the lifecycle does not allow."""

    def __init__(self, current, target, message: str = "") -> None:
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move order from {current.name} to {target.name}")
