"""Helpers for integer minor-unit amounts.

The engine never stores or compares floats; conversion to a decimal major
unit happens only when rendering for humans (timeline messages, logs).
"""

from __future__ import annotations

from decimal import Decimal

MINOR_UNITS_PER_MAJOR = 100


def format_minor(amount: int, currency: str) -> str:
    """Render ``amount`` minor units as ``"NGN 100.00"``."""
    major = Decimal(amount) / MINOR_UNITS_PER_MAJOR
    return f"{currency} {major:,.2f}"


def proportion_of(amount: int, rate: Decimal) -> int:
    """Integer share of ``amount`` for a fractional ``rate`` (rounded down)."""
    return int(Decimal(amount) * rate)
