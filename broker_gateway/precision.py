"""
Broker Gateway - Precision and Rounding.

============================================================
PURPOSE
============================================================
Turns raw prices and amounts into exchange-legal values.

RULES:
- Rounding always truncates toward zero (never rounds up), so a
  rounded amount can never exceed an available balance.
- All arithmetic is Decimal. Floats are converted through their
  shortest repr, never through their binary expansion.

============================================================
"""

import logging
from decimal import Decimal, ROUND_DOWN
from typing import Union

from .types import MarketConstraints


logger = logging.getLogger(__name__)


Number = Union[Decimal, int, float, str]

MAX_PRECISION_ITERATIONS = 15
"""Upper bound on decimal places probed by `precision_of`."""

DEFAULT_PRECISION = 8
"""Used when a tick size is not an exact short decimal."""


def to_decimal(value: Number) -> Decimal:
    """
    Convert a number to Decimal.

    Floats go through `str()` so 0.1 becomes Decimal("0.1").

    Raises:
        decimal.InvalidOperation: If the value is not numeric
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def precision_of(tick_size: Number) -> int:
    """
    Count the decimal places needed to represent a tick size.

    0.001 and 0.234 both give 3. Non-finite input gives 0.

    Args:
        tick_size: Minimum increment

    Returns:
        Number of decimal places
    """
    tick = to_decimal(tick_size)
    if not tick.is_finite():
        return 0

    scaled = tick
    for precision in range(MAX_PRECISION_ITERATIONS + 1):
        if scaled == scaled.to_integral_value():
            return precision
        scaled *= 10

    logger.debug(
        f"Tick size {tick_size} needs more than {MAX_PRECISION_ITERATIONS} "
        f"decimals, using {DEFAULT_PRECISION}"
    )
    return DEFAULT_PRECISION


def round_to_tick(amount: Number, tick_size: Number) -> Decimal:
    """
    Truncate an amount toward zero at the precision of a tick size.

    Args:
        amount: Raw amount or price
        tick_size: Minimum increment

    Returns:
        Truncated value, never larger in magnitude than `amount`
    """
    quantum = Decimal(1).scaleb(-precision_of(tick_size))
    return to_decimal(amount).quantize(quantum, rounding=ROUND_DOWN)


def format_plain(value: Number) -> str:
    """
    Render a number as plain decimal text.

    Decimal("1E-8") becomes "0.00000001"; trailing zeros are dropped.
    """
    value = to_decimal(value)
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


# ============================================================
# PER-MARKET HELPERS
# ============================================================

class MarketPrecision:
    """
    Rounding and validation bound to one market's constraints.
    """

    def __init__(self, constraints: MarketConstraints):
        self._constraints = constraints

    @property
    def constraints(self) -> MarketConstraints:
        return self._constraints

    def round_amount(self, amount: Number) -> Decimal:
        return round_to_tick(amount, self._constraints.min_amount)

    def round_price(self, price: Number) -> Decimal:
        return round_to_tick(price, self._constraints.min_price)

    def is_valid_price(self, price: Number) -> bool:
        return to_decimal(price) >= self._constraints.min_price

    def is_valid_lot(self, price: Number, amount: Number) -> bool:
        """Notional value must reach the minimum order value."""
        return to_decimal(price) * to_decimal(amount) >= self._constraints.min_order

    def outbid_price(self, price: Number, is_up: bool) -> Decimal:
        """
        Move a price by exactly one tick.

        Args:
            price: Current price
            is_up: Move up if True, down otherwise

        Returns:
            Shifted and re-rounded price
        """
        tick = self._constraints.min_price
        price = to_decimal(price)
        new_price = price + tick if is_up else price - tick
        return self.round_price(new_price)
