# Overview: Unit-of-measure arithmetic shared by the order draft, the order service and imports.

"""
Three-level unit-of-measure pricing.

A product's price is quoted against UOM1 (the largest unit). conv1_to_2 is
the number of UOM2 units in one UOM1 and conv2_to_3 the number of UOM3
units (pieces) in one UOM2. Every conversion goes through the piece basis.

Functions accept either a Product row or a plain mapping with the same keys
(the shape returned by the products API), so the client-side draft and the
server use the same arithmetic.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

MONEY_PLACES = Decimal("0.01")
QTY_PLACES = Decimal("0.0001")
STORED_QTY_PLACES = Decimal("0.000000000001")
LEVELS = (1, 2, 3)


class UomError(ValueError):
    """Unknown UOM level or unusable quantity/price input."""


def product_value(product: Any, name: str):
    if isinstance(product, dict):
        return product.get(name)
    return getattr(product, name, None)


def to_decimal(value: Any, *, field: str = "value") -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise UomError(f"{field} must be a number")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise UomError(f"{field} must be a number")
    if not result.is_finite():
        raise UomError(f"{field} must be a number")
    return result


def clamp_factor(value: Any) -> int:
    """Conversion factor as an int >= 1. Missing, zero, negative or junk -> 1."""
    if value is None or isinstance(value, bool):
        return 1
    try:
        n = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return 1
    return n if n >= 1 else 1


def check_level(level: Any) -> int:
    if level not in LEVELS or isinstance(level, bool):
        raise UomError(f"Unknown UOM level: {level!r}")
    return int(level)


def factors(product: Any) -> tuple[int, int]:
    return clamp_factor(product_value(product, "conv1_to_2")), clamp_factor(product_value(product, "conv2_to_3"))


def units_per(product: Any, level: int) -> int:
    """Pieces in one unit of the given level."""
    level = check_level(level)
    c12, c23 = factors(product)
    if level == 1:
        return c12 * c23
    if level == 2:
        return c23
    return 1


def catalog_price(product: Any) -> Decimal:
    raw = product_value(product, "price")
    if raw is None:
        return Decimal("0")
    try:
        return to_decimal(raw, field="price")
    except UomError:
        return Decimal("0")


def per_piece_price(product: Any) -> Decimal:
    """
    Unrounded price of one piece.

    Falls back to the raw catalog price when the denominator is zero.
    """
    price = catalog_price(product)
    denominator = units_per(product, 1)
    if denominator == 0:
        return price
    return price / Decimal(denominator)


def price_for_level(product: Any, level: int) -> Decimal:
    """Unit price at the given level, rounded to cents. Level 1 gives back the catalog price."""
    value = per_piece_price(product) * units_per(product, level)
    return value.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def quantity_for_pieces(product: Any, pieces: Any, level: int) -> Decimal:
    """qty at level that holds the given number of pieces. Not rounded."""
    amount = to_decimal(pieces, field="qty_base")
    return amount / Decimal(units_per(product, level))


def convert_quantity(product: Any, qty: Any, from_level: int, to_level: int) -> Decimal:
    """Re-express qty in another level, keeping the same number of pieces. Not rounded."""
    amount = to_decimal(qty, field="qty")
    return quantity_for_pieces(product, amount * units_per(product, from_level), to_level)


def stored_quantity(qty: Any) -> Decimal:
    """qty at the scale of order_items.qty."""
    return to_decimal(qty, field="qty").quantize(STORED_QTY_PLACES, rounding=ROUND_HALF_UP)


def base_quantity(product: Any, qty: Any, level: int) -> Decimal:
    """Piece equivalent of qty at level (stored as order_items.qty_base)."""
    amount = to_decimal(qty, field="qty")
    return (amount * units_per(product, level)).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def uom_name(product: Any, level: int) -> str:
    level = check_level(level)
    name = product_value(product, f"uom{level}_name")
    return name or f"UOM{level}"


def line_total(qty: Any, price: Any) -> Decimal:
    amount = to_decimal(qty, field="qty") * to_decimal(price, field="price")
    return amount.quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)
