# Overview: In-memory order draft built before submission (product picking and UOM switching).

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from . import uom_service

SEARCH_LIMIT = 20


class DraftError(ValueError):
    """Draft is not ready to be submitted."""


@dataclass
class DraftLine:
    product_id: int | None
    uom_level: int = 3
    qty: Decimal = Decimal("1")
    price: Decimal = Decimal("0")
    pieces: Decimal | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def line_total(self) -> Decimal:
        return uom_service.line_total(self.qty, self.price)


def search_products(products, query: str, limit: int = SEARCH_LIMIT) -> list:
    """Case-insensitive match on sku or name among active products."""
    needle = (query or "").strip().lower()
    if not needle:
        return []
    hits = []
    for p in products:
        if uom_service.product_value(p, "is_active") is False:
            continue
        sku = str(uom_service.product_value(p, "sku") or "").lower()
        name = str(uom_service.product_value(p, "name") or "").lower()
        if needle in sku or needle in name:
            hits.append(p)
            if len(hits) >= limit:
                break
    return hits


class OrderDraft:
    """
    An order being built for one customer.

    `catalog` maps product id to its pricing fields (a Product row or the dict the
    products API returns). Lines always carry a price for their own UOM level.
    """

    def __init__(self, catalog: dict[int, Any] | None = None, customer_id: int | None = None,
                 notes: str = "", payment_terms: str | None = None):
        self.catalog: dict[int, Any] = dict(catalog or {})
        self.customer_id = customer_id
        self.notes = notes
        self.payment_terms = payment_terms
        self.lines: list[DraftLine] = []

    @classmethod
    def from_products(cls, products, **kwargs) -> "OrderDraft":
        catalog = {uom_service.product_value(p, "id"): p for p in products}
        return cls(catalog=catalog, **kwargs)

    def product_for(self, line: DraftLine):
        if line.product_id is None:
            return None
        return self.catalog.get(line.product_id)

    def is_resolved(self, line: DraftLine) -> bool:
        return self.product_for(line) is not None

    def search(self, query: str, limit: int = SEARCH_LIMIT) -> list:
        return search_products(self.catalog.values(), query, limit)

    def _line(self, line_id: str) -> DraftLine | None:
        for line in self.lines:
            if line.id == line_id:
                return line
        return None

    def add_product(self, product_id: int) -> DraftLine | None:
        """
        Add one piece of a product. A second add of the same product bumps
        its piece line instead of starting a new one.
        """
        product = self.catalog.get(product_id)
        if product is None:
            return None
        for line in self.lines:
            if line.product_id == product_id and line.uom_level == 3:
                line.qty = line.qty + 1
                line.pieces = line.qty
                line.price = uom_service.price_for_level(product, 3)
                return line
        line = DraftLine(
            product_id=product_id,
            uom_level=3,
            qty=Decimal("1"),
            price=uom_service.price_for_level(product, 3),
            pieces=Decimal("1"),
        )
        self.lines.append(line)
        return line

    def add_line(self, product_id: int | None, uom_level: int = 3, qty: Any = 1) -> DraftLine:
        """Append a line as given; unknown products stay unresolved with price 0."""
        uom_level = uom_service.check_level(uom_level)
        product = self.catalog.get(product_id) if product_id is not None else None
        amount = uom_service.to_decimal(qty, field="qty")
        line = DraftLine(product_id=product_id, uom_level=uom_level, qty=amount)
        if product is not None:
            line.price = uom_service.price_for_level(product, uom_level)
            line.pieces = amount * uom_service.units_per(product, uom_level)
        self.lines.append(line)
        return line

    def change_uom(self, line_id: str, level: int) -> DraftLine | None:
        """
        Move a line to another level. The piece count stays fixed and qty is
        derived from it.
        """
        line = self._line(line_id)
        if line is None:
            return None
        level = uom_service.check_level(level)
        product = self.product_for(line)
        if product is None:
            return line
        if line.pieces is None:
            line.pieces = line.qty * uom_service.units_per(product, line.uom_level)
        line.qty = uom_service.quantity_for_pieces(product, line.pieces, level)
        line.uom_level = level
        line.price = uom_service.price_for_level(product, level)
        return line

    def set_qty(self, line_id: str, qty: Any) -> DraftLine | None:
        line = self._line(line_id)
        if line is None:
            return None
        value = uom_service.to_decimal(qty, field="qty")
        if value <= 0:
            raise DraftError("Quantity must be greater than 0")
        line.qty = value
        product = self.product_for(line)
        line.pieces = value * uom_service.units_per(product, line.uom_level) if product is not None else None
        return line

    def remove_line(self, line_id: str) -> bool:
        before = len(self.lines)
        self.lines = [line for line in self.lines if line.id != line_id]
        return len(self.lines) != before

    def clear(self) -> None:
        self.lines = []
        self.notes = ""

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0.00"))

    def validate(self) -> None:
        if not self.customer_id:
            raise DraftError("Select a customer")
        if not self.lines:
            raise DraftError("Add at least one item")
        if any(not self.is_resolved(line) for line in self.lines):
            raise DraftError("All rows must have a product")

    def to_payload(self) -> dict:
        """Request body for POST /api/orders. Validates first."""
        self.validate()
        items = []
        for line in self.lines:
            product = self.product_for(line)
            items.append({
                "product_id": line.product_id,
                "qty": str(uom_service.stored_quantity(line.qty)),
                "price": str(line.price),
                "uom_level": line.uom_level,
                "qty_base": str(uom_service.base_quantity(product, line.qty, line.uom_level)),
            })
        return {
            "customer_id": self.customer_id,
            "notes": self.notes or None,
            "payment_terms": self.payment_terms,
            "items": items,
        }
