from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..services.uom_service import line_total
from ..time_utils import to_utc_z


ORDER_STATUSES = ("created", "new", "shipped", "cancelled")
PAYMENT_TERMS = ("CASH", "CREDIT")
UOM_LEVELS = (1, 2, 3)


def _num(value):
    return float(value) if value is not None else None


class Order(db.Model):
    """
    Order header placed for a customer.

    status starts as 'created' at the column level; the app writes 'new' when
    an order is saved from a draft. subtotal and total are kept equal to the
    sum of item line totals by the order service.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("status in ('created','new','shipped','cancelled')", name="ck_orders_status"),
        db.CheckConstraint("payment_terms is null or payment_terms in ('CASH','CREDIT')", name="ck_orders_payment_terms"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    submitted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="created", server_default="created")
    payment_terms = db.Column(db.String(16), nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer")
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    history = db.relationship(
        "OrderStatusHistory",
        back_populates="order",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "created_by": self.created_by,
            "submitted_by": self.submitted_by,
            "status": self.status,
            "payment_terms": self.payment_terms,
            "subtotal": _num(self.subtotal),
            "discount": _num(self.discount),
            "tax": _num(self.tax),
            "total": _num(self.total),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Order line. price is per unit of the chosen uom_level; qty_base is the
    piece (UOM3) equivalent of qty. qty carries enough scale for a single
    piece of a large carton. line_total is derived on every write.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_order_items_qty"),
        db.CheckConstraint("price >= 0", name="ck_order_items_price"),
        db.CheckConstraint("uom_level in (1,2,3)", name="ck_order_items_uom_level"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    qty = db.Column(db.Numeric(24, 12), nullable=False)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    uom_level = db.Column(db.Integer, nullable=False, default=3)
    qty_base = db.Column(db.Numeric(14, 4), nullable=True)
    line_total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "qty": _num(self.qty),
            "price": _num(self.price),
            "uom_level": self.uom_level,
            "qty_base": _num(self.qty_base),
            "line_total": _num(self.line_total),
        }
        if include_product and self.product is not None:
            p = self.product
            data["product"] = {
                "sku": p.sku,
                "name": p.name,
                "uom1_name": p.uom1_name,
                "uom2_name": p.uom2_name,
                "uom3_name": p.uom3_name,
                "conv1_to_2": p.conv1_to_2,
                "conv2_to_3": p.conv2_to_3,
            }
        return data


@event.listens_for(OrderItem, "before_insert")
@event.listens_for(OrderItem, "before_update")
def _derive_line_total(mapper, connection, target: OrderItem) -> None:
    target.line_total = line_total(target.qty or 0, target.price or 0)


class OrderStatusHistory(db.Model):
    """Append-only record of order status changes."""
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order_changed", "order_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    changed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }
