# Overview: Service-layer operations for orders and order items; encapsulates business logic and database work.

"""
Orders service.

Saving a draft is two writes: the header is committed first, then the items.
If the item write fails the header is deleted again and the error
is re-raised. Totals are computed here from the lines and written with the
header or together with item edits; the database never recomputes them.

Concurrent edits are last-write-wins. Nothing here locks or retries.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased

from ..extensions import db
from ..models import ORDER_STATUSES, Customer, Order, OrderItem, Product, Profile
from .. import policies
from ..policies import Actor, PolicyError
from ..time_utils import to_utc_z
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_order,
    validate_payload,
)
from . import row_query, status_service, uom_service
from .uom_service import UomError


class OrderError(ValueError):
    """Order or item request that cannot be carried out (400)."""
    pass


ORDER_HEADER_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_id", "created_by", "submitted_by", "status", "payment_terms",
        "subtotal", "discount", "tax", "total", "notes",
    },
    required_on_create={"customer_id"},
    blank_to_null={"notes", "payment_terms"},
)

ORDER_COLUMNS = {
    "id": Order.id,
    "customer_id": Order.customer_id,
    "created_by": Order.created_by,
    "submitted_by": Order.submitted_by,
    "status": Order.status,
    "payment_terms": Order.payment_terms,
    "total": Order.total,
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
}

ITEM_COLUMNS = {
    "id": OrderItem.id,
    "order_id": OrderItem.order_id,
    "product_id": OrderItem.product_id,
    "uom_level": OrderItem.uom_level,
}

ZERO = Decimal("0.00")


# ---- v_orders ----

def v_orders_query(actor: Actor):
    """
    Order rows joined with the customer name and the submitter's display
    name. The submitter is submitted_by when set, otherwise created_by.
    """
    submitter = aliased(Profile, name="submitter")
    query = (
        db.session.query(
            Order.id.label("id"),
            Order.customer_id.label("customer_id"),
            Order.created_by.label("created_by"),
            Order.submitted_by.label("submitted_by_id"),
            Order.status.label("status"),
            Order.payment_terms.label("payment_terms"),
            Order.subtotal.label("subtotal"),
            Order.discount.label("discount"),
            Order.tax.label("tax"),
            Order.total.label("total"),
            Order.notes.label("notes"),
            Order.created_at.label("created_at"),
            Order.updated_at.label("updated_at"),
            submitter.full_name.label("submitted_by_name"),
            Customer.name.label("customer_name"),
        )
        .join(Customer, Customer.id == Order.customer_id)
        .outerjoin(submitter, submitter.id == db.func.coalesce(Order.submitted_by, Order.created_by))
        .filter(policies.order_read_clause(actor))
    )
    columns = dict(ORDER_COLUMNS)
    columns.pop("submitted_by")
    columns.update({
        "submitted_by_id": Order.submitted_by,
        "customer_name": Customer.name,
        "submitted_by_name": submitter.full_name,
    })
    return query, columns


def view_row(row) -> dict:
    data = dict(row._mapping)
    for key in ("subtotal", "discount", "tax", "total"):
        if data.get(key) is not None:
            data[key] = float(data[key])
    for key in ("created_at", "updated_at"):
        data[key] = to_utc_z(data.get(key))
    return data


def list_order_view(actor: Actor, args) -> dict:
    """v_orders rows visible to the caller, newest first by default."""
    query, columns = v_orders_query(actor)
    query = row_query.apply_filters(query, columns, args)
    query = query.order_by(*row_query.order_clauses(
        columns, args.get("order"), default=[Order.created_at.desc(), Order.id.desc()]
    ))
    limit, offset = row_query.parse_window(args)
    result = row_query.paginate(query, limit, offset, view_row)
    result["status_counts"] = status_counts(actor)
    return result


def status_counts(actor: Actor) -> dict:
    rows = (
        db.session.query(Order.status, db.func.count(Order.id))
        .filter(policies.order_read_clause(actor))
        .group_by(Order.status)
        .all()
    )
    counts = {status: 0 for status in ORDER_STATUSES}
    counts.update({status: n for status, n in rows})
    counts["all"] = sum(n for _, n in rows)
    return counts


def get_view_rows(actor: Actor, order_ids) -> list[dict]:
    query, _ = v_orders_query(actor)
    rows = query.filter(Order.id.in_(list(order_ids))).order_by(Order.id.asc()).all()
    return [view_row(r) for r in rows]


# ---- headers ----

def list_orders(actor: Actor, args) -> dict:
    query = db.session.query(Order).filter(policies.order_read_clause(actor))
    query = row_query.apply_filters(query, ORDER_COLUMNS, args)
    query = query.order_by(*row_query.order_clauses(
        ORDER_COLUMNS, args.get("order"), default=[Order.created_at.desc(), Order.id.desc()]
    ))
    limit, offset = row_query.parse_window(args)
    return row_query.paginate(query, limit, offset, lambda o: o.to_dict())


def get_order(actor: Actor, order_id: int) -> Order | None:
    return policies.visible_order(actor, order_id)


def create_order_header(actor: Actor, payload: dict) -> Order:
    """
    Insert a bare order header. created_by defaults to the caller and must
    equal the caller.
    """
    payload = dict(payload or {})
    payload.setdefault("created_by", actor.user_id)
    patch = validate_payload(model=Order, payload=payload, policy=ORDER_HEADER_POLICY, partial=False)
    enforce_rules_order(patch)
    policies.require(policies.can_insert_order(actor, patch.get("created_by")), "orders")
    if "status" in patch:
        patch["status"] = status_service.validate_status(patch["status"])
    _require_customer(actor, patch["customer_id"])

    order = Order(**patch)
    db.session.add(order)
    _commit()
    return order


def delete_order(actor: Actor, order_id: int) -> bool:
    order = policies.visible_order(actor, order_id)
    if order is None:
        return False
    policies.require(policies.can_delete_order(actor, order), "orders", "DELETE")
    db.session.delete(order)
    db.session.commit()
    return True


def _require_customer(actor: Actor, customer_id) -> Customer:
    customer = db.session.get(Customer, customer_id) if customer_id else None
    if customer is None:
        raise OrderError("Select a customer")
    return customer


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValidationError(str(e.orig))


# ---- items ----

def parse_level(value) -> int:
    """UOM level from a request body; numeric strings are accepted, booleans are not."""
    try:
        if isinstance(value, str):
            value = int(value.strip())
        return uom_service.check_level(value)
    except (UomError, ValueError):
        raise OrderError(f"Unknown UOM level: {value!r}")


def normalize_item(raw: dict) -> dict:
    """
    Check one incoming line and fill in what the server derives.

    price defaults to the product's price at the line's level when omitted.
    qty_base is always recomputed from the product's conversion factors.
    """
    if not isinstance(raw, dict):
        raise OrderError("Each item must be an object")
    product_id = raw.get("product_id")
    product = db.session.get(Product, product_id) if product_id else None
    if product is None:
        raise OrderError("All rows must have a product")

    level = parse_level(raw.get("uom_level", 3))

    try:
        qty = uom_service.stored_quantity(raw.get("qty"))
        if raw.get("price") is None:
            price = uom_service.price_for_level(product, level)
        else:
            price = uom_service.to_decimal(raw.get("price"), field="price")
    except UomError as e:
        raise OrderError(str(e))
    if qty <= 0:
        raise OrderError("qty must be greater than 0")
    if price < 0:
        raise OrderError("price must be >= 0")

    return {
        "product_id": product.id,
        "uom_level": level,
        "qty": qty,
        "price": price,
        "qty_base": uom_service.base_quantity(product, qty, level),
    }


def lines_subtotal(lines) -> Decimal:
    return sum((uom_service.line_total(line["qty"], line["price"]) for line in lines), ZERO)


def add_items(actor: Actor, order_id: int, items) -> list[OrderItem]:
    """Insert items under a visible order and rewrite its totals (one commit)."""
    order = policies.visible_order(actor, order_id)
    policies.require(policies.can_access_order_item(actor, order), "order_items")
    lines = [normalize_item(i) for i in items]
    rows = [OrderItem(**line) for line in lines]
    order.items.extend(rows)
    recompute_totals(order)
    _commit()
    return rows


def list_items(actor: Actor, order_id: int) -> list[dict] | None:
    order = policies.visible_order(actor, order_id)
    if not policies.can_access_order_item(actor, order):
        return None
    rows = (
        db.session.query(OrderItem)
        .filter(OrderItem.order_id == order.id)
        .order_by(OrderItem.id.asc())
        .all()
    )
    return [r.to_dict(include_product=True) for r in rows]


def save_order(
    actor: Actor,
    customer_id,
    items,
    notes: str | None = None,
    payment_terms: str | None = None,
    submitted_by: int | None = None,
) -> dict:
    """
    Save a draft: header with status 'new' (commit), then its items.

    Everything that can be checked up front is checked before the header is
    written. A failure while writing items deletes the header and re-raises.
    """
    _require_customer(actor, customer_id)
    if not isinstance(items, list) or not items:
        raise OrderError("Add at least one item")
    lines = [normalize_item(i) for i in items]
    subtotal = lines_subtotal(lines)

    header = create_order_header(actor, {
        "customer_id": customer_id,
        "created_by": actor.user_id,
        "submitted_by": submitted_by,
        "status": "new",
        "payment_terms": payment_terms,
        "subtotal": subtotal,
        "discount": ZERO,
        "tax": ZERO,
        "total": subtotal,
        "notes": notes,
    })
    order_id = header.id

    try:
        add_items(actor, order_id, lines)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save items for order %s; removing header", order_id)
        try:
            delete_order(actor, order_id)
        except (PolicyError, IntegrityError):
            db.session.rollback()
            current_app.logger.exception("Failed to remove header of order %s", order_id)
        raise

    return get_order_detail(actor, order_id)


def recompute_totals(order: Order) -> Decimal:
    """Set subtotal and total from the current items (discount/tax untouched)."""
    subtotal = sum((uom_service.line_total(i.qty, i.price) for i in order.items), ZERO)
    order.subtotal = subtotal
    order.total = subtotal
    return subtotal


def update_items(actor: Actor, order_id: int, updates) -> dict | None:
    """
    Edit qty and/or price of existing items, then rewrite the order totals.
    One commit for items and totals.
    """
    order = policies.visible_order(actor, order_id)
    if order is None:
        return None
    policies.require(policies.can_access_order_item(actor, order), "order_items", "UPDATE")
    policies.require(policies.can_update_order(actor, order), "orders", "UPDATE")
    if not isinstance(updates, list) or not updates:
        raise OrderError("items must be a non-empty list")

    by_id = {i.id: i for i in order.items}
    for update in updates:
        if not isinstance(update, dict):
            raise OrderError("Each item must be an object")
        item = by_id.get(update.get("id"))
        if item is None:
            raise OrderError(f"Item {update.get('id')} does not belong to order {order.id}")
        try:
            if "qty" in update:
                qty = uom_service.stored_quantity(update["qty"])
                if qty <= 0:
                    raise OrderError("qty must be greater than 0")
                item.qty = qty
                item.qty_base = uom_service.base_quantity(item.product, qty, item.uom_level)
            if "price" in update:
                price = uom_service.to_decimal(update["price"], field="price")
                if price < 0:
                    raise OrderError("price must be >= 0")
                item.price = price
        except UomError as e:
            raise OrderError(str(e))
        item.line_total = uom_service.line_total(item.qty, item.price)

    recompute_totals(order)
    _commit()
    return get_order_detail(actor, order.id)


def change_item_uom(actor: Actor, item_id: int, level) -> dict | None:
    """
    Move a stored line to another UOM level: same number of pieces, price
    taken from the product at the new level, order totals rewritten.
    """
    level = parse_level(level)

    item = db.session.get(OrderItem, item_id)
    if item is None:
        return None
    order = policies.visible_order(actor, item.order_id)
    if order is None:
        return None
    policies.require(policies.can_access_order_item(actor, order), "order_items", "UPDATE")
    policies.require(policies.can_update_order(actor, order), "orders", "UPDATE")

    product = item.product
    pieces = item.qty_base
    if pieces is None:
        pieces = uom_service.base_quantity(product, item.qty, item.uom_level)
    item.qty = uom_service.stored_quantity(uom_service.quantity_for_pieces(product, pieces, level))
    item.uom_level = level
    item.price = uom_service.price_for_level(product, level)
    item.qty_base = pieces
    item.line_total = uom_service.line_total(item.qty, item.price)

    recompute_totals(order)
    _commit()
    return item.to_dict(include_product=True)


def get_order_detail(actor: Actor, order_id: int) -> dict | None:
    """Header (as a v_orders row) with items and status history."""
    rows = get_view_rows(actor, [order_id])
    if not rows:
        return None
    return {
        "order": rows[0],
        "items": list_items(actor, order_id) or [],
        "history": status_service.list_history(actor, order_id) or [],
    }
