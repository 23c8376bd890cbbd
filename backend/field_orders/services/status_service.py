# Overview: Order status changes and the append-only status history.

"""
Order status lifecycle.

    created  column default on insert
    new      written when an order is saved from a draft
    shipped
    cancelled

Any known status may be set from any other by an admin; there is no
enforced forward-only order. Every change, including setting the status an
order already has, appends one history row with the prior and new status and
the acting user. The status update and its history row share one commit.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ORDER_STATUSES, Order, OrderStatusHistory
from .. import policies
from ..policies import Actor
from ..time_utils import utcnow


class StatusError(ValueError):
    """Unknown status value or malformed status request."""
    pass


def validate_status(status) -> str:
    if not isinstance(status, str) or status.strip().lower() not in ORDER_STATUSES:
        raise StatusError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )
    return status.strip().lower()


def _apply(actor: Actor, order: Order, to_status: str) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order.id,
        from_status=order.status,
        to_status=to_status,
        changed_by=actor.user_id,
        changed_at=utcnow(),
    )
    order.status = to_status
    db.session.add(entry)
    return entry


def change_status(actor: Actor, order_id: int, to_status: str) -> dict | None:
    """Set one order's status. Returns None when the order is not visible."""
    to_status = validate_status(to_status)
    order = policies.visible_order(actor, order_id)
    if order is None:
        return None
    policies.require(policies.can_update_order(actor, order), "orders", "UPDATE")
    policies.require(policies.can_insert_status_history(actor), "order_status_history")

    entry = _apply(actor, order, to_status)
    db.session.commit()
    current_app.logger.info(
        "Order %s status %s -> %s by user %s", order.id, entry.from_status, to_status, actor.user_id
    )
    return {"order": order.to_dict(), "history": entry.to_dict()}


def bulk_change_status(actor: Actor, order_ids, to_status: str) -> dict:
    """
    Set the same status on several orders. Each order gets its own history
    row carrying that order's prior status. Ids that are not visible are
    reported under `missing`.
    """
    to_status = validate_status(to_status)
    if not isinstance(order_ids, (list, tuple)) or not order_ids:
        raise StatusError("ids must be a non-empty list")
    try:
        ids = list(dict.fromkeys(int(i) for i in order_ids))
    except (TypeError, ValueError):
        raise StatusError("ids must be integers")

    policies.require(actor.is_admin, "orders", "UPDATE")
    policies.require(policies.can_insert_status_history(actor), "order_status_history")

    orders = (
        db.session.query(Order)
        .filter(Order.id.in_(ids), policies.order_read_clause(actor))
        .all()
    )
    by_id = {o.id: o for o in orders}
    entries = []
    for order_id in ids:
        order = by_id.get(order_id)
        if order is None:
            continue
        entries.append(_apply(actor, order, to_status))
    db.session.commit()

    current_app.logger.info(
        "Bulk status change to %s on %d orders by user %s", to_status, len(entries), actor.user_id
    )
    return {
        "updated": [e.order_id for e in entries],
        "missing": [i for i in ids if i not in by_id],
        "history": [e.to_dict() for e in entries],
    }


def cancel_order(actor: Actor, order_id: int) -> dict | None:
    return change_status(actor, order_id, "cancelled")


def list_history(actor: Actor, order_id: int) -> list[dict] | None:
    """Newest first. None when the parent order is not visible."""
    order = policies.visible_order(actor, order_id)
    if not policies.can_read_status_history(actor, order):
        return None
    rows = (
        db.session.query(OrderStatusHistory)
        .filter(OrderStatusHistory.order_id == order.id)
        .order_by(OrderStatusHistory.changed_at.desc(), OrderStatusHistory.id.desc())
        .all()
    )
    return [r.to_dict() for r in rows]
