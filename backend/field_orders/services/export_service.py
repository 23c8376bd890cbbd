# Overview: Flat order-item export (one row per line item) rendered as CSV or XLSX.

from __future__ import annotations

import csv
import io

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from ..extensions import db
from ..models import Order, OrderItem
from .. import policies
from ..policies import Actor
from ..time_utils import export_stamp
from . import order_service, status_service, uom_service

HEADERS = (
    "Order ID", "Date", "Customer", "Status", "Payment Terms", "Submitted By",
    "SKU", "Product Name", "UOM", "Qty", "Unit Price", "Line Total",
    "Order Subtotal", "Order Discount", "Order Tax", "Order Total",
)
FORMATS = ("csv", "xlsx")
SHEET_TITLE = "Orders"
DATE_FORMAT = "%Y-%m-%d %H:%M"


class ExportError(ValueError):
    pass


def select_order_ids(actor: Actor, order_ids=None, status: str | None = None) -> list[int]:
    """
    The explicit id list when given (restricted to visible orders), otherwise
    every visible order, optionally with one status.
    """
    query = db.session.query(Order.id).filter(policies.order_read_clause(actor))
    if order_ids:
        query = query.filter(Order.id.in_(list(order_ids)))
    elif status and status != "all":
        query = query.filter(Order.status == status_service.validate_status(status))
    return [row.id for row in query.order_by(Order.created_at.desc(), Order.id.desc()).all()]


def _number(value):
    return float(value) if value is not None else ""


def build_rows(actor: Actor, order_ids=None, status: str | None = None) -> list[dict]:
    ids = select_order_ids(actor, order_ids, status)
    if not ids:
        raise ExportError("No orders to export")

    headers = {row["id"]: row for row in order_service.get_view_rows(actor, ids)}
    items = (
        db.session.query(OrderItem)
        .filter(OrderItem.order_id.in_(ids))
        .order_by(OrderItem.order_id.asc(), OrderItem.id.asc())
        .all()
    )

    rows = []
    for item in items:
        order = headers.get(item.order_id)
        if order is None:
            continue
        product = item.product
        submitted_by = order.get("submitted_by_name") or (
            str(order["created_by"])[:8] if order.get("created_by") is not None else ""
        )
        created_at = order.get("created_at") or ""
        rows.append({
            "Order ID": f"#{order['id']}",
            "Date": created_at.replace("T", " ").replace("Z", "")[:16] if created_at else "",
            "Customer": order.get("customer_name") or "",
            "Status": order.get("status") or "",
            "Payment Terms": order.get("payment_terms") or "",
            "Submitted By": submitted_by,
            "SKU": product.sku if product else "",
            "Product Name": product.name if product else "",
            "UOM": uom_service.uom_name(product, item.uom_level or 3) if product else f"UOM{item.uom_level or 3}",
            "Qty": _number(item.qty),
            "Unit Price": _number(item.price),
            "Line Total": _number(item.line_total),
            "Order Subtotal": _number(order.get("subtotal")),
            "Order Discount": _number(order.get("discount")),
            "Order Tax": _number(order.get("tax")),
            "Order Total": _number(order.get("total")),
        })

    if not rows:
        raise ExportError("No items found for the selected orders")
    return rows


def render_csv(rows: list[dict]) -> bytes:
    """UTF-8 with BOM so Excel picks the right encoding."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerow(HEADERS)
    for row in rows:
        writer.writerow([row[h] for h in HEADERS])
    return ("\ufeff" + buf.getvalue()).encode("utf-8")


def render_xlsx(rows: list[dict]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(list(HEADERS))
    for row in rows:
        ws.append([row[h] for h in HEADERS])
    for idx, header in enumerate(HEADERS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(10, len(header) + 2)
    ws.freeze_panes = "A2"

    out = io.BytesIO()
    wb.save(out)
    return out.getvalue()


def export_filename(fmt: str, stamp: str | None = None) -> str:
    return f"order-items-{stamp or export_stamp()}.{fmt}"


def export_order_items(actor: Actor, order_ids=None, status: str | None = None, fmt: str = "xlsx") -> tuple[bytes, str, str]:
    """Returns (content, filename, mimetype)."""
    fmt = (fmt or "xlsx").lower()
    if fmt not in FORMATS:
        raise ExportError(f"Unsupported export format: {fmt}")
    rows = build_rows(actor, order_ids, status)
    if fmt == "csv":
        return render_csv(rows), export_filename("csv"), "text/csv; charset=utf-8"
    return (
        render_xlsx(rows),
        export_filename("xlsx"),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
