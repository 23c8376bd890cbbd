# Overview: Bulk CSV/XLSX import of products and customers.

"""
Spreadsheet import.

Files are read into plain dict rows (CSV via the csv module, XLSX via
openpyxl, first sheet, first row as headers). Header names are matched
case-insensitively against a small alias table. Each row is validated on its
own; bad rows are reported with their spreadsheet row number (the header is
row 1) and skipped, good rows are written in a single commit.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app
from openpyxl import load_workbook
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DEFAULT_UOM_NAMES, Product
from .. import policies
from ..policies import Actor, PolicyError
from ..validation import ValidationError, parse_bool
from . import customer_service, product_service, uom_service

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}

PRODUCT_COLUMNS = (
    "sku", "name", "is_active", "price",
    "uom1_name", "uom2_name", "uom3_name",
    "conv1_to_2", "conv2_to_3", "branches",
)
PRODUCT_ALIASES = {
    "active": "is_active",
    "uom1": "uom1_name",
    "uom2": "uom2_name",
    "uom3": "uom3_name",
    "1-2": "conv1_to_2",
    "1→2": "conv1_to_2",
    "2-3": "conv2_to_3",
    "2→3": "conv2_to_3",
    "branch": "branches",
}

CUSTOMER_COLUMNS = ("name", "phone", "address", "customer_code", "latitude", "longitude", "branch")
CUSTOMER_ALIASES = {
    "code": "customer_code",
    "lat": "latitude",
    "lng": "longitude",
    "lon": "longitude",
}

PRODUCT_TEMPLATE_NAME = "products-import-template.csv"
PRODUCT_TEMPLATE_SAMPLE = ("HT999", "Sample Product", "yes", "56000", "CTN", "BOX", "PCS", "6", "6", "JKP,BGR")


class ImportFileError(ValueError):
    """The upload itself cannot be read (format, encoding, empty file)."""
    pass


@dataclass
class ImportReport:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[dict] = field(default_factory=list)

    def fail(self, row_number: int, message: str) -> None:
        self.errors.append({"row": row_number, "error": message})

    def to_dict(self) -> dict:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }


# ---- reading ----

def _cell(value: Any):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def read_rows(filename: str, stream) -> list[dict]:
    """Rows of an uploaded CSV or XLSX file as dicts keyed by the raw headers."""
    ext = (filename or "").rsplit(".", 1)[-1].lower() if "." in (filename or "") else ""

    if ext == "csv":
        raw = stream.read()
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8-sig")
            except UnicodeDecodeError:
                raise ImportFileError("CSV files must be UTF-8 encoded")
        reader = csv.DictReader(io.StringIO(raw))
        return [
            {(k or "").strip(): _cell(v) for k, v in row.items() if k is not None}
            for row in reader
        ]

    if ext in XLSX_EXTENSIONS:
        try:
            wb = load_workbook(stream, read_only=True, data_only=True)
        except Exception as e:
            raise ImportFileError(f"Could not read spreadsheet: {e}")
        try:
            sheet = wb.worksheets[0]
            data = list(sheet.iter_rows(values_only=True))
        finally:
            wb.close()
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        rows = []
        for values in data[1:]:
            if values is None or all(v is None or v == "" for v in values):
                continue
            rows.append({
                headers[i]: _cell(values[i]) if i < len(values) else None
                for i in range(len(headers))
                if headers[i]
            })
        return rows

    raise ImportFileError("Unsupported file format. Upload a .csv or .xlsx file.")


def normalize_headers(row: dict, columns, aliases: dict) -> dict:
    """Map raw headers onto canonical column names; unknown headers are dropped."""
    out: dict = {}
    for key, value in row.items():
        name = str(key).strip().lower()
        name = aliases.get(name, name)
        if name in columns and name not in out:
            out[name] = value
    return out


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _text(value) -> str:
    return "" if value is None else str(value).strip()


def _nonneg_price(value) -> Decimal:
    if _blank(value):
        return Decimal("0")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price


# ---- products ----

def normalize_product_row(row: dict) -> dict | None:
    """
    Canonical product payload for one spreadsheet row, or None when the row
    has no sku. Price is clamped to >= 0, factors to >= 1, blank UOM names
    fall back to CTN/BOX/PCS and `is_active` defaults to true.
    """
    data = normalize_headers(row, PRODUCT_COLUMNS, PRODUCT_ALIASES)
    sku = _text(data.get("sku"))
    if not sku:
        return None
    active = parse_bool(data.get("is_active"), default=True)
    payload = {
        "sku": sku,
        "name": _text(data.get("name")),
        "is_active": bool(active),
        "price": _nonneg_price(data.get("price")),
        "conv1_to_2": uom_service.clamp_factor(data.get("conv1_to_2")),
        "conv2_to_3": uom_service.clamp_factor(data.get("conv2_to_3")),
        "branches": product_service.parse_branches(_text(data.get("branches"))),
    }
    for key, default in zip(("uom1_name", "uom2_name", "uom3_name"), DEFAULT_UOM_NAMES):
        payload[key] = _text(data.get(key)) or default
    return payload


def import_products(actor: Actor, rows: list[dict]) -> dict:
    """
    Upsert products by sku and replace each affected product's branch set.
    Admin only.
    """
    policies.require(policies.can_write_product(actor), "products")
    policies.require(policies.can_write_product_branches(actor), "product_branches")

    report = ImportReport()
    by_sku = {p.sku: p for p in db.session.query(Product).all()}

    for index, row in enumerate(rows, start=2):
        payload = normalize_product_row(row)
        if payload is None:
            report.skipped += 1
            continue
        if not payload["name"]:
            report.fail(index, "name is required")
            continue
        if len(payload["sku"]) > 64 or len(payload["name"]) > 255:
            report.fail(index, "sku or name is too long")
            continue

        branches = payload.pop("branches")
        product = by_sku.get(payload["sku"])
        if product is None:
            product = Product(**payload)
            db.session.add(product)
            by_sku[product.sku] = product
            report.inserted += 1
        else:
            for k, v in payload.items():
                setattr(product, k, v)
            report.updated += 1
        db.session.flush()
        product_service.replace_branches(product, branches)

    _commit_import("products")
    current_app.logger.info(
        "Product import by user %s: %d inserted, %d updated, %d errors",
        actor.user_id, report.inserted, report.updated, len(report.errors),
    )
    return report.to_dict()


# ---- customers ----

def import_customers(actor: Actor, rows: list[dict]) -> dict:
    """
    Insert customers; a row whose customer_code matches an existing customer
    updates that customer instead (admins only).
    """
    report = ImportReport()

    for index, row in enumerate(rows, start=2):
        payload = normalize_headers(row, CUSTOMER_COLUMNS, CUSTOMER_ALIASES)
        if all(_blank(v) for v in payload.values()):
            report.skipped += 1
            continue
        payload = {k: (_text(v) if isinstance(v, str) else v) for k, v in payload.items()}
        code = _text(payload.get("customer_code"))
        existing = customer_service.find_by_code(code) if code else None
        try:
            if existing is not None:
                customer_service.update_customer(actor, existing.id, payload, commit=False)
                report.updated += 1
            else:
                customer_service.create_customer(actor, payload, commit=False)
                report.inserted += 1
        except (ValidationError, PolicyError) as e:
            report.fail(index, str(e))

    _commit_import("customers")
    current_app.logger.info(
        "Customer import by user %s: %d inserted, %d updated, %d errors",
        actor.user_id, report.inserted, report.updated, len(report.errors),
    )
    return report.to_dict()


def _commit_import(table: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ValidationError(f"Import into {table} failed: {e.orig}")


def product_template_csv() -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(PRODUCT_COLUMNS)
    writer.writerow(PRODUCT_TEMPLATE_SAMPLE)
    return buf.getvalue()
