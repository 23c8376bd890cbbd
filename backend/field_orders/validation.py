from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Float, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .models import BRANCHES, DEFAULT_UOM_NAMES, PAYMENT_TERMS
from .services.uom_service import clamp_factor


# Largest value a Numeric(12, 2) price column can hold
MAX_PRICE = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    - blank_to_null: text fields where "" is stored as NULL
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    blank_to_null: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_number(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{key} must be a number")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a number")
    return result


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "." in stripped or "e" in stripped.lower():
                raise ValidationError(f"{col.key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float) and value.is_integer():
            return int(value)
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        parsed = parse_bool(value, default=None)
        if parsed is None:
            raise ValidationError(f"{col.key} must be a boolean")
        return parsed

    # Float is a subclass of Numeric, so it must be checked first
    if isinstance(coltype, Float):
        return float(_coerce_number(col.key, value))

    if isinstance(coltype, Numeric):
        return _coerce_number(col.key, value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def parse_bool(value: Any, default: bool | None = True) -> bool | None:
    """
    Spreadsheet-friendly boolean: 1/true/yes/y and 0/false/no/n (any case).
    Blank or missing gives `default`; anything else gives None.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    s = str(value).strip().lower()
    if s == "":
        return default
    if s in ("1", "true", "yes", "y"):
        return True
    if s in ("0", "false", "no", "n"):
        return False
    return None


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    blank_to_null = policy.blank_to_null or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if k in blank_to_null and isinstance(raw, str) and not raw.strip():
            raw = None

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_branch(patch: dict, key: str = "branch") -> None:
    if key in patch and patch[key] is not None:
        branch = str(patch[key]).upper()
        if branch not in BRANCHES:
            raise ValidationError(f"{key} must be one of {', '.join(BRANCHES)}")
        patch[key] = branch


def enforce_rules_customer(patch: dict) -> None:
    """Latitude/longitude are optional but must be in range when given."""
    lat = patch.get("latitude")
    if lat is not None and not (-90 <= lat <= 90):
        raise ValidationError("Latitude must be between -90 and 90")
    lng = patch.get("longitude")
    if lng is not None and not (-180 <= lng <= 180):
        raise ValidationError("Longitude must be between -180 and 180")
    _check_branch(patch)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Conversion factors are clamped rather than rejected.
    """
    if "price" in patch:
        price = patch["price"]
        if price is None:
            raise ValidationError("price cannot be null")
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")
    for key in ("conv1_to_2", "conv2_to_3"):
        if key in patch:
            patch[key] = clamp_factor(patch[key])
    for key, default in zip(("uom1_name", "uom2_name", "uom3_name"), DEFAULT_UOM_NAMES):
        if key in patch and not patch[key]:
            patch[key] = default


def enforce_rules_profile(patch: dict) -> None:
    if "role" in patch and patch["role"] not in ("sales", "admin"):
        raise ValidationError("role must be sales or admin")
    _check_branch(patch)


def enforce_rules_order(patch: dict) -> None:
    terms = patch.get("payment_terms")
    if terms is not None:
        terms = str(terms).upper()
        if terms not in PAYMENT_TERMS:
            raise ValidationError(f"payment_terms must be one of {', '.join(PAYMENT_TERMS)}")
        patch["payment_terms"] = terms
