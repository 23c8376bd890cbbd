# Overview: Row API query parameters (filters, ordering, offset/limit) applied to SQLAlchemy queries.

"""
Query-string grammar shared by every list endpoint:

    <column>=<value>             equality
    <column>=eq.<value>          equality
    <column>=neq.<value>         inequality
    <column>=in.(a,b,c)          membership
    <column>=ilike.<pattern>     case-insensitive match, * or % as wildcard
    <column>=is.null             NULL test (is.notnull for the opposite)
    order=<column>.asc|desc      ordering, comma separated for several keys
    limit=<n>&offset=<n>         window

Only columns named in the endpoint's allow-list are filterable; any other
non-reserved parameter is rejected.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Boolean, Float, Integer, Numeric

from ..validation import ValidationError, parse_bool

MAX_LIMIT = 1000
RESERVED_PARAMS = frozenset({"order", "limit", "offset", "q", "select", "apikey", "access_token"})


def _coerce(column, raw: str):
    coltype = getattr(column, "type", None)
    try:
        if isinstance(coltype, Boolean):
            value = parse_bool(raw, default=None)
            if value is None:
                raise ValueError(raw)
            return value
        if isinstance(coltype, Integer):
            return int(raw)
        if isinstance(coltype, (Float, Numeric)):
            return float(raw)
    except ValueError:
        raise ValidationError(f"invalid input syntax for {column.key}: \"{raw}\"")
    return raw


def _split_list(raw: str) -> list[str]:
    inner = raw.strip()
    if not (inner.startswith("(") and inner.endswith(")")):
        raise ValidationError(f"in. filter must look like in.(a,b): {raw}")
    return [part.strip().strip('"') for part in inner[1:-1].split(",") if part.strip()]


def filter_clause(column, raw: str):
    """Translate one `<op>.<value>` expression into a SQL clause."""
    op, sep, rest = raw.partition(".")
    if not sep:
        return column == _coerce(column, raw)
    if op == "eq":
        return column == _coerce(column, rest)
    if op == "neq":
        return column != _coerce(column, rest)
    if op == "in":
        return column.in_([_coerce(column, v) for v in _split_list(rest)])
    if op == "ilike":
        return column.ilike(rest.replace("*", "%"))
    if op == "is":
        if rest == "null":
            return column.is_(None)
        if rest == "notnull":
            return column.isnot(None)
        raise ValidationError(f"Unsupported is. filter: {rest}")
    # A plain value that happens to contain a dot (e.g. an email)
    return column == _coerce(column, raw)


def apply_filters(query, columns: dict[str, Any], args, reserved=RESERVED_PARAMS):
    for key in args.keys():
        if key in reserved:
            continue
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown filter column: {key}")
        for raw in args.getlist(key):
            query = query.filter(filter_clause(column, raw))
    return query


def order_clauses(columns: dict[str, Any], order: str | None, default=None) -> list:
    if not order:
        return list(default or [])
    clauses = []
    for part in order.split(","):
        name, _, direction = part.strip().partition(".")
        column = columns.get(name)
        if column is None:
            raise ValidationError(f"Unknown order column: {name}")
        direction = (direction or "asc").split(".")[0].lower()
        if direction not in ("asc", "desc"):
            raise ValidationError(f"Unknown order direction: {direction}")
        clauses.append(column.desc() if direction == "desc" else column.asc())
    return clauses


def parse_window(args) -> tuple[int | None, int]:
    limit = args.get("limit", type=int)
    offset = args.get("offset", type=int)
    if limit is not None:
        if limit < 0:
            raise ValidationError("limit must be >= 0")
        limit = min(limit, MAX_LIMIT)
    offset = offset or 0
    if offset < 0:
        raise ValidationError("offset must be >= 0")
    return limit, offset


def paginate(query, limit: int | None, offset: int, serialize) -> dict:
    """
    Run the query through the window and serialize rows.

    `total` counts every matching row regardless of the window.
    """
    total = query.order_by(None).count()
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    rows = query.all()
    items = [serialize(r) for r in rows]
    return {
        "items": items,
        "count": len(items),
        "pagination": {"limit": limit, "offset": offset, "total": total},
    }
