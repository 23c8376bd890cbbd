# Overview: Service-layer operations for products and their branch availability.

"""
Products service.

Prices are stored per UOM1. Reads add the derived per-piece price and the
price at each level so callers never repeat the arithmetic.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import BRANCHES, DEFAULT_UOM_NAMES, Product, ProductBranch
from .. import policies
from ..policies import Actor
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)
from . import row_query, uom_service

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "is_active", "price",
        "uom1_name", "uom2_name", "uom3_name",
        "conv1_to_2", "conv2_to_3",
    },
    required_on_create={"sku", "name"},
    blank_to_null={"uom1_name", "uom2_name", "uom3_name"},
)

PRODUCT_COLUMNS = {
    "id": Product.id,
    "sku": Product.sku,
    "name": Product.name,
    "is_active": Product.is_active,
    "price": Product.price,
    "created_at": Product.created_at,
    "updated_at": Product.updated_at,
}

PRODUCT_BRANCH_COLUMNS = {
    "product_id": ProductBranch.product_id,
    "branch": ProductBranch.branch,
}

SEARCH_LIMIT = 20


def product_view(product: Product) -> dict:
    data = product.to_dict()
    data["per_piece_price"] = float(round(uom_service.per_piece_price(product), 2))
    data["level_prices"] = {
        str(level): float(uom_service.price_for_level(product, level)) for level in uom_service.LEVELS
    }
    return data


def parse_branches(value) -> list[str]:
    """
    Branch codes from a list or a ',' / ';' separated string. Codes are
    upper-cased; unknown codes are dropped. Result follows BRANCHES order.
    """
    if value is None:
        return []
    if isinstance(value, str):
        parts = value.replace(";", ",").split(",")
    elif isinstance(value, (list, tuple, set)):
        parts = [str(v) for v in value]
    else:
        raise ValidationError("branches must be a list of branch codes")
    wanted = {p.strip().upper() for p in parts if p and p.strip()}
    return [b for b in BRANCHES if b in wanted]


def list_products(actor: Actor, args) -> dict:
    query = db.session.query(Product).filter(policies.product_read_clause(actor))

    q = (args.get("q") or "").strip()
    if q:
        like = f"%{q}%"
        query = query.filter(db.or_(Product.sku.ilike(like), Product.name.ilike(like)))

    branch = (args.get("branch") or "").strip().upper()
    if branch:
        query = query.filter(Product.id.in_(
            db.select(ProductBranch.product_id).where(ProductBranch.branch == branch)
        ))

    query = row_query.apply_filters(
        query, PRODUCT_COLUMNS, args, reserved=row_query.RESERVED_PARAMS | {"branch"}
    )
    query = query.order_by(*row_query.order_clauses(
        PRODUCT_COLUMNS, args.get("order"), default=[Product.name.asc(), Product.id.asc()]
    ))
    limit, offset = row_query.parse_window(args)
    return row_query.paginate(query, limit, offset, lambda p: p.to_dict())


def search_products(actor: Actor, q: str, limit: int = SEARCH_LIMIT) -> list[dict]:
    """Active products whose sku or name contains q (case-insensitive)."""
    q = (q or "").strip()
    if not q:
        return []
    like = f"%{q}%"
    rows = (
        db.session.query(Product)
        .filter(
            policies.product_read_clause(actor),
            Product.is_active.is_(True),
            db.or_(Product.sku.ilike(like), Product.name.ilike(like)),
        )
        .order_by(Product.name.asc(), Product.id.asc())
        .limit(max(1, min(limit, SEARCH_LIMIT)))
        .all()
    )
    return [p.to_dict() for p in rows]


def get_product(actor: Actor, product_id: int) -> Product | None:
    product = db.session.get(Product, product_id)
    if product is None or not policies.can_read_product(actor, product):
        return None
    return product


def find_by_sku(sku: str) -> Product | None:
    return db.session.query(Product).filter(Product.sku == sku).first()


def create_product(actor: Actor, payload: dict) -> Product:
    policies.require(policies.can_write_product(actor), "products")

    payload = dict(payload or {})
    branches = payload.pop("branches", None)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    for key, default in zip(("uom1_name", "uom2_name", "uom3_name"), DEFAULT_UOM_NAMES):
        patch.setdefault(key, default)

    if find_by_sku(patch["sku"]):
        raise ConflictError(f"SKU already exists: {patch['sku']}")

    product = Product(**patch)
    db.session.add(product)
    try:
        db.session.flush()
        if branches is not None:
            replace_branches(product, parse_branches(branches))
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(str(e.orig))
    return product


def update_product(actor: Actor, product_id: int, payload: dict) -> Product | None:
    product = get_product(actor, product_id)
    if product is None:
        return None
    policies.require(policies.can_write_product(actor), "products", "UPDATE")

    payload = dict(payload or {})
    branches = payload.pop("branches", None)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    new_sku = patch.get("sku")
    if new_sku and new_sku != product.sku and find_by_sku(new_sku):
        raise ConflictError(f"SKU already exists: {new_sku}")

    for k, v in patch.items():
        setattr(product, k, v)
    try:
        if branches is not None:
            replace_branches(product, parse_branches(branches))
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(str(e.orig))
    return product


def replace_branches(product: Product, wanted: list[str]) -> dict:
    """Diff the product's branch set against `wanted`; add and remove links."""
    current = {link.branch: link for link in product.branch_links}
    added = [b for b in wanted if b not in current]
    removed = [b for b in current if b not in wanted]
    for branch in added:
        product.branch_links.append(ProductBranch(branch=branch))
    for branch in removed:
        product.branch_links.remove(current[branch])
    db.session.flush()
    return {"added": added, "removed": removed}


def set_branches(actor: Actor, product_id: int, branches) -> dict | None:
    product = get_product(actor, product_id)
    if product is None:
        return None
    policies.require(policies.can_write_product_branches(actor), "product_branches")
    diff = replace_branches(product, parse_branches(branches))
    db.session.commit()
    return {"product_id": product.id, "branches": product.branches, **diff}


def list_product_branches(actor: Actor, args) -> dict:
    query = (
        db.session.query(ProductBranch)
        .join(Product, Product.id == ProductBranch.product_id)
        .filter(policies.product_read_clause(actor))
    )
    query = row_query.apply_filters(query, PRODUCT_BRANCH_COLUMNS, args)
    query = query.order_by(*row_query.order_clauses(
        PRODUCT_BRANCH_COLUMNS, args.get("order"),
        default=[ProductBranch.product_id.asc(), ProductBranch.branch.asc()],
    ))
    limit, offset = row_query.parse_window(args)
    return row_query.paginate(query, limit, offset, lambda link: link.to_dict())
