from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DEFAULT_UOM_NAMES = ("CTN", "BOX", "PCS")


def _num(value):
    return float(value) if value is not None else None


class Customer(db.Model):
    """
    A customer account visited by field sales.

    Latitude and longitude are each optional; when present they must lie in
    the valid geographic range (enforced here and by the validation layer).
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("latitude is null or (latitude >= -90 and latitude <= 90)", name="ck_customers_latitude"),
        db.CheckConstraint("longitude is null or (longitude >= -180 and longitude <= 180)", name="ck_customers_longitude"),
        db.CheckConstraint("branch in ('JKP','BGR','TGR')", name="ck_customers_branch"),
        db.Index("ix_customers_branch_name", "branch", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    customer_code = db.Column(db.String(64), nullable=True, index=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    branch = db.Column(db.String(8), nullable=False, default="JKP")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "customer_code": self.customer_code,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "branch": self.branch,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog entry with a three-level unit of measure.

    price is quoted per UOM1 (the largest unit, e.g. CTN).
    conv1_to_2: UOM2 units in one UOM1 (e.g. boxes per carton).
    conv2_to_3: UOM3 units in one UOM2 (e.g. pieces per box).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price"),
        db.CheckConstraint("conv1_to_2 >= 1", name="ck_products_conv1_to_2"),
        db.CheckConstraint("conv2_to_3 >= 1", name="ck_products_conv2_to_3"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    uom1_name = db.Column(db.String(32), nullable=True, default=DEFAULT_UOM_NAMES[0])
    uom2_name = db.Column(db.String(32), nullable=True, default=DEFAULT_UOM_NAMES[1])
    uom3_name = db.Column(db.String(32), nullable=True, default=DEFAULT_UOM_NAMES[2])
    conv1_to_2 = db.Column(db.Integer, nullable=False, default=1)
    conv2_to_3 = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch_links = db.relationship(
        "ProductBranch",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    @property
    def branches(self) -> list[str]:
        return sorted(link.branch for link in self.branch_links)

    def to_dict(self, include_branches: bool = True) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "is_active": self.is_active,
            "price": _num(self.price),
            "uom1_name": self.uom1_name,
            "uom2_name": self.uom2_name,
            "uom3_name": self.uom3_name,
            "conv1_to_2": self.conv1_to_2,
            "conv2_to_3": self.conv2_to_3,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_branches:
            data["branches"] = self.branches
        return data


class ProductBranch(db.Model):
    """Availability of a product in a branch (many-to-many link)."""
    __tablename__ = "product_branches"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch", name="uq_product_branches_product_branch"),
        db.CheckConstraint("branch in ('JKP','BGR','TGR')", name="ck_product_branches_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    branch = db.Column(db.String(8), nullable=False, index=True)

    product = db.relationship("Product", back_populates="branch_links")

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "branch": self.branch}
