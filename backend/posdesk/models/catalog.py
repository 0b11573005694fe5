from __future__ import annotations

from ..extensions import db
from ..money import Money, VAT_CATEGORIES, VAT_STANDARD, format_amount
from posdesk.time_utils import to_utc_z


class Category(db.Model):
    """Product grouping. Products hold the owning foreign key."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    products = db.relationship(
        "Product",
        back_populates="category",
        lazy=True,
        order_by="Product.name",
    )

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self, include_products: bool = False, active_only: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_products:
            products = self.products
            if active_only:
                products = [p for p in products if p.is_active]
            data["products"] = [p.to_summary() for p in products]
        return data


class Product(db.Model):
    """
    Product master data.

    Prices are Money (Decimal, stored as cents). selling_price must stay
    above buying_price; services enforce this before every write.
    stock_quantity is only ever decremented by the sale engine through a
    conditional UPDATE, so it cannot go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active_stock", "is_active", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=False, unique=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    buying_price = db.Column(Money, nullable=False)
    selling_price = db.Column(Money, nullable=False)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    vat_category = db.Column(
        db.Enum(*VAT_CATEGORIES, name="vat_category", native_enum=False),
        nullable=False,
        default=VAT_STANDARD,
    )
    expiry_date = db.Column(db.Date, nullable=True)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", back_populates="products")

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "stock_quantity": self.stock_quantity,
            "selling_price": format_amount(self.selling_price),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "category_id": self.category_id,
            "category": {"id": self.category.id, "name": self.category.name} if self.category else None,
            "buying_price": format_amount(self.buying_price),
            "selling_price": format_amount(self.selling_price),
            "stock_quantity": self.stock_quantity,
            "vat_category": self.vat_category,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
