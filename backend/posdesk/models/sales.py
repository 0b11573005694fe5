from __future__ import annotations

from ..extensions import db
from ..money import Money, format_amount
from posdesk.time_utils import to_utc_z

PAYMENT_CASH = "CASH"
PAYMENT_MOMO = "MOMO"
PAYMENT_CARD = "CARD"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_MOMO, PAYMENT_CARD)

SALE_COMPLETED = "COMPLETED"
SALE_CANCELLED = "CANCELLED"
SALE_STATUSES = (SALE_COMPLETED, SALE_CANCELLED)


class Sale(db.Model):
    """
    Completed sale. Written once, together with its items, and never
    updated through the API (there is no updated_at).

    invoice_number is YYYYMMDD-NNNNN; the unique constraint backs up the
    sequencer when two writers race for the same number.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Opaque caller-supplied tag; there is no customer table
    customer_id = db.Column(db.String(64), nullable=True)

    subtotal = db.Column(Money, nullable=False, default=0)
    vat_total = db.Column(Money, nullable=False, default=0)
    total_amount = db.Column(Money, nullable=False, default=0)

    payment_method = db.Column(
        db.Enum(*PAYMENT_METHODS, name="payment_method", native_enum=False),
        nullable=False,
        default=PAYMENT_CASH,
    )
    status = db.Column(
        db.Enum(*SALE_STATUSES, name="sale_status", native_enum=False),
        nullable=False,
        default=SALE_COMPLETED,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    user = db.relationship("User", backref=db.backref("sales", lazy="dynamic"))
    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        lazy=True,
        order_by="SaleItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Sale id={self.id} invoice={self.invoice_number!r} total={self.total_amount}>"

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "user_id": self.user_id,
            "customer_id": self.customer_id,
            "subtotal": format_amount(self.subtotal),
            "vat_total": format_amount(self.vat_total),
            "total_amount": format_amount(self.total_amount),
            "payment_method": self.payment_method,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "user": self.user.to_summary() if self.user else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    One basket line. unit_price, vat_amount and total_price are snapshots
    taken at sale time; later product price changes never touch them.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(Money, nullable=False)
    vat_amount = db.Column(Money, nullable=False, default=0)
    total_price = db.Column(Money, nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product", backref=db.backref("sale_items", lazy="dynamic"))

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": format_amount(self.unit_price),
            "vat_amount": format_amount(self.vat_amount),
            "total_price": format_amount(self.total_price),
            "product": {
                "id": product.id,
                "name": product.name,
                "barcode": product.barcode,
                "vat_category": product.vat_category,
            } if product else None,
        }
