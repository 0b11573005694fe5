"""
Sales Service - atomic sale recording

A sale is recorded in one transaction: invoice number, per-item stock
check and decrement, Sale and SaleItem inserts. Any failure rolls the whole
unit back, so the products table is left exactly as it was.

Stock is debited with a conditional UPDATE (only when enough stock
remains), never with a read-then-write, so two registers selling the last
units of a product cannot both succeed.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from ..errors import BusinessRuleError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleItem, User
from ..models.auth import ROLES
from ..models.sales import PAYMENT_METHODS, SALE_COMPLETED
from ..money import MAX_AMOUNT, ZERO, format_amount, vat_for
from ..validation import coerce_int, FieldError
from .concurrency import (
    RETRYABLE_ERRORS,
    RetryableConflict,
    begin_serialized,
    lock_for_update,
    run_with_retry,
)
from .invoice_service import next_invoice_number
from posdesk.time_utils import local_today, parse_iso_datetime, utcnow

CUSTOMER_ID_MAX_LENGTH = 64


class SaleError(BusinessRuleError):
    """Raised for sale operation errors."""


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: int):
        super().__init__(f"Product with ID {product_id} not found", details={"product_id": product_id})


class InactiveProductError(SaleError):
    def __init__(self, product: Product):
        super().__init__(f"Product {product.name} is not active", details={"product_id": product.id})


class InsufficientStockError(SaleError):
    def __init__(self, product: Product, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for {product.name}. Available: {available}",
            details={
                "product_id": product.id,
                "requested_quantity": requested,
                "available": available,
            },
        )


class SaleAmountLimitError(SaleError):
    def __init__(self, amount):
        super().__init__(
            f"Sale amount {format_amount(amount)} exceeds the maximum of {format_amount(MAX_AMOUNT)}",
            details={"amount": format_amount(amount), "max_amount": format_amount(MAX_AMOUNT)},
        )


def normalize_basket(items) -> list[dict]:
    """
    Validate the basket shape before any storage access.

    Returns a list of {"product_id": int, "quantity": int} in submitted order.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError.for_field("items", "At least one item is required")

    errors = []
    basket = []
    for i, raw in enumerate(items):
        if not isinstance(raw, dict):
            errors.append({"field": f"items[{i}]", "message": "Item must be an object"})
            continue
        try:
            product_id = coerce_int(f"items[{i}].product_id", raw.get("product_id"))
        except FieldError:
            errors.append({"field": f"items[{i}].product_id", "message": "Valid product ID is required"})
            product_id = None
        try:
            quantity = coerce_int(f"items[{i}].quantity", raw.get("quantity"))
            if quantity < 1:
                raise FieldError
        except FieldError:
            errors.append({"field": f"items[{i}].quantity", "message": "Valid quantity is required"})
            quantity = None
        if product_id is not None and quantity is not None:
            basket.append({"product_id": product_id, "quantity": quantity})

    if errors:
        raise ValidationError("Validation error", errors=errors)
    return basket


def normalize_payment_method(payment_method) -> str:
    if not isinstance(payment_method, str) or payment_method.strip().upper() not in PAYMENT_METHODS:
        raise ValidationError.for_field("payment_method", "Valid payment method is required")
    return payment_method.strip().upper()


def normalize_customer_id(customer_id) -> str | None:
    """customer_id is an opaque optional tag; it is stored, never resolved."""
    if customer_id is None or customer_id == "":
        return None
    if isinstance(customer_id, bool) or not isinstance(customer_id, (str, int)):
        raise ValidationError.for_field("customer_id", "customer_id must be a string or integer")
    value = str(customer_id).strip()
    if len(value) > CUSTOMER_ID_MAX_LENGTH:
        raise ValidationError.for_field(
            "customer_id", f"customer_id exceeds max length {CUSTOMER_ID_MAX_LENGTH}"
        )
    return value or None


def _debit_stock(product: Product, quantity: int) -> None:
    """Decrement stock only if enough remains; raises InsufficientStockError otherwise."""
    result = db.session.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(stock_quantity=Product.stock_quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        available = db.session.query(Product.stock_quantity).filter(Product.id == product.id).scalar()
        raise InsufficientStockError(product, quantity, available or 0)


def _record_sale_locked(
    basket: list[dict],
    payment_method: str,
    customer_id: str | None,
    actor_user_id: int,
    now: datetime,
) -> int:
    invoice_number = next_invoice_number(local_today(now))

    subtotal = ZERO
    vat_total = ZERO
    lines: list[SaleItem] = []

    for item in basket:
        product = lock_for_update(
            db.session.query(Product).filter(Product.id == item["product_id"])
        ).populate_existing().first()
        if not product:
            raise ProductNotFoundError(item["product_id"])

        if not product.is_active:
            raise InactiveProductError(product)

        quantity = item["quantity"]
        if product.stock_quantity < quantity:
            raise InsufficientStockError(product, quantity, product.stock_quantity)

        unit_price: Decimal = product.selling_price
        total_price = unit_price * quantity
        vat_amount = vat_for(total_price, product.vat_category)

        subtotal += total_price
        vat_total += vat_amount

        # Line and running totals must fit a Money column
        if subtotal + vat_total > MAX_AMOUNT:
            raise SaleAmountLimitError(subtotal + vat_total)

        _debit_stock(product, quantity)

        lines.append(
            SaleItem(
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                vat_amount=vat_amount,
                total_price=total_price,
            )
        )

    sale = Sale(
        invoice_number=invoice_number,
        user_id=actor_user_id,
        customer_id=customer_id,
        subtotal=subtotal,
        vat_total=vat_total,
        total_amount=subtotal + vat_total,
        payment_method=payment_method,
        status=SALE_COMPLETED,
        created_at=now,
        items=lines,
    )
    db.session.add(sale)

    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another writer committed the same invoice number first
        raise RetryableConflict(str(exc.orig)) from exc

    return sale.id


def record_sale(
    items,
    payment_method,
    customer_id=None,
    *,
    actor: User,
    now: datetime | None = None,
) -> Sale:
    """
    Record a completed sale for a basket.

    Input is validated before storage is touched. The stock check and
    decrement, invoice allocation and inserts then run as one serialized
    transaction; business errors roll it back and propagate, transient
    contention retries the whole unit.

    Returns the Sale with items, products and recording user loaded.
    """
    if actor is None or not actor.is_active or actor.role not in ROLES:
        raise ForbiddenError("Only active cashiers and admins can record sales")

    basket = normalize_basket(items)
    method = normalize_payment_method(payment_method)
    tag = normalize_customer_id(customer_id)
    actor_user_id = actor.id

    def _op() -> int:
        begin_serialized()
        try:
            sale_id = _record_sale_locked(basket, method, tag, actor_user_id, now or utcnow())
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return sale_id

    sale_id = run_with_retry(_op, retry_on=RETRYABLE_ERRORS + (RetryableConflict,))
    sale = get_sale(sale_id)

    current_app.logger.info(
        "Recorded sale %s by user %s: %d item(s), total %s",
        sale.invoice_number, actor_user_id, len(basket), sale.total_amount,
    )
    return sale


def _sale_query():
    return db.session.query(Sale).options(
        joinedload(Sale.user),
        selectinload(Sale.items).joinedload(SaleItem.product),
    )


def get_sale(sale_id: int) -> Sale:
    sale = _sale_query().filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def sales_query(
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    user_id: int | None = None,
    payment_method: str | None = None,
):
    """Filtered sales, newest first."""
    query = _sale_query()

    try:
        start_dt = parse_iso_datetime(start_date)
        end_dt = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError.for_field("start_date/end_date", "Dates must be ISO-8601")

    if start_dt:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.created_at <= end_dt)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    if payment_method:
        query = query.filter(Sale.payment_method == normalize_payment_method(payment_method))

    return query.order_by(Sale.created_at.desc(), Sale.id.desc())
