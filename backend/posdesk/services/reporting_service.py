# Overview: Service-layer operations for reporting; read-only aggregates over sales and stock.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func

from posdesk.extensions import db
from posdesk.models import Product, Sale
from posdesk.models.sales import SALE_COMPLETED
from posdesk.money import ZERO, format_amount
from posdesk.time_utils import local_midnight_utc, to_utc_z

LOW_STOCK_LIMIT = 10


def low_stock_products(limit: int = LOW_STOCK_LIMIT) -> list[dict]:
    """Active products at or below their restock threshold, lowest stock first."""
    products = (
        db.session.query(Product)
        .filter(
            Product.is_active.is_(True),
            Product.stock_quantity <= Product.low_stock_threshold,
        )
        .order_by(Product.stock_quantity.asc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": p.id,
            "name": p.name,
            "stock_quantity": p.stock_quantity,
            "low_stock_threshold": p.low_stock_threshold,
        }
        for p in products
    ]


def sales_summary(now: datetime | None = None) -> dict:
    """
    Today's completed sales (since local midnight), split by payment method,
    plus the low-stock list.
    """
    since = local_midnight_utc(now)

    base_filter = (
        Sale.created_at >= since,
        Sale.status == SALE_COMPLETED,
    )

    total, count = db.session.query(
        func.sum(Sale.total_amount),
        func.count(Sale.id),
    ).filter(*base_filter).one()

    by_method = (
        db.session.query(
            Sale.payment_method,
            func.sum(Sale.total_amount).label("total"),
            func.count(Sale.id).label("count"),
        )
        .filter(*base_filter)
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method.asc())
        .all()
    )

    return {
        "since": to_utc_z(since),
        "today_sales": {
            "total_sales": format_amount(total if total is not None else ZERO),
            "transaction_count": int(count or 0),
        },
        "sales_by_payment_method": [
            {
                "payment_method": row.payment_method,
                "total": format_amount(row.total if row.total is not None else ZERO),
                "count": int(row.count or 0),
            }
            for row in by_method
        ],
        "low_stock_products": low_stock_products(),
    }
