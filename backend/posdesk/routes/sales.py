# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/posdesk/routes/sales.py
"""Sales API routes with role enforcement"""

from flask import Blueprint, request, g

from ..decorators import require_auth, require_roles
from ..errors import NotFoundError
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER
from ..responses import int_arg, ok, paginate, pagination_args
from ..services import reporting_service, sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _list_sales(user_id: int | None):
    page, limit = pagination_args()
    query = sales_service.sales_query(
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        user_id=user_id,
        payment_method=request.args.get("payment_method") or None,
    )
    sales, pagination = paginate(query, page, limit)
    return ok([s.to_dict() for s in sales], pagination=pagination)


@sales_bp.post("")
@require_roles(ROLE_CASHIER, ROLE_ADMIN)
def create_sale_route():
    """
    Record a sale.

    Body: {items: [{product_id, quantity}], payment_method, customer_id?}

    Stock is debited and the sale stored in one transaction; on any
    failure nothing is written.
    """
    data = request.get_json(silent=True) or {}

    sale = sales_service.record_sale(
        data.get("items"),
        data.get("payment_method"),
        data.get("customer_id"),
        actor=g.current_user,
    )

    return ok(sale.to_dict(), message="Sale completed successfully", status=201)


@sales_bp.get("/summary")
@require_auth
def sales_summary_route():
    return ok(reporting_service.sales_summary())


@sales_bp.get("/my-sales")
@require_auth
def my_sales_route():
    return _list_sales(g.current_user.id)


@sales_bp.get("")
@require_roles(ROLE_ADMIN)
def list_sales_route():
    """
    List sales for every user.

    Query params: page, limit, start_date, end_date (ISO-8601), user_id,
    payment_method.
    """
    return _list_sales(int_arg("user_id"))


@sales_bp.get("/<int:sale_id>")
@require_roles(ROLE_ADMIN, ROLE_CASHIER)
def get_sale_route(sale_id: int):
    """Cashiers can only open sales they recorded."""
    sale = sales_service.get_sale(sale_id)
    if not g.current_user.is_admin and sale.user_id != g.current_user.id:
        raise NotFoundError("Sale not found")
    return ok(sale.to_dict())
