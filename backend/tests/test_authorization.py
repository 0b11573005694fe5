"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied admin operations (403)
- Admin role can perform privileged operations
- Catalog reads stay public
"""

import pytest


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/profile"),
            ("GET", "/api/users"),
            ("GET", "/api/users/1"),
            ("PUT", "/api/users/1"),
            ("DELETE", "/api/users/1"),
            ("PATCH", "/api/users/1/toggle-status"),
            ("POST", "/api/categories"),
            ("PUT", "/api/categories/1"),
            ("DELETE", "/api/categories/1"),
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("GET", "/api/sales/1"),
            ("GET", "/api/sales/my-sales"),
            ("GET", "/api/sales/summary"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["message"] == "Authentication required"

    def test_malformed_header(self, client, db_session):
        resp = client.get("/api/auth/profile", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401


# =============================================================================
# CASHIER DENIED ADMIN OPERATIONS - 403
# =============================================================================


class TestCashierDeniedAdminOperations:
    """Cashier role cannot perform privileged operations."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("PATCH", "/api/users/1/toggle-status"),
            ("POST", "/api/categories"),
            ("DELETE", "/api/categories/1"),
            ("POST", "/api/products"),
            ("PUT", "/api/products/1"),
            ("DELETE", "/api/products/1"),
            ("GET", "/api/sales"),
        ],
    )
    def test_forbidden(self, client, cashier_headers, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=cashier_headers)
        assert resp.status_code == 403, f"{method} {path} returned {resp.status_code}"
        assert resp.json["required_roles"] == ["ADMIN"]

    def test_cashier_can_sell_and_read_summary(self, client, cashier_headers, standard_product):
        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": standard_product.id, "quantity": 1}], "payment_method": "CASH"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        assert client.get("/api/sales/summary", headers=cashier_headers).status_code == 200


# =============================================================================
# ADMIN AND PUBLIC ACCESS
# =============================================================================


class TestAdminAccess:
    def test_admin_lists_users(self, client, admin_headers, cashier_user):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200
        assert {u["username"] for u in resp.json["data"]} == {"admin_user", "cashier_user"}


class TestPublicCatalog:
    @pytest.mark.parametrize("path", ["/api/products", "/api/categories", "/api/health", "/"])
    def test_public_reads(self, client, db_session, path):
        assert client.get(path).status_code == 200
