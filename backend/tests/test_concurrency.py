"""
Concurrency tests for the sale transaction.

Runs real threads against a file-backed SQLite database, each with its own
app context and session, the way two registers would hit the server.
"""
import os
import tempfile
import threading
import unittest
from decimal import Decimal

from posdesk import create_app
from posdesk.extensions import db
from posdesk.models import Category, Product, Sale, SaleItem, User
from posdesk.services import sales_service
from posdesk.services.sales_service import InsufficientStockError


class SaleConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(
                full_name="Concurrent Cashier",
                username="concurrent_user",
                email="concurrent@example.com",
                password_hash="dummy",
                role="CASHIER",
                is_active=True,
            )
            category = Category(name="Concurrency")
            db.session.add_all([user, category])
            db.session.commit()
            self.user_id = user.id

            product = Product(
                name="Last Units",
                barcode="CONCUR-1",
                category_id=category.id,
                buying_price=Decimal("4.00"),
                selling_price=Decimal("10.00"),
                stock_quantity=5,
                is_active=True,
            )
            plenty = Product(
                name="Plenty",
                barcode="CONCUR-2",
                category_id=category.id,
                buying_price=Decimal("1.00"),
                selling_price=Decimal("2.00"),
                stock_quantity=1000,
                is_active=True,
            )
            db.session.add_all([product, plenty])
            db.session.commit()
            self.product_id = product.id
            self.plenty_id = plenty.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _run_workers(self, basket, count):
        results = []
        errors = []
        lock = threading.Lock()
        start = threading.Barrier(count)

        def worker():
            with self.app.app_context():
                try:
                    actor = db.session.get(User, self.user_id)
                    start.wait()
                    sale = sales_service.record_sale(basket, "CASH", actor=actor)
                    with lock:
                        results.append(sale.invoice_number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results, errors

    def test_concurrent_sales_cannot_oversell(self):
        results, errors = self._run_workers([{"product_id": self.product_id, "quantity": 5}], 2)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InsufficientStockError)

        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            self.assertEqual(product.stock_quantity, 0)
            self.assertEqual(db.session.query(Sale).count(), 1)
            self.assertEqual(db.session.query(SaleItem).count(), 1)

    def test_concurrent_invoice_numbers_are_unique(self):
        results, errors = self._run_workers([{"product_id": self.plenty_id, "quantity": 1}], 8)

        self.assertFalse(errors)
        self.assertEqual(len(results), 8)
        self.assertEqual(len(results), len(set(results)))

        with self.app.app_context():
            product = db.session.get(Product, self.plenty_id)
            self.assertEqual(product.stock_quantity, 992)


if __name__ == "__main__":
    unittest.main()
