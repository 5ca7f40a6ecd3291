# Overview: Threaded concurrency tests against a file-backed SQLite database.

"""
Concurrency tests for the transaction engine.

Each worker thread gets its own app context (and therefore its own session
and connection), so writers really contend for the database lock.
"""
import os
import tempfile
import threading
import unittest

from posledger import create_app
from posledger.extensions import db
from posledger.models import Product, Sale, StockMovement, User
from posledger.services.errors import AlreadyRefunded, InsufficientStock
from posledger.services.transaction_service import SaleItem, TransactionEngine


class ConcurrencyTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        db_path = os.path.join(self.tmpdir.name, "concurrency.db")
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30, "check_same_thread": False}},
            "DB_RETRY_ATTEMPTS": 5,
        })

        with self.app.app_context():
            db.drop_all()
            db.create_all()

            user = User(name="Concurrent Cashier", email="concurrent@example.com")
            db.session.add(user)
            db.session.commit()
            self.user_id = user.id

            product = Product(name="Concurrent Product", price_cents=1000, cost_cents=400)
            TransactionEngine(db.session).stock_new_product(product, 10)
            db.session.commit()
            self.product_id = product.id

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.session.remove()
            db.engine.dispose()
        self.tmpdir.cleanup()

    def _set_stock(self, quantity):
        with self.app.app_context():
            product = db.session.get(Product, self.product_id)
            engine = TransactionEngine(db.session)
            engine.adjust_stock(self.product_id, quantity - product.stock)

    def _run_workers(self, target, count):
        results = []
        lock = threading.Lock()

        def worker():
            with self.app.app_context():
                try:
                    outcome = target()
                    with lock:
                        results.append(outcome)
                except Exception as exc:
                    with lock:
                        results.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return results

    def _sell_one(self):
        engine = TransactionEngine.from_config(db.session, self.app.config)
        cashier = db.session.get(User, self.user_id)
        sale = engine.create_sale([SaleItem(self.product_id, 1)], cashier=cashier)
        return sale.invoice_number

    def test_last_unit_sold_once(self):
        self._set_stock(1)

        results = self._run_workers(self._sell_one, 2)

        sold = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, InsufficientStock)]
        self.assertEqual(len(sold), 1, results)
        self.assertEqual(len(rejected), 1, results)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock, 0)
            self.assertEqual(db.session.query(Sale).count(), 1)

    def test_parallel_sales_never_oversell(self):
        results = self._run_workers(self._sell_one, 15)

        sold = [r for r in results if isinstance(r, str)]
        rejected = [r for r in results if isinstance(r, InsufficientStock)]
        self.assertEqual(len(sold), 10, results)
        self.assertEqual(len(rejected), 5, results)
        self.assertEqual(len(sold), len(set(sold)))

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock, 0)
            movements = db.session.query(StockMovement).filter_by(movement_type="SALE").count()
            self.assertEqual(movements, 10)

    def test_concurrent_refund_applies_once(self):
        with self.app.app_context():
            cashier = db.session.get(User, self.user_id)
            sale = TransactionEngine(db.session).create_sale([SaleItem(self.product_id, 3)], cashier=cashier)
            sale_id = sale.id

        def refund():
            engine = TransactionEngine.from_config(db.session, self.app.config)
            return engine.refund_sale(sale_id).status

        results = self._run_workers(refund, 4)

        self.assertEqual(results.count("refunded"), 1, results)
        self.assertEqual(sum(isinstance(r, AlreadyRefunded) for r in results), 3, results)

        with self.app.app_context():
            self.assertEqual(db.session.get(Product, self.product_id).stock, 10)


if __name__ == "__main__":
    unittest.main()
