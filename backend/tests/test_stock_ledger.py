import unittest
from flask import Flask

from orderdesk.extensions import db
from orderdesk.models import Product, ProductStockHistory, User
from orderdesk.services import products_service, stock_ledger_service
from orderdesk.validation import NotFoundError, ValidationError


class StockLedgerTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from orderdesk import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(ProductStockHistory).delete()
        db.session.query(Product).delete()
        db.session.query(User).delete()
        db.session.commit()

        self.admin = User(
            type="admin",
            name="Admin",
            email="admin@orderdesk.test",
            password_hash="x",
            status=None,
        )
        db.session.add(self.admin)
        self.product = Product(name="Chain", sku="CHN-1", mark_amount=900, status="active", stock_status="available")
        db.session.add(self.product)
        db.session.commit()

    def test_rejects_unknown_action(self):
        with self.assertRaises(ValidationError):
            stock_ledger_service.record_stock_history(
                product_id=self.product.id,
                action="sold",
                previous_status="available",
                new_status="out_of_stock",
            )

    def test_rejects_unknown_status(self):
        with self.assertRaises(ValidationError):
            stock_ledger_service.record_stock_history(
                product_id=self.product.id,
                action="ordered",
                previous_status="available",
                new_status="gone",
            )

    def test_record_flushes_without_commit(self):
        entry = stock_ledger_service.record_stock_history(
            product_id=self.product.id,
            action="reserved",
            previous_status="available",
            new_status="reserved",
        )
        self.assertIsNotNone(entry.id)

        db.session.rollback()
        self.assertEqual(db.session.query(ProductStockHistory).count(), 0)

    def test_override_records_reserved_then_released(self):
        result = products_service.override_stock_status(
            product_id=self.product.id,
            stock_status="reserved",
            user_id=self.admin.id,
        )
        self.assertEqual(result, {"product_id": self.product.id, "previous_status": "available", "new_status": "reserved"})

        products_service.override_stock_status(
            product_id=self.product.id,
            stock_status="available",
            user_id=self.admin.id,
            notes="Returned to showroom",
        )

        history = stock_ledger_service.list_stock_history(product_id=self.product.id)
        self.assertEqual([h.action for h in history], ["released", "reserved"])
        self.assertEqual(history[0].previous_status, "reserved")
        self.assertEqual(history[0].new_status, "available")
        self.assertEqual(history[0].notes, "Returned to showroom")
        self.assertEqual(history[1].user_id, self.admin.id)
        self.assertEqual(db.session.get(Product, self.product.id).stock_status, "available")

    def test_override_makes_product_unavailable(self):
        products_service.override_stock_status(product_id=self.product.id, stock_status="out_of_stock")
        self.assertFalse(products_service.is_available_for_order(self.product.id))

    def test_override_rejects_invalid_status(self):
        with self.assertRaises(ValidationError):
            products_service.override_stock_status(product_id=self.product.id, stock_status="sold")
        self.assertEqual(db.session.query(ProductStockHistory).count(), 0)

    def test_override_unknown_product(self):
        with self.assertRaises(NotFoundError):
            products_service.override_stock_status(product_id=9999, stock_status="reserved")


if __name__ == "__main__":
    unittest.main()
