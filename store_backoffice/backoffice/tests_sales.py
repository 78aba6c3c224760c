import json
from decimal import Decimal

from django.contrib.auth.models import User
from django.test import Client, TestCase
from django.urls import reverse

from backoffice import errors
from .models import Customer, Product, Sale
from .services.catalog import CatalogStore
from .services.sales import record_sale


class RecordSaleTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="cashier", password="password")
        self.customer = Customer.objects.create(name="Walk-in", phone="0000000000")
        self.chair = Product.objects.create(
            name="Folding Chair", type=Product.Type.BOTH, current_stock=10, sale_price=Decimal("900.00"),
        )
        self.tent = Product.objects.create(
            name="Shamiana Tent", type=Product.Type.RENT, current_stock=5, rent_price_per_day=Decimal("100.00"),
        )

    def test_sale_decrements_stock_and_totals(self):
        sale = record_sale(
            customer_id=self.customer.pk,
            items=[{"product_id": self.chair.pk, "quantity": 3, "discount": Decimal("100")}],
            discount=Decimal("50"),
            tax=Decimal("10"),
            payment_method="cash",
            amount_paid=Decimal("1000"),
            acting_user=self.user,
        )

        self.chair.refresh_from_db()
        self.assertEqual(self.chair.current_stock, 7)
        self.assertEqual(sale.subtotal, Decimal("2600.00"))
        self.assertEqual(sale.total, Decimal("2560.00"))
        self.assertEqual(sale.amount_due, Decimal("1560.00"))
        self.assertEqual(sale.payment_status, Sale.PaymentStatus.PARTIAL)
        self.assertEqual(sale.created_by, self.user)
        self.assertTrue(sale.invoice_number.startswith("INV-"))

    def test_insufficient_stock_leaves_nothing_behind(self):
        with self.assertRaises(errors.ValidationError):
            record_sale(customer_id=self.customer.pk,
                        items=[{"product_id": self.chair.pk, "quantity": 11}])

        self.chair.refresh_from_db()
        self.assertEqual(self.chair.current_stock, 10)
        self.assertFalse(Sale.objects.exists())

    def test_rent_only_product_cannot_be_sold(self):
        with self.assertRaises(errors.ValidationError):
            record_sale(customer_id=self.customer.pk,
                        items=[{"product_id": self.tent.pk, "quantity": 1, "unit_price": Decimal("10")}])

    def test_sales_endpoint(self):
        client = Client()
        client.login(username="cashier", password="password")
        resp = client.post(
            reverse("sales_collection"),
            data=json.dumps({
                "customer_id": self.customer.pk,
                "payment_method": "card",
                "amount_paid": "1800.00",
                "items": [{"product_id": self.chair.pk, "quantity": 2}],
            }),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201, resp.content)
        data = resp.json()["data"]
        self.assertEqual(data["total"], "1800.00")
        self.assertEqual(data["payment_status"], "paid")
        self.assertEqual(data["items"][0]["unit_price"], "900.00")


class CatalogStockTest(TestCase):
    def setUp(self):
        self.catalog = CatalogStore()
        self.product = Product.objects.create(name="Banquet Table", current_stock=4)

    def test_stock_moves_both_ways(self):
        self.catalog.decrement_stock(self.product.pk, 3)
        self.catalog.increment_stock(self.product.pk, 5)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 6)

    def test_stock_never_goes_negative(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.catalog.decrement_stock(self.product.pk, 5)
        self.assertEqual(ctx.exception.object_id, self.product.pk)
        self.product.refresh_from_db()
        self.assertEqual(self.product.current_stock, 4)

    def test_unknown_product(self):
        with self.assertRaises(errors.NotFoundError):
            self.catalog.increment_stock(999999, 1)
        with self.assertRaises(errors.NotFoundError):
            self.catalog.get_product("abc")
