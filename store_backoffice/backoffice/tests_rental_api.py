import json
from decimal import Decimal

from django.contrib.auth.models import User
from django.test import Client, TestCase
from django.urls import reverse

from .models import Customer, Product, Rental


class RentalApiTest(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="counter", password="password")
        self.client = Client()
        self.client.login(username="counter", password="password")

        self.customer = Customer.objects.create(name="Ravi Caterers", phone="9811111111")
        self.product = Product.objects.create(
            name="Steel Utensil Set",
            sku="UT-01",
            type=Product.Type.RENT,
            current_stock=30,
            rent_price_per_day=Decimal("100.00"),
        )

    def post_json(self, url, payload):
        return self.client.post(url, data=json.dumps(payload), content_type="application/json")

    def rental_payload(self, **overrides):
        payload = {
            "customer_id": self.customer.pk,
            "start_date": "2024-01-01",
            "expected_return_date": "2024-01-04",
            "security_deposit": "50.00",
            "items": [{"product_id": self.product.pk, "quantity": 2, "rate_type": "daily", "rate_amount": "100"}],
        }
        payload.update(overrides)
        return payload

    def create(self, **overrides):
        resp = self.post_json(reverse("rentals_collection"), self.rental_payload(**overrides))
        self.assertEqual(resp.status_code, 201, resp.content)
        return resp.json()["data"]

    def test_login_required(self):
        anon = Client()
        resp = anon.get(reverse("rentals_collection"))
        self.assertEqual(resp.status_code, 302)
        self.assertTrue(resp["Location"].startswith(reverse("login")))

    def test_create_returns_rental_with_money_as_strings(self):
        data = self.create()

        self.assertEqual(data["status"], "active")
        self.assertEqual(data["subtotal"], "600.00")
        self.assertEqual(data["amount_due"], "600.00")
        self.assertEqual(data["customer"]["name"], "Ravi Caterers")
        self.assertEqual(data["created_by"], "counter")
        self.assertEqual(len(data["items"]), 1)
        self.assertEqual(data["items"][0]["total_days"], 3)
        self.assertEqual(data["items"][0]["total"], "600.00")

    def test_create_validation_error_shape(self):
        resp = self.post_json(reverse("rentals_collection"), self.rental_payload(items=[]))
        self.assertEqual(resp.status_code, 400)
        body = resp.json()
        self.assertFalse(body["success"])
        self.assertEqual(body["error"]["kind"], "validation")
        self.assertEqual(body["error"]["field"], "items")
        self.assertFalse(Rental.objects.exists())

    def test_create_rejects_bad_rate_type(self):
        payload = self.rental_payload(items=[{"product_id": self.product.pk, "quantity": 1, "rate_type": "hourly"}])
        resp = self.post_json(reverse("rentals_collection"), payload)
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["field"], "rate_type")

    def test_create_rejects_malformed_json(self):
        resp = self.client.post(reverse("rentals_collection"), data="{not json", content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_create_unknown_customer_is_404(self):
        resp = self.post_json(reverse("rentals_collection"), self.rental_payload(customer_id=424242))
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["error"]["kind"], "not_found")
        self.assertEqual(resp.json()["error"]["id"], "424242")

    def test_list_filters_and_paginates(self):
        self.create()
        self.create()
        returned = self.create()
        Rental.objects.filter(pk=returned["id"]).update(status=Rental.Status.RETURNED)

        resp = self.client.get(reverse("rentals_collection"), {"status": "active", "limit": 1})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()["data"]
        self.assertEqual(data["total"], 2)
        self.assertEqual(data["total_pages"], 2)
        self.assertEqual(len(data["data"]), 1)

        resp = self.client.get(reverse("rentals_collection"), {"search": "utensil"})
        self.assertEqual(resp.json()["data"]["total"], 3)

    def test_list_rejects_unknown_status(self):
        resp = self.client.get(reverse("rentals_collection"), {"status": "lost"})
        self.assertEqual(resp.status_code, 400)

    def test_detail_update_and_delete(self):
        rental = self.create()
        url = reverse("rental_detail", args=[rental["id"]])

        resp = self.client.get(url)
        self.assertEqual(resp.json()["data"]["rental_number"], rental["rental_number"])

        payload = self.rental_payload(expected_return_date="2024-01-06")
        resp = self.client.put(url, data=json.dumps(payload), content_type="application/json")
        self.assertEqual(resp.status_code, 200, resp.content)
        self.assertEqual(resp.json()["data"]["subtotal"], "1000.00")

        resp = self.client.delete(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(self.client.get(url).status_code, 404)

    def test_return_flow(self):
        rental = self.create()
        item_id = rental["items"][0]["id"]
        url = reverse("rental_return", args=[rental["id"]])

        resp = self.post_json(url, {
            "return_date": "2024-01-04",
            "late_fee": "0",
            "damage_charges": "0",
            "deposit_returned": True,
            "payment_method": "upi",
            "payment_amount": "550.00",
            "items": [{"item_id": item_id, "quantity": 2}],
        })
        self.assertEqual(resp.status_code, 200, resp.content)
        data = resp.json()["data"]
        self.assertEqual(data["status"], "returned")
        self.assertEqual(data["amount_due"], "550.00")
        self.assertEqual(data["actual_return_date"], "2024-01-04")

        again = self.post_json(url, {"return_date": "2024-01-05", "items": []})
        self.assertEqual(again.status_code, 400)

    def test_over_return_is_400(self):
        rental = self.create()
        item_id = rental["items"][0]["id"]
        resp = self.post_json(reverse("rental_return", args=[rental["id"]]), {
            "return_date": "2024-01-04",
            "items": [{"item_id": item_id, "quantity": 3}],
        })
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["id"], str(item_id))

    def test_late_fee_endpoint(self):
        rental = self.create()
        resp = self.client.get(reverse("rental_late_fee", args=[rental["id"]]), {"return_date": "2024-01-06"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["data"]["suggested_late_fee"], "200.00")

    def test_late_fee_endpoint_rejects_date_before_start(self):
        rental = self.create()
        resp = self.client.get(reverse("rental_late_fee", args=[rental["id"]]), {"return_date": "2023-12-25"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"]["field"], "return_date")

    def test_receipt_is_png(self):
        rental = self.create()
        resp = self.client.get(reverse("rental_receipt", args=[rental["id"]]))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp["Content-Type"], "image/png")
        self.assertTrue(resp.content.startswith(b"\x89PNG"))

    def test_rentable_products_search(self):
        Product.objects.create(name="Sofa Set", type=Product.Type.SALE, current_stock=2)
        Product.objects.create(name="Old Utensil Set", type=Product.Type.RENT, is_active=False)

        resp = self.client.get(reverse("rentable_products"), {"q": "utensil"})
        names = [p["name"] for p in resp.json()["data"]]
        self.assertEqual(names, ["Steel Utensil Set"])
