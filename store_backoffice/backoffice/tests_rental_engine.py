from datetime import date
from decimal import Decimal

from django.contrib.auth.models import User
from django.test import TestCase

from backoffice import errors
from .models import Customer, Product, Rental, RentalItem
from .services.catalog import CatalogStore
from .services.rental_engine import ItemReturn, RentalItemInput, RentalLifecycleEngine
from .services.rental_repository import RentalRepository


class RentalEngineTestBase(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="counter", password="password")
        self.engine = RentalLifecycleEngine(RentalRepository(), CatalogStore())
        self.customer = Customer.objects.create(name="Asha Traders", phone="9800000001")
        self.tent = Product.objects.create(
            name="Shamiana Tent",
            type=Product.Type.RENT,
            current_stock=20,
            rent_price_per_day=Decimal("100.00"),
            rent_price_per_week=Decimal("600.00"),
            security_deposit=Decimal("25.00"),
        )
        self.chair = Product.objects.create(
            name="Folding Chair",
            type=Product.Type.BOTH,
            current_stock=50,
            sale_price=Decimal("900.00"),
            rent_price_per_day=Decimal("15.00"),
        )

    def create_rental(self, items=None, **kwargs):
        params = {
            "customer_id": self.customer.pk,
            "start_date": date(2024, 1, 1),
            "expected_return_date": date(2024, 1, 4),
            "items": items if items is not None else [RentalItemInput(self.tent.pk, 2, "daily", Decimal("100"))],
            "security_deposit": Decimal("50"),
            "acting_user": self.user,
        }
        params.update(kwargs)
        return self.engine.create(**params)


class CreateRentalTest(RentalEngineTestBase):
    def test_create_computes_estimate(self):
        rental = self.create_rental()

        self.assertEqual(rental.status, Rental.Status.ACTIVE)
        self.assertEqual(rental.subtotal, Decimal("600.00"))
        self.assertEqual(rental.total_charges, Decimal("600.00"))
        self.assertEqual(rental.amount_due, Decimal("600.00"))
        self.assertEqual(rental.amount_paid, Decimal("0.00"))
        self.assertEqual(rental.security_deposit, Decimal("50.00"))
        self.assertTrue(rental.rental_number.startswith("RNT-"))
        self.assertEqual(rental.created_by, self.user)

        item = rental.items.get()
        self.assertEqual(item.total_days, 3)
        self.assertEqual(item.total, Decimal("600.00"))
        self.assertEqual(item.quantity_returned, 0)
        self.assertEqual(item.daily_rate, Decimal("100.00"))
        self.assertEqual(item.weekly_rate, Decimal("600.00"))

    def test_rentals_do_not_touch_stock(self):
        self.create_rental()
        self.tent.refresh_from_db()
        self.assertEqual(self.tent.current_stock, 20)

    def test_missing_rate_uses_product_rate(self):
        rental = self.create_rental(items=[{"product_id": self.chair.pk, "quantity": 10, "rate_type": "daily"}])
        item = rental.items.get()
        self.assertEqual(item.rate_amount, Decimal("15.00"))
        self.assertEqual(rental.subtotal, Decimal("450.00"))

    def test_product_without_rate_for_type_rejected(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.create_rental(items=[RentalItemInput(self.chair.pk, 1, "monthly")])
        self.assertEqual(ctx.exception.field, "rate_amount")
        self.assertFalse(Rental.objects.exists())

    def test_default_deposit_from_products(self):
        rental = self.create_rental(security_deposit=None)
        self.assertEqual(rental.security_deposit, Decimal("50.00"))  # 25.00 x 2

    def test_weekly_rate_rounds_periods_up(self):
        rental = self.create_rental(
            items=[RentalItemInput(self.tent.pk, 1, "weekly", Decimal("600"))],
            expected_return_date=date(2024, 1, 10),
        )
        self.assertEqual(rental.subtotal, Decimal("1200.00"))

    def test_empty_items_rejected(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.create_rental(items=[])
        self.assertEqual(ctx.exception.field, "items")
        self.assertFalse(Rental.objects.exists())

    def test_expected_before_start_rejected(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.create_rental(expected_return_date=date(2023, 12, 31))
        self.assertEqual(ctx.exception.field, "expected_return_date")

    def test_bad_item_fields_rejected(self):
        cases = [
            (RentalItemInput(self.tent.pk, 0, "daily", Decimal("100")), "quantity"),
            (RentalItemInput(self.tent.pk, 1, "hourly", Decimal("100")), "rate_type"),
            (RentalItemInput(self.tent.pk, 1, "daily", Decimal("-1")), "rate_amount"),
        ]
        for item, field in cases:
            with self.subTest(field=field):
                with self.assertRaises(errors.ValidationError) as ctx:
                    self.create_rental(items=[item])
                self.assertEqual(ctx.exception.field, field)
        self.assertFalse(Rental.objects.exists())

    def test_unknown_customer_and_product(self):
        with self.assertRaises(errors.NotFoundError) as ctx:
            self.create_rental(customer_id=999999)
        self.assertEqual(ctx.exception.field, "customer_id")

        with self.assertRaises(errors.NotFoundError) as ctx:
            self.create_rental(items=[RentalItemInput(999999, 1, "daily", Decimal("10"))])
        self.assertEqual(ctx.exception.object_id, 999999)

    def test_sale_only_product_rejected(self):
        soap = Product.objects.create(name="Soap", type=Product.Type.SALE, current_stock=5,
                                      rent_price_per_day=Decimal("1.00"))
        with self.assertRaises(errors.ValidationError):
            self.create_rental(items=[RentalItemInput(soap.pk, 1, "daily")])

    def test_quantity_over_stock_rejected(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            self.create_rental(items=[
                RentalItemInput(self.tent.pk, 15, "daily", Decimal("100")),
                RentalItemInput(self.tent.pk, 6, "weekly", Decimal("600")),
            ])
        self.assertEqual(ctx.exception.object_id, self.tent.pk)
        self.assertFalse(Rental.objects.exists())


class ProcessReturnTest(RentalEngineTestBase):
    def test_full_return_settles_with_deposit_offset(self):
        rental = self.create_rental()
        item = rental.items.get()

        rental = self.engine.process_return(
            rental.pk,
            return_date=date(2024, 1, 4),
            item_returns=[ItemReturn(item.pk, 2)],
            late_fee=Decimal("0"),
            damage_charges=Decimal("0"),
            deposit_returned=True,
            payment_method="cash",
            payment_amount=Decimal("550.00"),
            acting_user=self.user,
        )

        self.assertEqual(rental.status, Rental.Status.RETURNED)
        self.assertEqual(rental.total_charges, Decimal("600.00"))
        self.assertEqual(rental.amount_due, Decimal("550.00"))
        self.assertEqual(rental.actual_return_date, date(2024, 1, 4))
        self.assertIsNone(rental.next_return_date)
        self.assertEqual(rental.return_payment_method, "cash")
        self.assertEqual(rental.return_payment_amount, Decimal("550.00"))
        self.assertEqual(rental.updated_by, self.user)
        returned = rental.items.get()
        self.assertEqual(returned.quantity_returned, 2)
        self.assertEqual(returned.return_date, date(2024, 1, 4))

    def test_settlement_charges_elapsed_time_and_fees(self):
        rental = self.create_rental()
        item = rental.items.get()

        rental = self.engine.process_return(
            rental.pk,
            return_date=date(2024, 1, 6),
            item_returns=[ItemReturn(item.pk, 2)],
            damage_charges=Decimal("40.00"),
        )

        # 5 days x 100 x 2, suggested late fee 2 x 100
        self.assertEqual(rental.total_charges, Decimal("1000.00"))
        self.assertEqual(rental.late_fee, Decimal("200.00"))
        self.assertEqual(rental.amount_due, Decimal("1240.00"))

    def test_explicit_zero_late_fee_is_kept(self):
        rental = self.create_rental()
        item = rental.items.get()
        rental = self.engine.process_return(
            rental.pk, return_date=date(2024, 1, 6), item_returns=[ItemReturn(item.pk, 2)], late_fee=Decimal("0"),
        )
        self.assertEqual(rental.late_fee, Decimal("0.00"))

    def test_partial_return(self):
        rental = self.create_rental(items=[RentalItemInput(self.tent.pk, 10, "daily", Decimal("100"))])
        item = rental.items.get()

        rental = self.engine.process_return(
            rental.pk,
            return_date=date(2024, 1, 3),
            item_returns=[{"item_id": item.pk, "quantity": 4}],
            next_return_date=date(2024, 1, 8),
        )

        self.assertEqual(rental.status, Rental.Status.PARTIAL_RETURN)
        self.assertIsNone(rental.actual_return_date)
        self.assertEqual(rental.next_return_date, date(2024, 1, 8))
        self.assertEqual(rental.items.get().quantity_returned, 4)

    def test_partial_return_requires_next_return_date(self):
        rental = self.create_rental(items=[RentalItemInput(self.tent.pk, 10, "daily", Decimal("100"))])
        item = rental.items.get()

        with self.assertRaises(errors.ValidationError) as ctx:
            self.engine.process_return(rental.pk, return_date=date(2024, 1, 3),
                                       item_returns=[ItemReturn(item.pk, 4)])
        self.assertEqual(ctx.exception.field, "next_return_date")
        self.assertEqual(RentalItem.objects.get(pk=item.pk).quantity_returned, 0)

    def test_over_return_fails_without_changes(self):
        rental = self.create_rental(items=[RentalItemInput(self.tent.pk, 10, "daily", Decimal("100"))])
        item = rental.items.get()
        self.engine.process_return(rental.pk, return_date=date(2024, 1, 3),
                                   item_returns=[ItemReturn(item.pk, 8)], next_return_date=date(2024, 1, 5))
        before = Rental.objects.get(pk=rental.pk)

        with self.assertRaises(errors.ValidationError) as ctx:
            self.engine.process_return(rental.pk, return_date=date(2024, 1, 4),
                                       item_returns=[ItemReturn(item.pk, 5)], deposit_returned=True)
        self.assertEqual(ctx.exception.object_id, item.pk)

        after = Rental.objects.get(pk=rental.pk)
        self.assertEqual(RentalItem.objects.get(pk=item.pk).quantity_returned, 8)
        self.assertEqual(after.status, Rental.Status.PARTIAL_RETURN)
        self.assertEqual(after.total_charges, before.total_charges)
        self.assertEqual(after.amount_due, before.amount_due)
        self.assertFalse(after.deposit_returned)

    def test_zero_deltas_are_idempotent(self):
        rental = self.create_rental()
        item = rental.items.get()

        first = self.engine.process_return(rental.pk, return_date=date(2024, 1, 4),
                                           item_returns=[ItemReturn(item.pk, 0)])
        second = self.engine.process_return(rental.pk, return_date=date(2024, 1, 4),
                                            item_returns=[ItemReturn(item.pk, 0)])

        for r in (first, second):
            self.assertEqual(r.status, Rental.Status.ACTIVE)
            self.assertEqual(r.total_charges, Decimal("600.00"))
            self.assertEqual(r.items.get().quantity_returned, 0)

    def test_same_day_return_charges_nothing(self):
        rental = self.create_rental()
        item = rental.items.get()

        rental = self.engine.process_return(rental.pk, return_date=date(2024, 1, 1),
                                            item_returns=[ItemReturn(item.pk, 2)])

        self.assertEqual(rental.status, Rental.Status.RETURNED)
        self.assertEqual(rental.total_charges, Decimal("0.00"))
        self.assertEqual(rental.late_fee, Decimal("0.00"))
        self.assertEqual(rental.amount_due, Decimal("0.00"))

    def test_overdue_rental_can_be_returned(self):
        rental = self.create_rental()
        Rental.objects.filter(pk=rental.pk).update(status=Rental.Status.OVERDUE)
        item = rental.items.get()

        rental = self.engine.process_return(rental.pk, return_date=date(2024, 1, 5),
                                            item_returns=[ItemReturn(item.pk, 2)])
        self.assertEqual(rental.status, Rental.Status.RETURNED)

    def test_returned_rental_rejected(self):
        rental = self.create_rental()
        item = rental.items.get()
        self.engine.process_return(rental.pk, return_date=date(2024, 1, 4), item_returns=[ItemReturn(item.pk, 2)])

        with self.assertRaises(errors.ValidationError):
            self.engine.process_return(rental.pk, return_date=date(2024, 1, 5))

    def test_return_before_start_rejected(self):
        rental = self.create_rental()
        with self.assertRaises(errors.ValidationError) as ctx:
            self.engine.process_return(rental.pk, return_date=date(2023, 12, 30))
        self.assertEqual(ctx.exception.field, "return_date")

    def test_item_from_other_rental_rejected(self):
        first = self.create_rental()
        other = self.create_rental()
        foreign = other.items.get()

        with self.assertRaises(errors.ValidationError):
            self.engine.process_return(first.pk, return_date=date(2024, 1, 4),
                                       item_returns=[ItemReturn(foreign.pk, 1)])

    def test_unknown_rental(self):
        with self.assertRaises(errors.NotFoundError):
            self.engine.process_return(999999, return_date=date(2024, 1, 4))

    def test_late_fee_suggestion(self):
        rental = self.create_rental()
        self.assertEqual(self.engine.late_fee_suggestion(rental.pk, date(2024, 1, 5)), Decimal("100.00"))
        self.assertEqual(self.engine.late_fee_suggestion(rental.pk, date(2024, 1, 3)), Decimal("0.00"))

    def test_late_fee_suggestion_rejects_date_before_start(self):
        rental = self.create_rental()
        with self.assertRaises(errors.ValidationError) as ctx:
            self.engine.late_fee_suggestion(rental.pk, date(2023, 12, 25))
        self.assertEqual(ctx.exception.field, "return_date")

    def test_refund_is_preserved(self):
        rental = self.create_rental(security_deposit=Decimal("5000"))
        item = rental.items.get()

        rental = self.engine.process_return(
            rental.pk,
            return_date=date(2024, 1, 2),
            item_returns=[ItemReturn(item.pk, 2)],
            deposit_returned=True,
        )

        # 1 day x 100 x 2 = 200 charged against a 5000 deposit
        self.assertEqual(rental.total_charges, Decimal("200.00"))
        self.assertEqual(rental.amount_due, Decimal("-4800.00"))

    def test_negative_delta_rejected(self):
        rental = self.create_rental()
        item = rental.items.get()

        with self.assertRaises(errors.ValidationError) as ctx:
            self.engine.process_return(rental.pk, return_date=date(2024, 1, 4),
                                       item_returns=[ItemReturn(item.pk, -1)])
        self.assertEqual(ctx.exception.object_id, item.pk)

        after = Rental.objects.get(pk=rental.pk)
        self.assertEqual(after.status, Rental.Status.ACTIVE)
        self.assertEqual(after.total_charges, Decimal("600.00"))
        self.assertEqual(RentalItem.objects.get(pk=item.pk).quantity_returned, 0)


class EditAndDeleteRentalTest(RentalEngineTestBase):
    def test_edit_replaces_items_and_recomputes(self):
        rental = self.create_rental()
        old_item = rental.items.get()

        rental = self.engine.edit(
            rental.pk,
            customer_id=self.customer.pk,
            start_date=date(2024, 1, 1),
            expected_return_date=date(2024, 1, 5),
            items=[
                RentalItemInput(self.tent.pk, 1, "daily", Decimal("100")),
                RentalItemInput(self.chair.pk, 10, "daily"),
            ],
            security_deposit=Decimal("80"),
            notes="Two more days",
        )

        self.assertFalse(RentalItem.objects.filter(pk=old_item.pk).exists())
        self.assertEqual(rental.items.count(), 2)
        self.assertEqual(rental.subtotal, Decimal("1000.00"))  # 400 + 600
        self.assertEqual(rental.total_charges, Decimal("1000.00"))
        self.assertEqual(rental.amount_due, Decimal("1000.00"))
        self.assertEqual(rental.security_deposit, Decimal("80.00"))
        self.assertEqual(rental.notes, "Two more days")
        self.assertEqual(rental.status, Rental.Status.ACTIVE)

    def test_edit_refused_after_a_return(self):
        rental = self.create_rental(items=[RentalItemInput(self.tent.pk, 10, "daily", Decimal("100"))])
        item = rental.items.get()
        self.engine.process_return(rental.pk, return_date=date(2024, 1, 2),
                                   item_returns=[ItemReturn(item.pk, 3)], next_return_date=date(2024, 1, 4))

        with self.assertRaises(errors.ValidationError):
            self.engine.edit(
                rental.pk,
                customer_id=self.customer.pk,
                start_date=date(2024, 1, 1),
                expected_return_date=date(2024, 1, 4),
                items=[RentalItemInput(self.tent.pk, 10, "daily", Decimal("100"))],
            )
        self.assertEqual(RentalItem.objects.get(pk=item.pk).quantity_returned, 3)

    def test_failed_edit_keeps_old_items(self):
        rental = self.create_rental()
        with self.assertRaises(errors.ValidationError):
            self.engine.edit(rental.pk, customer_id=self.customer.pk, start_date=date(2024, 1, 1),
                             expected_return_date=date(2024, 1, 4), items=[])
        self.assertEqual(RentalItem.objects.filter(rental_id=rental.pk).count(), 1)

    def test_delete_cascades_to_items(self):
        rental = self.create_rental()
        self.engine.delete(rental.pk)

        self.assertFalse(Rental.objects.filter(pk=rental.pk).exists())
        self.assertFalse(RentalItem.objects.filter(rental_id=rental.pk).exists())

    def test_delete_unknown_rental(self):
        with self.assertRaises(errors.NotFoundError):
            self.engine.delete(999999)
