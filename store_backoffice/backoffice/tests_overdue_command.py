from datetime import date
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase

from .models import Customer, Rental


class MarkOverdueRentalsTest(TestCase):
    def setUp(self):
        self.customer = Customer.objects.create(name="Meera Events", phone="9822222222")

    def rental(self, number, status, expected, next_return=None):
        return Rental.objects.create(
            rental_number=number,
            customer=self.customer,
            start_date=date(2024, 1, 1),
            expected_return_date=expected,
            next_return_date=next_return,
            status=status,
            subtotal=Decimal("100.00"),
        )

    def test_flips_only_past_due_open_rentals(self):
        late = self.rental("RNT-1", Rental.Status.ACTIVE, date(2024, 1, 4))
        due_today = self.rental("RNT-2", Rental.Status.ACTIVE, date(2024, 1, 10))
        partial_late = self.rental("RNT-3", Rental.Status.PARTIAL_RETURN, date(2024, 1, 20), date(2024, 1, 8))
        partial_ok = self.rental("RNT-4", Rental.Status.PARTIAL_RETURN, date(2024, 1, 4), date(2024, 1, 12))
        closed = self.rental("RNT-5", Rental.Status.RETURNED, date(2024, 1, 2))

        out = StringIO()
        call_command("mark_overdue_rentals", date="2024-01-10", stdout=out)

        statuses = dict(Rental.objects.values_list("rental_number", "status"))
        self.assertEqual(statuses[late.rental_number], Rental.Status.OVERDUE)
        self.assertEqual(statuses[due_today.rental_number], Rental.Status.ACTIVE)
        self.assertEqual(statuses[partial_late.rental_number], Rental.Status.OVERDUE)
        self.assertEqual(statuses[partial_ok.rental_number], Rental.Status.PARTIAL_RETURN)
        self.assertEqual(statuses[closed.rental_number], Rental.Status.RETURNED)
        self.assertIn("Marked 2 rental(s) as overdue.", out.getvalue())

    def test_dry_run_changes_nothing(self):
        self.rental("RNT-1", Rental.Status.ACTIVE, date(2024, 1, 4))
        out = StringIO()
        call_command("mark_overdue_rentals", date="2024-01-10", dry_run=True, stdout=out)

        self.assertEqual(Rental.objects.get().status, Rental.Status.ACTIVE)
        self.assertIn("RNT-1", out.getvalue())

    def test_invalid_date(self):
        with self.assertRaises(CommandError):
            call_command("mark_overdue_rentals", date="10/01/2024", stdout=StringIO())
