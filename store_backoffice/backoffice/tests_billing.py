from datetime import date, timedelta
from decimal import Decimal

from django.test import SimpleTestCase

from backoffice import errors
from backoffice.services import billing


class PeriodCountTest(SimpleTestCase):
    start = date(2024, 1, 1)

    def test_daily_counts_elapsed_days(self):
        self.assertEqual(billing.period_count(self.start, date(2024, 1, 4), billing.DAILY), 3)

    def test_same_day_is_zero_periods(self):
        for rate_type in billing.RATE_TYPES:
            self.assertEqual(billing.period_count(self.start, self.start, rate_type), 0)

    def test_weekly_and_monthly_round_up(self):
        self.assertEqual(billing.period_count(self.start, date(2024, 1, 2), billing.WEEKLY), 1)
        self.assertEqual(billing.period_count(self.start, date(2024, 1, 8), billing.WEEKLY), 1)
        self.assertEqual(billing.period_count(self.start, date(2024, 1, 9), billing.WEEKLY), 2)
        self.assertEqual(billing.period_count(self.start, date(2024, 1, 31), billing.MONTHLY), 1)
        self.assertEqual(billing.period_count(self.start, date(2024, 2, 1), billing.MONTHLY), 2)

    def test_order_of_dates_is_ignored(self):
        self.assertEqual(
            billing.period_count(date(2024, 1, 10), self.start, billing.DAILY),
            billing.period_count(self.start, date(2024, 1, 10), billing.DAILY),
        )

    def test_non_decreasing_as_end_moves_later(self):
        for rate_type in billing.RATE_TYPES:
            previous = 0
            for offset in range(0, 120):
                periods = billing.period_count(self.start, self.start + timedelta(days=offset), rate_type)
                self.assertGreaterEqual(periods, 0)
                self.assertGreaterEqual(periods, previous, f"{rate_type} dropped at day {offset}")
                previous = periods

    def test_unknown_rate_type_rejected(self):
        with self.assertRaises(errors.ValidationError) as ctx:
            billing.period_count(self.start, date(2024, 1, 4), "hourly")
        self.assertEqual(ctx.exception.field, "rate_type")


class MoneyTest(SimpleTestCase):
    def test_line_total_rounds_half_up(self):
        self.assertEqual(billing.line_total(Decimal("100"), 3, 2), Decimal("600.00"))
        self.assertEqual(billing.line_total(Decimal("0.125"), 1, 1), Decimal("0.13"))
        self.assertEqual(billing.line_total(Decimal("33.335"), 1, 1), Decimal("33.34"))

    def test_line_total_zero_periods(self):
        self.assertEqual(billing.line_total(Decimal("250.00"), 0, 5), Decimal("0.00"))

    def test_subtotal_sums_rounded_lines(self):
        lines = [billing.line_total(Decimal("0.125"), 1, 1), billing.line_total(Decimal("0.125"), 1, 1)]
        # 0.13 + 0.13, not round(0.25)
        self.assertEqual(billing.subtotal(lines), Decimal("0.26"))
        self.assertEqual(billing.subtotal([]), Decimal("0.00"))


class SuggestedLateFeeTest(SimpleTestCase):
    def test_one_day_late(self):
        fee = billing.suggested_late_fee(date(2024, 1, 1), date(2024, 1, 4), date(2024, 1, 5))
        self.assertEqual(fee, Decimal("100.00"))

    def test_on_time_or_early_is_free(self):
        self.assertEqual(
            billing.suggested_late_fee(date(2024, 1, 1), date(2024, 1, 4), date(2024, 1, 4)), Decimal("0.00")
        )
        self.assertEqual(
            billing.suggested_late_fee(date(2024, 1, 1), date(2024, 1, 4), date(2024, 1, 2)), Decimal("0.00")
        )

    def test_custom_rate(self):
        fee = billing.suggested_late_fee(date(2024, 1, 1), date(2024, 1, 4), date(2024, 1, 7), Decimal("75.50"))
        self.assertEqual(fee, Decimal("226.50"))
