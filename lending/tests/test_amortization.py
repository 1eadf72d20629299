from datetime import date, datetime, timezone
from decimal import Decimal

from django.test import SimpleTestCase

from lending.amortization import (
    calculate_installment,
    compute_fee,
    compute_late_penalty,
    compute_schedule,
    flat_total_interest,
    quantize_money,
    schedule_summary,
    total_interest,
)


class FlatScheduleTest(SimpleTestCase):
    def test_even_flat_schedule(self):
        lines = compute_schedule(120_000, Decimal("10"), 12, "months", "flat", date(2024, 1, 15))

        self.assertEqual(len(lines), 12)
        self.assertEqual(total_interest(lines), 12_000)
        for line in lines:
            self.assertEqual(line.principal_due, 10_000)
            self.assertEqual(line.interest_due, 1_000)
            self.assertEqual(line.total_due, 11_000)
        self.assertEqual([line.installment_no for line in lines], list(range(1, 13)))
        self.assertEqual(lines[-1].outstanding_after, 0)

    def test_rounding_remainder_lands_on_last_installment(self):
        lines = compute_schedule(100_000, Decimal("10"), 3, "months", "flat", date(2024, 1, 15))

        self.assertEqual([line.principal_due for line in lines], [33_333, 33_333, 33_334])
        self.assertEqual([line.interest_due for line in lines], [833, 833, 834])
        self.assertEqual(sum(line.principal_due for line in lines), 100_000)
        self.assertEqual(total_interest(lines), 2_500)

    def test_flat_interest_for_day_terms(self):
        self.assertEqual(flat_total_interest(10_000, Decimal("36.5"), 10, "days"), 100)

    def test_flat_interest_for_week_terms_is_exact_to_one_unit(self):
        lines = compute_schedule(52_000, Decimal("13"), 26, "weeks", "flat", date(2024, 1, 1))
        self.assertEqual(total_interest(lines), 3_380)
        self.assertEqual(sum(line.principal_due for line in lines), 52_000)

    def test_due_dates_do_not_drift_after_short_months(self):
        lines = compute_schedule(30_000, Decimal("12"), 3, "months", "flat", date(2024, 1, 31))
        self.assertEqual(
            [line.due_date for line in lines],
            [date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)],
        )

    def test_datetime_start_uses_its_date(self):
        start = datetime(2024, 5, 1, 23, 0, tzinfo=timezone.utc)
        lines = compute_schedule(10_000, Decimal("5"), 2, "weeks", "flat", start)
        self.assertEqual([line.due_date for line in lines], [date(2024, 5, 8), date(2024, 5, 15)])


class ReducingBalanceScheduleTest(SimpleTestCase):
    def test_three_month_schedule(self):
        lines = compute_schedule(100_000, Decimal("24"), 3, "months", "reducing_balance", date(2024, 1, 1))

        self.assertEqual(len(lines), 3)
        self.assertEqual(calculate_installment(100_000, Decimal("24"), 3, "months"), 34_675)
        self.assertEqual([line.interest_due for line in lines], [2_000, 1_347, 680])
        self.assertEqual([line.principal_due for line in lines], [32_675, 33_328, 33_997])
        self.assertEqual(lines[0].total_due, 34_675)
        self.assertEqual(lines[1].total_due, 34_675)
        self.assertEqual(sum(line.principal_due for line in lines), 100_000)
        self.assertEqual(lines[-1].outstanding_after, 0)

    def test_interest_strictly_decreases(self):
        lines = compute_schedule(250_000, Decimal("18.5"), 12, "months", "reducing_balance", date(2024, 1, 1))
        interests = [line.interest_due for line in lines]
        self.assertTrue(all(a > b for a, b in zip(interests, interests[1:])))
        self.assertEqual(sum(line.principal_due for line in lines), 250_000)

    def test_zero_rate_spreads_principal(self):
        lines = compute_schedule(1_000, Decimal("0"), 3, "months", "reducing_balance", date(2024, 1, 1))
        self.assertEqual([line.interest_due for line in lines], [0, 0, 0])
        self.assertEqual([line.principal_due for line in lines], [333, 333, 334])

    def test_yearly_terms(self):
        lines = compute_schedule(1_000_000, Decimal("10"), 2, "years", "reducing_balance", date(2024, 1, 1))
        self.assertEqual(lines[0].interest_due, 100_000)
        self.assertEqual(sum(line.principal_due for line in lines), 1_000_000)
        self.assertEqual(lines[1].due_date, date(2026, 1, 1))


class ScheduleValidationTest(SimpleTestCase):
    def test_rejects_bad_inputs(self):
        with self.assertRaises(ValueError):
            compute_schedule(0, Decimal("10"), 12, "months", "flat", date(2024, 1, 1))
        with self.assertRaises(ValueError):
            compute_schedule(1_000, Decimal("10"), 0, "months", "flat", date(2024, 1, 1))
        with self.assertRaises(ValueError):
            compute_schedule(1_000, Decimal("10"), 12, "fortnights", "flat", date(2024, 1, 1))
        with self.assertRaises(ValueError):
            compute_schedule(1_000, Decimal("10"), 12, "months", "compound", date(2024, 1, 1))


class FeeAndPenaltyTest(SimpleTestCase):
    def test_fixed_and_percentage_fees(self):
        self.assertEqual(compute_fee(Decimal("500"), "fixed", 120_000), 500)
        self.assertEqual(compute_fee(Decimal("2.5"), "percentage", 120_000), 3_000)
        self.assertEqual(compute_fee(Decimal("1.5"), "percentage", 333), 5)

    def test_late_penalty(self):
        self.assertEqual(compute_late_penalty(10_000, Decimal("0.1"), 5), 50)
        self.assertEqual(compute_late_penalty(10_000, None, 5), 0)
        self.assertEqual(compute_late_penalty(10_000, Decimal("0.1"), 0), 0)

    def test_quantize_money_rounds_half_up(self):
        self.assertEqual(quantize_money(Decimal("1346.5")), 1_347)
        self.assertEqual(quantize_money(Decimal("679.49")), 679)


class ScheduleSummaryTest(SimpleTestCase):
    def test_summary_totals(self):
        lines = compute_schedule(100_000, Decimal("24"), 3, "months", "reducing_balance", date(2024, 1, 1))
        self.assertEqual(
            schedule_summary(lines),
            {
                "installments": 3,
                "total_principal": 100_000,
                "total_interest": 4_027,
                "total_payable": 104_027,
                "first_due_date": date(2024, 2, 1),
                "last_due_date": date(2024, 4, 1),
            },
        )

    def test_empty_schedule(self):
        summary = schedule_summary([])
        self.assertEqual(summary["total_payable"], 0)
        self.assertIsNone(summary["last_due_date"])
