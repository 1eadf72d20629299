from datetime import datetime, time, timedelta
from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from lending import events, ledger
from lending.exceptions import InvalidStateTransition, NotFound, ValidationError
from lending.models import InstallmentStatus, Loan, LoanStatus, Payment, PaymentAllocation

from .helpers import make_disbursed_loan, make_loan, make_product


class ApplyPaymentTest(TestCase):
    def setUp(self):
        self.loan = make_disbursed_loan(product=make_product())

    def entry(self, installment_no):
        return self.loan.schedule.get(installment_no=installment_no)

    def test_partial_payment_reduces_outstanding(self):
        payment = ledger.apply_payment(self.loan.pk, 5_000, reference="MPESA-1")

        self.assertEqual(payment.interest_amount, 1_000)
        self.assertEqual(payment.principal_amount, 4_000)
        self.assertEqual(payment.penalty_amount, 0)

        loan = Loan.objects.get(pk=self.loan.pk)
        self.assertEqual(loan.amount_paid, 5_000)
        self.assertEqual(loan.outstanding_balance, 127_000)
        self.assertEqual(loan.status, LoanStatus.DISBURSED)

        first = self.entry(1)
        self.assertEqual(first.status, InstallmentStatus.PARTIAL)
        self.assertEqual(first.interest_paid, 1_000)
        self.assertEqual(first.principal_paid, 4_000)
        self.assertEqual(first.balance_due, 6_000)
        self.assertEqual(self.entry(2).status, InstallmentStatus.PENDING)

    def test_installment_settles_across_payments(self):
        ledger.apply_payment(self.loan.pk, 5_000)
        ledger.apply_payment(self.loan.pk, 6_000)

        self.assertEqual(self.entry(1).status, InstallmentStatus.PAID)
        self.assertEqual(self.entry(2).amount_paid, 0)
        self.assertEqual(Loan.objects.get(pk=self.loan.pk).outstanding_balance, 121_000)

    def test_payment_spills_into_next_installment(self):
        payment = ledger.apply_payment(self.loan.pk, 15_000)

        allocations = list(payment.allocations.order_by("entry__installment_no"))
        self.assertEqual(len(allocations), 2)
        self.assertEqual((allocations[0].interest_amount, allocations[0].principal_amount), (1_000, 10_000))
        self.assertEqual((allocations[1].interest_amount, allocations[1].principal_amount), (1_000, 3_000))
        self.assertEqual(self.entry(1).status, InstallmentStatus.PAID)
        self.assertEqual(self.entry(2).status, InstallmentStatus.PARTIAL)

    def test_full_repayment(self):
        for _ in range(11):
            ledger.apply_payment(self.loan.pk, 11_000)
        loan = Loan.objects.get(pk=self.loan.pk)
        self.assertEqual(loan.status, LoanStatus.DISBURSED)
        self.assertEqual(loan.outstanding_balance, 11_000)

        ledger.apply_payment(self.loan.pk, 11_000)

        loan = Loan.objects.get(pk=self.loan.pk)
        self.assertEqual(loan.status, LoanStatus.REPAID)
        self.assertEqual(loan.amount_paid, loan.total_payable)
        self.assertEqual(loan.outstanding_balance, 0)
        self.assertIsNotNone(loan.repaid_at)
        self.assertFalse(loan.schedule.exclude(status=InstallmentStatus.PAID).exists())
        self.assertTrue(loan.events.filter(event_type=events.LOAN_REPAID).exists())

        with self.assertRaises(InvalidStateTransition):
            ledger.apply_payment(self.loan.pk, 1)

    def test_overpayment_is_rejected(self):
        with self.assertRaises(ValidationError):
            ledger.apply_payment(self.loan.pk, 132_001)
        loan = Loan.objects.get(pk=self.loan.pk)
        self.assertEqual(loan.amount_paid, 0)
        self.assertFalse(loan.payments.exists())

    def test_non_positive_amount(self):
        with self.assertRaises(ValidationError):
            ledger.apply_payment(self.loan.pk, 0)

    def test_pending_loan_cannot_take_payments(self):
        pending = make_loan(product=self.loan.product, principal=50_000)
        with self.assertRaises(InvalidStateTransition) as ctx:
            ledger.apply_payment(pending.pk, 1_000)
        self.assertEqual(ctx.exception.current_state["status"], LoanStatus.PENDING)

    def test_version_moves_with_each_payment(self):
        ledger.apply_payment(self.loan.pk, 1_000)
        ledger.apply_payment(self.loan.pk, 1_000)
        self.assertEqual(Loan.objects.get(pk=self.loan.pk).version, self.loan.version + 2)

    def test_late_partial_payment_leaves_entry_overdue(self):
        due = self.entry(1).due_date
        late = timezone.make_aware(datetime.combine(due + timedelta(days=2), time(12)))

        ledger.apply_payment(self.loan.pk, 5_000, timestamp=late)

        self.assertEqual(self.entry(1).status, InstallmentStatus.OVERDUE)
        self.assertEqual(self.entry(1).amount_paid, 5_000)

    def test_list_payments_in_order(self):
        ledger.apply_payment(self.loan.pk, 2_000, reference="A")
        ledger.apply_payment(self.loan.pk, 3_000, reference="B")
        self.assertEqual([p.reference for p in ledger.list_payments(self.loan.pk)], ["A", "B"])


class LatePenaltyTest(TestCase):
    def setUp(self):
        self.loan = make_disbursed_loan(product=make_product(late_penalty_rate=Decimal("0.1")))
        self.first_due = self.loan.schedule.get(installment_no=1).due_date

    def test_refresh_overdue_accrues_penalty(self):
        flagged = ledger.refresh_overdue(self.loan.pk, self.first_due + timedelta(days=10))

        self.assertEqual(flagged, 1)
        first = self.loan.schedule.get(installment_no=1)
        self.assertEqual(first.status, InstallmentStatus.OVERDUE)
        self.assertEqual(first.penalty_due, 100)
        self.assertEqual(self.loan.schedule.get(installment_no=2).status, InstallmentStatus.PENDING)

    def test_penalty_is_not_compounded(self):
        as_of = self.first_due + timedelta(days=10)
        ledger.refresh_overdue(self.loan.pk, as_of)
        ledger.refresh_overdue(self.loan.pk, as_of)
        self.assertEqual(self.loan.schedule.get(installment_no=1).penalty_due, 100)

    def test_penalty_is_paid_first(self):
        ledger.refresh_overdue(self.loan.pk, self.first_due + timedelta(days=10))

        payment = ledger.apply_payment(self.loan.pk, 1_100)

        self.assertEqual(payment.penalty_amount, 100)
        self.assertEqual(payment.interest_amount, 1_000)
        self.assertEqual(payment.principal_amount, 0)
        loan = Loan.objects.get(pk=self.loan.pk)
        self.assertEqual(loan.penalty_paid, 100)
        self.assertEqual(loan.amount_paid, 1_000)
        self.assertEqual(loan.outstanding_balance, 131_000)
        self.assertEqual(self.loan.schedule.get(installment_no=1).status, InstallmentStatus.OVERDUE)

    def test_penalty_counts_towards_payable(self):
        ledger.refresh_overdue(self.loan.pk, self.first_due + timedelta(days=10))
        ledger.apply_payment(self.loan.pk, 132_100)

        loan = Loan.objects.get(pk=self.loan.pk)
        self.assertEqual(loan.status, LoanStatus.REPAID)
        self.assertEqual(loan.penalty_paid, 100)

    def test_no_penalty_without_rate(self):
        loan = make_disbursed_loan(product=make_product(prefix="NP"))
        due = loan.schedule.get(installment_no=1).due_date
        self.assertEqual(ledger.refresh_overdue(loan.pk, due + timedelta(days=3)), 1)
        self.assertEqual(loan.schedule.get(installment_no=1).penalty_due, 0)

    def test_accrue_penalties_command(self):
        out = StringIO()
        as_of = (self.first_due + timedelta(days=10)).isoformat()

        call_command("accrue_penalties", as_of=as_of, stdout=out)

        self.assertIn("1 loans with overdue installments", out.getvalue())
        self.assertEqual(self.loan.schedule.get(installment_no=1).penalty_due, 100)

    def test_accrue_penalties_rejects_bad_date(self):
        with self.assertRaises(CommandError):
            call_command("accrue_penalties", "--as-of", "someday", stdout=StringIO())


class ReversePaymentTest(TestCase):
    def setUp(self):
        self.loan = make_disbursed_loan(product=make_product(late_penalty_rate=Decimal("0.1")))

    def entry(self, installment_no):
        return self.loan.schedule.get(installment_no=installment_no)

    def test_reversal_restores_balances(self):
        ledger.apply_payment(self.loan.pk, 5_000)
        payment = ledger.apply_payment(self.loan.pk, 10_000)

        loan = ledger.reverse_payment(payment.pk, loan_id=self.loan.pk)

        self.assertEqual(loan.amount_paid, 5_000)
        self.assertEqual(loan.outstanding_balance, 127_000)
        self.assertEqual(loan.version, self.loan.version + 3)
        first = self.entry(1)
        self.assertEqual((first.interest_paid, first.principal_paid), (1_000, 4_000))
        self.assertEqual(first.status, InstallmentStatus.PARTIAL)
        self.assertEqual(self.entry(2).amount_paid, 0)
        self.assertEqual(self.entry(2).status, InstallmentStatus.PENDING)
        self.assertFalse(Payment.objects.filter(pk=payment.pk).exists())
        self.assertFalse(PaymentAllocation.objects.filter(payment_id=payment.pk).exists())
        self.assertTrue(loan.events.filter(event_type=events.PAYMENT_REVERSED).exists())

    def test_reversal_reopens_penalty(self):
        ledger.refresh_overdue(self.loan.pk, self.entry(1).due_date + timedelta(days=10))
        payment = ledger.apply_payment(self.loan.pk, 1_100)

        loan = ledger.reverse_payment(payment.pk)

        self.assertEqual(loan.penalty_paid, 0)
        self.assertEqual(loan.outstanding_balance, 132_000)
        first = self.entry(1)
        self.assertEqual(first.penalty_outstanding, 100)
        self.assertEqual(first.status, InstallmentStatus.OVERDUE)

    def test_repaid_loan_payments_are_final(self):
        payment = ledger.apply_payment(self.loan.pk, 132_000)
        with self.assertRaises(InvalidStateTransition) as ctx:
            ledger.reverse_payment(payment.pk)
        self.assertEqual(ctx.exception.current_state["status"], LoanStatus.REPAID)
        self.assertTrue(Payment.objects.filter(pk=payment.pk).exists())

    def test_payment_must_belong_to_loan(self):
        payment = ledger.apply_payment(self.loan.pk, 1_000)
        with self.assertRaises(NotFound):
            ledger.reverse_payment(payment.pk, loan_id=self.loan.pk + 1)
        with self.assertRaises(NotFound):
            ledger.reverse_payment(payment.pk + 100)
        self.assertEqual(Loan.objects.get(pk=self.loan.pk).amount_paid, 1_000)
