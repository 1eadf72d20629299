"""Application of confirmed payments against a disbursed loan's schedule.

Allocation walks unsettled installments oldest-due-first and, within each
installment, pays accrued penalty, then interest, then principal. The whole
allocation runs under the loan row lock in one transaction.
"""
import logging
from datetime import date, datetime
from typing import Optional

from django.db import transaction
from django.utils import timezone

from . import events
from .amortization import compute_late_penalty
from .exceptions import InvalidStateTransition, NotFound, ValidationError
from .models import InstallmentStatus, Loan, LoanStatus, Payment, PaymentAllocation, RepaymentScheduleEntry
from .state import ensure_transition, get_loan, loan_state

logger = logging.getLogger(__name__)


def _unsettled_entries(loan: Loan):
    return list(
        loan.schedule.select_for_update()
        .exclude(status=InstallmentStatus.PAID)
        .order_by("due_date", "installment_no")
    )


def penalty_outstanding(loan: Loan) -> int:
    return sum(entry.penalty_outstanding for entry in loan.schedule.exclude(status=InstallmentStatus.PAID))


def _settle_status(entry: RepaymentScheduleEntry, today: date) -> str:
    if entry.is_settled:
        return InstallmentStatus.PAID
    if entry.status == InstallmentStatus.OVERDUE or entry.due_date < today:
        return InstallmentStatus.OVERDUE
    if entry.amount_paid or entry.penalty_paid:
        return InstallmentStatus.PARTIAL
    return InstallmentStatus.PENDING


def allocate(entry: RepaymentScheduleEntry, remaining: int) -> dict:
    """Split ``remaining`` across one installment: penalty, interest, principal."""

    penalty = min(remaining, entry.penalty_outstanding)
    remaining -= penalty
    interest = min(remaining, entry.interest_due - entry.interest_paid)
    remaining -= interest
    principal = min(remaining, entry.principal_due - entry.principal_paid)
    return {"penalty_amount": penalty, "interest_amount": interest, "principal_amount": principal}


def apply_payment(
    loan_id: int,
    amount: int,
    timestamp: Optional[datetime] = None,
    reference: str = "",
    remarks: str = "",
) -> Payment:
    if amount is None or amount <= 0:
        raise ValidationError({"amount": "Payment amount must be greater than zero."})
    applied_at = timestamp or timezone.now()

    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        if loan.status != LoanStatus.DISBURSED:
            raise InvalidStateTransition(
                f"Payments can only be applied to disbursed loans; {loan.loan_code} is {loan.status}.",
                current_state=loan_state(loan),
            )

        entries = _unsettled_entries(loan)
        payable = loan.outstanding_balance + sum(entry.penalty_outstanding for entry in entries)
        if amount > payable:
            logger.warning(f"Rejected overpayment of {amount} on loan {loan.loan_code} (payable {payable})")
            raise ValidationError({"amount": f"Payment of {amount} exceeds the {payable} still payable."})

        payment = Payment.objects.create(
            loan=loan, amount=amount, applied_at=applied_at, reference=reference, remarks=remarks
        )
        today = timezone.localdate(applied_at) if timezone.is_aware(applied_at) else applied_at.date()
        remaining = amount
        allocations = []
        for entry in entries:
            if remaining == 0:
                break
            split = allocate(entry, remaining)
            applied = sum(split.values())
            if not applied:
                continue
            remaining -= applied

            entry.penalty_paid += split["penalty_amount"]
            entry.interest_paid += split["interest_amount"]
            entry.principal_paid += split["principal_amount"]
            entry.amount_paid = entry.interest_paid + entry.principal_paid
            entry.status = _settle_status(entry, today)
            entry.save(
                update_fields=["penalty_paid", "interest_paid", "principal_paid", "amount_paid", "status"]
            )
            allocations.append(PaymentAllocation(payment=payment, entry=entry, **split))

            payment.penalty_amount += split["penalty_amount"]
            payment.interest_amount += split["interest_amount"]
            payment.principal_amount += split["principal_amount"]

        PaymentAllocation.objects.bulk_create(allocations)
        payment.save(update_fields=["penalty_amount", "interest_amount", "principal_amount"])

        applied_to_balance = payment.interest_amount + payment.principal_amount
        loan.amount_paid += applied_to_balance
        loan.penalty_paid += payment.penalty_amount
        loan.outstanding_balance = loan.total_payable - loan.amount_paid
        update_fields = ["amount_paid", "penalty_paid", "outstanding_balance", "version", "updated_at"]
        if loan.outstanding_balance == 0:
            ensure_transition(loan, LoanStatus.REPAID)
            loan.status = LoanStatus.REPAID
            loan.repaid_at = applied_at
            update_fields += ["status", "repaid_at"]
        loan.version += 1
        loan.save(update_fields=update_fields)

        events.emit(
            events.PAYMENT_APPLIED,
            loan,
            payment_id=payment.pk,
            amount=amount,
            penalty_amount=payment.penalty_amount,
            interest_amount=payment.interest_amount,
            principal_amount=payment.principal_amount,
            outstanding_balance=loan.outstanding_balance,
        )
        if loan.status == LoanStatus.REPAID:
            events.emit(events.LOAN_REPAID, loan, total_paid=loan.amount_paid + loan.penalty_paid)

    logger.info(
        f"Applied {amount} to loan {loan.loan_code}: penalty {payment.penalty_amount}, "
        f"interest {payment.interest_amount}, principal {payment.principal_amount}; "
        f"outstanding {loan.outstanding_balance}"
    )
    return payment


def reverse_payment(payment_id: int, loan_id: Optional[int] = None) -> Loan:
    """Undo a recorded payment on a disbursed loan and delete it.

    Each allocation is taken back off its installment, so the loan and its
    schedule read as if the payment had never been applied. Payments on a
    repaid (or otherwise closed) loan are final and cannot be reversed.
    """

    with transaction.atomic():
        try:
            loan_pk = Payment.objects.values_list("loan_id", flat=True).get(pk=payment_id)
        except Payment.DoesNotExist as exc:
            raise NotFound(f"Payment {payment_id} not found.") from exc
        if loan_id is not None and loan_pk != loan_id:
            raise NotFound(f"Payment {payment_id} not found on loan {loan_id}.")

        loan = get_loan(loan_pk, lock=True)
        if loan.status != LoanStatus.DISBURSED:
            raise InvalidStateTransition(
                f"Payments can only be reversed on disbursed loans; {loan.loan_code} is {loan.status}.",
                current_state=loan_state(loan),
            )

        payment = Payment.objects.get(pk=payment_id)
        entries = {entry.pk: entry for entry in loan.schedule.select_for_update()}
        today = timezone.localdate()
        for allocation in payment.allocations.all():
            entry = entries[allocation.entry_id]
            entry.penalty_paid -= allocation.penalty_amount
            entry.interest_paid -= allocation.interest_amount
            entry.principal_paid -= allocation.principal_amount
            entry.amount_paid = entry.interest_paid + entry.principal_paid
            entry.status = _settle_status(entry, today)
            entry.save(
                update_fields=["penalty_paid", "interest_paid", "principal_paid", "amount_paid", "status"]
            )

        loan.amount_paid -= payment.interest_amount + payment.principal_amount
        loan.penalty_paid -= payment.penalty_amount
        loan.outstanding_balance = loan.total_payable - loan.amount_paid
        loan.version += 1
        loan.save(update_fields=["amount_paid", "penalty_paid", "outstanding_balance", "version", "updated_at"])

        events.emit(
            events.PAYMENT_REVERSED,
            loan,
            payment_id=payment.pk,
            amount=payment.amount,
            reference=payment.reference,
            outstanding_balance=loan.outstanding_balance,
        )
        payment.delete()

    logger.warning(
        f"Reversed payment {payment_id} of {payment.amount} on loan {loan.loan_code}; "
        f"outstanding {loan.outstanding_balance}"
    )
    return loan


def refresh_overdue(loan_id: int, as_of: Optional[date] = None) -> int:
    """Flag past-due installments and recompute their late penalty.

    Returns the number of installments currently overdue. Penalties are
    recomputed from the days late each run, so repeated runs do not compound.
    """

    as_of = as_of or timezone.localdate()
    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        if loan.status != LoanStatus.DISBURSED:
            return 0

        overdue = 0
        for entry in _unsettled_entries(loan):
            if entry.due_date >= as_of:
                continue
            overdue += 1
            days_late = (as_of - entry.due_date).days
            overdue_principal = entry.principal_due - entry.principal_paid
            penalty = compute_late_penalty(overdue_principal, loan.late_penalty_rate, days_late)
            entry.penalty_due = max(penalty, entry.penalty_paid)
            entry.status = InstallmentStatus.OVERDUE
            entry.save(update_fields=["penalty_due", "status"])

    if overdue:
        logger.info(f"Loan {loan.loan_code} has {overdue} overdue installments as of {as_of}")
    return overdue


def list_payments(loan_id: int):
    loan = get_loan(loan_id)
    return loan.payments.prefetch_related("allocations")
