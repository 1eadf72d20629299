import logging
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from . import events, quotas
from .amortization import compute_fee, compute_schedule, schedule_summary
from .catalog import allocate_loan_code, get_product
from .exceptions import InvalidStateTransition, ValidationError
from .guarantors import invite
from .members import ensure_member
from .models import GuarantorStatus, Loan, LoanDocument, LoanStatus, RepaymentScheduleEntry
from .state import ensure_pending, ensure_transition, get_loan, loan_state

logger = logging.getLogger(__name__)


def validate_loan_terms(product, principal: int, term: int):
    errors = {}
    if not product.min_amount <= principal <= product.max_amount:
        errors["principal_amount"] = (
            f"Amount must be between {product.min_amount} and {product.max_amount}."
        )
    if term < 1 or term > product.max_term:
        errors["term"] = f"Term must be between 1 and {product.max_term} {product.term_period}."
    if errors:
        raise ValidationError(errors)


def create_loan(
    member_id: int,
    product_id: int,
    principal: int,
    term: int,
    savings_account_id: Optional[int] = None,
    notes: str = "",
    guarantors: Iterable[int] = (),
    documents: Iterable[dict] = (),
) -> Loan:
    ensure_member(member_id)

    with transaction.atomic():
        product = get_product(product_id, lock=True)
        if not product.is_active:
            raise ValidationError({"product": f"Loan product {product.name} is not active."})
        validate_loan_terms(product, principal, term)
        quotas.check_loan_quota(product.tenant_id, principal)

        loan = Loan.objects.create(
            tenant_id=product.tenant_id,
            loan_code=allocate_loan_code(product, settings.LENDING["LOAN_CODE_DIGITS"]),
            member_id=member_id,
            product=product,
            savings_account_id=savings_account_id,
            notes=notes or "",
            product_name=product.name,
            interest_rate=product.interest_rate,
            interest_type=product.interest_type,
            late_penalty_rate=product.late_penalty_rate,
            guarantor_required=product.guarantor_required,
            principal_amount=principal,
            term=term,
            term_period=product.term_period,
            application_fee_amount=compute_fee(product.application_fee, product.application_fee_type, principal),
            processing_fee_amount=compute_fee(product.processing_fee, product.processing_fee_type, principal),
            status=LoanStatus.PENDING,
        )
        for guarantor_member_id in guarantors:
            invite(loan, guarantor_member_id)
        LoanDocument.objects.bulk_create(
            [LoanDocument(loan=loan, reference=doc["reference"], label=doc.get("label", "")) for doc in documents]
        )

    logger.info(f"Loan {loan.loan_code} created for member {member_id}: {principal} over {term} {loan.term_period}")
    return loan


def check_guarantors(loan: Loan):
    # Row locks make Approve wait for in-flight accept/reject responses.
    statuses = [g.status for g in loan.guarantors.select_for_update()]
    if GuarantorStatus.PENDING in statuses:
        raise InvalidStateTransition(
            f"Loan {loan.loan_code} still has guarantors awaiting a response.",
            current_state=loan_state(loan),
        )
    if loan.guarantor_required and GuarantorStatus.ACCEPTED not in statuses:
        raise InvalidStateTransition(
            f"Loan {loan.loan_code} requires at least one accepted guarantor.",
            current_state=loan_state(loan),
        )


def _compare_and_set(loan: Loan, **fields) -> Loan:
    """Write ``fields`` only if nobody changed the loan since it was read."""

    updated = Loan.objects.filter(pk=loan.pk, version=loan.version).update(
        version=loan.version + 1, updated_at=timezone.now(), **fields
    )
    if not updated:
        loan.refresh_from_db()
        raise InvalidStateTransition(
            f"Loan {loan.loan_code} was modified concurrently.", current_state=loan_state(loan)
        )
    loan.refresh_from_db()
    return loan


def approve_loan(loan_id: int) -> Loan:
    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        ensure_transition(loan, LoanStatus.DISBURSED)
        check_guarantors(loan)

        now = timezone.now()
        lines = compute_schedule(
            loan.principal_amount, loan.interest_rate, loan.term, loan.term_period, loan.interest_type, now
        )
        summary = schedule_summary(lines)
        total_payable = summary["total_payable"]

        loan = _compare_and_set(
            loan,
            status=LoanStatus.DISBURSED,
            interest_amount=summary["total_interest"],
            total_payable=total_payable,
            outstanding_balance=total_payable - loan.amount_paid,
            approved_at=now,
            disbursed_at=now,
        )
        RepaymentScheduleEntry.objects.bulk_create(
            [
                RepaymentScheduleEntry(
                    loan=loan,
                    installment_no=line.installment_no,
                    due_date=line.due_date,
                    principal_due=line.principal_due,
                    interest_due=line.interest_due,
                )
                for line in lines
            ]
        )
        events.emit(
            events.LOAN_APPROVED,
            loan,
            total_payable=total_payable,
            installments=summary["installments"],
            last_due_date=summary["last_due_date"].isoformat(),
        )
        events.emit(
            events.LOAN_DISBURSED,
            loan,
            principal_amount=loan.principal_amount,
            fees=loan.total_fees,
            savings_account_id=loan.savings_account_id,
        )

    logger.info(f"Loan {loan.loan_code} approved and disbursed: {len(lines)} installments, total {total_payable}")
    return loan


def decline_loan(loan_id: int) -> Loan:
    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        ensure_transition(loan, LoanStatus.DECLINED)
        loan = _compare_and_set(loan, status=LoanStatus.DECLINED, declined_at=timezone.now())
        events.emit(events.LOAN_DECLINED, loan)

    logger.info(f"Loan {loan.loan_code} declined")
    return loan


def mark_defaulted(loan_id: int) -> Loan:
    """Apply the external default signal to a disbursed loan."""

    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        ensure_transition(loan, LoanStatus.DEFAULTED)
        loan = _compare_and_set(loan, status=LoanStatus.DEFAULTED, defaulted_at=timezone.now())
        events.emit(events.LOAN_DEFAULTED, loan, outstanding_balance=loan.outstanding_balance)

    logger.warning(f"Loan {loan.loan_code} marked defaulted with {loan.outstanding_balance} outstanding")
    return loan


def attach_document(loan_id: int, reference: str, label: str = "") -> LoanDocument:
    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        ensure_pending(loan, "attach a document")
        return LoanDocument.objects.create(loan=loan, reference=reference, label=label)


def list_loans(tenant_id=None, member_id=None, status=None):
    queryset = Loan.objects.all()
    if tenant_id is not None:
        queryset = queryset.filter(tenant_id=tenant_id)
    if member_id is not None:
        queryset = queryset.filter(member_id=member_id)
    if status:
        queryset = queryset.filter(status=status)
    return queryset


def get_schedule(loan_id: int):
    loan = get_loan(loan_id)
    return loan.schedule.order_by("installment_no")
