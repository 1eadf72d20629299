from .exceptions import InvalidStateTransition, NotFound
from .models import GUARANTOR_TRANSITIONS, GuarantorStatus, Loan, LoanStatus


def get_loan(loan_id: int, lock: bool = False) -> Loan:
    queryset = Loan.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=loan_id)
    except Loan.DoesNotExist as exc:
        raise NotFound(f"Loan {loan_id} not found.") from exc


def loan_state(loan: Loan) -> dict:
    """Authoritative snapshot of a loan returned alongside transition failures."""

    return {
        "loan_id": loan.pk,
        "loan_code": loan.loan_code,
        "status": loan.status,
        "version": loan.version,
        "total_payable": loan.total_payable,
        "amount_paid": loan.amount_paid,
        "outstanding_balance": loan.outstanding_balance,
        "guarantors": [
            {"id": g.pk, "member_id": g.member_id, "status": g.status}
            for g in loan.guarantors.order_by("id")
        ],
    }


def ensure_transition(loan: Loan, target: LoanStatus):
    if not loan.can_transition_to(target):
        raise InvalidStateTransition(
            f"Loan {loan.loan_code} cannot move from {loan.status} to {target.value}.",
            current_state=loan_state(loan),
        )


def ensure_pending(loan: Loan, action: str):
    if loan.status != LoanStatus.PENDING:
        raise InvalidStateTransition(
            f"Cannot {action} while loan {loan.loan_code} is {loan.status}.",
            current_state=loan_state(loan),
        )


def ensure_guarantor_transition(guarantor, target: GuarantorStatus):
    if target not in GUARANTOR_TRANSITIONS[GuarantorStatus(guarantor.status)]:
        raise InvalidStateTransition(
            f"Guarantor {guarantor.member_id} already {guarantor.status}.",
            current_state=loan_state(guarantor.loan),
        )
