import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from . import events
from .exceptions import GuarantorConflict, NotFound
from .members import ensure_member
from .models import Guarantor, GuarantorStatus, Loan
from .state import ensure_guarantor_transition, ensure_pending, get_loan

logger = logging.getLogger(__name__)


def get_guarantor(guarantor_id: int, lock: bool = False) -> Guarantor:
    queryset = Guarantor.objects.select_related("loan")
    if lock:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=guarantor_id)
    except Guarantor.DoesNotExist as exc:
        raise NotFound(f"Guarantor {guarantor_id} not found.") from exc


def invite(loan: Loan, member_id: int) -> Guarantor:
    """Attach a guarantor to a pending loan inside the caller's transaction."""

    ensure_pending(loan, "add a guarantor")
    if member_id == loan.member_id:
        raise GuarantorConflict(f"Member {member_id} cannot guarantee their own loan.", member_id=member_id)
    if loan.guarantors.filter(member_id=member_id).exists():
        raise GuarantorConflict(
            f"Member {member_id} is already a guarantor on loan {loan.loan_code}.", member_id=member_id
        )
    ensure_member(member_id, field="guarantor")

    try:
        with transaction.atomic():
            guarantor = Guarantor.objects.create(loan=loan, member_id=member_id)
    except IntegrityError as exc:
        raise GuarantorConflict(
            f"Member {member_id} is already a guarantor on loan {loan.loan_code}.", member_id=member_id
        ) from exc

    events.emit(events.GUARANTOR_INVITED, loan, guarantor_id=guarantor.pk, member_id=member_id)
    logger.info(f"Invited member {member_id} to guarantee loan {loan.loan_code}")
    return guarantor


def add_guarantor(loan_id: int, member_id: int) -> Guarantor:
    with transaction.atomic():
        loan = get_loan(loan_id, lock=True)
        return invite(loan, member_id)


def _respond(guarantor_id: int, target: GuarantorStatus) -> Guarantor:
    # Only the guarantor row is locked; siblings on the same loan are independent.
    # Approve locks the same rows, so the loan status read after the lock is current.
    with transaction.atomic():
        guarantor = get_guarantor(guarantor_id, lock=True)
        guarantor.loan = get_loan(guarantor.loan_id)
        verb = "accept" if target == GuarantorStatus.ACCEPTED else "reject"
        ensure_pending(guarantor.loan, f"{verb} a guarantor")
        ensure_guarantor_transition(guarantor, target)
        guarantor.status = target
        guarantor.responded_at = timezone.now()
        guarantor.save(update_fields=["status", "responded_at"])

    logger.info(f"Guarantor {guarantor.member_id} {target.value} loan {guarantor.loan.loan_code}")
    return guarantor


def accept_guarantor(guarantor_id: int) -> Guarantor:
    return _respond(guarantor_id, GuarantorStatus.ACCEPTED)


def reject_guarantor(guarantor_id: int) -> Guarantor:
    return _respond(guarantor_id, GuarantorStatus.REJECTED)


def remove_guarantor(guarantor_id: int):
    with transaction.atomic():
        guarantor = get_guarantor(guarantor_id, lock=True)
        guarantor.loan = get_loan(guarantor.loan_id)
        ensure_pending(guarantor.loan, "remove a guarantor")
        guarantor.delete()
    logger.info(f"Removed guarantor {guarantor_id} from loan {guarantor.loan.loan_code}")
