import logging

from django.db import transaction
from django.dispatch import Signal

from .models import LoanEvent

logger = logging.getLogger(__name__)

LOAN_APPROVED = "LoanApproved"
LOAN_DISBURSED = "LoanDisbursed"
LOAN_DECLINED = "LoanDeclined"
LOAN_REPAID = "LoanRepaid"
LOAN_DEFAULTED = "LoanDefaulted"
PAYMENT_APPLIED = "PaymentApplied"
PAYMENT_REVERSED = "PaymentReversed"
GUARANTOR_INVITED = "GuarantorInvited"

# Receivers get ``event`` (a LoanEvent) once the emitting transaction commits.
loan_event = Signal()


def emit(event_type: str, loan, **payload) -> LoanEvent:
    """Record an event in the outbox and broadcast it after commit."""

    event = LoanEvent.objects.create(event_type=event_type, loan=loan, payload=payload)
    transaction.on_commit(lambda: _dispatch(event))
    return event


def _dispatch(event: LoanEvent):
    logger.info(f"Dispatching {event.event_type} for loan {event.loan_id}")
    loan_event.send(sender=LoanEvent, event=event)
