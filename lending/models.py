from decimal import Decimal

from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models

# Money columns hold integer minor currency units (e.g. kobo).


class InterestType(models.TextChoices):
    FLAT = "flat", "Flat"
    REDUCING_BALANCE = "reducing_balance", "Reducing balance"


class TermPeriod(models.TextChoices):
    DAYS = "days", "Days"
    WEEKS = "weeks", "Weeks"
    MONTHS = "months", "Months"
    YEARS = "years", "Years"


class FeeType(models.TextChoices):
    FIXED = "fixed", "Fixed"
    PERCENTAGE = "percentage", "Percentage"


class LoanStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    DECLINED = "declined", "Declined"
    DISBURSED = "disbursed", "Disbursed"
    REPAID = "repaid", "Repaid"
    DEFAULTED = "defaulted", "Defaulted"


class GuarantorStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    REJECTED = "rejected", "Rejected"


class InstallmentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PARTIAL = "partial", "Partial"
    PAID = "paid", "Paid"
    OVERDUE = "overdue", "Overdue"


# Every transition not listed here is rejected.
LOAN_TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.DECLINED, LoanStatus.DISBURSED},
    LoanStatus.DISBURSED: {LoanStatus.REPAID, LoanStatus.DEFAULTED},
    LoanStatus.DECLINED: set(),
    LoanStatus.REPAID: set(),
    LoanStatus.DEFAULTED: set(),
}

GUARANTOR_TRANSITIONS = {
    GuarantorStatus.PENDING: {GuarantorStatus.ACCEPTED, GuarantorStatus.REJECTED},
    GuarantorStatus.ACCEPTED: set(),
    GuarantorStatus.REJECTED: set(),
}

ACTIVE_LOAN_STATUSES = (LoanStatus.PENDING, LoanStatus.DISBURSED)

prefix_validator = RegexValidator(
    r"^[A-Z0-9]{2,8}$", "Prefix must be 2-8 uppercase letters or digits."
)
rate_validators = [MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("99.999"))]


class TenantPlan(models.Model):
    """Local mirror of the subscription plan limits for one tenant."""

    tenant_id = models.PositiveIntegerField(unique=True)
    max_products = models.IntegerField(default=-1)
    max_active_loans = models.IntegerField(default=-1)
    max_outstanding_amount = models.BigIntegerField(default=-1)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Plan for tenant {self.tenant_id}"


class LoanProduct(models.Model):
    tenant_id = models.PositiveIntegerField(db_index=True)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    prefix = models.CharField(max_length=8, validators=[prefix_validator])
    starting_id = models.PositiveIntegerField(default=1)
    next_sequence = models.PositiveIntegerField(default=1)
    min_amount = models.BigIntegerField()
    max_amount = models.BigIntegerField()
    interest_rate = models.DecimalField(max_digits=5, decimal_places=3, validators=rate_validators)
    interest_type = models.CharField(max_length=20, choices=InterestType.choices, default=InterestType.FLAT)
    max_term = models.PositiveIntegerField()
    term_period = models.CharField(max_length=10, choices=TermPeriod.choices, default=TermPeriod.MONTHS)
    late_penalty_rate = models.DecimalField(
        max_digits=5, decimal_places=3, null=True, blank=True, validators=rate_validators
    )
    application_fee = models.DecimalField(max_digits=15, decimal_places=3, default=Decimal("0"))
    application_fee_type = models.CharField(max_length=10, choices=FeeType.choices, default=FeeType.FIXED)
    processing_fee = models.DecimalField(max_digits=15, decimal_places=3, default=Decimal("0"))
    processing_fee_type = models.CharField(max_length=10, choices=FeeType.choices, default=FeeType.FIXED)
    guarantor_required = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "prefix"], name="unique_product_prefix_per_tenant"),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.prefix})"


class Loan(models.Model):
    tenant_id = models.PositiveIntegerField(db_index=True)
    loan_code = models.CharField(max_length=32)
    member_id = models.PositiveIntegerField(db_index=True)
    product = models.ForeignKey(
        LoanProduct, related_name="loans", null=True, blank=True, on_delete=models.SET_NULL
    )
    savings_account_id = models.PositiveIntegerField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    # Product terms copied at creation; later product edits must not touch them.
    product_name = models.CharField(max_length=120)
    interest_rate = models.DecimalField(max_digits=5, decimal_places=3)
    interest_type = models.CharField(max_length=20, choices=InterestType.choices)
    late_penalty_rate = models.DecimalField(max_digits=5, decimal_places=3, null=True, blank=True)
    guarantor_required = models.BooleanField(default=False)

    principal_amount = models.BigIntegerField()
    term = models.PositiveIntegerField()
    term_period = models.CharField(max_length=10, choices=TermPeriod.choices)
    application_fee_amount = models.BigIntegerField(default=0)
    processing_fee_amount = models.BigIntegerField(default=0)
    interest_amount = models.BigIntegerField(default=0)
    total_payable = models.BigIntegerField(default=0)
    amount_paid = models.BigIntegerField(default=0)
    penalty_paid = models.BigIntegerField(default=0)
    outstanding_balance = models.BigIntegerField(default=0)

    status = models.CharField(max_length=10, choices=LoanStatus.choices, default=LoanStatus.PENDING)
    version = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    disbursed_at = models.DateTimeField(null=True, blank=True)
    declined_at = models.DateTimeField(null=True, blank=True)
    repaid_at = models.DateTimeField(null=True, blank=True)
    defaulted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(fields=["tenant_id", "loan_code"], name="unique_loan_code_per_tenant"),
        ]

    def __str__(self) -> str:
        return f"Loan {self.loan_code}"

    @property
    def total_fees(self) -> int:
        return self.application_fee_amount + self.processing_fee_amount

    def can_transition_to(self, target: str) -> bool:
        return target in LOAN_TRANSITIONS[LoanStatus(self.status)]


class Guarantor(models.Model):
    loan = models.ForeignKey(Loan, related_name="guarantors", on_delete=models.CASCADE)
    member_id = models.PositiveIntegerField()
    status = models.CharField(max_length=10, choices=GuarantorStatus.choices, default=GuarantorStatus.PENDING)
    invited_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        unique_together = ("loan", "member_id")

    def __str__(self) -> str:
        return f"Guarantor {self.member_id} for Loan {self.loan_id}"


class LoanDocument(models.Model):
    loan = models.ForeignKey(Loan, related_name="documents", on_delete=models.CASCADE)
    reference = models.CharField(max_length=255)
    label = models.CharField(max_length=120, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]


class RepaymentScheduleEntry(models.Model):
    loan = models.ForeignKey(Loan, related_name="schedule", on_delete=models.CASCADE)
    installment_no = models.PositiveIntegerField()
    due_date = models.DateField()
    principal_due = models.BigIntegerField()
    interest_due = models.BigIntegerField()
    penalty_due = models.BigIntegerField(default=0)
    principal_paid = models.BigIntegerField(default=0)
    interest_paid = models.BigIntegerField(default=0)
    penalty_paid = models.BigIntegerField(default=0)
    amount_paid = models.BigIntegerField(default=0)
    status = models.CharField(max_length=10, choices=InstallmentStatus.choices, default=InstallmentStatus.PENDING)

    class Meta:
        ordering = ["installment_no"]
        unique_together = ("loan", "installment_no")

    def __str__(self) -> str:
        return f"Installment {self.installment_no} for Loan {self.loan_id}"

    @property
    def total_due(self) -> int:
        return self.principal_due + self.interest_due

    @property
    def balance_due(self) -> int:
        return self.total_due - self.amount_paid

    @property
    def penalty_outstanding(self) -> int:
        return max(0, self.penalty_due - self.penalty_paid)

    @property
    def is_settled(self) -> bool:
        return self.balance_due == 0 and self.penalty_outstanding == 0


class Payment(models.Model):
    loan = models.ForeignKey(Loan, related_name="payments", on_delete=models.CASCADE)
    amount = models.BigIntegerField(validators=[MinValueValidator(1)])
    applied_at = models.DateTimeField()
    penalty_amount = models.BigIntegerField(default=0)
    interest_amount = models.BigIntegerField(default=0)
    principal_amount = models.BigIntegerField(default=0)
    reference = models.CharField(max_length=100, blank=True, default="")
    remarks = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["applied_at", "id"]

    def __str__(self) -> str:
        return f"Payment {self.pk} of {self.amount} for Loan {self.loan_id}"


class PaymentAllocation(models.Model):
    payment = models.ForeignKey(Payment, related_name="allocations", on_delete=models.CASCADE)
    entry = models.ForeignKey(RepaymentScheduleEntry, related_name="allocations", on_delete=models.CASCADE)
    penalty_amount = models.BigIntegerField(default=0)
    interest_amount = models.BigIntegerField(default=0)
    principal_amount = models.BigIntegerField(default=0)

    class Meta:
        ordering = ["id"]


class LoanEvent(models.Model):
    event_type = models.CharField(max_length=40)
    loan = models.ForeignKey(Loan, related_name="events", on_delete=models.CASCADE)
    payload = models.JSONField(default=dict)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.event_type} for Loan {self.loan_id}"
