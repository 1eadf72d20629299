from decimal import Decimal

from lending import catalog, guarantors, services
from lending.models import TenantPlan

TENANT = 1
BORROWER = 100


def set_plan(tenant_id=TENANT, max_products=-1, max_active_loans=-1, max_outstanding_amount=-1):
    plan, _ = TenantPlan.objects.update_or_create(
        tenant_id=tenant_id,
        defaults={
            "max_products": max_products,
            "max_active_loans": max_active_loans,
            "max_outstanding_amount": max_outstanding_amount,
        },
    )
    return plan


def product_terms(**overrides):
    terms = {
        "tenant_id": TENANT,
        "name": "Staff Loan",
        "prefix": "SL",
        "min_amount": 10_000,
        "max_amount": 500_000,
        "interest_rate": Decimal("10"),
        "interest_type": "flat",
        "max_term": 12,
        "term_period": "months",
    }
    terms.update(overrides)
    return terms


def make_product(**overrides):
    return catalog.create_product(product_terms(**overrides))


def make_loan(product=None, principal=120_000, term=12, member_id=BORROWER, **kwargs):
    product = product or make_product()
    return services.create_loan(member_id, product.pk, principal, term, **kwargs)


def make_disbursed_loan(product=None, principal=120_000, term=12, **kwargs):
    loan = make_loan(product=product, principal=principal, term=term, **kwargs)
    for guarantor in loan.guarantors.all():
        guarantors.accept_guarantor(guarantor.pk)
    return services.approve_loan(loan.pk)
