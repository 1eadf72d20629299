import logging

from django.conf import settings
from django.db.models import Sum

from .exceptions import QuotaExceeded
from .models import ACTIVE_LOAN_STATUSES, Loan, LoanProduct, LoanStatus, TenantPlan

logger = logging.getLogger(__name__)

UNLIMITED = -1


def lock_plan(tenant_id: int) -> TenantPlan:
    """Fetch the tenant's plan row under a row lock.

    Must run inside ``transaction.atomic``; the lock serializes quota-gated
    creates for one tenant until the surrounding transaction ends.
    """

    plan, _ = TenantPlan.objects.select_for_update().get_or_create(
        tenant_id=tenant_id, defaults=dict(settings.LENDING["DEFAULT_PLAN"])
    )
    return plan


def get_plan(tenant_id: int) -> TenantPlan:
    plan, _ = TenantPlan.objects.get_or_create(
        tenant_id=tenant_id, defaults=dict(settings.LENDING["DEFAULT_PLAN"])
    )
    return plan


def active_product_count(tenant_id: int) -> int:
    return LoanProduct.objects.filter(tenant_id=tenant_id, is_active=True).count()


def active_loan_count(tenant_id: int) -> int:
    return Loan.objects.filter(tenant_id=tenant_id, status__in=ACTIVE_LOAN_STATUSES).count()


def outstanding_exposure(tenant_id: int) -> int:
    """Outstanding balance of disbursed loans plus principal awaiting approval."""

    loans = Loan.objects.filter(tenant_id=tenant_id)
    disbursed = loans.filter(status=LoanStatus.DISBURSED).aggregate(total=Sum("outstanding_balance"))["total"]
    pending = loans.filter(status=LoanStatus.PENDING).aggregate(total=Sum("principal_amount"))["total"]
    return (disbursed or 0) + (pending or 0)


def check_product_quota(tenant_id: int) -> TenantPlan:
    plan = lock_plan(tenant_id)
    used = active_product_count(tenant_id)
    if plan.max_products != UNLIMITED and used >= plan.max_products:
        logger.warning(f"Tenant {tenant_id} hit product quota ({used}/{plan.max_products})")
        raise QuotaExceeded("products", used, plan.max_products)
    return plan


def check_loan_quota(tenant_id: int, principal: int = 0) -> TenantPlan:
    plan = lock_plan(tenant_id)

    used = active_loan_count(tenant_id)
    if plan.max_active_loans != UNLIMITED and used >= plan.max_active_loans:
        logger.warning(f"Tenant {tenant_id} hit active loan quota ({used}/{plan.max_active_loans})")
        raise QuotaExceeded("active_loans", used, plan.max_active_loans)

    exposure = outstanding_exposure(tenant_id)
    if plan.max_outstanding_amount != UNLIMITED and exposure + principal > plan.max_outstanding_amount:
        logger.warning(
            f"Tenant {tenant_id} hit outstanding quota ({exposure}+{principal}/{plan.max_outstanding_amount})"
        )
        raise QuotaExceeded("outstanding_amount", exposure, plan.max_outstanding_amount)
    return plan


def product_quota_usage(tenant_id: int) -> dict:
    plan = get_plan(tenant_id)
    used = active_product_count(tenant_id)
    if plan.max_products == UNLIMITED:
        remaining = None
    else:
        remaining = max(plan.max_products - used, 0)
    return {
        "tenant_id": tenant_id,
        "used": used,
        "limit": plan.max_products,
        "remaining": remaining,
        "can_create_more": remaining is None or remaining > 0,
    }


def loan_quota_usage(tenant_id: int) -> dict:
    plan = get_plan(tenant_id)
    return {
        "tenant_id": tenant_id,
        "active_loans": active_loan_count(tenant_id),
        "max_active_loans": plan.max_active_loans,
        "outstanding_exposure": outstanding_exposure(tenant_id),
        "max_outstanding_amount": plan.max_outstanding_amount,
    }
