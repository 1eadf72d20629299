import logging
import re
from decimal import Decimal

from django.db import IntegrityError, transaction

from . import quotas
from .amortization import as_decimal
from .exceptions import NotFound, ValidationError
from .models import ACTIVE_LOAN_STATUSES, FeeType, InterestType, Loan, LoanProduct, TermPeriod

logger = logging.getLogger(__name__)

PREFIX_PATTERN = re.compile(r"^[A-Z0-9]{2,8}$")
MIN_PRODUCT_AMOUNT = 100
MAX_RATE = Decimal("99.999")

# Fields an administrator may change after creation.
EDITABLE_FIELDS = (
    "name",
    "description",
    "prefix",
    "starting_id",
    "min_amount",
    "max_amount",
    "interest_rate",
    "interest_type",
    "max_term",
    "term_period",
    "late_penalty_rate",
    "application_fee",
    "application_fee_type",
    "processing_fee",
    "processing_fee_type",
    "guarantor_required",
    "is_active",
)


def _validate_fee(errors: dict, terms: dict, name: str):
    fee = as_decimal(terms.get(name, 0) or 0)
    fee_type = terms.get(f"{name}_type", FeeType.FIXED)
    if fee_type not in FeeType.values:
        errors[f"{name}_type"] = f"Fee type must be one of {', '.join(FeeType.values)}."
        return
    if fee < 0:
        errors[name] = "Fee cannot be negative."
    elif fee_type == FeeType.FIXED and fee != fee.to_integral_value():
        errors[name] = "Fixed fees are whole minor currency units."
    elif fee_type == FeeType.PERCENTAGE and fee > 100:
        errors[name] = "Percentage fees cannot exceed 100."


def validate_product_terms(terms: dict):
    errors = {}

    prefix = terms.get("prefix") or ""
    if not PREFIX_PATTERN.match(prefix):
        errors["prefix"] = "Prefix must be 2-8 uppercase letters or digits."

    min_amount = terms.get("min_amount")
    max_amount = terms.get("max_amount")
    if min_amount is None or min_amount < MIN_PRODUCT_AMOUNT:
        errors["min_amount"] = f"Minimum amount must be at least {MIN_PRODUCT_AMOUNT}."
    if max_amount is None or max_amount < MIN_PRODUCT_AMOUNT:
        errors["max_amount"] = f"Maximum amount must be at least {MIN_PRODUCT_AMOUNT}."
    elif min_amount is not None and max_amount < min_amount:
        errors["max_amount"] = "Max amount must be greater than or equal to min amount."

    rate = terms.get("interest_rate")
    if rate is None or not (0 <= as_decimal(rate) <= MAX_RATE):
        errors["interest_rate"] = f"Interest rate must be between 0 and {MAX_RATE}."
    penalty = terms.get("late_penalty_rate")
    if penalty is not None and not (0 <= as_decimal(penalty) <= MAX_RATE):
        errors["late_penalty_rate"] = f"Late penalty rate must be between 0 and {MAX_RATE}."

    if terms.get("interest_type") not in InterestType.values:
        errors["interest_type"] = f"Interest type must be one of {', '.join(InterestType.values)}."
    if terms.get("term_period") not in TermPeriod.values:
        errors["term_period"] = f"Term period must be one of {', '.join(TermPeriod.values)}."
    if not terms.get("max_term") or terms["max_term"] < 1:
        errors["max_term"] = "Maximum term must be at least 1."
    if terms.get("starting_id", 1) < 1:
        errors["starting_id"] = "Starting id must be at least 1."

    _validate_fee(errors, terms, "application_fee")
    _validate_fee(errors, terms, "processing_fee")

    if errors:
        raise ValidationError(errors)


def _ensure_prefix_available(tenant_id: int, prefix: str, exclude_pk=None):
    clash = LoanProduct.objects.filter(tenant_id=tenant_id, prefix=prefix)
    if exclude_pk is not None:
        clash = clash.exclude(pk=exclude_pk)
    if clash.exists():
        raise ValidationError({"prefix": f"Prefix {prefix} is already used by another product."})


def get_product(product_id: int, lock: bool = False) -> LoanProduct:
    queryset = LoanProduct.objects.all()
    if lock:
        queryset = queryset.select_for_update()
    try:
        return queryset.get(pk=product_id)
    except LoanProduct.DoesNotExist as exc:
        raise NotFound(f"Loan product {product_id} not found.") from exc


def list_products(tenant_id=None, active_only: bool = False):
    queryset = LoanProduct.objects.all()
    if tenant_id is not None:
        queryset = queryset.filter(tenant_id=tenant_id)
    if active_only:
        queryset = queryset.filter(is_active=True)
    return queryset


def create_product(data: dict) -> LoanProduct:
    terms = dict(data)
    terms.setdefault("interest_type", InterestType.FLAT)
    terms.setdefault("term_period", TermPeriod.MONTHS)
    terms.setdefault("starting_id", 1)
    validate_product_terms(terms)

    tenant_id = terms["tenant_id"]
    with transaction.atomic():
        if terms.get("is_active", True):
            quotas.check_product_quota(tenant_id)
        else:
            quotas.lock_plan(tenant_id)
        _ensure_prefix_available(tenant_id, terms["prefix"])
        terms["next_sequence"] = terms["starting_id"]
        try:
            with transaction.atomic():
                product = LoanProduct.objects.create(**terms)
        except IntegrityError as exc:
            raise ValidationError({"prefix": f"Prefix {terms['prefix']} is already used by another product."}) from exc

    logger.info(f"Created loan product {product.pk} ({product.prefix}) for tenant {tenant_id}")
    return product


def update_product(product_id: int, changes: dict) -> LoanProduct:
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError({field: "This field cannot be changed." for field in sorted(unknown)})

    with transaction.atomic():
        product = get_product(product_id, lock=True)
        terms = {field: getattr(product, field) for field in EDITABLE_FIELDS}
        terms.update(changes)
        validate_product_terms(terms)

        if terms["prefix"] != product.prefix:
            _ensure_prefix_available(product.tenant_id, terms["prefix"], exclude_pk=product.pk)
        if terms["is_active"] and not product.is_active:
            quotas.check_product_quota(product.tenant_id)
        if terms["starting_id"] > product.next_sequence:
            product.next_sequence = terms["starting_id"]

        for field, value in changes.items():
            setattr(product, field, value)
        product.save()

    logger.info(f"Updated loan product {product.pk}: {', '.join(sorted(changes)) or 'no changes'}")
    return product


def toggle_active(product_id: int) -> LoanProduct:
    with transaction.atomic():
        product = get_product(product_id, lock=True)
        if not product.is_active:
            quotas.check_product_quota(product.tenant_id)
        product.is_active = not product.is_active
        product.save(update_fields=["is_active", "updated_at"])

    logger.info(f"Loan product {product.pk} is now {'active' if product.is_active else 'inactive'}")
    return product


def delete_product(product_id: int):
    with transaction.atomic():
        product = get_product(product_id, lock=True)
        in_use = product.loans.filter(status__in=ACTIVE_LOAN_STATUSES).count()
        if in_use:
            logger.warning(f"Refused to delete loan product {product.pk}: {in_use} active loans")
            raise ValidationError(
                {"product": f"Product has {in_use} pending or disbursed loans and cannot be deleted."}
            )
        product.delete()
    logger.info(f"Deleted loan product {product_id}")


def allocate_loan_code(product: LoanProduct, digits: int) -> str:
    """Return the next loan code for a product locked by the caller."""

    taken = set(
        Loan.objects.filter(tenant_id=product.tenant_id, loan_code__startswith=product.prefix).values_list(
            "loan_code", flat=True
        )
    )
    code = f"{product.prefix}{product.next_sequence:0{digits}d}"
    product.next_sequence += 1
    while code in taken:
        code = f"{product.prefix}{product.next_sequence:0{digits}d}"
        product.next_sequence += 1
    product.save(update_fields=["next_sequence"])
    return code
