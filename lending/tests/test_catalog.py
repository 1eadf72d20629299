from decimal import Decimal

from django.test import TestCase

from lending import catalog, quotas, services
from lending.exceptions import NotFound, QuotaExceeded, ValidationError
from lending.models import Loan, LoanProduct, LoanStatus

from .helpers import TENANT, make_loan, make_product, product_terms, set_plan


class CreateProductTest(TestCase):
    def test_create_product(self):
        product = make_product(starting_id=500, application_fee=Decimal("2"), application_fee_type="percentage")

        self.assertEqual(product.prefix, "SL")
        self.assertEqual(product.next_sequence, 500)
        self.assertTrue(product.is_active)
        self.assertEqual(LoanProduct.objects.count(), 1)

    def test_max_amount_below_min_amount_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            make_product(min_amount=50_000, max_amount=20_000)
        self.assertIn("max_amount", ctx.exception.detail)
        self.assertFalse(LoanProduct.objects.exists())

    def test_prefix_format(self):
        for prefix in ("S", "sl", "TOOLONGPFX", "S-L"):
            with self.assertRaises(ValidationError):
                make_product(prefix=prefix)
        self.assertFalse(LoanProduct.objects.exists())

    def test_prefix_unique_per_tenant(self):
        make_product()
        with self.assertRaises(ValidationError):
            make_product(name="Another")
        other = make_product(tenant_id=TENANT + 1)
        self.assertEqual(other.prefix, "SL")

    def test_fee_rules(self):
        with self.assertRaises(ValidationError):
            make_product(application_fee=Decimal("10.5"), application_fee_type="fixed")
        with self.assertRaises(ValidationError):
            make_product(processing_fee=Decimal("120"), processing_fee_type="percentage")
        with self.assertRaises(ValidationError):
            make_product(processing_fee=Decimal("1"), processing_fee_type="flatrate")

    def test_rate_bounds(self):
        with self.assertRaises(ValidationError):
            make_product(interest_rate=Decimal("100"))
        with self.assertRaises(ValidationError):
            make_product(late_penalty_rate=Decimal("-1"))

    def test_product_quota(self):
        set_plan(max_products=1)
        make_product()
        with self.assertRaises(QuotaExceeded) as ctx:
            make_product(prefix="EL")
        self.assertEqual(ctx.exception.used, 1)
        self.assertEqual(ctx.exception.limit, 1)
        self.assertEqual(LoanProduct.objects.count(), 1)

    def test_inactive_products_do_not_count_against_quota(self):
        set_plan(max_products=1)
        make_product(is_active=False)
        make_product(prefix="EL")
        self.assertEqual(LoanProduct.objects.count(), 2)

    def test_unlimited_plan(self):
        set_plan(max_products=-1)
        for idx in range(5):
            make_product(prefix=f"P{idx}X")
        self.assertEqual(quotas.product_quota_usage(TENANT)["used"], 5)


class UpdateProductTest(TestCase):
    def setUp(self):
        self.product = make_product()

    def test_update_changes_terms(self):
        product = catalog.update_product(self.product.pk, {"interest_rate": Decimal("15"), "max_term": 24})
        self.assertEqual(product.interest_rate, Decimal("15"))
        self.assertEqual(product.max_term, 24)

    def test_update_validates_merged_terms(self):
        with self.assertRaises(ValidationError):
            catalog.update_product(self.product.pk, {"min_amount": 600_000})
        self.product.refresh_from_db()
        self.assertEqual(self.product.min_amount, 10_000)

    def test_tenant_cannot_change(self):
        with self.assertRaises(ValidationError):
            catalog.update_product(self.product.pk, {"tenant_id": 9})

    def test_existing_loans_keep_their_terms(self):
        loan = make_loan(product=self.product)
        catalog.update_product(self.product.pk, {"interest_rate": Decimal("30"), "interest_type": "reducing_balance"})

        loan = services.approve_loan(loan.pk)
        self.assertEqual(loan.interest_rate, Decimal("10"))
        self.assertEqual(loan.interest_amount, 12_000)

    def test_missing_product(self):
        with self.assertRaises(NotFound):
            catalog.update_product(9999, {"name": "Nope"})


class ToggleAndDeleteProductTest(TestCase):
    def test_toggle(self):
        product = make_product()
        self.assertFalse(catalog.toggle_active(product.pk).is_active)
        self.assertTrue(catalog.toggle_active(product.pk).is_active)

    def test_reactivation_respects_quota(self):
        set_plan(max_products=1)
        first = make_product()
        catalog.toggle_active(first.pk)
        make_product(prefix="EL")
        with self.assertRaises(QuotaExceeded):
            catalog.toggle_active(first.pk)
        first.refresh_from_db()
        self.assertFalse(first.is_active)

    def test_toggle_does_not_touch_existing_loans(self):
        product = make_product()
        loan = make_loan(product=product)
        catalog.toggle_active(product.pk)
        loan.refresh_from_db()
        self.assertEqual(loan.status, LoanStatus.PENDING)

    def test_delete_blocked_by_active_loans(self):
        product = make_product()
        make_loan(product=product)
        with self.assertRaises(ValidationError):
            catalog.delete_product(product.pk)
        self.assertTrue(LoanProduct.objects.filter(pk=product.pk).exists())

    def test_delete_keeps_closed_loan_snapshot(self):
        product = make_product()
        loan = make_loan(product=product)
        services.decline_loan(loan.pk)

        catalog.delete_product(product.pk)

        loan = Loan.objects.get(pk=loan.pk)
        self.assertIsNone(loan.product_id)
        self.assertEqual(loan.product_name, "Staff Loan")

    def test_product_quota_usage(self):
        set_plan(max_products=3)
        make_product()
        usage = quotas.product_quota_usage(TENANT)
        self.assertEqual(usage, {"tenant_id": TENANT, "used": 1, "limit": 3, "remaining": 2, "can_create_more": True})


class ProductTermsValidationTest(TestCase):
    def test_valid_terms_pass(self):
        catalog.validate_product_terms(product_terms())
