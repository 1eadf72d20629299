from rest_framework import serializers

from .models import (
    FeeType,
    Guarantor,
    InterestType,
    Loan,
    LoanDocument,
    LoanProduct,
    Payment,
    PaymentAllocation,
    RepaymentScheduleEntry,
    TermPeriod,
)

MONEY_MAX = 10**15


class LoanProductSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoanProduct
        fields = [
            "id",
            "tenant_id",
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
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class LoanProductInputSerializer(serializers.Serializer):
    """Field-level parsing; cross-field rules live in ``catalog.validate_product_terms``."""

    tenant_id = serializers.IntegerField(min_value=1)
    name = serializers.CharField(min_length=3, max_length=120)
    description = serializers.CharField(required=False, allow_blank=True)
    prefix = serializers.CharField(max_length=8)
    starting_id = serializers.IntegerField(min_value=1, required=False)
    min_amount = serializers.IntegerField(min_value=0, max_value=MONEY_MAX)
    max_amount = serializers.IntegerField(min_value=0, max_value=MONEY_MAX)
    interest_rate = serializers.DecimalField(max_digits=5, decimal_places=3)
    interest_type = serializers.ChoiceField(choices=InterestType.choices, required=False)
    max_term = serializers.IntegerField(min_value=1)
    term_period = serializers.ChoiceField(choices=TermPeriod.choices, required=False)
    late_penalty_rate = serializers.DecimalField(max_digits=5, decimal_places=3, required=False, allow_null=True)
    application_fee = serializers.DecimalField(max_digits=15, decimal_places=3, required=False)
    application_fee_type = serializers.ChoiceField(choices=FeeType.choices, required=False)
    processing_fee = serializers.DecimalField(max_digits=15, decimal_places=3, required=False)
    processing_fee_type = serializers.ChoiceField(choices=FeeType.choices, required=False)
    guarantor_required = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)

    def validate_prefix(self, value: str) -> str:
        return value.strip().upper()


class LoanProductUpdateSerializer(LoanProductInputSerializer):
    tenant_id = None

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("partial", True)
        super().__init__(*args, **kwargs)


class GuarantorSerializer(serializers.ModelSerializer):
    class Meta:
        model = Guarantor
        fields = ["id", "loan", "member_id", "status", "invited_at", "responded_at"]
        read_only_fields = fields


class GuarantorCreateSerializer(serializers.Serializer):
    member_id = serializers.IntegerField(min_value=1)


class LoanDocumentSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoanDocument
        fields = ["id", "reference", "label", "created_at"]
        read_only_fields = ["id", "created_at"]


class LoanSerializer(serializers.ModelSerializer):
    guarantors = GuarantorSerializer(many=True, read_only=True)
    documents = LoanDocumentSerializer(many=True, read_only=True)
    total_fees = serializers.IntegerField(read_only=True)

    class Meta:
        model = Loan
        fields = [
            "id",
            "tenant_id",
            "loan_code",
            "member_id",
            "product",
            "product_name",
            "savings_account_id",
            "notes",
            "interest_rate",
            "interest_type",
            "late_penalty_rate",
            "guarantor_required",
            "principal_amount",
            "term",
            "term_period",
            "application_fee_amount",
            "processing_fee_amount",
            "total_fees",
            "interest_amount",
            "total_payable",
            "amount_paid",
            "penalty_paid",
            "outstanding_balance",
            "status",
            "version",
            "created_at",
            "approved_at",
            "disbursed_at",
            "declined_at",
            "repaid_at",
            "defaulted_at",
            "guarantors",
            "documents",
        ]
        read_only_fields = fields


class LoanCreateSerializer(serializers.Serializer):
    member_id = serializers.IntegerField(min_value=1)
    loan_product_id = serializers.IntegerField(min_value=1)
    principal_amount = serializers.IntegerField(min_value=1, max_value=MONEY_MAX)
    term = serializers.IntegerField(min_value=1)
    savings_account_id = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    guarantors = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)
    documents = LoanDocumentSerializer(many=True, required=False)

    def validate_guarantors(self, value):
        if len(set(value)) != len(value):
            raise serializers.ValidationError("Each guarantor may only be listed once.")
        return value


class RepaymentScheduleEntrySerializer(serializers.ModelSerializer):
    total_due = serializers.IntegerField(read_only=True)
    balance_due = serializers.IntegerField(read_only=True)

    class Meta:
        model = RepaymentScheduleEntry
        fields = [
            "id",
            "installment_no",
            "due_date",
            "principal_due",
            "interest_due",
            "total_due",
            "penalty_due",
            "principal_paid",
            "interest_paid",
            "penalty_paid",
            "amount_paid",
            "balance_due",
            "status",
        ]
        read_only_fields = fields


class PaymentAllocationSerializer(serializers.ModelSerializer):
    installment_no = serializers.IntegerField(source="entry.installment_no", read_only=True)

    class Meta:
        model = PaymentAllocation
        fields = ["installment_no", "penalty_amount", "interest_amount", "principal_amount"]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    allocations = PaymentAllocationSerializer(many=True, read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "loan",
            "amount",
            "applied_at",
            "penalty_amount",
            "interest_amount",
            "principal_amount",
            "reference",
            "remarks",
            "allocations",
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    amount = serializers.IntegerField(min_value=1, max_value=MONEY_MAX)
    applied_at = serializers.DateTimeField(required=False)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=100)
    remarks = serializers.CharField(required=False, allow_blank=True)


class QuotaQuerySerializer(serializers.Serializer):
    tenant_id = serializers.IntegerField(min_value=1)
