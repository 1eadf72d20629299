from rest_framework import generics, status
from rest_framework.response import Response

from . import catalog, guarantors, ledger, quotas, services
from .serializers import (
    GuarantorCreateSerializer,
    GuarantorSerializer,
    LoanCreateSerializer,
    LoanProductInputSerializer,
    LoanProductSerializer,
    LoanProductUpdateSerializer,
    LoanSerializer,
    PaymentCreateSerializer,
    PaymentSerializer,
    QuotaQuerySerializer,
    RepaymentScheduleEntrySerializer,
)
from .exceptions import ValidationError
from .state import get_loan


def _optional_int(request, name: str):
    value = request.query_params.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError({name: "A valid integer is required."}) from None


class LoanProductListCreateView(generics.ListCreateAPIView):
    serializer_class = LoanProductSerializer

    def get_queryset(self):
        active_only = self.request.query_params.get("active") in ("1", "true")
        return catalog.list_products(_optional_int(self.request, "tenant_id"), active_only=active_only)

    def create(self, request, *args, **kwargs):
        serializer = LoanProductInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = catalog.create_product(serializer.validated_data)
        return Response(LoanProductSerializer(product).data, status=status.HTTP_201_CREATED)


class LoanProductDetailView(generics.GenericAPIView):
    serializer_class = LoanProductSerializer

    def get(self, request, product_id: int, *args, **kwargs):
        return Response(LoanProductSerializer(catalog.get_product(product_id)).data)

    def patch(self, request, product_id: int, *args, **kwargs):
        serializer = LoanProductUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        product = catalog.update_product(product_id, dict(serializer.validated_data))
        return Response(LoanProductSerializer(product).data)

    def delete(self, request, product_id: int, *args, **kwargs):
        catalog.delete_product(product_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class LoanProductToggleView(generics.GenericAPIView):
    serializer_class = LoanProductSerializer

    def patch(self, request, product_id: int, *args, **kwargs):
        product = catalog.toggle_active(product_id)
        return Response(LoanProductSerializer(product).data)


class ProductQuotaView(generics.GenericAPIView):
    serializer_class = QuotaQuerySerializer

    def get(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        return Response(quotas.product_quota_usage(serializer.validated_data["tenant_id"]))


class LoanQuotaView(generics.GenericAPIView):
    serializer_class = QuotaQuerySerializer

    def get(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        return Response(quotas.loan_quota_usage(serializer.validated_data["tenant_id"]))


class LoanListCreateView(generics.ListCreateAPIView):
    serializer_class = LoanSerializer

    def get_queryset(self):
        return services.list_loans(
            tenant_id=_optional_int(self.request, "tenant_id"),
            member_id=_optional_int(self.request, "member_id"),
            status=self.request.query_params.get("status"),
        ).prefetch_related("guarantors", "documents")

    def create(self, request, *args, **kwargs):
        serializer = LoanCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        loan = services.create_loan(
            member_id=data["member_id"],
            product_id=data["loan_product_id"],
            principal=data["principal_amount"],
            term=data["term"],
            savings_account_id=data.get("savings_account_id"),
            notes=data.get("notes", ""),
            guarantors=data.get("guarantors", []),
            documents=data.get("documents", []),
        )
        return Response(LoanSerializer(loan).data, status=status.HTTP_201_CREATED)


class LoanDetailView(generics.GenericAPIView):
    serializer_class = LoanSerializer

    def get(self, request, loan_id: int, *args, **kwargs):
        return Response(LoanSerializer(get_loan(loan_id)).data)


class LoanTransitionView(generics.GenericAPIView):
    """POST-only view running one underwriting transition."""

    serializer_class = LoanSerializer
    transition = None

    def post(self, request, loan_id: int, *args, **kwargs):
        loan = self.transition(loan_id)
        return Response(LoanSerializer(loan).data, status=status.HTTP_200_OK)


class LoanApproveView(LoanTransitionView):
    transition = staticmethod(services.approve_loan)


class LoanDeclineView(LoanTransitionView):
    transition = staticmethod(services.decline_loan)


class LoanDefaultView(LoanTransitionView):
    transition = staticmethod(services.mark_defaulted)


class LoanGuarantorView(generics.GenericAPIView):
    serializer_class = GuarantorCreateSerializer

    def get(self, request, loan_id: int, *args, **kwargs):
        loan = get_loan(loan_id)
        return Response(GuarantorSerializer(loan.guarantors.all(), many=True).data)

    def post(self, request, loan_id: int, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        guarantor = guarantors.add_guarantor(loan_id, serializer.validated_data["member_id"])
        return Response(GuarantorSerializer(guarantor).data, status=status.HTTP_201_CREATED)


class GuarantorDetailView(generics.GenericAPIView):
    serializer_class = GuarantorSerializer

    def delete(self, request, guarantor_id: int, *args, **kwargs):
        guarantors.remove_guarantor(guarantor_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class GuarantorAcceptView(generics.GenericAPIView):
    serializer_class = GuarantorSerializer

    def post(self, request, guarantor_id: int, *args, **kwargs):
        return Response(GuarantorSerializer(guarantors.accept_guarantor(guarantor_id)).data)


class GuarantorRejectView(generics.GenericAPIView):
    serializer_class = GuarantorSerializer

    def post(self, request, guarantor_id: int, *args, **kwargs):
        return Response(GuarantorSerializer(guarantors.reject_guarantor(guarantor_id)).data)


class LoanScheduleView(generics.GenericAPIView):
    serializer_class = RepaymentScheduleEntrySerializer

    def get(self, request, loan_id: int, *args, **kwargs):
        schedule = services.get_schedule(loan_id)
        return Response(
            {"loan_id": loan_id, "schedule": RepaymentScheduleEntrySerializer(schedule, many=True).data}
        )


class LoanPaymentView(generics.GenericAPIView):
    serializer_class = PaymentCreateSerializer

    def get(self, request, loan_id: int, *args, **kwargs):
        return Response(PaymentSerializer(ledger.list_payments(loan_id), many=True).data)

    def post(self, request, loan_id: int, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payment = ledger.apply_payment(
            loan_id,
            data["amount"],
            timestamp=data.get("applied_at"),
            reference=data.get("reference", ""),
            remarks=data.get("remarks", ""),
        )
        loan = get_loan(loan_id)
        return Response(
            {"payment": PaymentSerializer(payment).data, "loan": LoanSerializer(loan).data},
            status=status.HTTP_201_CREATED,
        )


class LoanPaymentDetailView(generics.GenericAPIView):
    serializer_class = LoanSerializer

    def delete(self, request, loan_id: int, payment_id: int, *args, **kwargs):
        loan = ledger.reverse_payment(payment_id, loan_id=loan_id)
        return Response(LoanSerializer(loan).data)
