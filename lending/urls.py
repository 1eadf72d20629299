from django.urls import path

from .views import (
    GuarantorAcceptView,
    GuarantorDetailView,
    GuarantorRejectView,
    LoanApproveView,
    LoanDeclineView,
    LoanDefaultView,
    LoanDetailView,
    LoanGuarantorView,
    LoanListCreateView,
    LoanPaymentDetailView,
    LoanPaymentView,
    LoanProductDetailView,
    LoanProductListCreateView,
    LoanProductToggleView,
    LoanQuotaView,
    LoanScheduleView,
    ProductQuotaView,
)

urlpatterns = [
    path("loan-products/", LoanProductListCreateView.as_view(), name="product-list"),
    path("loan-products/<int:product_id>/", LoanProductDetailView.as_view(), name="product-detail"),
    path("loan-products/<int:product_id>/toggle/", LoanProductToggleView.as_view(), name="product-toggle"),
    path("loan-products-quota/", ProductQuotaView.as_view(), name="product-quota"),
    path("loans-quota/", LoanQuotaView.as_view(), name="loan-quota"),
    path("loans/", LoanListCreateView.as_view(), name="loan-list"),
    path("loans/<int:loan_id>/", LoanDetailView.as_view(), name="loan-detail"),
    path("loans/<int:loan_id>/approve/", LoanApproveView.as_view(), name="loan-approve"),
    path("loans/<int:loan_id>/decline/", LoanDeclineView.as_view(), name="loan-decline"),
    path("loans/<int:loan_id>/default/", LoanDefaultView.as_view(), name="loan-default"),
    path("loans/<int:loan_id>/guarantors/", LoanGuarantorView.as_view(), name="loan-guarantors"),
    path("loans/<int:loan_id>/schedule/", LoanScheduleView.as_view(), name="loan-schedule"),
    path("loans/<int:loan_id>/payments/", LoanPaymentView.as_view(), name="loan-payments"),
    path(
        "loans/<int:loan_id>/payments/<int:payment_id>/",
        LoanPaymentDetailView.as_view(),
        name="loan-payment-detail",
    ),
    path("guarantors/<int:guarantor_id>/", GuarantorDetailView.as_view(), name="guarantor-detail"),
    path("guarantors/<int:guarantor_id>/accept/", GuarantorAcceptView.as_view(), name="guarantor-accept"),
    path("guarantors/<int:guarantor_id>/reject/", GuarantorRejectView.as_view(), name="guarantor-reject"),
]
