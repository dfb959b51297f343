"""Payment URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.payments.views import (
    PaymentInitiateView,
    PaymentRefundView,
    PaymentVerifyView,
    PaymentWebhookView,
)

urlpatterns = [
    path("payments/initiate/", PaymentInitiateView.as_view(), name="payment-initiate"),
    path("payments/verify/", PaymentVerifyView.as_view(), name="payment-verify"),
    path(
        "payments/webhook/<str:provider>/",
        PaymentWebhookView.as_view(),
        name="payment-webhook",
    ),
    path("payments/refund/", PaymentRefundView.as_view(), name="payment-refund"),
]
