"""Payment API views.

- ``initiate`` / ``verify``: the paying customer (JWT).
- ``webhook/<provider>``: the provider; authenticated by signature only and
  always answered with ``200 {"received": true}`` once processed, so the
  provider stops retrying.  Bad signatures are logged, not surfaced.
- ``refund``: staff only.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from modules.core.validation import build_dto
from modules.payments.dtos import (
    PaymentIntentDTO,
    ReconcileOutputDTO,
    RefundDTO,
    RefundOutputDTO,
    VerifyPaymentDTO,
)
from modules.payments.serializers import (
    InitiatePaymentSerializer,
    RefundSerializer,
    VerifyPaymentSerializer,
)
from modules.payments.services import PaymentReconciler


class PaymentInitiateView(APIView):
    """POST /api/v1/payments/initiate/"""

    throttle_scope = "payments"

    def post(self, request: Request) -> Response:
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order_id = serializer.validated_data["order_id"]

        intent = PaymentReconciler().initiate(order_id, user=request.user)
        return Response(
            PaymentIntentDTO.from_intent(order_id, intent).model_dump(mode="json"),
            status=status.HTTP_200_OK,
        )


class PaymentVerifyView(APIView):
    """POST /api/v1/payments/verify/"""

    throttle_scope = "payments"

    def post(self, request: Request) -> Response:
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = build_dto(VerifyPaymentDTO, serializer.validated_data)

        result = PaymentReconciler().verify(dto, user=request.user)
        return Response(ReconcileOutputDTO.from_result(result).model_dump(mode="json"))


class PaymentWebhookView(APIView):
    """POST /api/v1/payments/webhook/{provider}/

    Reads the raw body: signatures are computed over the exact bytes the
    provider sent.
    """

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "webhooks"

    def post(self, request: Request, provider: str) -> Response:
        PaymentReconciler().handle_webhook(provider, request.body, request.headers)
        return Response({"received": True}, status=status.HTTP_200_OK)


class PaymentRefundView(APIView):
    """POST /api/v1/payments/refund/ (staff)"""

    permission_classes = [IsAdminUser]

    def post(self, request: Request) -> Response:
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = build_dto(RefundDTO, serializer.validated_data)

        outcome = PaymentReconciler().refund(dto, actor=request.user)
        return Response(RefundOutputDTO.from_outcome(outcome).model_dump(mode="json"))
