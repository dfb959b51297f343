"""Product API views.

Exposes the catalogue read side and administrative stock control.
Domain exceptions propagate to the shared exception handler, which
renders them with their ``code`` and HTTP status.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import serializers, status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.permissions import AllowAny, IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.products.dtos import StockAdjustmentDTO, StockMovementDTO
from modules.products.filters import ProductFilter
from modules.products.models import Product
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.serializers import (
    InventoryLogSerializer,
    ProductSerializer,
    StockAdjustmentSerializer,
)
from modules.products.services import ProductService


class ProductViewSet(ListModelMixin, GenericViewSet):
    """Catalogue read endpoints plus staff-only stock operations.

    Uses ``ProductService`` with ``ProductDjangoRepository`` (DIP).
    Does **not** extend ``ModelViewSet``: product CRUD lives in the
    catalogue service, this API only exposes what checkout needs.
    """

    filterset_class = ProductFilter
    search_fields = ["name", "sku", "description"]
    ordering_fields = ["name", "price", "stock_quantity"]
    ordering = ["name", "id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    queryset = Product.objects.none()
    serializer_class = ProductSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = ProductService(repository=ProductDjangoRepository())

    def get_permissions(self):
        if self.action in {"list", "retrieve"}:
            return [AllowAny()]
        return [IsAdminUser()]

    def get_queryset(self):
        return self._service.list_products()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/"""
        product = self._service.get_product(pk)
        return Response(ProductSerializer(product).data)

    @action(detail=False, methods=["get"], url_path="low-stock")
    def low_stock(self, request: Request) -> Response:
        """GET /api/v1/products/low-stock/ (staff)"""
        products = self._service.low_stock()
        return Response(ProductSerializer(products, many=True).data)

    @action(detail=True, methods=["get"], url_path="inventory")
    def inventory(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/inventory/ (staff)"""
        logs = self._service.inventory_history(pk)
        page = self.paginate_queryset(logs)
        serializer = InventoryLogSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    # ------------------------------------------------------------------
    # Stock control
    # ------------------------------------------------------------------

    @action(detail=True, methods=["patch"], url_path="stock")
    def update_stock(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/products/{pk}/stock/ (staff)

        Body: ``{"action": "STOCK_IN"|"STOCK_OUT"|"ADJUSTMENT",
        "quantity": N, "notes": "..."}``.
        """
        input_serializer = StockAdjustmentSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        try:
            dto = StockAdjustmentDTO(**input_serializer.validated_data)
        except PydanticValidationError as exc:
            raise serializers.ValidationError(
                {"quantity": [error["msg"] for error in exc.errors()]}
            ) from exc

        movement = self._service.adjust_stock(pk, dto, actor=request.user)
        return Response(
            StockMovementDTO.from_movement(movement).model_dump(mode="json"),
            status=status.HTTP_200_OK,
        )
