"""Cart API views (the caller's own cart only)."""

from __future__ import annotations

from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.cart.repositories.django_repository import CartDjangoRepository
from modules.cart.serializers import (
    AddCartItemSerializer,
    CartSerializer,
    SyncCartSerializer,
    UpdateCartItemSerializer,
)
from modules.cart.services import CartService
from modules.products.repositories.django_repository import ProductDjangoRepository


def _cart_service() -> CartService:
    return CartService(
        cart_repository=CartDjangoRepository(),
        product_repository=ProductDjangoRepository(),
    )


class CartView(APIView):
    """GET / POST / PUT / DELETE /api/v1/cart/"""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = _cart_service()

    def _summary(self, request: Request, status_code: int = status.HTTP_200_OK):
        _, breakdown = self._service.get_cart(request.user.pk)
        return Response(CartSerializer(breakdown).data, status=status_code)

    def get(self, request: Request) -> Response:
        return self._summary(request)

    def post(self, request: Request) -> Response:
        """Add an item: ``{"product_id": "...", "quantity": 2}``."""
        serializer = AddCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self._service.add_item(
            request.user.pk,
            serializer.validated_data["product_id"],
            serializer.validated_data["quantity"],
        )
        return self._summary(request, status.HTTP_201_CREATED)

    def put(self, request: Request) -> Response:
        """Replace the cart; lines that cannot be bought are dropped."""
        serializer = SyncCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self._service.sync_items(
            request.user.pk,
            [
                (line["product_id"], line["quantity"])
                for line in serializer.validated_data["items"]
            ],
        )
        return self._summary(request)

    def delete(self, request: Request) -> Response:
        self._service.clear(request.user.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CartItemView(APIView):
    """PATCH / DELETE /api/v1/cart/items/{product_id}/"""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = _cart_service()

    def patch(self, request: Request, product_id: str) -> Response:
        serializer = UpdateCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self._service.update_item(
            request.user.pk, product_id, serializer.validated_data["quantity"]
        )
        _, breakdown = self._service.get_cart(request.user.pk)
        return Response(CartSerializer(breakdown).data)

    def delete(self, request: Request, product_id: str) -> Response:
        self._service.remove_item(request.user.pk, product_id)
        return Response(status=status.HTTP_204_NO_CONTENT)
