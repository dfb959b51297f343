"""Cart URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.cart.views import CartItemView, CartView

urlpatterns = [
    path("cart/", CartView.as_view(), name="cart"),
    path(
        "cart/items/<uuid:product_id>/",
        CartItemView.as_view(),
        name="cart-item",
    ),
]
