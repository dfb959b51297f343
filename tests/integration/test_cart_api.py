"""Integration tests for the Cart API.

Covers:
- GET /api/v1/cart/ price summary (discounts, delivery fee, savings).
- POST adds or merges lines; advisory stock check.
- PATCH /cart/items/{product_id}/ sets quantity, 0 removes.
- PUT replaces the cart with client-held lines, dropping unbuyable ones.
- DELETE clears the cart.
"""

from __future__ import annotations

import pytest

pytestmark = pytest.mark.integration

CART_URL = "/api/v1/cart/"


def _item_url(product) -> str:
    return f"{CART_URL}items/{product.id}/"


class TestCartApi:
    def test_requires_authentication(self, api_client):
        assert api_client.get(CART_URL).status_code == 401

    def test_empty_cart(self, auth_client):
        data = auth_client.get(CART_URL).json()

        assert data["items"] == []
        assert data["total"] == "0.00"
        assert data["delivery_fee"] == "0.00"

    def test_summary(self, auth_client, customer, fill_cart, milk, bread):
        fill_cart(customer, (milk, 2), (bread, 1))

        data = auth_client.get(CART_URL).json()

        assert data["item_count"] == 3
        assert data["subtotal"] == "160.00"
        assert data["delivery_fee"] == "25.00"
        assert data["savings"] == "5.00"
        assert data["total"] == "185.00"

    def test_add_merges_lines(self, auth_client, milk):
        auth_client.post(
            CART_URL, {"product_id": str(milk.id), "quantity": 2}, format="json"
        )
        response = auth_client.post(
            CART_URL, {"product_id": str(milk.id), "quantity": 3}, format="json"
        )

        assert response.status_code == 201
        assert response.json()["items"][0]["quantity"] == 5

    def test_add_beyond_stock(self, auth_client, bread):
        response = auth_client.post(
            CART_URL, {"product_id": str(bread.id), "quantity": 6}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "out_of_stock"

    def test_add_unavailable_product(self, auth_client, make_product):
        hidden = make_product(available=False)

        response = auth_client.post(
            CART_URL, {"product_id": str(hidden.id)}, format="json"
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "product_unavailable"

    def test_update_and_remove(self, auth_client, customer, fill_cart, milk, bread):
        fill_cart(customer, (milk, 1), (bread, 1))

        response = auth_client.patch(_item_url(milk), {"quantity": 4}, format="json")
        assert response.json()["subtotal"] == "280.00"
        assert response.json()["delivery_fee"] == "0.00"

        response = auth_client.patch(_item_url(bread), {"quantity": 0}, format="json")
        names = [i["product_name"] for i in response.json()["items"]]
        assert names == ["Toned Milk 1L"]

        assert auth_client.delete(_item_url(milk)).status_code == 204
        assert auth_client.get(CART_URL).json()["items"] == []

    def test_update_missing_line(self, auth_client, milk):
        response = auth_client.patch(_item_url(milk), {"quantity": 1}, format="json")

        assert response.status_code == 404
        assert response.json()["errors"][0]["code"] == "cart_item_not_found"

    def test_clear(self, auth_client, customer, fill_cart, milk):
        fill_cart(customer, (milk, 1))

        assert auth_client.delete(CART_URL).status_code == 204
        assert auth_client.get(CART_URL).json()["item_count"] == 0


class TestCartSync:
    def test_replaces_existing_lines(
        self, auth_client, customer, fill_cart, milk, bread
    ):
        fill_cart(customer, (milk, 3))

        response = auth_client.put(
            CART_URL,
            {"items": [{"product_id": str(bread.id), "quantity": 2}]},
            format="json",
        )

        assert response.status_code == 200
        lines = {i["product_name"]: i["quantity"] for i in response.json()["items"]}
        assert lines == {"Bread": 2}

    def test_drops_lines_that_cannot_be_bought(
        self, auth_client, milk, bread, make_product
    ):
        hidden = make_product(available=False)
        items = [
            {"product_id": str(milk.id), "quantity": 2},
            {"product_id": str(bread.id), "quantity": 9},
            {"product_id": str(hidden.id), "quantity": 1},
            {"product_id": "00000000-0000-0000-0000-000000000000", "quantity": 1},
        ]

        response = auth_client.put(CART_URL, {"items": items}, format="json")

        assert response.status_code == 200
        names = [i["product_name"] for i in response.json()["items"]]
        assert names == ["Toned Milk 1L"]

    def test_repeated_product_is_merged(self, auth_client, milk):
        items = [{"product_id": str(milk.id), "quantity": 2}] * 2

        response = auth_client.put(CART_URL, {"items": items}, format="json")

        assert response.json()["items"][0]["quantity"] == 4
        assert response.json()["item_count"] == 4

    def test_empty_list_clears(self, auth_client, customer, fill_cart, milk):
        fill_cart(customer, (milk, 1))

        response = auth_client.put(CART_URL, {"items": []}, format="json")

        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_invalid_quantity(self, auth_client, milk):
        response = auth_client.put(
            CART_URL,
            {"items": [{"product_id": str(milk.id), "quantity": 0}]},
            format="json",
        )

        assert response.status_code == 400
