from __future__ import annotations

import random
from decimal import Decimal
from typing import Any, Optional

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction

from modules.addresses.models import Address
from modules.cart.models import Cart, CartItem
from modules.products.constants import InventoryAction
from modules.products.inventory import StockReservationController
from modules.products.models import Product

CATALOG = [
    ("DAIRY-001", "Toned Milk 1L", Decimal("68.00"), None),
    ("DAIRY-002", "Salted Butter 100g", Decimal("58.00"), None),
    ("DAIRY-003", "Greek Yogurt 400g", Decimal("120.00"), Decimal("99.00")),
    ("BAKE-001", "Whole Wheat Bread", Decimal("45.00"), None),
    ("BAKE-002", "Butter Croissant x4", Decimal("160.00"), Decimal("140.00")),
    ("FRUIT-001", "Bananas (6 pcs)", Decimal("48.00"), None),
    ("FRUIT-002", "Royal Gala Apples 1kg", Decimal("220.00"), Decimal("189.00")),
    ("VEG-001", "Tomatoes 500g", Decimal("30.00"), None),
    ("VEG-002", "Onions 1kg", Decimal("42.00"), None),
    ("VEG-003", "Baby Spinach 200g", Decimal("55.00"), None),
    ("SNACK-001", "Salted Chips 150g", Decimal("50.00"), None),
    ("SNACK-002", "Dark Chocolate 100g", Decimal("175.00"), Decimal("150.00")),
    ("BEV-001", "Cold Coffee 250ml", Decimal("70.00"), None),
    ("BEV-002", "Orange Juice 1L", Decimal("135.00"), Decimal("119.00")),
    ("HOME-001", "Dishwash Liquid 500ml", Decimal("110.00"), None),
]


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users_created = self._seed_users()
        customer = get_user_model().objects.get(username="user")
        address = self._seed_address(customer)
        products = self._seed_products()
        cart_lines = self._seed_cart(customer, products)

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"address={address.id if address else None}, "
                f"products={len(products)}, "
                f"cart_lines={cart_lines}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="manager").exists():
            User.objects.create_user(
                "manager", password="manager123", is_staff=True
            )
            created += 1
        if not User.objects.filter(username="user").exists():
            User.objects.create_user("user", password="user123")
            created += 1
        return created

    def _seed_address(self, user: Any) -> Optional[Address]:
        self.stdout.write("Creating delivery address...")
        address, _ = Address.objects.get_or_create(
            user=user,
            is_default=True,
            defaults={
                "full_name": "Asha Verma",
                "phone": "+919800000001",
                "address_line1": "12 Residency Road",
                "landmark": "Opposite the metro station",
                "city": "Bengaluru",
                "state": "Karnataka",
                "postal_code": "560025",
            },
        )
        self.stdout.write(self.style.SUCCESS("Creating delivery address... Done!"))
        return address

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        inventory = StockReservationController()
        products: list[Product] = []
        for sku, name, price, discounted in CATALOG:
            product, created = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    "name": name,
                    "price": price,
                    "discounted_price": discounted,
                    "is_available": True,
                },
            )
            if created:
                # Opening stock goes through the controller so it is logged.
                inventory.adjust(
                    product.id,
                    random.randint(5, 120),
                    InventoryAction.ADJUSTMENT,
                    notes="Opening stock",
                    reference="seed",
                )
                product.refresh_from_db()
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    @transaction.atomic
    def _seed_cart(self, user: Any, products: list[Product]) -> int:
        self.stdout.write("Filling the demo cart...")
        cart, _ = Cart.objects.get_or_create(user=user)
        lines = 0
        for product in random.sample(products, k=min(4, len(products))):
            _, created = CartItem.objects.get_or_create(
                cart=cart,
                product=product,
                defaults={"quantity": random.randint(1, 3)},
            )
            lines += int(created)
        self.stdout.write(self.style.SUCCESS("Filling the demo cart... Done!"))
        return lines
