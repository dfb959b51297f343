import decimal

import django.db.models.deletion
import uuid6
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid6.uuid7,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="INR", max_length=3)),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("CASH_ON_DELIVERY", "Cash on delivery"),
                            ("STRIPE", "Stripe"),
                            ("RAZORPAY", "Razorpay"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                            ("REFUNDED", "Refunded"),
                        ],
                        default="PENDING",
                        max_length=20,
                    ),
                ),
                (
                    "gateway_order_id",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "gateway_payment_id",
                    models.CharField(blank=True, max_length=255, null=True, unique=True),
                ),
                (
                    "gateway_signature",
                    models.CharField(blank=True, default="", max_length=512),
                ),
                ("failure_reason", models.TextField(blank=True, default="")),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("refund_id", models.CharField(blank=True, default="", max_length=255)),
                (
                    "refund_amount",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=12, null=True
                    ),
                ),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("requires_refund", models.BooleanField(default=False)),
                (
                    "order",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment",
                        to="orders.order",
                    ),
                ),
            ],
            options={
                "db_table": "payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="payments_status_idx"),
                    models.Index(
                        fields=["gateway_order_id"], name="payments_gw_order_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", decimal.Decimal("0.00"))),
                        name="payments_amount_non_negative",
                    ),
                ],
            },
        ),
    ]
