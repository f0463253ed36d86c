# Free product orders created by redemptions

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("rewardman", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="FulfillmentOrder",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "product_ref",
                    models.CharField(
                        help_text="Product variant chosen by the customer",
                        max_length=255,
                        verbose_name="product",
                    ),
                ),
                ("idempotency_key", models.CharField(max_length=255, unique=True, verbose_name="idempotency key")),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("fulfilled", "Fulfilled"), ("failed", "Failed")],
                        db_index=True,
                        default="pending",
                        max_length=20,
                        verbose_name="status",
                    ),
                ),
                ("attempts", models.PositiveIntegerField(default=0, verbose_name="attempts")),
                ("next_attempt_at", models.DateTimeField(blank=True, null=True, verbose_name="next attempt at")),
                ("last_error", models.TextField(blank=True, verbose_name="last error")),
                (
                    "order_ref",
                    models.CharField(
                        blank=True,
                        help_text="Draft order id on the commerce platform",
                        max_length=255,
                        verbose_name="order",
                    ),
                ),
                ("fulfilled_at", models.DateTimeField(blank=True, null=True, verbose_name="fulfilled at")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "account",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="fulfillment",
                        to="rewardman.loyaltyaccount",
                        verbose_name="account",
                    ),
                ),
            ],
            options={
                "verbose_name": "fulfillment order",
                "verbose_name_plural": "fulfillment orders",
                "db_table": "rewardman_fulfillment",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "next_attempt_at"], name="rewardman_f_status_3c9d52_idx"),
                ],
            },
        ),
    ]
