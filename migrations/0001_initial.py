# Initial migration for loyalty accounts, applied events, ledger entries and issuance records

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="LoyaltyAccount",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "customer_id",
                    models.CharField(
                        help_text="Commerce platform customer id",
                        max_length=100,
                        unique=True,
                        verbose_name="customer id",
                    ),
                ),
                (
                    "balance",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Points available for redemption",
                        verbose_name="points balance",
                    ),
                ),
                (
                    "lifetime_points",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Total points ever earned (never decreases)",
                        verbose_name="lifetime points",
                    ),
                ),
                (
                    "issued_tiers",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Tier ids issued to this account, ever",
                        verbose_name="issued tiers",
                    ),
                ),
                (
                    "entitlement_consumed",
                    models.BooleanField(
                        default=False,
                        help_text="Free product entitlement already redeemed",
                        verbose_name="entitlement consumed",
                    ),
                ),
                ("version", models.PositiveIntegerField(default=0, verbose_name="version")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
            ],
            options={
                "verbose_name": "loyalty account",
                "verbose_name_plural": "loyalty accounts",
                "db_table": "rewardman_account",
            },
        ),
        migrations.CreateModel(
            name="AppliedEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("event_id", models.CharField(max_length=255, verbose_name="event id")),
                ("kind", models.CharField(max_length=30, verbose_name="kind")),
                ("delta", models.IntegerField(verbose_name="delta")),
                ("applied_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="applied at")),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="applied_events",
                        to="rewardman.loyaltyaccount",
                        verbose_name="account",
                    ),
                ),
            ],
            options={
                "verbose_name": "applied event",
                "verbose_name_plural": "applied events",
                "db_table": "rewardman_applied_event",
                "indexes": [
                    models.Index(fields=["account", "-applied_at"], name="rewardman_a_account_6a1f0e_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account", "event_id"),
                        name="rewardman_unique_event_per_account",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "entry_type",
                    models.CharField(
                        choices=[("earn", "Earn"), ("redeem", "Redeem")],
                        max_length=20,
                        verbose_name="type",
                    ),
                ),
                (
                    "points",
                    models.IntegerField(
                        help_text="Positive for earn, negative for redemption",
                        verbose_name="points",
                    ),
                ),
                ("balance_after", models.IntegerField(verbose_name="balance after")),
                (
                    "reference",
                    models.CharField(
                        blank=True,
                        help_text="Event id or redeemed product",
                        max_length=255,
                        verbose_name="reference",
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at")),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="entries",
                        to="rewardman.loyaltyaccount",
                        verbose_name="account",
                    ),
                ),
            ],
            options={
                "verbose_name": "ledger entry",
                "verbose_name_plural": "ledger entries",
                "db_table": "rewardman_ledger_entry",
                "ordering": ["-created_at", "-pk"],
                "indexes": [
                    models.Index(fields=["account", "-created_at"], name="rewardman_l_account_3c9d2b_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="IssuanceRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tier_id", models.PositiveSmallIntegerField(verbose_name="tier")),
                ("idempotency_key", models.CharField(max_length=255, unique=True, verbose_name="idempotency key")),
                (
                    "status",
                    models.CharField(
                        choices=[("pending", "Pending"), ("issued", "Issued"), ("failed", "Failed")],
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
                    "code",
                    models.CharField(
                        blank=True,
                        help_text="Discount code or entitlement marker",
                        max_length=255,
                        verbose_name="code",
                    ),
                ),
                ("issued_at", models.DateTimeField(blank=True, null=True, verbose_name="issued at")),
                ("notified_at", models.DateTimeField(blank=True, null=True, verbose_name="notified at")),
                ("created_at", models.DateTimeField(auto_now_add=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="issuances",
                        to="rewardman.loyaltyaccount",
                        verbose_name="account",
                    ),
                ),
            ],
            options={
                "verbose_name": "issuance record",
                "verbose_name_plural": "issuance records",
                "db_table": "rewardman_issuance",
                "ordering": ["account_id", "tier_id"],
                "indexes": [
                    models.Index(fields=["status", "next_attempt_at"], name="rewardman_i_status_8e4b71_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("account", "tier_id"),
                        name="rewardman_unique_issuance_per_tier",
                    ),
                ],
            },
        ),
    ]
