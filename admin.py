"""Rewardman admin.

Read-only views over accounts, ledger entries, issuance records and
free product orders. Balances change only through the services.
"""

from django.contrib import admin
from django.utils.html import format_html

from rewardman.models import (
    FulfillmentOrder,
    FulfillmentStatus,
    IssuanceRecord,
    IssuanceStatus,
    LedgerEntry,
    LoyaltyAccount,
)
from rewardman.services import FulfillmentDispatcher, RewardDispatcher


def badge(color: str, label: str):
    return format_html(
        '<span style="background:{}; color:#fff; padding:2px 8px; '
        'border-radius:3px; font-size:11px;">{}</span>',
        color,
        label,
    )


# ===========================================
# Inline Classes
# ===========================================


class LedgerEntryInline(admin.TabularInline):
    model = LedgerEntry
    extra = 0
    readonly_fields = ["entry_type", "points", "balance_after", "reference", "created_at"]
    ordering = ["-created_at"]

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class IssuanceRecordInline(admin.TabularInline):
    model = IssuanceRecord
    extra = 0
    fields = ["tier_id", "status", "attempts", "code", "issued_at", "notified_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class FulfillmentOrderInline(admin.TabularInline):
    model = FulfillmentOrder
    extra = 0
    fields = ["product_ref", "status", "attempts", "order_ref", "fulfilled_at"]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ===========================================
# LoyaltyAccount Admin
# ===========================================


@admin.register(LoyaltyAccount)
class LoyaltyAccountAdmin(admin.ModelAdmin):
    list_display = [
        "customer_id",
        "balance",
        "lifetime_points",
        "issued_tiers",
        "entitlement_consumed",
        "updated_at",
    ]
    list_filter = ["entitlement_consumed"]
    search_fields = ["customer_id"]
    readonly_fields = [
        "customer_id",
        "balance",
        "lifetime_points",
        "issued_tiers",
        "entitlement_consumed",
        "version",
        "created_at",
        "updated_at",
    ]
    inlines = [IssuanceRecordInline, FulfillmentOrderInline, LedgerEntryInline]

    def has_add_permission(self, request):
        return False


# ===========================================
# IssuanceRecord Admin
# ===========================================


@admin.register(IssuanceRecord)
class IssuanceRecordAdmin(admin.ModelAdmin):
    list_display = [
        "idempotency_key",
        "tier_id",
        "status_badge",
        "attempts",
        "next_attempt_at",
        "code",
        "notified_at",
    ]
    list_filter = ["status", "tier_id"]
    search_fields = ["account__customer_id", "code", "idempotency_key"]
    readonly_fields = [
        "account",
        "tier_id",
        "idempotency_key",
        "status",
        "attempts",
        "next_attempt_at",
        "last_error",
        "code",
        "issued_at",
        "notified_at",
        "created_at",
        "updated_at",
    ]
    actions = ["requeue"]

    def has_add_permission(self, request):
        return False

    def status_badge(self, obj):
        colors = {
            IssuanceStatus.PENDING: "#f0ad4e",
            IssuanceStatus.ISSUED: "#5cb85c",
            IssuanceStatus.FAILED: "#d9534f",
        }
        return badge(colors.get(obj.status, "#6c757d"), obj.get_status_display())

    status_badge.short_description = "Status"

    @admin.action(description="Retry issuance now")
    def requeue(self, request, queryset):
        count = 0
        for record in queryset.exclude(status=IssuanceStatus.ISSUED):
            RewardDispatcher.requeue(record)
            count += 1
        self.message_user(request, f"{count} record(s) requeued.")


# ===========================================
# FulfillmentOrder Admin
# ===========================================


@admin.register(FulfillmentOrder)
class FulfillmentOrderAdmin(admin.ModelAdmin):
    list_display = [
        "idempotency_key",
        "product_ref",
        "status_badge",
        "attempts",
        "next_attempt_at",
        "order_ref",
    ]
    list_filter = ["status"]
    search_fields = ["account__customer_id", "product_ref", "order_ref"]
    readonly_fields = [
        "account",
        "product_ref",
        "idempotency_key",
        "status",
        "attempts",
        "next_attempt_at",
        "last_error",
        "order_ref",
        "fulfilled_at",
        "created_at",
        "updated_at",
    ]
    actions = ["requeue"]

    def has_add_permission(self, request):
        return False

    def status_badge(self, obj):
        colors = {
            FulfillmentStatus.PENDING: "#f0ad4e",
            FulfillmentStatus.FULFILLED: "#5cb85c",
            FulfillmentStatus.FAILED: "#d9534f",
        }
        return badge(colors.get(obj.status, "#6c757d"), obj.get_status_display())

    status_badge.short_description = "Status"

    @admin.action(description="Retry order now")
    def requeue(self, request, queryset):
        count = 0
        for order in queryset.exclude(status=FulfillmentStatus.FULFILLED):
            FulfillmentDispatcher.requeue(order)
            count += 1
        self.message_user(request, f"{count} order(s) requeued.")
