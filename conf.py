"""
Rewardman configuration.

Usage in settings.py:
    REWARDMAN = {
        "APPLIED_EVENT_LIMIT": 1000,
        "ISSUANCE_MAX_ATTEMPTS": 5,
        "SHOPIFY_SHOP_DOMAIN": "my-shop.myshopify.com",
    }
"""

from dataclasses import dataclass
from typing import Any

from django.conf import settings


@dataclass
class RewardmanSettings:
    """Rewardman configuration settings."""

    # Idempotency guard: event ids retained per account (0 = unbounded)
    APPLIED_EVENT_LIMIT: int = 1000
    # Cleanup horizon for applied event ids
    EVENT_RETENTION_DAYS: int = 180

    # Ledger contention
    LEDGER_CONFLICT_RETRIES: int = 3

    # Reward issuance and free product order retries
    ISSUANCE_MAX_ATTEMPTS: int = 5
    ISSUANCE_BACKOFF_SECONDS: int = 60
    ISSUANCE_BACKOFF_MAX_SECONDS: int = 3600

    # External calls
    COLLABORATOR_TIMEOUT_SECONDS: float = 10.0
    DISCOUNT_VALIDITY_DAYS: int = 90

    # Collaborator backends (dotted paths)
    REWARD_BACKEND: str = "rewardman.adapters.shopify.ShopifyRewardBackend"
    NOTIFICATION_BACKEND: str = "rewardman.adapters.email.EmailNotificationBackend"
    IDENTITY_BACKEND: str = "rewardman.adapters.shopify.ShopifyIdentityResolver"
    FULFILLMENT_BACKEND: str = "rewardman.adapters.shopify.ShopifyFulfillmentBackend"

    # Shopify Admin API
    SHOPIFY_SHOP_DOMAIN: str = ""
    SHOPIFY_ACCESS_TOKEN: str = ""
    SHOPIFY_API_VERSION: str = "2024-01"
    # Customer metafield holding the favorites list (JSON array)
    FAVORITES_METAFIELD_NAMESPACE: str = "loyalty"
    FAVORITES_METAFIELD_KEY: str = "favorites"

    # Webhook secrets (empty = signature check skipped)
    SHOPIFY_WEBHOOK_SECRET: str = ""
    JUDGEME_WEBHOOK_SECRET: str = ""

    # Email notifications
    NOTIFICATION_FROM_EMAIL: str = ""


def get_rewardman_settings() -> RewardmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "REWARDMAN", {})
    return RewardmanSettings(**user_settings)


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_rewardman_settings(), name)


rewardman_settings = _LazySettings()
