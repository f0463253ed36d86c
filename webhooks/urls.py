from django.urls import path

from .views import (
    AccountView,
    FavoritesView,
    JudgemeReviewWebhookView,
    RedeemView,
    ShopifyOrderPaidWebhookView,
)

app_name = "rewardman"

urlpatterns = [
    path("webhooks/shopify/orders-paid/", ShopifyOrderPaidWebhookView.as_view(), name="shopify-orders-paid"),
    path("webhooks/judgeme/review/", JudgemeReviewWebhookView.as_view(), name="judgeme-review"),
    path("accounts/<str:customer_id>/", AccountView.as_view(), name="account"),
    path("accounts/<str:customer_id>/redeem/", RedeemView.as_view(), name="redeem"),
    path("accounts/<str:customer_id>/favorites/", FavoritesView.as_view(), name="favorites"),
]
