"""
Loyalty webhook and account endpoints.

Webhook flow:
    1. Validates HMAC signature (G1)
    2. Maps the provider payload to an inbound loyalty event (G2: event id)
    3. Calls LoyaltyService.handle_event()
    4. Returns 200 with "applied" or "duplicate"
"""

from __future__ import annotations

import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from rewardman.conf import rewardman_settings
from rewardman.events import EventKind
from rewardman.exceptions import RewardmanError
from rewardman.gates import GateError, Gates
from rewardman.service import LoyaltyService

logger = logging.getLogger("rewardman.webhooks")


ERROR_STATUS = {
    "INVALID_EVENT": 400,
    "ACCOUNT_NOT_FOUND": 404,
    "INSUFFICIENT_POINTS": 409,
    "ENTITLEMENT_ALREADY_CONSUMED": 409,
    "LEDGER_CONFLICT": 503,
}


def error_response(exc: RewardmanError) -> JsonResponse:
    return JsonResponse(
        {"error": exc.message, "code": exc.code},
        status=ERROR_STATUS.get(exc.code, 400),
    )


@method_decorator(csrf_exempt, name="dispatch")
class LoyaltyWebhookView(View):
    """
    Base POST endpoint for provider webhooks.

    Subclasses set the signature header, secret setting and digest
    encoding, and implement to_event().
    """

    source = ""
    signature_header = ""
    secret_setting = ""
    signature_encoding = "hex"

    def post(self, request):
        body = request.body

        # G1: Authenticity
        secret = getattr(rewardman_settings, self.secret_setting)
        signature = request.headers.get(self.signature_header, "")
        try:
            Gates.webhook_authenticity(body, signature, secret, encoding=self.signature_encoding)
        except GateError as exc:
            logger.warning("%s webhook: G1 failed: %s", self.source, exc.message)
            return JsonResponse({"error": exc.message}, status=401)

        # Parse body
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, ValueError):
            return JsonResponse({"error": "Invalid JSON"}, status=400)
        if not isinstance(data, dict):
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        try:
            raw = self.to_event(data, request)
        except RewardmanError as exc:
            logger.info("%s webhook rejected: %s", self.source, exc)
            return error_response(exc)

        # G2: Event identity
        try:
            Gates.event_identity(raw.get("eventId"), self.source)
        except GateError as exc:
            return JsonResponse({"error": exc.message}, status=400)

        try:
            outcome = LoyaltyService.handle_event(raw)
        except RewardmanError as exc:
            logger.info("%s webhook rejected: %s", self.source, exc)
            return error_response(exc)
        except Exception:
            logger.exception("%s webhook: processing failed", self.source)
            return JsonResponse({"error": "Internal error"}, status=500)

        return JsonResponse(outcome.as_dict())

    def to_event(self, data: dict, request) -> dict:
        """
        Map the provider payload to a raw event dict for normalize().

        Raises:
            RewardmanError: INVALID_EVENT when the payload shape is wrong
        """
        raise NotImplementedError


def _object(data: dict, key: str, source: str, default=None) -> dict:
    """Nested JSON object at ``key``; absent or null gives ``default``."""
    value = data.get(key)
    if value is None and default is not None:
        return default
    if not isinstance(value, dict):
        raise RewardmanError(
            "INVALID_EVENT",
            message=f"Invalid event: {key} must be an object",
            source=source,
        )
    return value


class ShopifyOrderPaidWebhookView(LoyaltyWebhookView):
    """
    Shopify orders/paid webhook.

    The event id is derived from the order id, so redeliveries (and the
    same order arriving through another subscription) deduplicate.
    """

    source = "shopify"
    signature_header = "X-Shopify-Hmac-Sha256"
    secret_setting = "SHOPIFY_WEBHOOK_SECRET"
    signature_encoding = "base64"

    def to_event(self, data: dict, request) -> dict:
        order_id = data.get("id")
        customer = _object(data, "customer", self.source, default={})
        return {
            "kind": EventKind.ORDER_PAID,
            "eventId": f"order:{order_id}" if order_id else None,
            "customerId": customer.get("id"),
            "totalAmount": data.get("total_price"),
        }


class JudgemeReviewWebhookView(LoyaltyWebhookView):
    """Judge.me review/created webhook."""

    source = "judgeme"
    signature_header = "X-Judgeme-Hmac-Sha256"
    secret_setting = "JUDGEME_WEBHOOK_SECRET"
    signature_encoding = "hex"

    def to_event(self, data: dict, request) -> dict:
        # Judge.me wraps the review; bare review payloads are accepted too
        review = _object(data, "review", self.source) if "review" in data else data
        reviewer = _object(review, "reviewer", self.source, default={})
        review_id = review.get("id")
        return {
            "kind": EventKind.REVIEW_CREATED,
            "eventId": f"review:{review_id}" if review_id else None,
            "customerId": reviewer.get("id") or review.get("reviewer_id"),
            "customerEmail": reviewer.get("email"),
            "rating": review.get("rating"),
        }


class AccountView(View):
    """GET balance and per-tier progress."""

    def get(self, request, customer_id: str):
        return JsonResponse(LoyaltyService.get_account(customer_id))


@method_decorator(csrf_exempt, name="dispatch")
class RedeemView(View):
    """
    POST free product redemption.

    Body (optional): {"product_id": "<variant id>"}. With a product, a
    free product order is placed; the response carries its status.
    """

    def post(self, request, customer_id: str):
        product_ref = ""
        if request.body:
            try:
                data = json.loads(request.body)
            except (json.JSONDecodeError, ValueError):
                return JsonResponse({"error": "Invalid JSON"}, status=400)
            if isinstance(data, dict):
                product_ref = str(data.get("product_id") or "")

        try:
            result = LoyaltyService.redeem(customer_id, product_ref=product_ref)
        except RewardmanError as exc:
            return error_response(exc)

        return JsonResponse(result)


class FavoritesView(View):
    """GET the customer's favorite products (candidates for the free product)."""

    def get(self, request, customer_id: str):
        try:
            favorites = LoyaltyService.favorites(customer_id)
        except Exception:
            logger.exception("Fetching favorites for %s failed", customer_id)
            return JsonResponse({"error": "Failed to fetch favorites"}, status=502)
        return JsonResponse({"customer_id": customer_id, "favorites": favorites})
