"""
Tests for webhook and account endpoints.

Covers:
- Shopify orders/paid (base64 HMAC) and Judge.me review (hex HMAC)
- G1 signature failures (401), malformed bodies (400)
- Duplicate deliveries
- Error code to HTTP status mapping
- Account summary, redemption and favorites endpoints
"""

import base64
import hashlib
import hmac
import json
from unittest.mock import patch

import httpx
import pytest

from rewardman.exceptions import RewardmanError
from rewardman.models import LoyaltyAccount
from rewardman.service import LoyaltyService


pytestmark = pytest.mark.django_db

SHOPIFY_URL = "/loyalty/webhooks/shopify/orders-paid/"
JUDGEME_URL = "/loyalty/webhooks/judgeme/review/"


def shopify_order(order_id=1001, customer_id=7, total="550.00"):
    return {"id": order_id, "total_price": total, "customer": {"id": customer_id}}


def judgeme_review(review_id=55, reviewer_id=7, rating=5, email=None):
    reviewer = {"id": reviewer_id}
    if email:
        reviewer = {"email": email}
    return {"review": {"id": review_id, "rating": rating, "reviewer": reviewer}}


def post(client, url, payload, **headers):
    body = payload if isinstance(payload, (bytes, str)) else json.dumps(payload)
    return client.post(url, data=body, content_type="application/json", **headers)


def redeem(client, customer_id):
    return client.post(f"/loyalty/accounts/{customer_id}/redeem/", content_type="application/json")


class TestShopifyOrderPaid:
    def test_applies_points(self, client, reward_backend):
        response = post(client, SHOPIFY_URL, shopify_order())

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "applied"
        assert data["event_id"] == "order:1001"
        assert data["customer_id"] == "7"
        assert data["balance"] == 550
        assert data["crossed_tiers"] == [1]
        assert reward_backend.tiers_called() == [1]

    def test_redelivery_is_duplicate(self, client):
        post(client, SHOPIFY_URL, shopify_order())
        response = post(client, SHOPIFY_URL, shopify_order())

        assert response.status_code == 200
        assert response.json()["status"] == "duplicate"
        assert LoyaltyAccount.objects.get(customer_id="7").balance == 550

    def test_valid_signature(self, client, rewardman_settings):
        rewardman_settings(SHOPIFY_WEBHOOK_SECRET="shpss_test")
        body = json.dumps(shopify_order())
        digest = hmac.new(b"shpss_test", body.encode(), hashlib.sha256).digest()

        response = post(
            client, SHOPIFY_URL, body,
            HTTP_X_SHOPIFY_HMAC_SHA256=base64.b64encode(digest).decode(),
        )

        assert response.status_code == 200

    def test_invalid_signature(self, client, rewardman_settings):
        rewardman_settings(SHOPIFY_WEBHOOK_SECRET="shpss_test")

        response = post(client, SHOPIFY_URL, shopify_order(), HTTP_X_SHOPIFY_HMAC_SHA256="bm9wZQ==")

        assert response.status_code == 401
        assert not LoyaltyAccount.objects.exists()

    def test_missing_signature(self, client, rewardman_settings):
        rewardman_settings(SHOPIFY_WEBHOOK_SECRET="shpss_test")

        response = post(client, SHOPIFY_URL, shopify_order())

        assert response.status_code == 401

    def test_invalid_json(self, client):
        response = post(client, SHOPIFY_URL, "{not json")
        assert response.status_code == 400

    def test_non_object_json(self, client):
        response = post(client, SHOPIFY_URL, "[1, 2]")
        assert response.status_code == 400

    def test_missing_order_id(self, client):
        payload = shopify_order()
        del payload["id"]

        response = post(client, SHOPIFY_URL, payload)

        assert response.status_code == 400
        assert "Event id is required" in response.json()["error"]

    def test_guest_checkout_rejected(self, client):
        payload = shopify_order()
        payload["customer"] = None

        response = post(client, SHOPIFY_URL, payload)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_EVENT"

    @pytest.mark.parametrize("total", ["1e30", "2147483648.00"])
    def test_total_beyond_storable_range(self, client, total):
        response = post(client, SHOPIFY_URL, shopify_order(total=total))

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_EVENT"
        assert not LoyaltyAccount.objects.exists()

    @pytest.mark.parametrize("customer", ["abc", [7], 7])
    def test_customer_not_an_object(self, client, customer):
        payload = shopify_order()
        payload["customer"] = customer

        response = post(client, SHOPIFY_URL, payload)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_EVENT"

    def test_get_not_allowed(self, client):
        assert client.get(SHOPIFY_URL).status_code == 405

    def test_ledger_conflict_is_503(self, client):
        with patch.object(
            LoyaltyService, "handle_event",
            side_effect=RewardmanError("LEDGER_CONFLICT", customer_id="7", attempts=3),
        ):
            response = post(client, SHOPIFY_URL, shopify_order())

        assert response.status_code == 503
        assert response.json()["code"] == "LEDGER_CONFLICT"

    def test_unexpected_error_is_500(self, client):
        with patch.object(LoyaltyService, "handle_event", side_effect=RuntimeError("boom")):
            response = post(client, SHOPIFY_URL, shopify_order())

        assert response.status_code == 500
        assert response.json() == {"error": "Internal error"}


class TestJudgemeReview:
    def test_good_review(self, client):
        response = post(client, JUDGEME_URL, judgeme_review(rating=5))

        assert response.status_code == 200
        data = response.json()
        assert data["event_id"] == "review:55"
        assert data["delta"] == 50
        assert data["balance"] == 50

    def test_low_rating_earns_nothing(self, client):
        response = post(client, JUDGEME_URL, judgeme_review(rating=2))

        assert response.status_code == 200
        assert response.json()["delta"] == 0

    def test_unwrapped_payload(self, client):
        payload = judgeme_review()["review"]

        response = post(client, JUDGEME_URL, payload)

        assert response.status_code == 200
        assert response.json()["customer_id"] == "7"

    @pytest.mark.parametrize("review", [None, "x", [], 5])
    def test_review_not_an_object(self, client, review):
        response = post(client, JUDGEME_URL, {"review": review})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid event: review must be an object", "code": "INVALID_EVENT"}
        assert not LoyaltyAccount.objects.exists()

    def test_reviewer_not_an_object(self, client):
        payload = judgeme_review()
        payload["review"]["reviewer"] = "maria@example.com"

        response = post(client, JUDGEME_URL, payload)

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_EVENT"

    def test_fractional_rating_rejected(self, client):
        response = post(client, JUDGEME_URL, judgeme_review(rating=4.9))

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_EVENT"
        assert not LoyaltyAccount.objects.exists()

    def test_reviewer_email_resolved(self, client):
        response = post(client, JUDGEME_URL, judgeme_review(email="maria@example.com"))

        assert response.status_code == 200
        assert response.json()["customer_id"] == "C2"

    def test_unknown_reviewer_email(self, client):
        response = post(client, JUDGEME_URL, judgeme_review(email="stranger@example.com"))

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_EVENT"

    def test_hex_signature_with_prefix(self, client, rewardman_settings):
        rewardman_settings(JUDGEME_WEBHOOK_SECRET="jm_secret")
        body = json.dumps(judgeme_review())
        digest = hmac.new(b"jm_secret", body.encode(), hashlib.sha256).hexdigest()

        response = post(client, JUDGEME_URL, body, HTTP_X_JUDGEME_HMAC_SHA256=f"sha256={digest}")

        assert response.status_code == 200

    def test_hex_signature_mismatch(self, client, rewardman_settings):
        rewardman_settings(JUDGEME_WEBHOOK_SECRET="jm_secret")

        response = post(client, JUDGEME_URL, judgeme_review(), HTTP_X_JUDGEME_HMAC_SHA256="00" * 32)

        assert response.status_code == 401


class TestAccountEndpoints:
    def test_account_summary(self, client):
        post(client, SHOPIFY_URL, shopify_order(total="1200"))

        response = client.get("/loyalty/accounts/7/")

        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == 1200
        assert [t["tier_id"] for t in data["per_tier"]] == [1, 2, 3, 4]
        assert [t["issued"] for t in data["per_tier"]] == [True, True, False, False]

    def test_unknown_account_summary(self, client):
        response = client.get("/loyalty/accounts/nobody/")

        assert response.status_code == 200
        assert response.json()["balance"] == 0

    def test_redeem(self, client):
        post(client, SHOPIFY_URL, shopify_order(total="2000"))

        response = client.post(
            "/loyalty/accounts/7/redeem/",
            data=json.dumps({"product_id": "gid://shopify/Product/9"}),
            content_type="application/json",
        )

        assert response.status_code == 200
        assert response.json() == {
            "balance": 0,
            "fulfillment": {
                "product_ref": "gid://shopify/Product/9",
                "status": "fulfilled",
                "order_ref": "DRAFT-1",
                "attempts": 1,
            },
        }

    def test_redeem_twice_is_409(self, client):
        post(client, SHOPIFY_URL, shopify_order(total="2000"))
        redeem(client, "7")

        response = redeem(client, "7")

        assert response.status_code == 409
        assert response.json()["code"] == "ENTITLEMENT_ALREADY_CONSUMED"

    def test_redeem_insufficient_is_409(self, client):
        post(client, SHOPIFY_URL, shopify_order(total="10"))

        response = redeem(client, "7")

        assert response.status_code == 409
        assert response.json()["code"] == "INSUFFICIENT_POINTS"

    def test_redeem_invalid_json(self, client):
        response = client.post("/loyalty/accounts/7/redeem/", data="{", content_type="application/json")
        assert response.status_code == 400

    def test_redeem_order_pending_on_platform_error(self, client, fulfillment_backend):
        post(client, SHOPIFY_URL, shopify_order(total="2000"))
        fulfillment_backend.fail_times = 1

        response = client.post(
            "/loyalty/accounts/7/redeem/",
            data=json.dumps({"product_id": "gid://shopify/ProductVariant/9"}),
            content_type="application/json",
        )

        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == 0
        assert data["fulfillment"]["status"] == "pending"
        assert data["fulfillment"]["order_ref"] == ""


class TestFavorites:
    def test_favorites(self, client):
        response = client.get("/loyalty/accounts/C1/favorites/")

        assert response.status_code == 200
        assert response.json() == {"customer_id": "C1", "favorites": ["gid://shopify/ProductVariant/9"]}

    def test_no_favorites(self, client):
        response = client.get("/loyalty/accounts/7/favorites/")

        assert response.status_code == 200
        assert response.json()["favorites"] == []

    def test_platform_error_is_502(self, client, fulfillment_backend):
        fulfillment_backend.favorites_error = httpx.ConnectError("unreachable")

        response = client.get("/loyalty/accounts/C1/favorites/")

        assert response.status_code == 502
        assert response.json() == {"error": "Failed to fetch favorites"}
