"""
Django Rewardman - Loyalty points and tiered rewards.

Usage:
    from rewardman import LoyaltyService
    from rewardman.gates import Gates, GateError, GateResult

    result = LoyaltyService.handle_event(
        {"kind": "order_paid", "eventId": "ord-1", "customerId": "C1", "totalAmount": "550.00"}
    )
    summary = LoyaltyService.get_account("C1")
    result = LoyaltyService.redeem("C1", product_ref="gid://shopify/ProductVariant/9")

    # Gates validation
    Gates.webhook_authenticity(body, signature, secret, encoding="base64")
"""


def __getattr__(name):
    if name == "LoyaltyService":
        from rewardman.service import LoyaltyService

        return LoyaltyService
    if name == "RewardmanError":
        from rewardman.exceptions import RewardmanError

        return RewardmanError
    if name == "Gates":
        from rewardman.gates import Gates

        return Gates
    if name == "GateError":
        from rewardman.gates import GateError

        return GateError
    if name == "GateResult":
        from rewardman.gates import GateResult

        return GateResult
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["LoyaltyService", "RewardmanError", "Gates", "GateError", "GateResult"]
__version__ = "0.1.0"
