"""Rewardman exceptions."""


class BaseError(Exception):
    """
    Structured exception with a stable code and free-form data.

    Subclasses declare ``_default_messages`` mapping codes to messages.
    """

    _default_messages: dict[str, str] = {}

    def __init__(self, code: str, message: str | None = None, **data):
        self.code = code
        self.message = message or self._default_messages.get(code, code)
        self.data = data
        super().__init__(f"[{code}] {self.message}")

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "data": self.data}


class RewardmanError(BaseError):
    """
    Structured exception for loyalty operations.

    Usage:
        try:
            LoyaltyService.redeem("gid-123")
        except RewardmanError as e:
            if e.code == "INSUFFICIENT_POINTS":
                show_progress()
    """

    _default_messages = {
        "INVALID_EVENT": "Malformed loyalty event",
        "LEDGER_CONFLICT": "Concurrent update on loyalty account, try again",
        "ACCOUNT_NOT_FOUND": "Loyalty account not found",
        "INSUFFICIENT_POINTS": "Insufficient points for redemption",
        "ENTITLEMENT_ALREADY_CONSUMED": "Free product entitlement not available",
        "UNKNOWN_TIER": "Unknown reward tier",
    }
