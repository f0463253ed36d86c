"""
Rewardman Gates - Validation rules for inbound transport.

G1: WebhookAuthenticity - Webhook body is signed with the shared secret (HMAC-SHA256)
G2: EventIdentity - Event carries a stable id usable for deduplication
"""

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class GateError(Exception):
    """Gate validation error."""

    def __init__(self, gate_name: str, message: str, details: dict | None = None):
        self.gate_name = gate_name
        self.message = message
        self.details = details or {}
        super().__init__(f"[{gate_name}] {message}")


@dataclass
class GateResult:
    """Result of a gate check."""

    passed: bool
    gate_name: str
    message: str = ""


# =============================================================================
# Gates
# =============================================================================


class Gates:
    """Rewardman validation gates."""

    # =========================================================================
    # G1: Webhook Authenticity
    # =========================================================================

    SIGNATURE_ENCODINGS = {"hex", "base64"}

    @classmethod
    def webhook_authenticity(
        cls,
        body: bytes,
        signature: str,
        secret: str,
        encoding: str = "hex",
    ) -> GateResult:
        """
        G1: Webhook body matches its HMAC-SHA256 signature.

        Shopify sends base64 digests (X-Shopify-Hmac-Sha256), Judge.me
        sends hex digests (X-Judgeme-Hmac-Sha256).

        Args:
            body: Raw request body (bytes)
            signature: Signature from header (hex may carry a 'sha256=' prefix)
            secret: Webhook secret
            encoding: "hex" or "base64"

        Raises:
            GateError: If the signature is missing or invalid
        """
        if encoding not in cls.SIGNATURE_ENCODINGS:
            raise ValueError(f"Unsupported signature encoding: {encoding}")

        if not secret:
            # No secret configured = skip validation (dev mode)
            logger.warning(
                "G1_WebhookAuthenticity: webhook secret is empty, "
                "payloads are accepted without signature validation. "
                "Set the webhook secret before deploying to production."
            )
            return GateResult(True, "G1_WebhookAuthenticity", "No secret configured (skipped)")

        if not signature:
            raise GateError("G1_WebhookAuthenticity", "Missing signature header.")

        digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()

        if encoding == "base64":
            expected = base64.b64encode(digest).decode()
            valid = hmac.compare_digest(signature.strip(), expected)
        else:
            if signature.startswith("sha256="):
                signature = signature[7:]
            valid = hmac.compare_digest(signature.strip().lower(), digest.hex())

        if not valid:
            raise GateError("G1_WebhookAuthenticity", "Invalid signature.")

        return GateResult(True, "G1_WebhookAuthenticity")

    @classmethod
    def check_webhook_authenticity(cls, *args, **kwargs) -> bool:
        """Check without raising (returns bool)."""
        try:
            cls.webhook_authenticity(*args, **kwargs)
            return True
        except GateError:
            return False

    # =========================================================================
    # G2: Event Identity
    # =========================================================================

    @classmethod
    def event_identity(cls, event_id, source: str) -> GateResult:
        """
        G2: Event has a non-empty id.

        Without it, redeliveries cannot be told apart from new events.

        Args:
            event_id: Id extracted from the payload or headers
            source: Webhook source for error details

        Raises:
            GateError: If the id is missing
        """
        if event_id in (None, ""):
            raise GateError(
                "G2_EventIdentity",
                "Event id is required.",
                {"source": source},
            )
        return GateResult(True, "G2_EventIdentity")

    @classmethod
    def check_event_identity(cls, event_id, source: str) -> bool:
        """Check without raising (returns bool)."""
        try:
            cls.event_identity(event_id, source)
            return True
        except GateError:
            return False
