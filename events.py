"""
Event normalizer: converts inbound payloads into canonical loyalty events.

Recognized payloads (post-verification):
    {"kind": "order_paid", "eventId": ..., "customerId": ..., "totalAmount": ...}
    {"kind": "review_created", "eventId": ..., "customerId" | "customerEmail": ..., "rating": ...}

snake_case keys (event_id, customer_id, total_amount, customer_email) are
accepted too. Unrecognized kinds are rejected, never coerced.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from rewardman.exceptions import RewardmanError
from rewardman.models.account import MAX_POINTS

if TYPE_CHECKING:
    from rewardman.protocols import IdentityResolver


REVIEW_POINTS = 50
REVIEW_MIN_RATING = 4


class EventKind(models.TextChoices):
    ORDER_PAID = "order_paid", _("Order paid")
    REVIEW_CREATED = "review_created", _("Review created")


@dataclass(frozen=True)
class Event:
    """Canonical loyalty event. ``id`` is the deduplication key."""

    id: str
    customer_id: str
    kind: str
    delta: int
    amount: Decimal | None = None
    rating: int | None = None
    received_at: datetime = field(default_factory=timezone.now)


def _field(raw: dict, *names: str) -> Any:
    for name in names:
        value = raw.get(name)
        if value not in (None, ""):
            return value
    return None


def _invalid(reason: str, **data) -> RewardmanError:
    return RewardmanError("INVALID_EVENT", message=f"Invalid event: {reason}", **data)


def order_points(amount: Decimal) -> int:
    """One point per whole currency unit."""
    return math.floor(amount)


def review_points(rating: int) -> int:
    return REVIEW_POINTS if rating >= REVIEW_MIN_RATING else 0


def normalize(
    raw: dict,
    identity_resolver: IdentityResolver | None = None,
    received_at: datetime | None = None,
) -> Event:
    """
    Build a canonical Event from a raw inbound payload.

    Args:
        raw: Payload dict with a "kind" key
        identity_resolver: Resolves customerEmail to a customer id (reviews)
        received_at: Arrival time (defaults to now)

    Returns:
        Event with the computed point delta

    Raises:
        RewardmanError: INVALID_EVENT for malformed payloads or unknown kinds
    """
    if not isinstance(raw, dict):
        raise _invalid("payload must be an object")

    kind = raw.get("kind")
    event_id = _field(raw, "eventId", "event_id")
    if not event_id:
        raise _invalid("missing event id", kind=kind)
    event_id = str(event_id)
    received_at = received_at or timezone.now()

    if kind == EventKind.ORDER_PAID:
        return _order_paid(raw, event_id, received_at)
    if kind == EventKind.REVIEW_CREATED:
        return _review_created(raw, event_id, received_at, identity_resolver)
    raise _invalid(f"unrecognized kind {kind!r}", event_id=event_id)


def _order_paid(raw: dict, event_id: str, received_at: datetime) -> Event:
    customer_id = _field(raw, "customerId", "customer_id")
    if not customer_id:
        raise _invalid("missing customer identity", event_id=event_id)

    total = _field(raw, "totalAmount", "total_amount")
    if total is None:
        raise _invalid("missing total amount", event_id=event_id)
    try:
        amount = Decimal(str(total))
    except InvalidOperation:
        raise _invalid("total amount is not a number", event_id=event_id)
    if not amount.is_finite() or amount < 0:
        raise _invalid("total amount must be >= 0", event_id=event_id)
    if amount >= MAX_POINTS + 1:
        raise _invalid("total amount out of range", event_id=event_id, max_points=MAX_POINTS)

    return Event(
        id=event_id,
        customer_id=str(customer_id),
        kind=EventKind.ORDER_PAID,
        delta=order_points(amount),
        amount=amount,
        received_at=received_at,
    )


def _review_created(
    raw: dict,
    event_id: str,
    received_at: datetime,
    identity_resolver: IdentityResolver | None,
) -> Event:
    customer_id = _field(raw, "customerId", "customer_id")
    if not customer_id:
        email = _field(raw, "customerEmail", "customer_email")
        if email and identity_resolver is not None:
            customer_id = identity_resolver.resolve_customer_identity(str(email).strip().lower())
            if not customer_id:
                raise _invalid("customer email could not be resolved", event_id=event_id)
        if not customer_id:
            raise _invalid("missing customer identity", event_id=event_id)

    rating = raw.get("rating")
    if isinstance(rating, bool) or (isinstance(rating, float) and not rating.is_integer()):
        raise _invalid("rating must be an integer", event_id=event_id)
    try:
        rating = int(rating)
    except (TypeError, ValueError):
        raise _invalid("rating must be an integer", event_id=event_id)
    if not 1 <= rating <= 5:
        raise _invalid("rating must be between 1 and 5", event_id=event_id)

    return Event(
        id=event_id,
        customer_id=str(customer_id),
        kind=EventKind.REVIEW_CREATED,
        delta=review_points(rating),
        rating=rating,
        received_at=received_at,
    )
