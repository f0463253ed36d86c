"""Redemption: consumes the free product entitlement."""

import logging

from rewardman.exceptions import RewardmanError
from rewardman.models import EntryType, FulfillmentOrder, LedgerEntry, LoyaltyAccount, fulfillment_key
from rewardman.protocols import FulfillmentBackend
from rewardman.services.fulfillment import FulfillmentDispatcher
from rewardman.services.ledger import LedgerService
from rewardman.signals import entitlement_redeemed
from rewardman.tiers import FREE_PRODUCT_TIER, REDEMPTION_COST

logger = logging.getLogger(__name__)


class RedemptionService:
    """
    Service for entitlement redemption.

    Runs under the same per-account critical section as earning, so a
    redemption never races a concurrent earn or tier issuance.
    """

    @classmethod
    def redeem(
        cls,
        customer_id: str,
        product_ref: str = "",
        fulfillment_backend: FulfillmentBackend | None = None,
    ) -> int:
        """
        Redeem the free product entitlement.

        Checks, in order: entitlement already consumed, balance below the
        redemption cost, free product tier never issued.

        With a product_ref, a FulfillmentOrder is recorded in the same
        transaction and the order is placed after commit. An order that
        fails to place stays pending for the sweep.

        Args:
            customer_id: Customer id
            product_ref: Chosen product variant
            fulfillment_backend: FulfillmentBackend override

        Returns:
            New balance

        Raises:
            RewardmanError: ENTITLEMENT_ALREADY_CONSUMED, INSUFFICIENT_POINTS,
                LEDGER_CONFLICT
        """
        try:
            new_balance = LedgerService.serialized(
                customer_id,
                lambda account: cls._redeem_locked(account, product_ref),
            )
        except RewardmanError as exc:
            if exc.code != "ACCOUNT_NOT_FOUND":
                raise
            raise RewardmanError(
                "INSUFFICIENT_POINTS",
                customer_id=customer_id,
                available=0,
                requested=REDEMPTION_COST,
            )

        logger.info("Redeemed free product %r for %s, balance %d", product_ref, customer_id, new_balance)
        entitlement_redeemed.send(
            sender=LoyaltyAccount,
            customer_id=customer_id,
            product_ref=product_ref,
            new_balance=new_balance,
        )
        if product_ref:
            FulfillmentDispatcher.fulfill(customer_id, backend=fulfillment_backend)
        return new_balance

    @classmethod
    def _redeem_locked(cls, account: LoyaltyAccount, product_ref: str) -> int:
        if account.entitlement_consumed:
            raise RewardmanError("ENTITLEMENT_ALREADY_CONSUMED", customer_id=account.customer_id)

        if account.balance < REDEMPTION_COST:
            raise RewardmanError(
                "INSUFFICIENT_POINTS",
                customer_id=account.customer_id,
                available=account.balance,
                requested=REDEMPTION_COST,
            )

        if not account.has_tier(FREE_PRODUCT_TIER.id):
            raise RewardmanError(
                "ENTITLEMENT_ALREADY_CONSUMED",
                message="Free product entitlement was never issued",
                customer_id=account.customer_id,
            )

        new_balance = account.balance - REDEMPTION_COST
        LedgerService.save_versioned(account, balance=new_balance, entitlement_consumed=True)
        LedgerEntry.objects.create(
            account=account,
            entry_type=EntryType.REDEEM,
            points=-REDEMPTION_COST,
            balance_after=new_balance,
            reference=f"free_product:{product_ref}" if product_ref else "free_product",
        )
        if product_ref:
            FulfillmentOrder.objects.create(
                account=account,
                product_ref=product_ref,
                idempotency_key=fulfillment_key(account.customer_id),
            )
        return new_balance
