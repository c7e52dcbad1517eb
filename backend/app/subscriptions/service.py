"""Coordinates checkout, cancellation and reconciliation with the provider."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .catalog import PlanCatalog
from .exceptions import (
    ActiveSubscriptionExists,
    CustomerMismatch,
    NoActiveSubscription,
    ProviderUnavailable,
    RemoteCancelFailed,
    SubscriptionNotFound,
    UserNotFound,
)
from .gateway import ProviderGateway
from .locks import UserLockRegistry
from .models import (
    CheckoutRedirect,
    PlanLine,
    SubscriberProfile,
    SubscriptionDetail,
    SubscriptionItem,
    SubscriptionSummary,
    UserEntitlement,
    epoch_to_datetime,
    format_minor_amount,
)
from .store import EntitlementStore

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionCoordinator:
    """Keeps user entitlements in line with provider subscriptions.

    Checkout only records intent: the entitlement is committed later by
    :meth:`reconcile` once the provider confirms payment. Cancellation
    clears the entitlement locally before the remote cancel and does not
    roll back if the provider call fails.
    """

    gateway: ProviderGateway
    store: EntitlementStore
    catalog: PlanCatalog
    success_url: str
    cancel_url: str
    monthly_tier_price: str = "5"
    other_tier_price: str = "50"
    locks: UserLockRegistry = field(default_factory=UserLockRegistry)

    def _require_user(self, user_id: str) -> UserEntitlement:
        user = self.store.find_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"User {user_id} not found", detail={"user_id": user_id})
        return user

    def ensure_customer(self, user: UserEntitlement) -> str:
        """Return the user's provider customer id, creating it on first use.

        The returned id is always the one stored on the user: when another
        writer linked a customer first, the freshly created one is discarded.
        Callers hold the user's lock.
        """

        if user.customer_id:
            return user.customer_id

        customer = self.gateway.create_customer(user.email)
        self.store.set_entitlement(user.subscription_id, customer.id, user.email, user.plan_id)
        stored = self.store.find_user_by_id(user.user_id)
        stored_customer_id = stored.customer_id if stored and stored.customer_id else customer.id
        if stored_customer_id != customer.id:
            logger.warning(
                "Discarded provider customer %s for user %s; %s was already linked",
                customer.id,
                user.user_id,
                stored_customer_id,
            )
            return stored_customer_id

        logger.info("Created provider customer %s for user %s", customer.id, user.user_id)
        return customer.id

    def checkout_subscription(self, plan_id: str, user_id: str) -> CheckoutRedirect:
        with self.locks.hold(user_id):
            user = self._require_user(user_id)
            plan = self.catalog.get_plan(plan_id)
            if user.subscription_id:
                raise ActiveSubscriptionExists(
                    "User already has an active subscription",
                    detail={"subscription_id": user.subscription_id},
                )

            customer_id = self.ensure_customer(user)
            session = self.gateway.create_checkout_session(
                customer_id=customer_id,
                plan_id=plan.id,
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                metadata={"user_id": user.user_id, "plan_id": plan.id},
            )

        logger.info(
            "Checkout session %s created user=%s plan=%s customer=%s",
            session.id,
            user_id,
            plan.id,
            customer_id,
        )
        return CheckoutRedirect(url=session.url)

    def cancel_subscription(self, user_id: str) -> None:
        with self.locks.hold(user_id):
            user = self._require_user(user_id)
            subscription_id = user.subscription_id
            if not subscription_id:
                raise NoActiveSubscription("User has no subscription", detail={"user_id": user_id})

            # Guards against a local id the provider no longer knows.
            self.get_subscription(subscription_id)

            self.store.set_entitlement(None, user.customer_id, user.email, None)
            try:
                self.gateway.cancel_subscription(subscription_id)
            except ProviderUnavailable as exc:
                logger.warning(
                    "Remote cancel failed after local clear subscription=%s user=%s",
                    subscription_id,
                    user_id,
                )
                raise RemoteCancelFailed(
                    "Subscription cleared locally but the provider cancel failed",
                    detail={"subscription_id": subscription_id, "user_id": user_id},
                ) from exc

        logger.info("Canceled subscription %s for user %s", subscription_id, user_id)

    def _line_price(self, item: SubscriptionItem) -> str:
        if item.amount is not None:
            return format_minor_amount(item.amount)
        return self.monthly_tier_price if item.interval == "month" else self.other_tier_price

    def list_all_subscriptions(self) -> List[SubscriptionSummary]:
        summaries: List[SubscriptionSummary] = []
        for snapshot in self.gateway.list_subscriptions():
            user = self.store.find_user_by_customer_id(snapshot.customer_id)
            if user is None:
                logger.debug(
                    "Skipping subscription %s for unknown customer %s",
                    snapshot.id,
                    snapshot.customer_id,
                )
                continue

            summaries.append(
                SubscriptionSummary(
                    id=snapshot.id,
                    created_at=epoch_to_datetime(snapshot.created),
                    current_period_start=epoch_to_datetime(snapshot.current_period_start),
                    current_period_end=epoch_to_datetime(snapshot.current_period_end),
                    status=snapshot.status,
                    plan=[
                        PlanLine(interval=item.interval, currency=item.currency, price=self._line_price(item))
                        for item in snapshot.items
                    ],
                    user=SubscriberProfile.from_entitlement(user),
                )
            )
        return summaries

    def get_subscription(self, subscription_id: str) -> SubscriptionDetail:
        for snapshot in self.gateway.list_subscriptions():
            if snapshot.id == subscription_id:
                return SubscriptionDetail.from_snapshot(snapshot)
        raise SubscriptionNotFound(
            f"Subscription {subscription_id} not found",
            detail={"subscription_id": subscription_id},
        )

    def list_user_subscriptions(self, user_id: str) -> List[SubscriptionDetail]:
        user = self._require_user(user_id)
        if not user.customer_id:
            return []
        return [
            SubscriptionDetail.from_snapshot(snapshot)
            for snapshot in self.gateway.list_subscriptions(customer_id=user.customer_id)
        ]

    def _resolve_owner(self, customer_id: str, email: Optional[str]) -> Optional[UserEntitlement]:
        user = self.store.find_user_by_customer_id(customer_id)
        if user is None and email:
            user = self.store.find_user_by_email(email)
        return user

    def reconcile(
        self,
        subscription_id: str,
        customer_id: str,
        email: str,
        plan_id: str,
    ) -> UserEntitlement:
        """Commit a provider-confirmed subscription onto the matching user.

        Safe to repeat and safe to run without a preceding checkout. A fact
        whose customer differs from the one already linked to the user is
        refused with :class:`CustomerMismatch` and nothing is written.
        """

        if not (subscription_id and customer_id and email and plan_id):
            raise ValueError("subscription_id, customer_id, email and plan_id are required")

        user = self._resolve_owner(customer_id, email)
        if user is None:
            raise UserNotFound(
                f"No user for customer {customer_id}",
                detail={"customer_id": customer_id},
            )

        with self.locks.hold(user.user_id):
            current = self.store.find_user_by_id(user.user_id) or user
            if current.customer_id and current.customer_id != customer_id:
                logger.warning(
                    "Customer mismatch while reconciling subscription=%s user=%s stored=%s event=%s",
                    subscription_id,
                    current.user_id,
                    current.customer_id,
                    customer_id,
                )
                raise CustomerMismatch(
                    f"Subscription {subscription_id} belongs to another customer",
                    detail={
                        "subscription_id": subscription_id,
                        "customer_id": customer_id,
                        "user_id": current.user_id,
                    },
                )
            if (
                current.subscription_id == subscription_id
                and current.plan_id == plan_id
                and current.customer_id is not None
            ):
                return current

            self.store.set_entitlement(subscription_id, customer_id, current.email, plan_id)
            updated = self.store.find_user_by_id(current.user_id) or current

        logger.info(
            "Reconciled subscription %s plan=%s for user %s",
            subscription_id,
            plan_id,
            updated.user_id,
        )
        return updated

    def release(self, subscription_id: str, customer_id: str) -> bool:
        """Clear the entitlement when the provider terminated its subscription.

        Returns ``False`` without writing when the user tracks a different
        subscription, so late deletion events never clear a newer one.
        """

        user = self.store.find_user_by_customer_id(customer_id)
        if user is None:
            logger.debug("Release for unknown customer %s ignored", customer_id)
            return False

        with self.locks.hold(user.user_id):
            current = self.store.find_user_by_id(user.user_id) or user
            if current.subscription_id != subscription_id:
                return False
            self.store.set_entitlement(None, current.customer_id, current.email, None)

        logger.info("Released subscription %s for user %s", subscription_id, user.user_id)
        return True


__all__ = ["SubscriptionCoordinator"]
