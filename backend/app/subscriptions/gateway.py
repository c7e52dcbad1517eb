"""Facade over the billing provider's remote API."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

import stripe

from .exceptions import ProviderUnavailable
from .models import (
    Plan,
    ProviderCheckoutSession,
    ProviderCustomer,
    SubscriptionItem,
    SubscriptionSnapshot,
)

logger = logging.getLogger(__name__)

APP_NAME = "Subscriptions"


class ProviderGateway(Protocol):
    """Provider operations required by the subscription core.

    Every call is a pass-through to the provider with no local caching.
    Implementations raise :class:`ProviderUnavailable` when the provider
    cannot be reached and return ``None`` from retrieve operations when the
    provider reports the resource as missing.
    """

    def create_customer(self, email: str) -> ProviderCustomer:
        ...

    def retrieve_customer(self, customer_id: str) -> Optional[ProviderCustomer]:
        ...

    def list_plans(self) -> List[Plan]:
        ...

    def retrieve_plan(self, plan_id: str) -> Optional[Plan]:
        ...

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> ProviderCheckoutSession:
        ...

    def list_subscriptions(self, customer_id: Optional[str] = None) -> List[SubscriptionSnapshot]:
        ...

    def retrieve_subscription(self, subscription_id: str) -> Optional[SubscriptionSnapshot]:
        ...

    def cancel_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        ...


def _reference_id(value: Any) -> Optional[str]:
    """Return the identifier of a possibly expanded provider reference."""

    if value is None:
        return None
    if isinstance(value, Mapping):
        identifier = value.get("id")
        return str(identifier) if identifier else None
    return str(value)


def plan_from_payload(payload: Mapping[str, Any]) -> Plan:
    return Plan(
        id=str(payload["id"]),
        amount=int(payload.get("amount") or 0),
        currency=str(payload.get("currency") or ""),
        interval=str(payload.get("interval") or ""),
        nickname=payload.get("nickname"),
    )


def _item_from_payload(payload: Mapping[str, Any]) -> Optional[SubscriptionItem]:
    plan = payload.get("plan")
    if isinstance(plan, Mapping) and plan.get("id"):
        return SubscriptionItem(
            plan_id=str(plan["id"]),
            amount=plan.get("amount"),
            currency=plan.get("currency"),
            interval=plan.get("interval"),
        )

    price = payload.get("price")
    if isinstance(price, Mapping) and price.get("id"):
        recurring = price.get("recurring") or {}
        return SubscriptionItem(
            plan_id=str(price["id"]),
            amount=price.get("unit_amount"),
            currency=price.get("currency"),
            interval=recurring.get("interval") if isinstance(recurring, Mapping) else None,
        )
    return None


def snapshot_from_payload(payload: Mapping[str, Any]) -> SubscriptionSnapshot:
    """Normalize a provider subscription object.

    Raises ``KeyError``/``ValueError`` when the object lacks an id or customer
    or carries items that are not objects.
    """

    subscription_id = payload["id"]
    customer_id = _reference_id(payload.get("customer"))
    if not subscription_id or not customer_id:
        raise ValueError("subscription payload requires id and customer")

    raw_items = payload.get("items") or {}
    item_payloads = raw_items.get("data", []) if isinstance(raw_items, Mapping) else list(raw_items)
    if not all(isinstance(entry, Mapping) for entry in item_payloads):
        raise ValueError("subscription items must be objects")
    items = [item for item in (_item_from_payload(entry) for entry in item_payloads) if item]

    # Newer API versions report the billing period on the items only.
    period_start = payload.get("current_period_start")
    period_end = payload.get("current_period_end")
    if (period_start is None or period_end is None) and item_payloads:
        first = item_payloads[0]
        period_start = period_start if period_start is not None else first.get("current_period_start")
        period_end = period_end if period_end is not None else first.get("current_period_end")

    return SubscriptionSnapshot(
        id=str(subscription_id),
        status=str(payload.get("status") or ""),
        customer_id=customer_id,
        current_period_start=period_start,
        current_period_end=period_end,
        created=payload.get("created"),
        latest_invoice=_reference_id(payload.get("latest_invoice")),
        items=items,
    )


def to_mapping(obj: Any) -> Dict[str, Any]:
    """Convert an SDK object into plain nested dictionaries."""

    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeProviderGateway:
    """Live gateway backed by the Stripe SDK."""

    def __init__(self, api_key: str, *, payment_method_types: tuple[str, ...] = ("card",)) -> None:
        if not api_key:
            raise ValueError("api_key must be provided")
        self._api_key = api_key
        self._payment_method_types = list(payment_method_types)
        stripe.app_info = {"name": APP_NAME, "version": "1.0.0"}

    def _unavailable(self, operation: str, exc: Exception) -> ProviderUnavailable:
        logger.error("Stripe %s failed: %s", operation, exc)
        return ProviderUnavailable(
            f"Billing provider call failed: {operation}",
            detail={"operation": operation},
        )

    def create_customer(self, email: str) -> ProviderCustomer:
        try:
            customer = stripe.Customer.create(email=email, api_key=self._api_key)
        except stripe.StripeError as exc:
            raise self._unavailable("create_customer", exc) from exc
        return ProviderCustomer(id=customer.id, email=email)

    def retrieve_customer(self, customer_id: str) -> Optional[ProviderCustomer]:
        try:
            customer = to_mapping(stripe.Customer.retrieve(customer_id, api_key=self._api_key))
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                return None
            raise self._unavailable("retrieve_customer", exc) from exc
        except stripe.StripeError as exc:
            raise self._unavailable("retrieve_customer", exc) from exc
        if customer.get("deleted"):
            return None
        return ProviderCustomer(id=str(customer["id"]), email=customer.get("email"))

    def list_plans(self) -> List[Plan]:
        try:
            plans = stripe.Plan.list(limit=100, api_key=self._api_key)
            return [plan_from_payload(to_mapping(plan)) for plan in plans.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise self._unavailable("list_plans", exc) from exc

    def retrieve_plan(self, plan_id: str) -> Optional[Plan]:
        try:
            plan = stripe.Plan.retrieve(plan_id, api_key=self._api_key)
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                return None
            raise self._unavailable("retrieve_plan", exc) from exc
        except stripe.StripeError as exc:
            raise self._unavailable("retrieve_plan", exc) from exc
        return plan_from_payload(to_mapping(plan))

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> ProviderCheckoutSession:
        params: Dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": self._payment_method_types,
            "customer": customer_id,
            "line_items": [
                {
                    "price": plan_id,
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        }
        try:
            session = stripe.checkout.Session.create(api_key=self._api_key, **params)
        except stripe.StripeError as exc:
            raise self._unavailable("create_checkout_session", exc) from exc
        return ProviderCheckoutSession(id=session.id, url=session.url)

    def list_subscriptions(self, customer_id: Optional[str] = None) -> List[SubscriptionSnapshot]:
        params: Dict[str, Any] = {"status": "all", "limit": 100}
        if customer_id:
            params["customer"] = customer_id
        try:
            subscriptions = stripe.Subscription.list(api_key=self._api_key, **params)
            return [snapshot_from_payload(to_mapping(sub)) for sub in subscriptions.auto_paging_iter()]
        except stripe.StripeError as exc:
            raise self._unavailable("list_subscriptions", exc) from exc

    def retrieve_subscription(self, subscription_id: str) -> Optional[SubscriptionSnapshot]:
        try:
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self._api_key)
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                return None
            raise self._unavailable("retrieve_subscription", exc) from exc
        except stripe.StripeError as exc:
            raise self._unavailable("retrieve_subscription", exc) from exc
        return snapshot_from_payload(to_mapping(subscription))

    def cancel_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        try:
            subscription = stripe.Subscription.cancel(subscription_id, api_key=self._api_key)
        except stripe.StripeError as exc:
            raise self._unavailable("cancel_subscription", exc) from exc
        return snapshot_from_payload(to_mapping(subscription))


__all__ = [
    "ProviderGateway",
    "StripeProviderGateway",
    "plan_from_payload",
    "snapshot_from_payload",
    "to_mapping",
]
