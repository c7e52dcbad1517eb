"""Webhook ingestion for provider-pushed subscription events."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Protocol

import stripe

from .exceptions import InvalidEvent
from .gateway import ProviderGateway, snapshot_from_payload, to_mapping
from .models import EntitlementFact, IngestOutcome, ProviderEventType, SubscriptionSnapshot
from .service import SubscriptionCoordinator

logger = logging.getLogger(__name__)

_PAID_STATUSES = {"paid", "no_payment_required"}


class EventVerifier(Protocol):
    """Authenticates a raw webhook body and returns the decoded event."""

    def verify(self, payload: bytes, signature: Optional[str]) -> Mapping[str, Any]:
        ...


class StripeEventVerifier:
    """Verifies ``Stripe-Signature`` headers with the endpoint secret."""

    def __init__(self, signing_secret: Optional[str]) -> None:
        self._signing_secret = signing_secret

    def verify(self, payload: bytes, signature: Optional[str]) -> Mapping[str, Any]:
        if not self._signing_secret:
            logger.error("Webhook received but STRIPE_WEBHOOK_SECRET is not configured")
            raise InvalidEvent("Webhook signing secret is not configured")
        if not signature:
            raise InvalidEvent("Missing signature header")

        try:
            event = stripe.Webhook.construct_event(
                payload=payload,
                sig_header=signature,
                secret=self._signing_secret,
            )
        except stripe.SignatureVerificationError as exc:
            logger.warning("Invalid Stripe signature: %s", exc)
            raise InvalidEvent("Invalid signature") from exc
        except ValueError as exc:
            logger.warning("Unparseable Stripe webhook payload: %s", exc)
            raise InvalidEvent("Invalid payload") from exc
        return to_mapping(event)


def _required(value: Any, name: str) -> str:
    if value is None or value == "":
        raise InvalidEvent(f"Event is missing {name}", detail={"field": name})
    if isinstance(value, Mapping):
        identifier = value.get("id")
        if not identifier:
            raise InvalidEvent(f"Event is missing {name}", detail={"field": name})
        return str(identifier)
    return str(value)


class EventIngester:
    """Turns verified provider events into reconcile and release calls."""

    def __init__(
        self,
        coordinator: SubscriptionCoordinator,
        gateway: ProviderGateway,
        verifier: EventVerifier,
    ) -> None:
        self._coordinator = coordinator
        self._gateway = gateway
        self._verifier = verifier

    def ingest(self, payload: bytes, signature: Optional[str]) -> IngestOutcome:
        """Verify a raw webhook delivery and process it."""

        event = self._verifier.verify(payload, signature)
        return self.handle_event(event)

    def handle_event(self, event: Mapping[str, Any]) -> IngestOutcome:
        if not isinstance(event, Mapping):
            raise InvalidEvent("Event must be an object")

        event_type = event.get("type")
        if not isinstance(event_type, str) or not event_type:
            raise InvalidEvent("Event type missing")

        data = event.get("data")
        obj = data.get("object") if isinstance(data, Mapping) else None
        if not isinstance(obj, Mapping):
            raise InvalidEvent("Event data.object missing", detail={"event_type": event_type})

        if event_type == ProviderEventType.CHECKOUT_SESSION_COMPLETED.value:
            return self._handle_checkout_completed(obj)
        if event_type in {
            ProviderEventType.SUBSCRIPTION_CREATED.value,
            ProviderEventType.SUBSCRIPTION_UPDATED.value,
        }:
            return self._handle_subscription_changed(obj)
        if event_type == ProviderEventType.SUBSCRIPTION_DELETED.value:
            return self._handle_subscription_deleted(obj)

        logger.debug("Ignoring provider event %s (%s)", event.get("id"), event_type)
        return IngestOutcome.IGNORED

    def _lookup_email(self, customer_id: str) -> str:
        customer = self._gateway.retrieve_customer(customer_id)
        return _required(customer.email if customer else None, "email")

    def _reconcile(self, fact: EntitlementFact) -> IngestOutcome:
        self._coordinator.reconcile(
            fact.subscription_id,
            fact.customer_id,
            fact.email,
            fact.plan_id,
        )
        return IngestOutcome.RECONCILED

    def _handle_checkout_completed(self, session: Mapping[str, Any]) -> IngestOutcome:
        if session.get("mode") != "subscription":
            return IngestOutcome.IGNORED
        if session.get("payment_status") not in _PAID_STATUSES:
            logger.info("Checkout session %s completed without payment", session.get("id"))
            return IngestOutcome.IGNORED

        subscription_id = _required(session.get("subscription"), "subscription")
        customer_id = _required(session.get("customer"), "customer")

        details = session.get("customer_details")
        email = (details.get("email") if isinstance(details, Mapping) else None) or session.get("customer_email")
        if not email:
            email = self._lookup_email(customer_id)

        metadata = session.get("metadata")
        plan_id = metadata.get("plan_id") if isinstance(metadata, Mapping) else None
        if not plan_id:
            snapshot = self._gateway.retrieve_subscription(subscription_id)
            plan_id = snapshot.plan_ids[0] if snapshot and snapshot.plan_ids else None

        fact = EntitlementFact(
            subscription_id=subscription_id,
            customer_id=customer_id,
            email=str(email),
            plan_id=_required(plan_id, "plan_id"),
        )
        return self._reconcile(fact)

    def _snapshot(self, obj: Mapping[str, Any]) -> SubscriptionSnapshot:
        try:
            return snapshot_from_payload(obj)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidEvent("Malformed subscription object") from exc

    def _handle_subscription_changed(self, obj: Mapping[str, Any]) -> IngestOutcome:
        snapshot = self._snapshot(obj)
        if snapshot.status != "active":
            return IngestOutcome.IGNORED

        plan_id = _required(snapshot.plan_ids[0] if snapshot.plan_ids else None, "plan_id")
        fact = EntitlementFact(
            subscription_id=snapshot.id,
            customer_id=snapshot.customer_id,
            email=self._lookup_email(snapshot.customer_id),
            plan_id=plan_id,
        )
        return self._reconcile(fact)

    def _handle_subscription_deleted(self, obj: Mapping[str, Any]) -> IngestOutcome:
        snapshot = self._snapshot(obj)
        if self._coordinator.release(snapshot.id, snapshot.customer_id):
            return IngestOutcome.RELEASED
        return IngestOutcome.IGNORED


__all__ = ["EventIngester", "EventVerifier", "StripeEventVerifier"]
