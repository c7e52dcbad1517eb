"""In-memory provider used for local development and tests."""
from __future__ import annotations

import time
from itertools import count
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .exceptions import ProviderUnavailable
from .models import (
    Plan,
    ProviderCheckoutSession,
    ProviderCustomer,
    SubscriptionItem,
    SubscriptionSnapshot,
)

_PERIOD_SECONDS = {"day": 86400, "week": 7 * 86400, "month": 30 * 86400, "year": 365 * 86400}


class LocalSandboxProviderGateway:
    """Deterministic provider double.

    Identifiers draw on one shared counter (``cus_1``, ``cs_2``, ``sub_3``) and
    every call is appended to :attr:`calls`. Operation names placed in
    :attr:`fail_operations` raise :class:`ProviderUnavailable`.
    """

    def __init__(self, plans: Iterable[Plan] = (), *, base_url: str = "https://billing.local") -> None:
        self.base_url = base_url.rstrip("/")
        self.plans: Dict[str, Plan] = {plan.id: plan for plan in plans}
        self.customers: Dict[str, ProviderCustomer] = {}
        self.sessions: Dict[str, Dict[str, object]] = {}
        self.subscriptions: Dict[str, SubscriptionSnapshot] = {}
        self.calls: List[Tuple[str, object]] = []
        self.fail_operations: Set[str] = set()
        self._ids = count(1)

    def _record(self, operation: str, argument: object = None) -> None:
        self.calls.append((operation, argument))
        if operation in self.fail_operations:
            raise ProviderUnavailable(
                f"Billing provider call failed: {operation}",
                detail={"operation": operation},
            )

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def operations(self) -> List[str]:
        return [operation for operation, _ in self.calls]

    def add_plan(self, plan: Plan) -> Plan:
        self.plans[plan.id] = plan
        return plan

    def add_subscription(self, snapshot: SubscriptionSnapshot) -> SubscriptionSnapshot:
        self.subscriptions[snapshot.id] = snapshot
        return snapshot

    def create_customer(self, email: str) -> ProviderCustomer:
        self._record("create_customer", email)
        customer = ProviderCustomer(id=self._next_id("cus"), email=email)
        self.customers[customer.id] = customer
        return customer

    def retrieve_customer(self, customer_id: str) -> Optional[ProviderCustomer]:
        self._record("retrieve_customer", customer_id)
        return self.customers.get(customer_id)

    def list_plans(self) -> List[Plan]:
        self._record("list_plans")
        return list(self.plans.values())

    def retrieve_plan(self, plan_id: str) -> Optional[Plan]:
        self._record("retrieve_plan", plan_id)
        return self.plans.get(plan_id)

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        plan_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> ProviderCheckoutSession:
        session_id = self._next_id("cs")
        payload = {
            "id": session_id,
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": plan_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(metadata),
        }
        self._record("create_checkout_session", payload)
        self.sessions[session_id] = payload
        return ProviderCheckoutSession(id=session_id, url=f"{self.base_url}/checkout/{session_id}")

    def complete_checkout(self, session_id: str, *, now: Optional[int] = None) -> SubscriptionSnapshot:
        """Simulate the customer paying for a checkout session."""

        session = self.sessions[session_id]
        plan_id = session["line_items"][0]["price"]  # type: ignore[index]
        plan = self.plans.get(str(plan_id))
        started = int(now if now is not None else time.time())
        interval = plan.interval if plan else "month"
        snapshot = SubscriptionSnapshot(
            id=self._next_id("sub"),
            status="active",
            customer_id=str(session["customer"]),
            current_period_start=started,
            current_period_end=started + _PERIOD_SECONDS.get(interval, _PERIOD_SECONDS["month"]),
            created=started,
            latest_invoice=self._next_id("in"),
            items=[
                SubscriptionItem(
                    plan_id=str(plan_id),
                    amount=plan.amount if plan else None,
                    currency=plan.currency if plan else None,
                    interval=interval,
                )
            ],
        )
        session["subscription"] = snapshot.id
        return self.add_subscription(snapshot)

    def list_subscriptions(self, customer_id: Optional[str] = None) -> List[SubscriptionSnapshot]:
        self._record("list_subscriptions", customer_id)
        return [
            snapshot
            for snapshot in self.subscriptions.values()
            if customer_id is None or snapshot.customer_id == customer_id
        ]

    def retrieve_subscription(self, subscription_id: str) -> Optional[SubscriptionSnapshot]:
        self._record("retrieve_subscription", subscription_id)
        return self.subscriptions.get(subscription_id)

    def cancel_subscription(self, subscription_id: str) -> SubscriptionSnapshot:
        self._record("cancel_subscription", subscription_id)
        snapshot = self.subscriptions.get(subscription_id)
        if snapshot is None:
            raise ProviderUnavailable(
                f"No such subscription: {subscription_id}",
                detail={"operation": "cancel_subscription"},
            )
        canceled = snapshot.model_copy(update={"status": "canceled"})
        self.subscriptions[subscription_id] = canceled
        return canceled


__all__ = ["LocalSandboxProviderGateway"]
