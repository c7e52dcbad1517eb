from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import pytest

from backend.app.subscriptions import (
    LocalSandboxProviderGateway,
    Plan,
    PlanCatalog,
    SubscriptionCoordinator,
    UserEntitlement,
    UserLockRegistry,
    UserNotFound,
)


class InMemoryEntitlementStore:
    def __init__(self) -> None:
        self.users: Dict[str, UserEntitlement] = {}
        self.writes: List[Tuple[Optional[str], Optional[str], str, Optional[str]]] = []

    def add(self, user: UserEntitlement) -> UserEntitlement:
        self.users[user.user_id] = user
        return user

    def find_user_by_id(self, user_id: str) -> Optional[UserEntitlement]:
        return self.users.get(user_id)

    def find_user_by_customer_id(self, customer_id: str) -> Optional[UserEntitlement]:
        for user in self.users.values():
            if user.customer_id == customer_id:
                return user
        return None

    def find_user_by_email(self, email: str) -> Optional[UserEntitlement]:
        for user in self.users.values():
            if user.email.lower() == email.lower():
                return user
        return None

    def set_entitlement(
        self,
        subscription_id: Optional[str],
        customer_id: Optional[str],
        email: str,
        plan_id: Optional[str],
    ) -> None:
        user = self.find_user_by_email(email)
        if user is None:
            raise UserNotFound(f"No user with email {email}", detail={"email": email})
        self.writes.append((subscription_id, customer_id, email, plan_id))
        self.users[user.user_id] = user.model_copy(
            update={
                "subscription_id": subscription_id,
                "plan_id": plan_id,
                "customer_id": user.customer_id or customer_id,
            }
        )


MONTHLY_PLAN = Plan(id="p1", amount=500, currency="usd", interval="month")
YEARLY_PLAN = Plan(id="p2", amount=5000, currency="usd", interval="year")
PREMIUM_PLAN = Plan(id="p3", amount=1000, currency="usd", interval="month")


@pytest.fixture
def gateway() -> LocalSandboxProviderGateway:
    return LocalSandboxProviderGateway([MONTHLY_PLAN, YEARLY_PLAN, PREMIUM_PLAN])


@pytest.fixture
def store() -> InMemoryEntitlementStore:
    return InMemoryEntitlementStore()


@pytest.fixture
def coordinator(gateway, store) -> SubscriptionCoordinator:
    return SubscriptionCoordinator(
        gateway=gateway,
        store=store,
        catalog=PlanCatalog(gateway, tier_marker="5"),
        success_url="https://app.test/subscription",
        cancel_url="https://app.test/subscription",
        locks=UserLockRegistry(),
    )
