"""Domain models for subscription synchronization."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


def format_minor_amount(amount: int) -> str:
    """Render a minor currency amount as a two decimal price string."""

    return f"{amount / 100:.2f}"


def epoch_to_datetime(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def epoch_to_date(value: Optional[int]) -> Optional[date]:
    moment = epoch_to_datetime(value)
    return moment.date() if moment else None


class UserEntitlement(BaseModel):
    """Billing fields of an internal user record."""

    user_id: str
    email: str
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    plan_id: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def has_subscription(self) -> bool:
        return self.subscription_id is not None

    @property
    def is_consistent(self) -> bool:
        """Return ``True`` when subscription, plan and customer agree."""

        if (self.subscription_id is None) != (self.plan_id is None):
            return False
        if self.subscription_id is not None and self.customer_id is None:
            return False
        return True


class Plan(BaseModel):
    """Provider-defined price unit."""

    id: str
    amount: int = Field(ge=0, description="Price in minor currency units")
    currency: str
    interval: str
    nickname: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def display_price(self) -> str:
        return format_minor_amount(self.amount)

    @property
    def price(self) -> float:
        return round(self.amount / 100, 2)

    @property
    def label(self) -> str:
        return f"{self.display_price} {self.currency}/{self.interval}"


class ProviderCustomer(BaseModel):
    id: str
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ProviderCheckoutSession(BaseModel):
    id: str
    url: str

    model_config = ConfigDict(frozen=True)


class SubscriptionItem(BaseModel):
    """Single priced line of a provider subscription."""

    plan_id: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    interval: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SubscriptionSnapshot(BaseModel):
    """Provider's authoritative view of a subscription at call time."""

    id: str
    status: str
    customer_id: str
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    created: Optional[int] = None
    latest_invoice: Optional[str] = None
    items: List[SubscriptionItem] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def plan_ids(self) -> List[str]:
        return [item.plan_id for item in self.items]


class SubscriptionDetail(BaseModel):
    """Normalized subscription view with day-precision period dates."""

    id: str
    current_period_start: Optional[date] = None
    current_period_end: Optional[date] = None
    status: str
    latest_invoice: Optional[str] = None
    customer: str

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_snapshot(cls, snapshot: SubscriptionSnapshot) -> "SubscriptionDetail":
        return cls(
            id=snapshot.id,
            current_period_start=epoch_to_date(snapshot.current_period_start),
            current_period_end=epoch_to_date(snapshot.current_period_end),
            status=snapshot.status,
            latest_invoice=snapshot.latest_invoice,
            customer=snapshot.customer_id,
        )


class PlanLine(BaseModel):
    interval: Optional[str] = None
    currency: Optional[str] = None
    price: str

    model_config = ConfigDict(frozen=True)


class SubscriberProfile(BaseModel):
    id: str
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    role: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_entitlement(cls, user: UserEntitlement) -> "SubscriberProfile":
        return cls(id=user.user_id, name=user.name, email=user.email, phone=user.phone, role=user.role)


class SubscriptionSummary(BaseModel):
    """Administrative audit row joining a provider subscription to its user."""

    id: str
    created_at: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    status: str
    plan: List[PlanLine] = Field(default_factory=list)
    user: SubscriberProfile

    model_config = ConfigDict(frozen=True)


class CheckoutRedirect(BaseModel):
    url: str

    model_config = ConfigDict(frozen=True)


class EntitlementFact(BaseModel):
    """Provider-confirmed fact forwarded from a webhook to reconciliation."""

    subscription_id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    email: str = Field(min_length=1)
    plan_id: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True)


class IngestOutcome(str, Enum):
    """Result of processing a single provider event."""

    RECONCILED = "reconciled"
    RELEASED = "released"
    IGNORED = "ignored"


class ProviderEventType(str, Enum):
    """Provider event types that affect entitlements."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


__all__ = [
    "CheckoutRedirect",
    "EntitlementFact",
    "IngestOutcome",
    "Plan",
    "PlanLine",
    "ProviderCheckoutSession",
    "ProviderCustomer",
    "ProviderEventType",
    "SubscriberProfile",
    "SubscriptionDetail",
    "SubscriptionItem",
    "SubscriptionSnapshot",
    "SubscriptionSummary",
    "UserEntitlement",
    "epoch_to_date",
    "epoch_to_datetime",
    "format_minor_amount",
]
