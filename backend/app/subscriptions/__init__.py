"""Subscription lifecycle synchronization with the billing provider."""

from .catalog import PlanCatalog
from .config import SubscriptionConfig, load_subscription_config
from .events import EventIngester, EventVerifier, StripeEventVerifier
from .exceptions import (
    ActiveSubscriptionExists,
    CustomerMismatch,
    InvalidEvent,
    NoActiveSubscription,
    PlanNotFound,
    ProviderUnavailable,
    RemoteCancelFailed,
    SubscriptionError,
    SubscriptionNotFound,
    UserNotFound,
)
from .gateway import ProviderGateway, StripeProviderGateway
from .locks import UserLockRegistry
from .models import (
    CheckoutRedirect,
    EntitlementFact,
    IngestOutcome,
    Plan,
    PlanLine,
    ProviderCheckoutSession,
    ProviderCustomer,
    ProviderEventType,
    SubscriberProfile,
    SubscriptionDetail,
    SubscriptionItem,
    SubscriptionSnapshot,
    SubscriptionSummary,
    UserEntitlement,
)
from .sandbox import LocalSandboxProviderGateway
from .service import SubscriptionCoordinator
from .store import EntitlementStore, PostgresEntitlementStore

__all__ = [
    "ActiveSubscriptionExists",
    "CustomerMismatch",
    "CheckoutRedirect",
    "EntitlementFact",
    "EntitlementStore",
    "EventIngester",
    "EventVerifier",
    "IngestOutcome",
    "InvalidEvent",
    "LocalSandboxProviderGateway",
    "NoActiveSubscription",
    "Plan",
    "PlanCatalog",
    "PlanLine",
    "PlanNotFound",
    "PostgresEntitlementStore",
    "ProviderCheckoutSession",
    "ProviderCustomer",
    "ProviderEventType",
    "ProviderGateway",
    "ProviderUnavailable",
    "RemoteCancelFailed",
    "StripeEventVerifier",
    "StripeProviderGateway",
    "SubscriberProfile",
    "SubscriptionConfig",
    "SubscriptionCoordinator",
    "SubscriptionDetail",
    "SubscriptionError",
    "SubscriptionItem",
    "SubscriptionNotFound",
    "SubscriptionSnapshot",
    "SubscriptionSummary",
    "UserEntitlement",
    "UserLockRegistry",
    "UserNotFound",
    "load_subscription_config",
]
