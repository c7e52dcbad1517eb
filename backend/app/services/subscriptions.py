"""Application wiring for the subscription core."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..subscriptions import (
    EntitlementStore,
    EventIngester,
    LocalSandboxProviderGateway,
    PlanCatalog,
    PostgresEntitlementStore,
    ProviderGateway,
    StripeEventVerifier,
    StripeProviderGateway,
    SubscriptionConfig,
    SubscriptionCoordinator,
    UserLockRegistry,
    load_subscription_config,
)


logger = logging.getLogger("subscriptions")


@lru_cache(maxsize=1)
def get_subscription_config() -> SubscriptionConfig:
    return load_subscription_config()


@lru_cache(maxsize=1)
def get_provider_gateway() -> ProviderGateway:
    config = get_subscription_config()
    if config.uses_stripe:
        return StripeProviderGateway(config.stripe_secret_key or "")
    logger.warning("STRIPE_SECRET_KEY not set; using the local sandbox billing provider")
    return LocalSandboxProviderGateway()


def build_subscription_coordinator(
    config: SubscriptionConfig,
    gateway: ProviderGateway,
    store: EntitlementStore,
) -> SubscriptionCoordinator:
    return SubscriptionCoordinator(
        gateway=gateway,
        store=store,
        catalog=PlanCatalog(gateway, tier_marker=config.plan_tier_marker),
        success_url=config.success_url,
        cancel_url=config.cancel_url,
        monthly_tier_price=config.monthly_tier_price,
        other_tier_price=config.other_tier_price,
        locks=UserLockRegistry(enabled=config.serialize_user_writes),
    )


@lru_cache(maxsize=1)
def get_subscription_coordinator() -> SubscriptionCoordinator:
    return build_subscription_coordinator(
        get_subscription_config(),
        get_provider_gateway(),
        PostgresEntitlementStore(),
    )


@lru_cache(maxsize=1)
def get_event_ingester() -> EventIngester:
    config = get_subscription_config()
    return EventIngester(
        coordinator=get_subscription_coordinator(),
        gateway=get_provider_gateway(),
        verifier=StripeEventVerifier(config.stripe_webhook_secret),
    )


__all__ = [
    "build_subscription_coordinator",
    "get_event_ingester",
    "get_provider_gateway",
    "get_subscription_config",
    "get_subscription_coordinator",
]
