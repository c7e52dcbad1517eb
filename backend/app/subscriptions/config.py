"""Subscription configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class SubscriptionConfig:
    """Deployment settings for the subscription core."""

    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    success_url: str
    cancel_url: str
    plan_tier_marker: str
    monthly_tier_price: str
    other_tier_price: str
    serialize_user_writes: bool

    @property
    def uses_stripe(self) -> bool:
        return bool(self.stripe_secret_key)


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def load_subscription_config(env: Optional[Mapping[str, str]] = None) -> SubscriptionConfig:
    """Load :class:`SubscriptionConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    app_base_url = (env_mapping.get("APP_BASE_URL") or "http://localhost:5173").rstrip("/")
    default_redirect = f"{app_base_url}/subscription"

    return SubscriptionConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        success_url=env_mapping.get("SUBSCRIPTION_SUCCESS_URL") or default_redirect,
        cancel_url=env_mapping.get("SUBSCRIPTION_CANCEL_URL") or default_redirect,
        plan_tier_marker=env_mapping.get("SUBSCRIPTION_PLAN_TIER_MARKER", "5").strip(),
        monthly_tier_price=env_mapping.get("SUBSCRIPTION_MONTHLY_TIER_PRICE") or "5",
        other_tier_price=env_mapping.get("SUBSCRIPTION_OTHER_TIER_PRICE") or "50",
        serialize_user_writes=_to_bool(env_mapping.get("SUBSCRIPTION_SERIALIZE_USER_WRITES"), default=True),
    )


__all__ = ["SubscriptionConfig", "load_subscription_config"]
