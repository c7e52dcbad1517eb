"""Typed failures raised by the subscription synchronization core."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass(eq=False)
class SubscriptionError(Exception):
    """Base class for failures surfaced to API callers."""

    code: ClassVar[str] = "subscription_error"
    status_code: ClassVar[int] = status.HTTP_400_BAD_REQUEST

    message: str
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class UserNotFound(SubscriptionError):
    code = "user_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class PlanNotFound(SubscriptionError):
    code = "plan_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class SubscriptionNotFound(SubscriptionError):
    code = "subscription_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class NoActiveSubscription(SubscriptionError):
    code = "no_active_subscription"
    status_code = status.HTTP_404_NOT_FOUND


class ActiveSubscriptionExists(SubscriptionError):
    """The user already tracks a subscription and must cancel it first."""

    code = "active_subscription_exists"
    status_code = status.HTTP_409_CONFLICT


class CustomerMismatch(SubscriptionError):
    """A provider fact names a different customer than the one stored on the user."""

    code = "customer_mismatch"
    status_code = status.HTTP_409_CONFLICT


class ProviderUnavailable(SubscriptionError):
    """A call to the billing provider failed or timed out."""

    code = "provider_unavailable"
    status_code = status.HTTP_502_BAD_GATEWAY


class RemoteCancelFailed(ProviderUnavailable):
    """The provider cancel failed after the local entitlement was cleared.

    The user is locally unsubscribed while the provider may still bill them;
    operators need to finish the cancellation by hand.
    """

    code = "remote_cancel_failed"


class InvalidEvent(SubscriptionError):
    """A webhook payload was malformed or could not be verified."""

    code = "invalid_event"
    status_code = status.HTTP_400_BAD_REQUEST


__all__ = [
    "ActiveSubscriptionExists",
    "CustomerMismatch",
    "InvalidEvent",
    "NoActiveSubscription",
    "PlanNotFound",
    "ProviderUnavailable",
    "RemoteCancelFailed",
    "SubscriptionError",
    "SubscriptionNotFound",
    "UserNotFound",
]
