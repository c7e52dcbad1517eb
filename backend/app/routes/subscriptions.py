"""API routes exposing subscription functionality."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from ..schemas.subscriptions import (
    CheckoutRequest,
    CheckoutResponse,
    PlanResponse,
    SubscriptionDetailResponse,
    SubscriptionSummaryResponse,
    WebhookAck,
)
from ..services.subscriptions import get_event_ingester, get_subscription_coordinator
from ..subscriptions import SubscriptionError

try:
    from backend import app_context
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    import app_context  # type: ignore[no-redef]


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.current_user(session_token)


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=list[PlanResponse])
def list_plans() -> list[PlanResponse]:
    service = get_subscription_coordinator()
    try:
        plans = service.catalog.list_plans()
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return [PlanResponse.from_plan(plan) for plan in plans]


@router.get("/plans/{plan_id}", response_model=PlanResponse)
def get_plan(plan_id: str) -> PlanResponse:
    service = get_subscription_coordinator()
    try:
        plan = service.catalog.get_plan(plan_id)
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return PlanResponse.from_plan(plan)


@router.post("/checkout", response_model=CheckoutResponse)
def checkout(
    payload: CheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CheckoutResponse:
    service = get_subscription_coordinator()
    try:
        redirect = service.checkout_subscription(payload.plan_id, str(current_user.id))
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutResponse(url=redirect.url)


@router.post("/cancel", status_code=status.HTTP_204_NO_CONTENT)
def cancel(*, current_user=Depends(_get_current_user)) -> Response:
    service = get_subscription_coordinator()
    try:
        service.cancel_subscription(str(current_user.id))
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=list[SubscriptionDetailResponse])
def list_my_subscriptions(*, current_user=Depends(_get_current_user)) -> list[SubscriptionDetailResponse]:
    service = get_subscription_coordinator()
    try:
        details = service.list_user_subscriptions(str(current_user.id))
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return [SubscriptionDetailResponse.from_detail(detail) for detail in details]


@router.get("", response_model=list[SubscriptionSummaryResponse])
def list_all_subscriptions(*, current_user=Depends(_get_current_user)) -> list[SubscriptionSummaryResponse]:
    app_context.require_admin(current_user)
    service = get_subscription_coordinator()
    try:
        summaries = service.list_all_subscriptions()
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return [SubscriptionSummaryResponse.from_summary(summary) for summary in summaries]


@router.get("/{subscription_id}", response_model=SubscriptionDetailResponse)
def get_subscription(
    subscription_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> SubscriptionDetailResponse:
    service = get_subscription_coordinator()
    try:
        detail = service.get_subscription(subscription_id)
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc

    if not app_context.is_admin(current_user):
        owner = service.store.find_user_by_id(str(current_user.id))
        if owner is None or owner.customer_id != detail.customer:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot view another user's subscription")
    return SubscriptionDetailResponse.from_detail(detail)


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookAck:
    payload = await request.body()
    ingester = get_event_ingester()
    try:
        outcome = await run_in_threadpool(ingester.ingest, payload, stripe_signature)
    except SubscriptionError as exc:
        raise exc.to_http_exception() from exc
    return WebhookAck(outcome=outcome)
