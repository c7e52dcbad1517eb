"""API schemas for subscription endpoints."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..subscriptions import (
    IngestOutcome,
    Plan,
    PlanLine,
    SubscriberProfile,
    SubscriptionDetail,
    SubscriptionSummary,
)


class PlanResponse(BaseModel):
    id: str
    name: str
    price: float
    price_cents: int = Field(alias="priceCents")
    currency: str
    interval: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanResponse":
        return cls(
            id=plan.id,
            name=plan.label,
            price=plan.price,
            price_cents=plan.amount,
            currency=plan.currency,
            interval=plan.interval,
        )


class CheckoutRequest(BaseModel):
    plan_id: str = Field(alias="planId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CheckoutResponse(BaseModel):
    url: str


class SubscriptionDetailResponse(BaseModel):
    id: str
    current_period_start: Optional[date] = Field(alias="currentPeriodStart", default=None)
    current_period_end: Optional[date] = Field(alias="currentPeriodEnd", default=None)
    status: str
    latest_invoice: Optional[str] = Field(alias="latestInvoice", default=None)
    customer: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_detail(cls, detail: SubscriptionDetail) -> "SubscriptionDetailResponse":
        return cls(
            id=detail.id,
            current_period_start=detail.current_period_start,
            current_period_end=detail.current_period_end,
            status=detail.status,
            latest_invoice=detail.latest_invoice,
            customer=detail.customer,
        )


class SubscriptionSummaryResponse(BaseModel):
    id: str
    created_at: Optional[datetime] = Field(alias="createdAt", default=None)
    current_period_start: Optional[datetime] = Field(alias="currentPeriodStart", default=None)
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)
    status: str
    plan: List[PlanLine] = Field(default_factory=list)
    user: SubscriberProfile

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: SubscriptionSummary) -> "SubscriptionSummaryResponse":
        return cls(
            id=summary.id,
            created_at=summary.created_at,
            current_period_start=summary.current_period_start,
            current_period_end=summary.current_period_end,
            status=summary.status,
            plan=list(summary.plan),
            user=summary.user,
        )


class WebhookAck(BaseModel):
    received: bool = True
    outcome: IngestOutcome
