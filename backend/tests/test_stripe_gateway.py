from __future__ import annotations

from types import SimpleNamespace

import pytest
import stripe

from backend.app.subscriptions import ProviderUnavailable, StripeProviderGateway
from backend.app.subscriptions.gateway import plan_from_payload, snapshot_from_payload


class FakeListResult:
    def __init__(self, items):
        self._items = list(items)

    def auto_paging_iter(self):
        return iter(self._items)


SUBSCRIPTION_PAYLOAD = {
    "id": "sub_1",
    "status": "active",
    "customer": "cus_1",
    "current_period_start": 1714600000,
    "current_period_end": 1717200000,
    "created": 1714500000,
    "latest_invoice": {"id": "in_1"},
    "items": {
        "data": [
            {"id": "si_1", "plan": {"id": "p1", "amount": 500, "currency": "usd", "interval": "month"}},
        ]
    },
}


def _missing(message="No such resource"):
    return stripe.InvalidRequestError(message, "id", code="resource_missing")


@pytest.fixture
def gateway() -> StripeProviderGateway:
    return StripeProviderGateway("sk_test_123")


def test_requires_api_key():
    with pytest.raises(ValueError):
        StripeProviderGateway("")


def test_snapshot_from_payload_normalizes_references():
    snapshot = snapshot_from_payload(SUBSCRIPTION_PAYLOAD)

    assert snapshot.customer_id == "cus_1"
    assert snapshot.latest_invoice == "in_1"
    assert snapshot.plan_ids == ["p1"]
    assert snapshot.items[0].amount == 500


def test_snapshot_from_payload_reads_price_items_and_item_periods():
    payload = {
        "id": "sub_2",
        "status": "active",
        "customer": {"id": "cus_2"},
        "items": {
            "data": [
                {
                    "id": "si_2",
                    "current_period_start": 10,
                    "current_period_end": 20,
                    "price": {"id": "price_1", "unit_amount": 5000, "currency": "usd", "recurring": {"interval": "year"}},
                }
            ]
        },
    }

    snapshot = snapshot_from_payload(payload)

    assert snapshot.customer_id == "cus_2"
    assert (snapshot.current_period_start, snapshot.current_period_end) == (10, 20)
    assert snapshot.items[0].plan_id == "price_1"
    assert snapshot.items[0].interval == "year"


def test_snapshot_from_payload_requires_customer():
    with pytest.raises(ValueError):
        snapshot_from_payload({"id": "sub_3", "status": "active"})
    with pytest.raises(KeyError):
        snapshot_from_payload({"customer": "cus_1"})


def test_snapshot_from_payload_rejects_non_object_items():
    with pytest.raises(ValueError):
        snapshot_from_payload(dict(SUBSCRIPTION_PAYLOAD, items={"data": ["si_1"]}))


def test_plan_from_payload_defaults():
    plan = plan_from_payload({"id": "p9", "amount": None, "currency": "eur", "interval": "month"})

    assert plan.amount == 0
    assert plan.display_price == "0.00"


def test_create_customer_passes_api_key(monkeypatch, gateway):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cus_new")

    monkeypatch.setattr(stripe.Customer, "create", fake_create)

    customer = gateway.create_customer("a@x.com")

    assert customer.id == "cus_new"
    assert captured == {"email": "a@x.com", "api_key": "sk_test_123"}


def test_provider_errors_become_unavailable(monkeypatch, gateway):
    def failing_create(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.Customer, "create", failing_create)

    with pytest.raises(ProviderUnavailable) as exc:
        gateway.create_customer("a@x.com")

    assert exc.value.payload["operation"] == "create_customer"
    assert exc.value.status_code == 502


def test_list_plans_walks_all_pages(monkeypatch, gateway):
    def fake_list(**kwargs):
        assert kwargs["api_key"] == "sk_test_123"
        return FakeListResult(
            [
                {"id": "p1", "amount": 500, "currency": "usd", "interval": "month"},
                {"id": "p2", "amount": 5000, "currency": "usd", "interval": "year", "nickname": "Annual"},
            ]
        )

    monkeypatch.setattr(stripe.Plan, "list", fake_list)

    plans = gateway.list_plans()

    assert [plan.id for plan in plans] == ["p1", "p2"]
    assert plans[1].nickname == "Annual"


def test_retrieve_plan_returns_none_when_missing(monkeypatch, gateway):
    def fake_retrieve(plan_id, **kwargs):
        raise _missing()

    monkeypatch.setattr(stripe.Plan, "retrieve", fake_retrieve)

    assert gateway.retrieve_plan("p_missing") is None


def test_retrieve_customer_treats_deleted_as_missing(monkeypatch, gateway):
    monkeypatch.setattr(
        stripe.Customer,
        "retrieve",
        lambda customer_id, **kwargs: {"id": customer_id, "deleted": True},
    )

    assert gateway.retrieve_customer("cus_1") is None


def test_create_checkout_session_params(monkeypatch, gateway):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_1", url="https://checkout.stripe.test/cs_1")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

    session = gateway.create_checkout_session(
        customer_id="cus_1",
        plan_id="p1",
        success_url="https://app.test/subscription",
        cancel_url="https://app.test/subscription",
        metadata={"user_id": "u1", "plan_id": "p1"},
    )

    assert session.url == "https://checkout.stripe.test/cs_1"
    assert captured["mode"] == "subscription"
    assert captured["payment_method_types"] == ["card"]
    assert captured["line_items"] == [{"price": "p1", "quantity": 1}]
    assert captured["customer"] == "cus_1"
    assert captured["subscription_data"] == {"metadata": {"user_id": "u1", "plan_id": "p1"}}
    assert captured["api_key"] == "sk_test_123"


def test_list_subscriptions_filters_by_customer(monkeypatch, gateway):
    captured = {}

    def fake_list(**kwargs):
        captured.update(kwargs)
        return FakeListResult([SUBSCRIPTION_PAYLOAD])

    monkeypatch.setattr(stripe.Subscription, "list", fake_list)

    snapshots = gateway.list_subscriptions(customer_id="cus_1")

    assert [snapshot.id for snapshot in snapshots] == ["sub_1"]
    assert captured["customer"] == "cus_1"
    assert captured["status"] == "all"


def test_cancel_subscription(monkeypatch, gateway):
    monkeypatch.setattr(
        stripe.Subscription,
        "cancel",
        lambda subscription_id, **kwargs: dict(SUBSCRIPTION_PAYLOAD, status="canceled"),
    )

    snapshot = gateway.cancel_subscription("sub_1")

    assert snapshot.status == "canceled"
