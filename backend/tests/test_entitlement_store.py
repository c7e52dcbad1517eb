from __future__ import annotations

import psycopg2.extras
import pytest

from backend.app.subscriptions import PostgresEntitlementStore, UserNotFound


class FakeCursor:
    def __init__(self, *, fetchone_result=None, rowcount=1):
        self.fetchone_result = fetchone_result
        self.rowcount = rowcount
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))

    def fetchone(self):
        return self.fetchone_result

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)
        self.cursor_calls = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self, *args, **kwargs):
        self.cursor_calls.append((args, kwargs))
        if not self._cursors:
            raise AssertionError("No cursors configured")
        return self._cursors.pop(0)

    def commit(self):
        self.committed = True

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


USER_ROW = {
    "id": 7,
    "email": "a@x.com",
    "name": "Ada",
    "phone": "555-0100",
    "role": "user",
    "stripe_customer_id": "cus_1",
    "stripe_subscription_id": "sub_1",
    "plan_id": "p1",
}


def test_find_user_by_id_maps_row():
    cursor = FakeCursor(fetchone_result=dict(USER_ROW))
    conn = FakeConnection(cursor)
    store = PostgresEntitlementStore(conn=conn)

    user = store.find_user_by_id("7")

    assert user.user_id == "7"
    assert user.customer_id == "cus_1"
    assert user.subscription_id == "sub_1"
    assert user.plan_id == "p1"
    assert user.name == "Ada"
    query, params = cursor.execute_calls[0]
    assert "WHERE id = %s" in query
    assert params == (7,)
    assert conn.cursor_calls[0][1] == {"cursor_factory": psycopg2.extras.RealDictCursor}
    assert cursor.closed
    assert not conn.committed


def test_find_user_by_id_rejects_non_numeric_ids():
    conn = FakeConnection()
    store = PostgresEntitlementStore(conn=conn)

    assert store.find_user_by_id("abc") is None
    assert conn.cursor_calls == []


def test_find_user_by_email_is_case_insensitive():
    cursor = FakeCursor(fetchone_result=None)
    store = PostgresEntitlementStore(conn=FakeConnection(cursor))

    assert store.find_user_by_email("A@X.com") is None
    query, params = cursor.execute_calls[0]
    assert "LOWER(email) = LOWER(%s)" in query
    assert params == ("A@X.com",)


def test_find_user_by_customer_id():
    cursor = FakeCursor(fetchone_result=dict(USER_ROW, stripe_subscription_id=None, plan_id=None))
    store = PostgresEntitlementStore(conn=FakeConnection(cursor))

    user = store.find_user_by_customer_id("cus_1")

    assert user.email == "a@x.com"
    assert not user.has_subscription
    assert "stripe_customer_id = %s" in cursor.execute_calls[0][0]


def test_set_entitlement_keeps_existing_customer():
    cursor = FakeCursor(rowcount=1)
    store = PostgresEntitlementStore(conn=FakeConnection(cursor))

    store.set_entitlement("sub_2", "cus_2", "a@x.com", "p2")

    query, params = cursor.execute_calls[0]
    assert query.startswith("UPDATE users")
    assert "COALESCE(stripe_customer_id, %(customer_id)s)" in query
    assert "WHERE LOWER(email) = LOWER(%(email)s)" in query
    assert params == {
        "subscription_id": "sub_2",
        "plan_id": "p2",
        "customer_id": "cus_2",
        "email": "a@x.com",
    }


def test_set_entitlement_unknown_email_raises():
    store = PostgresEntitlementStore(conn=FakeConnection(FakeCursor(rowcount=0)))

    with pytest.raises(UserNotFound) as exc:
        store.set_entitlement(None, None, "ghost@x.com", None)

    assert exc.value.to_http_exception().status_code == 404
    assert exc.value.payload["email"] == "ghost@x.com"


def test_owned_connection_commits_and_closes():
    conn = FakeConnection(FakeCursor(rowcount=1))
    store = PostgresEntitlementStore(connect=lambda: conn)

    store.set_entitlement(None, "cus_1", "a@x.com", None)

    assert conn.committed
    assert conn.closed


def test_owned_connection_rolls_back_on_failure():
    conn = FakeConnection(FakeCursor(rowcount=0))
    store = PostgresEntitlementStore(connect=lambda: conn)

    with pytest.raises(UserNotFound):
        store.set_entitlement("sub_1", "cus_1", "ghost@x.com", "p1")

    assert conn.rolled_back
    assert not conn.committed
    assert conn.closed
