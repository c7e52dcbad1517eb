"""Entitlement persistence on the user table."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Protocol

import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .exceptions import UserNotFound
from .models import UserEntitlement


class EntitlementStore(Protocol):
    """Persistence operations required by the subscription core."""

    def find_user_by_id(self, user_id: str) -> Optional[UserEntitlement]:
        ...

    def find_user_by_customer_id(self, customer_id: str) -> Optional[UserEntitlement]:
        ...

    def find_user_by_email(self, email: str) -> Optional[UserEntitlement]:
        ...

    def set_entitlement(
        self,
        subscription_id: Optional[str],
        customer_id: Optional[str],
        email: str,
        plan_id: Optional[str],
    ) -> None:
        """Write the billing fields of the user identified by ``email``.

        A customer id already stored on the user is never replaced. Raises
        :class:`UserNotFound` when no user has that email.
        """


_USER_COLUMNS = """
    id,
    email,
    name,
    phone,
    role,
    stripe_customer_id,
    stripe_subscription_id,
    plan_id
"""


def _row_to_entitlement(row: dict) -> UserEntitlement:
    return UserEntitlement(
        user_id=str(row["id"]),
        email=row["email"],
        customer_id=row.get("stripe_customer_id"),
        subscription_id=row.get("stripe_subscription_id"),
        plan_id=row.get("plan_id"),
        name=row.get("name"),
        phone=row.get("phone"),
        role=row.get("role"),
    )


@contextmanager
def managed_connection(
    conn: Optional[PgConnection],
    connect: Callable[[], Any],
) -> Iterator[tuple[Any, bool]]:
    """Yield ``conn`` untouched, or a fresh connection owned by the block."""

    if conn is not None:
        yield conn, False
        return

    connection = connect()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _default_connect() -> Any:
    from backend.app_context import get_conn

    return get_conn()


class PostgresEntitlementStore:
    """Reads and writes entitlement columns of the ``users`` table."""

    def __init__(
        self,
        *,
        conn: Optional[PgConnection] = None,
        connect: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._conn = conn
        self._connect = connect or _default_connect

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        with managed_connection(self._conn, self._connect) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def _fetch_one(self, where: str, value: Any) -> Optional[UserEntitlement]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_USER_COLUMNS}
                FROM users
                WHERE {where}
                LIMIT 1
                """,
                (value,),
            )
            row = cursor.fetchone()
            return _row_to_entitlement(row) if row else None

    def find_user_by_id(self, user_id: str) -> Optional[UserEntitlement]:
        try:
            numeric_id = int(user_id)
        except (TypeError, ValueError):
            return None
        return self._fetch_one("id = %s", numeric_id)

    def find_user_by_customer_id(self, customer_id: str) -> Optional[UserEntitlement]:
        return self._fetch_one("stripe_customer_id = %s", customer_id)

    def find_user_by_email(self, email: str) -> Optional[UserEntitlement]:
        return self._fetch_one("LOWER(email) = LOWER(%s)", email)

    def set_entitlement(
        self,
        subscription_id: Optional[str],
        customer_id: Optional[str],
        email: str,
        plan_id: Optional[str],
    ) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE users
                SET stripe_subscription_id = %(subscription_id)s,
                    plan_id = %(plan_id)s,
                    stripe_customer_id = COALESCE(stripe_customer_id, %(customer_id)s)
                WHERE LOWER(email) = LOWER(%(email)s)
                """,
                {
                    "subscription_id": subscription_id,
                    "plan_id": plan_id,
                    "customer_id": customer_id,
                    "email": email,
                },
            )
            if cursor.rowcount == 0:
                raise UserNotFound(f"No user with email {email}", detail={"email": email})


__all__ = ["EntitlementStore", "PostgresEntitlementStore", "managed_connection"]
