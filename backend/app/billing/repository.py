"""Persistence layer for billing domain objects."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..entitlements.models import PlanKey, normalize_plan, parse_status
from .exceptions import BillingStoreError
from .models import SubscriptionRecord

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from backend.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


_SUBSCRIPTION_COLUMNS = """
    email,
    user_id,
    stripe_customer_id,
    stripe_subscription_id,
    plan,
    status,
    current_period_end,
    last_event_at,
    updated_at
"""


def _row_to_subscription(row: dict) -> SubscriptionRecord:
    return SubscriptionRecord(
        email=row.get("email"),
        user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
        customer_id=row.get("stripe_customer_id"),
        subscription_id=row.get("stripe_subscription_id"),
        plan=normalize_plan(row.get("plan")),
        status=parse_status(row.get("status")),
        current_period_end=row.get("current_period_end"),
        last_event_at=row.get("last_event_at"),
        updated_at=row["updated_at"],
    )


def _subscription_params(record: SubscriptionRecord) -> dict:
    return {
        "email": record.email,
        "user_id": record.user_id,
        "customer_id": record.customer_id,
        "subscription_id": record.subscription_id,
        "plan": record.plan.value,
        "status": record.status.value if record.status else None,
        "current_period_end": record.current_period_end,
        "last_event_at": record.last_event_at,
    }


class PostgresBillingRepository:
    """Concrete repository persisting billing state in PostgreSQL.

    Tables: ``subscriptions`` (unique ``stripe_subscription_id``; email-only
    rows exist until a subscription id is known), ``profiles`` (``id``,
    ``email``, ``plan``), ``stripe_customers`` (``user_id`` unique,
    ``stripe_customer_id`` unique) and ``stripe_webhook_events``
    (``event_id`` unique).
    """

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                    if managed:
                        connection.commit()
                except Exception:
                    if managed:
                        connection.rollback()
                    raise
                finally:
                    cursor.close()
        except psycopg2.Error as exc:
            raise BillingStoreError(f"Billing store request failed: {exc}") from exc

    def get_subscription(self, subscription_id: str) -> Optional[SubscriptionRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE stripe_subscription_id = %s
                LIMIT 1
                """,
                (subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def upsert_subscription(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert or update a subscription row.

        Rows are matched by subscription id first. An email-only row left by an
        earlier write is adopted once the subscription id becomes known.
        """

        if not record.subscription_id and not record.email:
            raise ValueError("subscription record needs a subscription id or an email")

        params = _subscription_params(record)
        with self._cursor() as cursor:
            row = None
            if record.subscription_id:
                cursor.execute(
                    f"""
                    UPDATE subscriptions
                    SET email = COALESCE(%(email)s, email),
                        user_id = COALESCE(%(user_id)s, user_id),
                        stripe_customer_id = COALESCE(%(customer_id)s, stripe_customer_id),
                        plan = %(plan)s,
                        status = %(status)s,
                        current_period_end = %(current_period_end)s,
                        last_event_at = %(last_event_at)s,
                        updated_at = NOW()
                    WHERE stripe_subscription_id = %(subscription_id)s
                    RETURNING {_SUBSCRIPTION_COLUMNS}
                    """,
                    params,
                )
                row = cursor.fetchone()

            if row is None and record.email:
                cursor.execute(
                    f"""
                    UPDATE subscriptions
                    SET user_id = COALESCE(%(user_id)s, user_id),
                        stripe_customer_id = COALESCE(%(customer_id)s, stripe_customer_id),
                        stripe_subscription_id = %(subscription_id)s,
                        plan = %(plan)s,
                        status = %(status)s,
                        current_period_end = %(current_period_end)s,
                        last_event_at = %(last_event_at)s,
                        updated_at = NOW()
                    WHERE email = %(email)s AND stripe_subscription_id IS NULL
                    RETURNING {_SUBSCRIPTION_COLUMNS}
                    """,
                    params,
                )
                row = cursor.fetchone()

            if row is None:
                cursor.execute(
                    f"""
                    INSERT INTO subscriptions (
                        email,
                        user_id,
                        stripe_customer_id,
                        stripe_subscription_id,
                        plan,
                        status,
                        current_period_end,
                        last_event_at,
                        updated_at
                    )
                    VALUES (%(email)s, %(user_id)s, %(customer_id)s, %(subscription_id)s,
                            %(plan)s, %(status)s, %(current_period_end)s, %(last_event_at)s, NOW())
                    RETURNING {_SUBSCRIPTION_COLUMNS}
                    """,
                    params,
                )
                row = cursor.fetchone()

            if not row:
                raise BillingStoreError("Failed to persist subscription")
            return _row_to_subscription(row)

    def find_entitling_subscription(
        self,
        *,
        user_id: Optional[str],
        email: Optional[str],
        exclude_subscription_id: Optional[str],
    ) -> Optional[SubscriptionRecord]:
        if not user_id and not email:
            return None
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE status IN ('active', 'trialing')
                  AND plan <> %(pending)s
                  AND stripe_subscription_id IS DISTINCT FROM %(exclude)s
                  AND ((%(user_id)s IS NOT NULL AND user_id = %(user_id)s)
                       OR (%(email)s IS NOT NULL AND email = %(email)s))
                ORDER BY updated_at DESC
                LIMIT 1
                """,
                {
                    "pending": PlanKey.PENDING.value,
                    "exclude": exclude_subscription_id,
                    "user_id": user_id,
                    "email": email,
                },
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def set_profile_plan(self, *, user_id: Optional[str], email: Optional[str], plan: PlanKey) -> None:
        """Write the profile plan, keyed by user id when known and by email otherwise."""

        if user_id:
            column, key = "id", user_id
        elif email:
            column, key = "email", email
        else:
            raise ValueError("profile update needs a user id or an email")

        with self._cursor() as cursor:
            cursor.execute(
                f"UPDATE profiles SET plan = %s WHERE {column} = %s",
                (plan.value, key),
            )

    def get_profile_plan(self, user_id: str) -> Optional[PlanKey]:
        with self._cursor() as cursor:
            cursor.execute("SELECT plan FROM profiles WHERE id = %s LIMIT 1", (user_id,))
            row = cursor.fetchone()
            return normalize_plan(row["plan"]) if row else None

    def get_customer_id(self, user_id: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT stripe_customer_id FROM stripe_customers WHERE user_id = %s LIMIT 1",
                (user_id,),
            )
            row = cursor.fetchone()
            return row["stripe_customer_id"] if row else None

    def get_user_id_for_customer(self, customer_id: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT user_id FROM stripe_customers WHERE stripe_customer_id = %s LIMIT 1",
                (customer_id,),
            )
            row = cursor.fetchone()
            return str(row["user_id"]) if row else None

    def save_customer(self, *, user_id: str, customer_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO stripe_customers (user_id, stripe_customer_id)
                VALUES (%s, %s)
                ON CONFLICT (user_id) DO UPDATE SET
                    stripe_customer_id = EXCLUDED.stripe_customer_id
                """,
                (user_id, customer_id),
            )

    def has_processed(self, event_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT 1 FROM stripe_webhook_events WHERE event_id = %s LIMIT 1",
                (event_id,),
            )
            return cursor.fetchone() is not None

    def mark_processed(self, event_id: str, event_type: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO stripe_webhook_events (event_id, event_type, processed_at)
                VALUES (%s, %s, NOW())
                ON CONFLICT (event_id) DO NOTHING
                """,
                (event_id, event_type),
            )


__all__ = ["PostgresBillingRepository", "managed_connection"]
