"""Persistence for handbook rows."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ..billing.repository import managed_connection
from .exceptions import HandbookError
from .models import Handbook


def _row_to_handbook(row: dict) -> Handbook:
    return Handbook(
        id=str(row["id"]),
        title=row.get("title"),
        user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
        content_md=row.get("content_md"),
        updated_at=row.get("updated_at"),
    )


class PostgresHandbookRepository:
    """Reads and writes the ``handbooks`` table."""

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
            raise HandbookError(f"Handbook store request failed: {exc}") from exc

    def get_handbook(self, handbook_id: str) -> Optional[Handbook]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, title, user_id, content_md, updated_at
                FROM handbooks
                WHERE id = %s
                LIMIT 1
                """,
                (handbook_id,),
            )
            row = cursor.fetchone()
            return _row_to_handbook(row) if row else None

    def save_content(self, handbook_id: str, content_md: str) -> Optional[Handbook]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE handbooks
                SET content_md = %s, updated_at = NOW()
                WHERE id = %s
                RETURNING id, title, user_id, content_md, updated_at
                """,
                (content_md, handbook_id),
            )
            row = cursor.fetchone()
            return _row_to_handbook(row) if row else None


__all__ = ["PostgresHandbookRepository"]
