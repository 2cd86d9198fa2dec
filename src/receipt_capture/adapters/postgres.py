"""PostgreSQL record store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from psycopg import errors, sql
from psycopg.types.json import Jsonb

from receipt_capture.errors import ConstraintError

if TYPE_CHECKING:
    from collections.abc import Mapping

    import psycopg

logger = logging.getLogger(__name__)


class PostgresRecordStore:
    """``RecordStore`` over a psycopg connection using ``dict_row`` rows.

    Table and column names are composed with ``sql.Identifier``; dict and
    list values are stored as JSONB.
    """

    def __init__(self, conn: psycopg.Connection[dict[str, Any]]) -> None:
        self.conn = conn

    def select(self, table: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        query = sql.SQL("SELECT * FROM {}").format(sql.Identifier(table))
        if filters:
            conditions = sql.SQL(" AND ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column)) for column in filters
            )
            query = sql.SQL("{} WHERE {}").format(query, conditions)
        with self.conn.transaction(), self.conn.cursor() as cur:
            cur.execute(query, list(filters.values()))
            return list(cur.fetchall())

    def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        columns = list(record)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(sql.Identifier(column) for column in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )
        params = [_adapt(record[column]) for column in columns]
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            self.conn.commit()
        except errors.UniqueViolation as exc:
            self.conn.rollback()
            constraint = exc.diag.constraint_name
            logger.info("Insert into %s violated %s", table, constraint)
            raise ConstraintError(constraint, str(exc)) from exc
        except Exception:
            self.conn.rollback()
            raise
        return dict(row) if row else {}


def _adapt(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return Jsonb(value)
    return value
