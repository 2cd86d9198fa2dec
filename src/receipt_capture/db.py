"""Database connection helpers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

import psycopg
from psycopg.rows import dict_row

from receipt_capture.adapters.postgres import PostgresRecordStore
from receipt_capture.config import get_database_url

if TYPE_CHECKING:
    from collections.abc import Iterator


def get_connection() -> psycopg.Connection[dict[str, object]]:
    """Create and return a new database connection."""
    return psycopg.connect(get_database_url(), row_factory=dict_row)


@contextmanager
def open_record_store() -> Iterator[PostgresRecordStore]:
    """Yield a record store on a fresh connection, closed on exit."""
    with get_connection() as conn:
        yield PostgresRecordStore(conn)
