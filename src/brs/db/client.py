"""Database connection helpers."""

from contextlib import contextmanager
from importlib import resources
from typing import Iterator, Optional

import psycopg
from psycopg.rows import dict_row

from brs.config import Settings


def get_connection(settings: Optional[Settings] = None) -> psycopg.Connection:
    """Create a new database connection."""
    settings = settings or Settings()
    return psycopg.connect(settings.get_database_url())


@contextmanager
def db_cursor(settings: Optional[Settings] = None) -> Iterator[psycopg.Cursor]:
    """Yield a dict-row cursor with automatic commit/rollback."""
    conn = get_connection(settings)
    try:
        with conn.cursor(row_factory=dict_row) as cursor:
            yield cursor
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def schema_sql() -> str:
    """Return the bundled DDL for a fresh database."""
    return resources.files("brs.db").joinpath("schema.sql").read_text(encoding="utf-8")
