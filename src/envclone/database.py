"""
Row-level access to one database.

A thin SQLAlchemy Core wrapper used by the row copier and the deleter.
Tables are reflected on first use, so the client works against any
schema (and any SQLAlchemy dialect) without model classes.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import MetaData, Table, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from envclone.connection import resolve
from envclone.models import Credentials, PostgresConnection

logger = logging.getLogger(__name__)


class DatabaseClient:
    """Paginated reads, bulk inserts and full-table deletes."""

    def __init__(self, engine: Engine, schema: Optional[str] = None):
        self.engine = engine
        self.schema = schema
        self._metadata = MetaData(schema=schema)
        self._tables: Dict[str, Table] = {}

    @classmethod
    def from_connection(cls, connection: PostgresConnection, schema: str = 'public') -> 'DatabaseClient':
        engine = create_engine(
            connection.sqlalchemy_url(),
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        return cls(engine, schema=schema)

    @classmethod
    def from_credentials(cls, credentials: Credentials) -> 'DatabaseClient':
        return cls.from_connection(resolve(credentials))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()
        return False

    def dispose(self):
        self.engine.dispose()

    def _table(self, name: str) -> Table:
        if name not in self._tables:
            self._tables[name] = Table(name, self._metadata, autoload_with=self.engine)
        return self._tables[name]

    def table_exists(self, name: str) -> bool:
        """Probe with a one-row select; any failure counts as missing."""
        try:
            table = self._table(name)
            with self.engine.connect() as conn:
                conn.execute(select(table).limit(1)).fetchall()
            return True
        except SQLAlchemyError as e:
            logger.debug(f"Table {name} not accessible: {e}")
            self._tables.pop(name, None)
            return False

    def get_columns(self, name: str) -> List[str]:
        return [column.name for column in self._table(name).columns]

    def count_rows(self, name: str) -> int:
        table = self._table(name)
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar_one()

    def fetch_page(self, name: str, offset: int, limit: int) -> List[Dict[str, Any]]:
        """Rows ``offset`` .. ``offset + limit - 1`` ordered by primary key."""
        table = self._table(name)
        stmt = select(table)
        order_by = list(table.primary_key.columns) or list(table.columns)[:1]
        stmt = stmt.order_by(*order_by).offset(offset).limit(limit)
        with self.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

    def insert_rows(self, name: str, rows: Sequence[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        table = self._table(name)
        with self.engine.begin() as conn:
            conn.execute(table.insert(), list(rows))
        return len(rows)

    def delete_all(self, name: str) -> int:
        table = self._table(name)
        with self.engine.begin() as conn:
            result = conn.execute(table.delete())
        return result.rowcount
