"""
Raw psycopg 3 query executors.

Queries use native PostgreSQL placeholders ($1, $2, ...) through RawCursor so
the same SQL text serves both the plain and the prepared strategy.
"""

from typing import Any, Optional

import psycopg
from psycopg import sql

from querybench.config import ConnectionConfig
from querybench.executors.base import ExecutorAdapter, PreparedHandle, RowSet


class RawExecutor(ExecutorAdapter):
    """Execute queries via a single psycopg connection, never prepared."""

    strategy = "raw"

    def __init__(self, connection: psycopg.Connection, instance: Any = None):
        """
        Initialize raw executor.

        Args:
            connection: Open psycopg connection (autocommit, RawCursor factory)
            instance: BackendInstance the connection points at
        """
        super().__init__(instance)
        self.connection = connection

    @classmethod
    def connect(cls, config: ConnectionConfig, instance: Any = None) -> "RawExecutor":
        """Open a connection for this strategy."""
        connection = psycopg.connect(
            **config.psycopg_kwargs(),
            autocommit=True,
            prepare_threshold=cls._prepare_threshold(),
            cursor_factory=psycopg.RawCursor,
        )
        return cls(connection, instance)

    @staticmethod
    def _prepare_threshold() -> Optional[int]:
        # None disables psycopg's automatic server-side preparation
        return None

    def _fetch(self, query: Any, params: Any) -> RowSet:
        with self.connection.cursor() as cursor:
            cursor.execute(query, params)

            # cursor.description is None for statements without a result set
            if cursor.description is None:
                return []
            return cursor.fetchall()

    def _execute(self, query: Any, params: Any) -> RowSet:
        return self._fetch(query, params)

    def _close(self) -> None:
        self.connection.close()


class RawPreparedExecutor(RawExecutor):
    """
    Execute queries as named server-side prepared statements.

    prepare() issues PREPARE once; every execution is an EXECUTE with the
    parameters rendered as literals, mirroring a driver's named query.
    """

    strategy = "raw-prepared"
    supports_prepared = True

    def _prepare(self, name: str, query: str) -> str:
        self.connection.execute(
            sql.SQL("PREPARE {} AS {}").format(sql.Identifier(name), sql.SQL(query))
        )
        return name

    def _execute_prepared(self, handle: PreparedHandle, params: Any) -> RowSet:
        if params:
            statement = sql.SQL("EXECUTE {} ({})").format(
                sql.Identifier(handle.statement),
                sql.SQL(", ").join(sql.Literal(value) for value in params),
            )
        else:
            statement = sql.SQL("EXECUTE {}").format(sql.Identifier(handle.statement))
        return self._fetch(statement, None)
