"""
SQLAlchemy ORM executor.

Queries are ORM-enabled select() statements or callables taking
(session, params) for lookups such as Session.get(). The identity map is
cleared after every call so each execution loads its rows from the database.
"""

from typing import Any

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from querybench.config import ConnectionConfig
from querybench.executors.base import ExecutorAdapter, RowSet
from querybench.executors.builder_executor import create_postgres_engine


class OrmExecutor(ExecutorAdapter):
    """Execute queries through an ORM Session."""

    strategy = "orm"

    def __init__(self, engine: Engine, instance: Any = None, owns_engine: bool = False):
        """
        Initialize ORM executor.

        Args:
            engine: SQLAlchemy engine bound to the strategy's backend
            instance: BackendInstance the engine points at
            owns_engine: Dispose the engine on close()
        """
        super().__init__(instance)
        self.engine = engine
        self._owns_engine = owns_engine
        self.session = Session(engine, expire_on_commit=False)

    @classmethod
    def connect(cls, config: ConnectionConfig, instance: Any = None) -> "OrmExecutor":
        """Create an engine and session for this strategy."""
        return cls(create_postgres_engine(config), instance, owns_engine=True)

    def _execute(self, query: Any, params: Any) -> RowSet:
        try:
            if callable(query):
                loaded = query(self.session, params)
                if loaded is None:
                    return []
                if isinstance(loaded, list):
                    return loaded
                return [loaded]

            result = self.session.execute(query, params or {})
            return result.unique().all()
        finally:
            self.session.expunge_all()

    def _close(self) -> None:
        self.session.close()
        if self._owns_engine:
            self.engine.dispose()
