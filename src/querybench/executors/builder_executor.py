"""
SQLAlchemy Core query builder executors.

A query is either a Core statement or a zero-argument factory returning one.
Factories are rebuilt on every execution so the builder strategy pays for
query construction the way application code does.
"""

from typing import Any

from sqlalchemy import Engine, create_engine

from querybench.config import ConnectionConfig
from querybench.executors.base import ExecutorAdapter, PreparedHandle, RowSet


def build_statement(query: Any) -> Any:
    """Materialise a statement from a statement or statement factory."""
    return query() if callable(query) else query


def create_postgres_engine(config: ConnectionConfig, prepare_threshold=None) -> Engine:
    """
    Engine for one strategy's backend.

    Args:
        config: Connection parameters of the instance
        prepare_threshold: psycopg auto-prepare threshold (None disables it,
            0 prepares on first execution)
    """
    return create_engine(
        config.sqlalchemy_url("psycopg"),
        isolation_level="AUTOCOMMIT",
        pool_size=1,
        max_overflow=0,
        connect_args={
            "prepare_threshold": prepare_threshold,
            "connect_timeout": int(max(1, config.connection_timeout)),
        },
    )


class BuilderExecutor(ExecutorAdapter):
    """Execute Core statements, compiling them on every call."""

    strategy = "builder"

    def __init__(self, engine: Engine, instance: Any = None, owns_engine: bool = False):
        """
        Initialize builder executor.

        Args:
            engine: SQLAlchemy engine bound to the strategy's backend
            instance: BackendInstance the engine points at
            owns_engine: Dispose the engine on close()
        """
        super().__init__(instance)
        self.engine = engine
        self._owns_engine = owns_engine
        # compiled_cache=None forces statement compilation per execution
        self.connection = engine.connect().execution_options(compiled_cache=None)

    @classmethod
    def connect(cls, config: ConnectionConfig, instance: Any = None) -> "BuilderExecutor":
        """Create an engine and connection for this strategy."""
        return cls(create_postgres_engine(config), instance, owns_engine=True)

    def _execute(self, query: Any, params: Any) -> RowSet:
        result = self.connection.execute(build_statement(query), params or {})
        if not result.returns_rows:
            return []
        return result.all()

    def _close(self) -> None:
        self.connection.close()
        if self._owns_engine:
            self.engine.dispose()


class BuilderPreparedExecutor(BuilderExecutor):
    """
    Compile a Core statement once and reuse the compiled SQL.

    Each execution binds parameters into the cached compiled form and sends
    it straight to the driver. Against PostgreSQL the engine prepares
    statements server-side on first use.
    """

    strategy = "builder-prepared"
    supports_prepared = True

    def __init__(self, engine: Engine, instance: Any = None, owns_engine: bool = False):
        super().__init__(engine, instance, owns_engine)
        self.connection.execution_options(compiled_cache={})

    @classmethod
    def connect(cls, config: ConnectionConfig, instance: Any = None) -> "BuilderPreparedExecutor":
        return cls(create_postgres_engine(config, prepare_threshold=0), instance, owns_engine=True)

    def _prepare(self, name: str, query: Any) -> Any:
        return build_statement(query).compile(dialect=self.engine.dialect)

    def _execute_prepared(self, handle: PreparedHandle, params: Any) -> RowSet:
        compiled = handle.statement
        bound = compiled.construct_params(params or {})
        if compiled.positional:
            driver_params = tuple(bound[key] for key in compiled.positiontup)
        else:
            driver_params = bound

        result = self.connection.exec_driver_sql(compiled.string, driver_params)
        if not result.returns_rows:
            return []
        return result.all()
