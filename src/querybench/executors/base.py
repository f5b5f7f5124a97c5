"""
Uniform executor capability over client strategies.

Every strategy exposes prepare / execute / execute_prepared / execute_all /
close. Driver errors surface as QueryError carrying the strategy name; nothing
is retried because a retry would distort the timing signal.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

import structlog

from querybench.exceptions import QueryError

logger = structlog.get_logger()

RowSet = List[Any]


@dataclass
class PreparedHandle:
    """Prepared statement owned by one adapter"""
    name: str
    query: Any
    strategy: str
    statement: Any = None


class ExecutorAdapter(ABC):
    """
    Base class for client strategy adapters.

    Subclasses implement the underscore methods; the public methods add
    closed-state checks, prepared statement memoisation and error wrapping.
    Results are always fully materialised before a call returns.
    """

    strategy: str = ""
    supports_prepared: bool = False

    def __init__(self, instance: Any = None):
        """
        Args:
            instance: BackendInstance the session is bound to (None when the
                connection was created outside the provisioner)
        """
        self.instance = instance
        self._prepared: dict[str, PreparedHandle] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise QueryError(self.strategy, "adapter is closed")

    def prepare(self, name: str, query: Any) -> PreparedHandle:
        """
        Prepare a statement once and return a reusable handle.

        A second call with the same name returns the existing handle without
        contacting the server.

        Raises:
            QueryError: Strategy has no prepared statements, the name is
                bound to a different query, or the server rejected it
        """
        self._check_open()

        existing = self._prepared.get(name)
        if existing is not None:
            same = existing.query is query or (
                isinstance(query, str) and existing.query == query
            )
            if not same:
                raise QueryError(
                    self.strategy, f"prepared statement '{name}' already bound to another query"
                )
            return existing

        if not self.supports_prepared:
            raise QueryError(self.strategy, "prepared statements are not supported")

        try:
            statement = self._prepare(name, query)
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(self.strategy, e) from e

        handle = PreparedHandle(name=name, query=query, strategy=self.strategy, statement=statement)
        self._prepared[name] = handle
        logger.debug("Statement prepared", strategy=self.strategy, name=name)
        return handle

    def execute(self, query: Any, params: Any = None) -> RowSet:
        """Run one query and return all of its rows."""
        self._check_open()
        try:
            return self._execute(query, params)
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(self.strategy, e) from e

    def execute_prepared(self, handle: PreparedHandle, params: Any = None) -> RowSet:
        """Run a prepared statement and return all of its rows."""
        self._check_open()
        if self._prepared.get(handle.name) is not handle:
            raise QueryError(self.strategy, f"unknown prepared statement '{handle.name}'")
        try:
            return self._execute_prepared(handle, params)
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(self.strategy, e) from e

    def execute_all(
        self,
        query: Any,
        param_sets: Sequence[Any],
        handle: Optional[PreparedHandle] = None,
    ) -> List[RowSet]:
        """
        Run one execution per parameter set, returning once all completed.

        Args:
            query: Strategy-native query (ignored when handle is given)
            param_sets: Parameters of each execution
            handle: Prepared statement to execute instead of query

        Returns:
            One RowSet per parameter set, in input order
        """
        self._check_open()
        if handle is not None and self._prepared.get(handle.name) is not handle:
            raise QueryError(self.strategy, f"unknown prepared statement '{handle.name}'")
        try:
            return self._execute_all(query, param_sets, handle)
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(self.strategy, e) from e

    def close(self) -> None:
        """Release the session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._prepared.clear()
        self._close()

    def _prepare(self, name: str, query: Any) -> Any:
        raise NotImplementedError

    @abstractmethod
    def _execute(self, query: Any, params: Any) -> RowSet:
        ...

    def _execute_prepared(self, handle: PreparedHandle, params: Any) -> RowSet:
        raise NotImplementedError

    def _execute_all(
        self,
        query: Any,
        param_sets: Sequence[Any],
        handle: Optional[PreparedHandle],
    ) -> List[RowSet]:
        if handle is not None:
            return [self._execute_prepared(handle, params) for params in param_sets]
        return [self._execute(query, params) for params in param_sets]

    @abstractmethod
    def _close(self) -> None:
        ...

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        endpoint = getattr(self.instance, "endpoint", None)
        return f"<{type(self).__name__} strategy={self.strategy} endpoint={endpoint}>"
